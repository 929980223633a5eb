import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from web_relay.relay.engine import RelayEngine
from web_relay.relay.errors import RelayError
from web_relay.relay.target import TargetValidationError, resolve
from web_relay.utils import redact_url
from web_relay.vars import RELAY_PREFIX

router = APIRouter(prefix=RELAY_PREFIX)
logger = logging.getLogger("uvicorn.error")

RELAY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def get_relay_engine(request: Request) -> RelayEngine:
    """The engine is owned by the application that mounted this router."""
    return request.app.state.relay_engine


def extract_raw_target(request: Request, prefix: str = RELAY_PREFIX) -> str:
    """
    Return everything after ``<prefix>/`` in the request target, verbatim.

    The raw (still percent-encoded) path is used when the server provides it,
    and the query string is re-attached so it stays part of the target URL.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path

    marker = prefix.rstrip("/") + "/"
    if path.startswith(marker):
        tail = path[len(marker):]
    else:
        tail = ""

    query_string = request.scope.get("query_string", b"").decode("latin-1")
    if query_string:
        tail = f"{tail}?{query_string}"
    return tail


def target_validation_response(exc: TargetValidationError) -> JSONResponse:
    if exc.kind == TargetValidationError.MISSING_TARGET:
        error = "Missing target URL"
        suggestion = f"Append the target URL to the relay path: {RELAY_PREFIX}/<target URL>"
    else:
        error = "Invalid target URL"
        suggestion = "Make sure the target URL starts with http:// or https://"
    return JSONResponse(
        status_code=400,
        content={
            "error": error,
            "message": exc.detail or exc.kind,
            "code": exc.kind,
            "targetUrl": exc.raw_target,
            "suggestion": suggestion,
        },
    )


async def target_validation_handler(request: Request, exc: TargetValidationError):
    logger.info(f"Rejected relay target {redact_url(exc.raw_target)!r}: {exc.kind}")
    return target_validation_response(exc)


async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@router.api_route("/{path:path}", methods=RELAY_METHODS)
async def relay(
    request: Request, path: str, engine: RelayEngine = Depends(get_relay_engine)
):
    """Relay the request to the URL encoded in the rest of the path."""
    raw_target = extract_raw_target(request)
    logger.info(f"Relay request: {request.method} {redact_url(raw_target)}")
    target = resolve(raw_target)
    return await engine.open(request, target)
