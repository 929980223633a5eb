import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from web_relay.middleware import (
    PreservingCORSMiddleware,
    RequestLogMiddleware,
    SecurityHeadersMiddleware,
)
from web_relay.relay.engine import RelayEngine, RelaySettings
from web_relay.relay.errors import RelayError
from web_relay.relay.route import relay_error_handler, target_validation_handler
from web_relay.relay.target import TargetValidationError
from web_relay.routes import AVAILABLE_ENDPOINTS, router
from web_relay.utils.exception_logging import log_exception_with_details
from web_relay.vars import (
    CORS_ALLOW_ORIGINS,
    HOST,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    RELAY_PREFIX,
    SERVICE_NAME,
    SERVICE_VERSION,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out ASGI body spans.
    Every relayed chunk would otherwise produce its own span.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(app: FastAPI) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )

    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code != 404:
        return await http_exception_handler(request, exc)
    return JSONResponse(
        status_code=404,
        content={"error": "Endpoint not found", "availableEndpoints": AVAILABLE_ENDPOINTS},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    log_exception_with_details(logger, f"[Server] {request.method} {request.url.path}", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{SERVICE_NAME} {SERVICE_VERSION} listening on http://{HOST}:{PORT}")
    logger.info(f"API info: http://localhost:{PORT}/api")
    logger.info(f"Health check: http://localhost:{PORT}/health")
    logger.info(f"Relay usage: http://localhost:{PORT}{RELAY_PREFIX}/<target URL>")
    settings = app.state.relay_engine.settings
    if not settings.verify_tls:
        logger.warning(
            "TLS certificate verification is disabled for relayed requests (RELAY_VERIFY_TLS=false)"
        )
    yield
    logger.info(f"{SERVICE_NAME} shutting down")


def create_app(engine: Optional[RelayEngine] = None) -> FastAPI:
    """Build the relay application; the engine lives on ``app.state``."""
    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.relay_engine = engine or RelayEngine(RelaySettings.from_env())

    app.add_middleware(
        PreservingCORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLogMiddleware)

    app.add_exception_handler(TargetValidationError, target_validation_handler)
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    Instrumentator(excluded_handlers=["/metrics", "/health"]).instrument(app).expose(app)
    configure_tracing(app)

    app.include_router(router)
    return app


app = create_app()

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME, "version": SERVICE_VERSION})
