import logging
from datetime import datetime, timezone

from starlette.datastructures import MutableHeaders
from starlette.middleware.cors import CORSMiddleware

logger = logging.getLogger("uvicorn.error")

# Applied to every response unless the response already carries the header,
# so relayed target headers always win.
SECURITY_HEADERS = {
    "content-security-policy": "default-src 'self'; base-uri 'self'; frame-ancestors 'self'; object-src 'none'",
    "cross-origin-opener-policy": "same-origin",
    "cross-origin-resource-policy": "same-origin",
    "origin-agent-cluster": "?1",
    "referrer-policy": "no-referrer",
    "strict-transport-security": "max-age=15552000; includeSubDomains",
    "x-content-type-options": "nosniff",
    "x-dns-prefetch-control": "off",
    "x-download-options": "noopen",
    "x-frame-options": "SAMEORIGIN",
    "x-permitted-cross-domain-policies": "none",
    "x-xss-protection": "0",
}


class SecurityHeadersMiddleware:
    """Plain ASGI middleware, so streamed relay bodies pass through untouched."""

    def __init__(self, app, headers: dict = None):
        self.app = app
        self.headers = SECURITY_HEADERS if headers is None else headers

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    if name not in response_headers:
                        response_headers.append(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)


class PreservingCORSMiddleware(CORSMiddleware):
    """
    CORS that never replaces a header the response already carries.

    A relayed target's own ``Access-Control-*`` and ``Vary`` headers reach the
    caller unchanged; CORS headers are only added where they are missing.
    """

    async def send(self, message, send, request_headers) -> None:
        if message["type"] != "http.response.start":
            await send(message)
            return

        existing = list(message.get("headers", []))
        existing_names = {name.lower() for name, _ in existing}

        async def keep_existing(message):
            added = [
                (name, value)
                for name, value in message["headers"]
                if name.lower() not in existing_names
            ]
            message["headers"] = existing + added
            await send(message)

        await super().send(message, keep_existing, request_headers)


class RequestLogMiddleware:
    """Log one line per inbound request: timestamp, method and full path."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            path = scope.get("raw_path") or scope["path"].encode("utf-8")
            query = scope.get("query_string", b"")
            target = path.decode("latin-1")
            if query:
                target = f"{target}?{query.decode('latin-1')}"
            timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
            logger.info(f"{timestamp} - {scope['method']} {target}")
        await self.app(scope, receive, send)
