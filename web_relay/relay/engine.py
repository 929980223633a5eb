import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse
from opentelemetry import trace
from prometheus_client import Counter
from starlette.types import Receive, Scope, Send

from web_relay.relay.errors import MidStreamFault, classify_transport_error
from web_relay.relay.target import TargetSpec
from web_relay.utils import redact_url
from web_relay.utils.exception_logging import log_exception_with_details
from web_relay.utils.traced_requests import traced_relay

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Methods that never carry a request body to the target
BODYLESS_METHODS = {"GET", "HEAD"}

RELAY_REQUESTS = Counter(
    "relay_requests_total",
    "Relay operations by outcome and fault code",
    ["outcome", "code"],
)


@dataclass(frozen=True)
class RelaySettings:
    """Outbound behaviour of the relay engine."""

    timeout: float = 30.0
    # Trust-everything TLS unless explicitly turned on
    verify_tls: bool = False
    user_agent: str = "Web-Proxy-Server/1.0"

    @classmethod
    def from_env(cls) -> "RelaySettings":
        from web_relay.vars import RELAY_TIMEOUT, RELAY_USER_AGENT, RELAY_VERIFY_TLS

        return cls(
            timeout=RELAY_TIMEOUT,
            verify_tls=RELAY_VERIFY_TLS,
            user_agent=RELAY_USER_AGENT,
        )

    def outbound_headers(self) -> Dict[str, str]:
        """The fixed header set sent to every target; inbound headers are not forwarded."""
        return {
            "User-Agent": self.user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate, br",
            "Connection": "keep-alive",
        }


class RelayStreamingResponse(StreamingResponse):
    """
    Streams a target response back to the caller unchanged.

    Status and the raw header list are copied from the target (repeated
    headers such as Set-Cookie included), and the body is passed through
    still encoded so Content-Encoding and Content-Length stay valid.
    The outbound response and its client are released whenever sending ends:
    normal completion, a mid-stream fault, or the caller going away.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        client: httpx.AsyncClient,
        target: TargetSpec,
    ):
        self.upstream = upstream
        self.client = client
        self.target = target
        super().__init__(self._relay_body(), status_code=upstream.status_code)
        self.raw_headers = [
            (name.lower(), value) for name, value in upstream.headers.raw
        ]

    async def _relay_body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.upstream.aiter_raw():
                yield chunk
        except (httpx.HTTPError, OSError) as e:
            RELAY_REQUESTS.labels(outcome="truncated", code="mid_stream_fault").inc()
            log_exception_with_details(
                logger,
                f"[Relay] Stream from {redact_url(self.target.url)} aborted after headers were sent",
                e,
                level=logging.WARNING,
            )
            raise MidStreamFault(self.target.raw, e) from e

    async def release(self) -> None:
        await self.upstream.aclose()
        await self.client.aclose()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.release()


class RelayEngine:
    """
    Issues the outbound request for one relay operation.

    Every call owns a fresh httpx.AsyncClient, so nothing is shared between
    concurrent operations. ``transport`` is passed through to httpx and lets
    callers (tests, embedding apps) swap the network layer.
    """

    def __init__(
        self,
        settings: Optional[RelaySettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or RelaySettings()
        self.transport = transport

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.timeout),
            verify=self.settings.verify_tls,
            follow_redirects=False,
            transport=self.transport,
        )

    def build_outbound(
        self, client: httpx.AsyncClient, request: Request, target: TargetSpec
    ) -> httpx.Request:
        """Build the outbound request; non-GET/HEAD bodies are streamed, never buffered."""
        content = None
        if request.method.upper() not in BODYLESS_METHODS:
            content = request.stream()
        return client.build_request(
            method=request.method,
            url=target.url,
            headers=self.settings.outbound_headers(),
            content=content,
        )

    async def open(self, request: Request, target: TargetSpec) -> RelayStreamingResponse:
        """
        Send the outbound request and wait for the target's response headers.

        Raises:
            RelayError: when the exchange fails before any response headers
                arrived (DNS, refused, TLS, timeouts, other transport faults).
        """
        with traced_relay(tracer, "relay_request", request.method, target.url) as span:
            client = self._build_client()
            try:
                outbound = self.build_outbound(client, request, target)
                upstream = await client.send(outbound, stream=True)
            except (httpx.HTTPError, OSError) as e:
                await client.aclose()
                error = classify_transport_error(e, target.raw)
                span.set_attribute("relay.error", error.code)
                RELAY_REQUESTS.labels(outcome="error", code=error.code).inc()
                log_exception_with_details(
                    logger,
                    f"[Relay] {error.code} ({error.status_code}) for {redact_url(target.raw)}",
                    e,
                    level=logging.WARNING,
                )
                raise error from e
            except BaseException:
                await client.aclose()
                raise

            span.set_attribute("relay.status_code", upstream.status_code)
            location = upstream.headers.get("location")
            if 300 <= upstream.status_code < 400 and location:
                span.set_attribute("relay.redirect_location", redact_url(location))
                logger.info(
                    f"Target answered {upstream.status_code}, passing redirect to {redact_url(location)} back to caller"
                )
            logger.info(f"Relay response: {upstream.status_code} - {redact_url(target.url)}")
            RELAY_REQUESTS.labels(outcome="relayed", code=str(upstream.status_code)).inc()
            return RelayStreamingResponse(upstream, client, target)
