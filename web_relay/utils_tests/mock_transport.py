from typing import Iterable, Optional, Tuple, Union

import httpx

HeaderList = Union[dict, Iterable[Tuple[str, str]], None]


def upstream_response(
    status_code: int = 200, headers: HeaderList = None, body: bytes = b""
) -> httpx.Response:
    """
    A target response whose body is still unread, like one coming off the wire.
    ``httpx.Response(content=...)`` would pre-read the body and make raw
    streaming impossible.
    """
    headers = httpx.Headers(headers or {})
    if body and "content-length" not in headers:
        headers["Content-Length"] = str(len(body))
    return httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(body))


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every outbound request and whether it was closed."""

    def __init__(self, handler):
        self.requests = []
        self.closed = False

        async def _record(request: httpx.Request):
            self.requests.append(request)
            result = handler(request)
            if not isinstance(result, httpx.Response):
                result = await result
            return result

        super().__init__(_record)

    async def aclose(self) -> None:
        self.closed = True


def transport_for(
    status_code: int = 200, headers: HeaderList = None, body: bytes = b""
) -> RecordingTransport:
    """Transport whose target always answers with the same response."""
    return RecordingTransport(
        lambda request: upstream_response(status_code, headers, body)
    )


def failing_transport(exc: Exception, cause: Optional[BaseException] = None) -> RecordingTransport:
    """Transport whose target fails with ``exc`` (chained from ``cause``) on every request."""

    def handler(request):
        exc.__cause__ = cause
        raise exc

    return RecordingTransport(handler)
