import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger("uvicorn.error")

SUPPORTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
DEFAULT_SCHEME = "https"

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


class TargetValidationError(Exception):
    """The inbound path does not carry a usable target URL."""

    MISSING_TARGET = "missing_target"
    MALFORMED_TARGET = "malformed_target"
    UNSUPPORTED_SCHEME = "unsupported_scheme"

    def __init__(self, kind: str, raw_target: str, detail: Optional[str] = None):
        self.kind = kind
        self.raw_target = raw_target
        self.detail = detail
        super().__init__(detail or kind)


@dataclass(frozen=True)
class TargetSpec:
    """A validated absolute target, parsed once and used for dispatch as-is."""

    scheme: str
    hostname: str
    port: int
    path: str
    query: str
    raw: str

    @property
    def request_target(self) -> str:
        """Path plus query, exactly as it goes on the request line."""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def netloc(self) -> str:
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        if self.port == DEFAULT_PORTS[self.scheme]:
            return host
        return f"{host}:{self.port}"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.netloc}{self.request_target}"


def has_scheme(raw_target: str) -> bool:
    return bool(_SCHEME_PREFIX.match(raw_target))


def resolve(raw_target: str) -> TargetSpec:
    """
    Turn the tail of a relay path into a TargetSpec.

    The tail is taken literally: it is not percent-decoded and any query
    string is part of it. A tail without ``scheme://`` is treated as https.

    Raises:
        TargetValidationError: when the tail is empty, does not parse as an
            absolute URL, or names a scheme other than http/https.
    """
    if not raw_target:
        raise TargetValidationError(
            TargetValidationError.MISSING_TARGET, raw_target, "no target URL given"
        )

    candidate = raw_target
    if not has_scheme(candidate):
        candidate = f"{DEFAULT_SCHEME}://{candidate}"

    try:
        parsed = httpx.URL(candidate)
    except (httpx.InvalidURL, ValueError, TypeError) as e:
        logger.debug(f"Target URL failed to parse: {raw_target!r}: {e}")
        raise TargetValidationError(
            TargetValidationError.MALFORMED_TARGET, raw_target, str(e)
        ) from e

    scheme = parsed.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise TargetValidationError(
            TargetValidationError.UNSUPPORTED_SCHEME,
            raw_target,
            f"unsupported scheme '{scheme}', only http and https are relayed",
        )

    if not parsed.host:
        raise TargetValidationError(
            TargetValidationError.MALFORMED_TARGET, raw_target, "target URL has no hostname"
        )

    raw_path = parsed.raw_path.decode("ascii")
    path, _, query = raw_path.partition("?")

    return TargetSpec(
        scheme=scheme,
        hostname=parsed.raw_host.decode("ascii"),
        port=parsed.port or DEFAULT_PORTS[scheme],
        path=path or "/",
        query=query,
        raw=raw_target,
    )
