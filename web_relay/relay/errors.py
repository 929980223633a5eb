"""
Relay failure types and the mapping from transport faults to caller-facing errors.

Classification only applies before response headers reach the caller; once
the stream has started a fault becomes a MidStreamFault and the connection is
simply torn down.
"""

import socket
import ssl
from dataclasses import dataclass
from typing import Optional

import httpx

from web_relay.utils.exception_logging import (
    format_exception_message,
    iter_exception_chain,
)

NAME_RESOLUTION_FAILED = "name_resolution_failed"
CONNECTION_REFUSED = "connection_refused"
CONNECTION_TIMED_OUT = "connection_timed_out"
CERTIFICATE_EXPIRED = "certificate_expired"
TLS_HANDSHAKE_FAILED = "tls_handshake_failed"
REQUEST_TIMEOUT = "request_timeout"
TRANSPORT_ERROR = "transport_error"

# OpenSSL X509_V_ERR_CERT_HAS_EXPIRED
_X509_CERT_HAS_EXPIRED = 10


@dataclass(frozen=True)
class _Fault:
    status_code: int
    message: Optional[str]
    suggestion: str


FAULTS = {
    NAME_RESOLUTION_FAILED: _Fault(
        502,
        "cannot resolve target host",
        "Check that the target hostname is spelled correctly and resolvable.",
    ),
    CONNECTION_REFUSED: _Fault(
        502,
        "connection refused",
        "Check that the target server is running and accepts connections on that port.",
    ),
    CONNECTION_TIMED_OUT: _Fault(
        504,
        "connection timed out",
        "The target did not answer in time; check that it is reachable or retry later.",
    ),
    CERTIFICATE_EXPIRED: _Fault(
        502,
        "TLS certificate expired",
        "The target's TLS certificate has expired; contact the site operator.",
    ),
    TLS_HANDSHAKE_FAILED: _Fault(
        502,
        "TLS handshake failed",
        "Check that the target serves TLS on that port, or try http://.",
    ),
    REQUEST_TIMEOUT: _Fault(
        504,
        "request exceeded time limit",
        "The target stopped making progress; retry later.",
    ),
    # message comes from the underlying error
    TRANSPORT_ERROR: _Fault(
        502,
        None,
        "Check that the target URL is reachable, or retry later.",
    ),
}

_RESOLUTION_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
)


class RelayError(Exception):
    """A transport fault translated into a caller-facing error response."""

    def __init__(
        self,
        code: str,
        status_code: int,
        message: str,
        target_url: str,
        suggestion: Optional[str] = None,
    ):
        self.code = code
        self.status_code = status_code
        self.message = message
        self.target_url = target_url
        self.suggestion = suggestion
        super().__init__(message)

    @property
    def error(self) -> str:
        if self.code == REQUEST_TIMEOUT:
            return "Relay request timed out"
        return "Relay request failed"

    def to_dict(self) -> dict:
        body = {
            "error": self.error,
            "message": self.message,
            "code": self.code,
            "targetUrl": self.target_url,
        }
        if self.suggestion:
            body["suggestion"] = self.suggestion
        return body


class MidStreamFault(Exception):
    """The target failed after response headers were already sent to the caller."""

    def __init__(self, target_url: str, cause: BaseException):
        self.target_url = target_url
        super().__init__(
            f"relay stream from {target_url} aborted: {format_exception_message(cause)}"
        )


def _is_certificate_expired(exc: BaseException) -> bool:
    if isinstance(exc, ssl.SSLCertVerificationError):
        if getattr(exc, "verify_code", None) == _X509_CERT_HAS_EXPIRED:
            return True
    return "certificate has expired" in format_exception_message(exc).lower()


def classify_code(exc: BaseException) -> str:
    """Return the fault code for an exception raised by the outbound exchange."""
    if isinstance(exc, httpx.ConnectTimeout):
        return CONNECTION_TIMED_OUT
    if isinstance(exc, httpx.TimeoutException):
        return REQUEST_TIMEOUT

    chain = list(iter_exception_chain(exc))
    for inner in chain:
        if isinstance(inner, socket.gaierror):
            return NAME_RESOLUTION_FAILED
        if isinstance(inner, ConnectionRefusedError):
            return CONNECTION_REFUSED
        if isinstance(inner, ssl.SSLError):
            if _is_certificate_expired(inner):
                return CERTIFICATE_EXPIRED
            return TLS_HANDSHAKE_FAILED
        if isinstance(inner, TimeoutError):
            return CONNECTION_TIMED_OUT

    raw_text = " ".join(format_exception_message(inner) for inner in chain)
    text = raw_text.lower()
    if any(hint in text for hint in _RESOLUTION_HINTS):
        return NAME_RESOLUTION_FAILED
    if "connection refused" in text:
        return CONNECTION_REFUSED
    if "certificate has expired" in text:
        return CERTIFICATE_EXPIRED
    if "TLS" in raw_text or "SSL" in raw_text:
        return TLS_HANDSHAKE_FAILED
    return TRANSPORT_ERROR


def classify_transport_error(exc: BaseException, target_url: str) -> RelayError:
    """Translate an outbound fault into a RelayError for ``target_url``."""
    code = classify_code(exc)
    fault = FAULTS[code]
    message = fault.message or format_exception_message(exc)
    return RelayError(
        code=code,
        status_code=fault.status_code,
        message=message,
        target_url=target_url,
        suggestion=fault.suggestion,
    )
