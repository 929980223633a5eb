from .engine import RelayEngine, RelaySettings, RelayStreamingResponse
from .errors import MidStreamFault, RelayError, classify_transport_error
from .target import TargetSpec, TargetValidationError, resolve

__all__ = [
    "RelayEngine",
    "RelaySettings",
    "RelayStreamingResponse",
    "MidStreamFault",
    "RelayError",
    "classify_transport_error",
    "TargetSpec",
    "TargetValidationError",
    "resolve",
]
