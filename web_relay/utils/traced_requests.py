import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from web_relay.utils import redact_url

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_relay(
    tracer: Tracer,
    operation: str,
    method: str,
    target_url: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set relay attributes, and log the start."""
    safe_url = redact_url(target_url)
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("relay.method", method)
        span.set_attribute("relay.target_url", safe_url)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.info(f"Relaying {method} -> {safe_url}")
        yield span
