"""
Helpers for logging and inspecting transport exceptions.

Network failures surface from httpx wrapped several layers deep (httpx ->
httpcore -> anyio -> OSError), sometimes inside exception groups when several
addresses were tried. These helpers walk that structure without ever raising.
"""

import logging
from typing import Iterator, Optional


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    """
    Safely get the exceptions list from an exception group.

    Args:
        exception_group: The exception group object

    Returns:
        List of exceptions, or empty list if access fails
    """
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def iter_exception_chain(exception: Optional[BaseException]) -> Iterator[BaseException]:
    """
    Yield an exception, its causes/contexts and the members of any exception
    group found along the way, depth first. Each exception is yielded once.

    Args:
        exception: The exception to walk

    Yields:
        Every exception reachable from ``exception``
    """
    seen = set()
    stack = [exception] if exception is not None else []
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        nested = []
        if hasattr(current, "exceptions"):
            nested.extend(_safe_get_exceptions(current))
        nested.append(getattr(current, "__cause__", None))
        nested.append(getattr(current, "__context__", None))
        # Reverse so the first nested exception is visited first
        stack.extend(reversed([e for e in nested if e is not None]))


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception together with the underlying errors it wraps.
    This function never raises, even for broken exception objects or a
    failing logger.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Relay]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        chain = list(iter_exception_chain(exception))
        if not chain:
            logger.log(level, f"{safe_prefix} Exception: None")
            return

        logger.log(
            level,
            f"{safe_prefix} {type(exception).__name__}: {_safe_str(exception)}",
            exc_info=exception,
        )
        for i, inner in enumerate(chain[1:], start=1):
            try:
                logger.log(
                    level,
                    f"{safe_prefix} Caused by ({i}): {type(inner).__name__}: {_safe_str(inner)}",
                )
            except Exception:
                continue
    except Exception:
        try:
            if logger is not None:
                logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    Format an exception for a caller-facing message.

    Empty messages (common for httpx timeouts and bare OSErrors) fall back to
    the first non-empty message further down the chain, then to the type name.

    Args:
        exception: The exception to format

    Returns:
        A non-empty description of the exception
    """
    if exception is None:
        return "None"
    try:
        for exc in iter_exception_chain(exception):
            message = _safe_str(exc).strip()
            if message:
                return message
        return type(exception).__name__
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"
