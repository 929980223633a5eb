import logging
import socket
from unittest.mock import Mock

import httpx

from web_relay.utils.exception_logging import (
    format_exception_message,
    iter_exception_chain,
    log_exception_with_details,
)


class BrokenStrException(Exception):
    """An exception that breaks when __str__ is called."""

    def __str__(self):
        raise RuntimeError("Cannot convert to string!")

    def __repr__(self):
        return "BrokenStrException(cannot convert to string)"


def _connect_error_from_dns():
    exc = httpx.ConnectError("")
    exc.__cause__ = socket.gaierror(-2, "Name or service not known")
    return exc


class TestIterExceptionChain:
    def test_single_exception(self):
        exc = ValueError("alone")

        assert list(iter_exception_chain(exc)) == [exc]

    def test_follows_cause(self):
        exc = _connect_error_from_dns()

        chain = list(iter_exception_chain(exc))

        assert chain[0] is exc
        assert isinstance(chain[1], socket.gaierror)

    def test_follows_context(self):
        try:
            try:
                raise KeyError("inner")
            except KeyError:
                raise ValueError("outer")
        except ValueError as e:
            chain = list(iter_exception_chain(e))

        assert [type(e) for e in chain] == [ValueError, KeyError]

    def test_walks_exception_groups(self):
        refused = ConnectionRefusedError(111, "Connection refused")
        unreachable = OSError(113, "No route to host")
        group = ExceptionGroup("attempts", [refused, unreachable])

        chain = list(iter_exception_chain(group))

        assert chain == [group, refused, unreachable]

    def test_cycles_terminate(self):
        a = ValueError("a")
        b = ValueError("b")
        a.__cause__ = b
        b.__cause__ = a

        assert list(iter_exception_chain(a)) == [a, b]

    def test_none(self):
        assert list(iter_exception_chain(None)) == []


class TestFormatExceptionMessage:
    def test_plain_message(self):
        assert format_exception_message(ValueError("bad value")) == "bad value"

    def test_empty_message_uses_cause(self):
        assert "Name or service not known" in format_exception_message(
            _connect_error_from_dns()
        )

    def test_falls_back_to_type_name(self):
        assert format_exception_message(httpx.ReadTimeout("")) == "ReadTimeout"

    def test_broken_str(self):
        result = format_exception_message(BrokenStrException())

        assert "BrokenStrException" in result

    def test_none(self):
        assert format_exception_message(None) == "None"


class TestLogExceptionWithDetails:
    def test_logs_exception_and_causes(self):
        logger = Mock(spec=logging.Logger)

        log_exception_with_details(logger, "[Relay]", _connect_error_from_dns())

        messages = [c.args[1] for c in logger.log.call_args_list]
        assert messages[0].startswith("[Relay] ConnectError")
        assert "Caused by (1): gaierror" in messages[1]

    def test_uses_given_level(self):
        logger = Mock(spec=logging.Logger)

        log_exception_with_details(logger, "[Relay]", ValueError("x"), level=logging.WARNING)

        assert logger.log.call_args_list[0].args[0] == logging.WARNING

    def test_never_raises_when_logger_fails(self):
        logger = Mock(spec=logging.Logger)
        logger.log.side_effect = RuntimeError("logging broken")

        log_exception_with_details(logger, "[Relay]", ValueError("x"))

    def test_broken_exception(self):
        logger = Mock(spec=logging.Logger)

        log_exception_with_details(logger, "[Relay]", BrokenStrException())

        assert logger.log.called
