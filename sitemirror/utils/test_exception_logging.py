import logging

from sitemirror.utils import mask_cookie, mask_value
from sitemirror.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)

logger = logging.getLogger("uvicorn.error")


class UnprintableError(Exception):
    def __str__(self):
        raise RuntimeError("no str for you")


def test_logs_plain_exception_with_traceback(uvicorn_logs):
    try:
        raise ValueError("bad value")
    except ValueError as e:
        log_exception_with_details(logger, "[Test]", e)

    record = uvicorn_logs.records[-1]
    assert record.levelno == logging.ERROR
    assert record.getMessage() == "[Test] Exception: bad value"
    assert record.exc_info is not None


def test_logs_each_sub_exception(uvicorn_logs):
    group = ExceptionGroup("task group failed", [KeyError("k"), OSError("disk")])

    log_exception_with_details(logger, "[Test]", group, level=logging.WARNING)

    messages = [r.getMessage() for r in uvicorn_logs.records]
    assert "[Test] Exception with 2 sub-exceptions: task group failed (2 sub-exceptions)" in messages
    assert "[Test] Sub-exception 1: KeyError: 'k'" in messages
    assert "[Test] Sub-exception 2: OSError: disk" in messages
    assert all(r.levelno == logging.WARNING for r in uvicorn_logs.records)


def test_unprintable_exception_does_not_raise(uvicorn_logs):
    log_exception_with_details(logger, "[Test]", UnprintableError())

    assert "UnprintableError" in uvicorn_logs.records[-1].getMessage()


class TestFormatExceptionMessage:
    def test_plain(self):
        assert format_exception_message(RuntimeError("kaboom")) == "kaboom"

    def test_empty_message_uses_type_name(self):
        assert format_exception_message(TimeoutError()) == "TimeoutError"

    def test_group(self):
        group = ExceptionGroup("failed", [ValueError("a"), TypeError("b")])

        assert format_exception_message(group) == (
            "failed (2 sub-exceptions) (Sub-exceptions: ValueError: a; TypeError: b)"
        )


class TestMasking:
    def test_mask_value(self):
        assert mask_value("supersecret") == "supe****"
        assert mask_value("") == ""

    def test_mask_cookie_keeps_attributes(self):
        assert mask_cookie("sid=abcdefgh; Path=/; HttpOnly") == "sid=abcd****; Path=/; HttpOnly"

    def test_mask_cookie_without_value(self):
        assert mask_cookie("garbage") == "garbage"
