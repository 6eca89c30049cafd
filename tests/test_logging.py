"""Tests for the structlog setup."""

import io
import json
import logging

import pytest
import structlog

from goldtracker.logging import get_logger, setup_logging


@pytest.fixture
def stream():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    buffer = io.StringIO()
    yield buffer
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def _lines(buffer: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line]


def test_json_lines_carry_service_and_fields(stream) -> None:
    setup_logging("INFO", "json", stream=stream)

    get_logger("goldtracker.tests").info("quote_written", symbol="XAU", mid="2001.00")

    [record] = _lines(stream)
    assert record["event"] == "quote_written"
    assert record["service"] == "gold-tracker"
    assert record["symbol"] == "XAU"
    assert record["level"] == "info"
    assert record["logger"] == "goldtracker.tests"
    assert "timestamp" in record


def test_stdlib_records_share_the_format(stream) -> None:
    setup_logging("INFO", "json", service="tracker-test", stream=stream)

    logging.getLogger("uvicorn.error").warning("server shutting down")

    [record] = _lines(stream)
    assert record["event"] == "server shutting down"
    assert record["service"] == "tracker-test"
    assert record["level"] == "warning"


def test_level_filters_debug(stream) -> None:
    setup_logging("INFO", "json", stream=stream)

    get_logger("goldtracker.tests").debug("price_fetched", symbol="XAG")

    assert stream.getvalue() == ""


def test_chatty_libraries_quieted(stream) -> None:
    setup_logging("DEBUG", "console", stream=stream)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("aiosqlite").level == logging.WARNING


def test_console_format_is_not_json(stream) -> None:
    setup_logging("INFO", "console", stream=stream)

    get_logger("goldtracker.tests").info("refresh_tick_complete", updated=4)

    output = stream.getvalue()
    assert "refresh_tick_complete" in output
    assert not output.lstrip().startswith("{")
