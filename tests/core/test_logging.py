from __future__ import annotations

import logging

import pytest

from lms.core.logging import (
    RequestContextFilter,
    _ContainerFormatter,
    _JsonFormatter,
    request_id_var,
    setup_logging,
)


def _record(level: int = logging.INFO, msg: str = "progress applied", **attrs):
    record = logging.LogRecord(
        name="lms.services.progress_ledger",
        level=level,
        pathname="progress_ledger.py",
        lineno=57,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _restore_root_logging():
    yield
    setup_logging("warning")


# ---- setup_logging ----


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("debug", logging.DEBUG),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
        ("chatty", logging.INFO),
    ],
)
def test_root_level_follows_setting(name: str, expected: int) -> None:
    setup_logging(name)
    assert logging.getLogger().level == expected


def test_third_party_loggers_never_go_below_warning() -> None:
    setup_logging("debug")
    for name in ("uvicorn", "sqlalchemy.engine", "aiosqlite", "stripe"):
        assert logging.getLogger(name).level == logging.WARNING


def test_third_party_loggers_follow_a_stricter_root() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR
    assert logging.getLogger("stripe").level == logging.ERROR


def test_single_handler_with_chosen_formatter() -> None:
    setup_logging("info", json_format=True)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, _JsonFormatter)

    setup_logging("info")
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, _ContainerFormatter)


def test_handler_carries_request_context_filter() -> None:
    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    assert any(isinstance(f, RequestContextFilter) for f in handler.filters)


# ---- human-readable format ----


def test_location_suffix_only_from_warning_up() -> None:
    fmt = _ContainerFormatter()
    assert "[progress_ledger.py:" not in fmt.format(_record(logging.INFO))
    assert "[progress_ledger.py:57]" in fmt.format(_record(logging.WARNING))
    assert "[progress_ledger.py:57]" in fmt.format(_record(logging.ERROR))


def test_container_line_has_level_logger_and_message() -> None:
    line = _ContainerFormatter().format(_record(msg="quiz graded"))
    assert "INFO" in line
    assert "lms.services.progress_ledger" in line
    assert line.endswith("quiz graded")


def test_container_timestamp_has_milliseconds() -> None:
    fmt = _ContainerFormatter()
    record = _record()
    record.msecs = 7
    stamp = fmt.formatTime(record, fmt.datefmt)
    assert ".007" in stamp
    assert stamp[-5] in "+-"


# ---- request-id filter ----


def test_filter_stamps_current_request_id() -> None:
    record = _record()
    token = request_id_var.set("req-77")
    try:
        assert RequestContextFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-77"  # type: ignore[attr-defined]


def test_filter_keeps_explicit_request_id() -> None:
    record = _record(request_id="from-extra")
    token = request_id_var.set("req-other")
    try:
        RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "from-extra"  # type: ignore[attr-defined]


def test_filter_defaults_outside_requests() -> None:
    record = _record()
    RequestContextFilter().filter(record)
    assert record.request_id == "-"  # type: ignore[attr-defined]
