"""Tests for log formatting and uncaught-fault reporting."""

from __future__ import annotations

import logging
import re
import sys
from logging.handlers import RotatingFileHandler

import pytest

from devstate import _logging
from devstate._logging import AgentFormatter, install_excepthook, log_uncaught, setup_logging

_LINE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \| (?P<level>[A-Z ]+) \| (?P<message>.*)$")


def _record(level: int, msg: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("devstate.test", level, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


def test_line_format() -> None:
    line = AgentFormatter().format(_record(logging.INFO, "MQTT client connected."))
    match = _LINE.match(line)
    assert match is not None
    assert match["level"] == "INFO"
    assert match["message"] == "MQTT client connected."


def test_uncaught_records_are_tagged_and_restored() -> None:
    record = _record(logging.CRITICAL, "boom", uncaught=True)
    line = AgentFormatter().format(record)

    assert " | UNCAUGHT EXCEPTION | boom" in line
    assert record.levelname == "CRITICAL"


def test_traceback_includes_chained_cause() -> None:
    try:
        try:
            raise OSError("disk gone")
        except OSError as exc:
            raise RuntimeError("sample failed") from exc
    except RuntimeError:
        record = logging.LogRecord("devstate", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    text = AgentFormatter().format(record)
    assert "OSError: disk gone" in text
    assert "RuntimeError: sample failed" in text


def test_log_uncaught_marks_record(caplog: pytest.LogCaptureFixture) -> None:
    log_uncaught(ValueError("bad value"), "Periodic publish failed")

    [record] = caplog.records
    assert record.levelno == logging.CRITICAL
    assert getattr(record, "uncaught") is True
    assert record.getMessage() == "Periodic publish failed: bad value"


def test_excepthook_logs_and_skips_keyboard_interrupt(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    forwarded: list[type[BaseException]] = []
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(_logging.sys, "__excepthook__", lambda exc_type, exc, tb: forwarded.append(exc_type))

    install_excepthook()
    assert sys.excepthook is _logging._excepthook  # noqa: SLF001

    sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)
    sys.excepthook(RuntimeError, RuntimeError("crash"), None)

    assert forwarded == [KeyboardInterrupt]
    assert [r.getMessage() for r in caplog.records] == ["Uncaught exception: crash"]


def test_setup_logging_installs_console_and_rotating_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(_logging.logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    setup_logging("DEBUG", str(tmp_path / "app.log"))

    assert captured["level"] == "DEBUG"
    assert captured["force"] is True
    console, rotating = captured["handlers"]  # type: ignore[misc]
    assert isinstance(rotating, RotatingFileHandler)
    assert rotating.maxBytes == 1_000_000
    assert isinstance(console.formatter, AgentFormatter)
    assert isinstance(rotating.formatter, AgentFormatter)
    rotating.close()


def test_setup_logging_console_only(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(_logging.logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    setup_logging("INFO", None)

    assert len(captured["handlers"]) == 1  # type: ignore[arg-type]
