"""Unit tests for showerguard._logging: JSON formatter and config.

Test Techniques Used:
    - Specification-based Testing: JsonFormatter output schema
    - State Inspection: Root logger handler/level after configure
    - Fixture Isolation: Save/restore root logger state
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from showerguard._logging import JsonFormatter, configure_logging
from showerguard._settings import LoggingSettings


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _make_record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="showerguard.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter output schema.

    Technique: Specification-based Testing: verifying the
    JSON structure emitted by the formatter.
    """

    def test_has_required_fields(self) -> None:
        result = json.loads(JsonFormatter(service="svc").format(_make_record()))
        assert {"timestamp", "level", "logger", "message", "service"} <= result.keys()
        assert result["message"] == "hello"
        assert result["level"] == "INFO"
        assert result["logger"] == "showerguard.test"

    def test_timestamp_is_utc_iso8601(self) -> None:
        result = json.loads(JsonFormatter(service="svc").format(_make_record()))
        assert datetime.fromisoformat(result["timestamp"]).tzinfo == UTC

    def test_version_included_when_set(self) -> None:
        fmt = JsonFormatter(service="svc", version="1.2.3")
        assert json.loads(fmt.format(_make_record()))["version"] == "1.2.3"

    def test_version_omitted_when_empty(self) -> None:
        fmt = JsonFormatter(service="svc")
        assert "version" not in json.loads(fmt.format(_make_record()))

    def test_extra_fields_included(self) -> None:
        """Fields passed via ``extra=`` land at the top level."""
        record = _make_record("Shower finished", duration_s=195, timestamp_hint=None)
        result = json.loads(JsonFormatter(service="svc").format(record))
        assert result["duration_s"] == 195
        assert result["timestamp_hint"] is None

    def test_extra_fields_never_overwrite_fixed_ones(self) -> None:
        record = _make_record(service="spoofed")
        result = json.loads(JsonFormatter(service="svc").format(record))
        assert result["service"] == "svc"

    def test_unserialisable_extra_falls_back_to_str(self) -> None:
        record = _make_record(path=Path("/tmp/x"))
        result = json.loads(JsonFormatter(service="svc").format(record))
        assert result["path"] == "/tmp/x"

    def test_exception_included_when_present(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError as exc:
            record = _make_record()
            record.exc_info = (ValueError, exc, exc.__traceback__)
        result = json.loads(JsonFormatter(service="svc").format(record))
        assert "ValueError" in result["exception"]

    def test_single_line(self) -> None:
        try:
            raise RuntimeError("multi\nline")
        except RuntimeError as exc:
            record = _make_record()
            record.exc_info = (RuntimeError, exc, exc.__traceback__)
        assert "\n" not in JsonFormatter(service="svc").format(record)


class TestConfigureLogging:
    """Tests for configure_logging() root logger setup.

    Technique: State Inspection: examining root logger
    state after configuration.
    """

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_json_mode_sets_json_formatter(self) -> None:
        configure_logging(LoggingSettings(format="json"), service="test")
        assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_text_mode_sets_standard_formatter(self) -> None:
        configure_logging(LoggingSettings(format="text"), service="test")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, logging.Formatter)
        assert not isinstance(formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_sets_root_logger_level(self) -> None:
        configure_logging(LoggingSettings(level="WARNING"), service="test")
        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_clears_existing_handlers(self) -> None:
        root = logging.getLogger()
        dummy = logging.StreamHandler()
        root.addHandler(dummy)

        configure_logging(LoggingSettings(), service="test")

        assert dummy not in root.handlers

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_file_handler_uses_size_and_backups(self, tmp_path: Path) -> None:
        settings = LoggingSettings(
            file=str(tmp_path / "showerguard.log"),
            max_file_size_mb=2,
            backup_count=5,
        )
        configure_logging(settings, service="test")

        rotating = [
            h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 2 * 1024 * 1024
        assert rotating[0].backupCount == 5

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_no_file_handler_by_default(self) -> None:
        configure_logging(LoggingSettings(), service="test")
        assert not any(
            isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers
        )
