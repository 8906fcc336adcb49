"""Unit tests for smartdash._logging — formatters, context fields and config.

Test Techniques Used:
    - Specification-based Testing: JsonFormatter output schema
    - Equivalence Partitioning: records with and without context fields
    - State Inspection: Root logger handler/level after configure
    - Fixture Isolation: Save/restore root logger state
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from smartdash._logging import JsonFormatter, TextFormatter, configure_logging, record_context
from smartdash._mqtt import ConnectionState
from smartdash._settings import LoggingSettings


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level.

    Ensures tests that call ``configure_logging()`` don't leak
    state across subsequent tests.
    """
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _make_record(
    message: str = "hello",
    level: int = logging.INFO,
    args: tuple[object, ...] = (),
    **context: object,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="smartdash.test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=args,
        exc_info=None,
    )
    record.__dict__.update(context)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter output schema.

    Technique: Specification-based Testing — verifying the
    JSON structure emitted by the formatter.
    """

    def test_emits_required_fields(self) -> None:
        formatter = JsonFormatter(service="smartdash", version="1.2.3")
        entry = json.loads(formatter.format(_make_record("Bulb turned %s", args=("ON",))))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "smartdash.test"
        assert entry["message"] == "Bulb turned ON"
        assert entry["service"] == "smartdash"
        assert entry["version"] == "1.2.3"
        assert entry["timestamp"].endswith("+00:00")

    def test_version_omitted_when_empty(self) -> None:
        entry = json.loads(JsonFormatter(service="s").format(_make_record()))
        assert "version" not in entry

    def test_exception_is_single_line(self) -> None:
        """Tracebacks are escaped, so one record is one line."""
        formatter = JsonFormatter(service="s")
        try:
            msg = "boom"
            raise ValueError(msg)
        except ValueError:
            record = _make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        output = formatter.format(record)

        assert "\n" not in output
        assert "ValueError: boom" in json.loads(output)["exception"]


class TestContextFields:
    """Dashboard context passed through ``extra=``.

    Technique: Equivalence Partitioning.
    """

    def test_only_present_fields_collected(self) -> None:
        record = _make_record(topic="home/temp", rule_id=None)
        assert record_context(record) == {"topic": "home/temp"}

    def test_json_promotes_context_to_top_level(self) -> None:
        record = _make_record(
            "MQTT state changed",
            topic="home/control/bulb",
            rule_id="abc123",
            action="bulb",
            connection_state=ConnectionState.RECONNECTING,
        )

        entry = json.loads(JsonFormatter(service="smartdash").format(record))

        assert entry["topic"] == "home/control/bulb"
        assert entry["rule_id"] == "abc123"
        assert entry["action"] == "bulb"
        assert entry["connection_state"] == "reconnecting"

    def test_json_without_context_has_no_context_keys(self) -> None:
        entry = json.loads(JsonFormatter(service="smartdash").format(_make_record()))
        assert not {"topic", "rule_id", "action", "connection_state"} & entry.keys()

    def test_text_appends_key_value_pairs(self) -> None:
        record = _make_record("Rule fired", rule_id="abc123", topic="home/temp")
        line = TextFormatter().format(record)
        assert line.endswith("smartdash.test: Rule fired topic=home/temp rule_id=abc123")

    def test_text_context_stays_on_first_line(self) -> None:
        try:
            msg = "boom"
            raise ValueError(msg)
        except ValueError:
            record = _make_record("Publish failed", level=logging.ERROR, topic="home/temp")
            record.exc_info = sys.exc_info()

        first, *rest = TextFormatter().format(record).splitlines()

        assert first.endswith("Publish failed topic=home/temp")
        assert rest[-1] == "ValueError: boom"

    def test_text_without_context_is_plain(self) -> None:
        line = TextFormatter().format(_make_record("Dashboard stopped"))
        assert line.endswith("smartdash.test: Dashboard stopped")


@pytest.mark.usefixtures("_restore_root_logger")
class TestConfigureLogging:
    """Tests for root logger configuration.

    Technique: State Inspection.
    """

    def test_json_format_installs_json_formatter(self) -> None:
        configure_logging(LoggingSettings(), service="smartdash")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO

    def test_text_format_uses_plain_formatter(self) -> None:
        configure_logging(
            LoggingSettings(format="text", level="DEBUG"),
            service="smartdash",
        )

        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert root.level == logging.DEBUG

    def test_replaces_existing_handlers(self) -> None:
        """Calling twice doesn't stack handlers."""
        configure_logging(LoggingSettings(), service="smartdash")
        configure_logging(LoggingSettings(), service="smartdash")
        assert len(logging.getLogger().handlers) == 1

    def test_file_handler_rotates_by_size(self, tmp_path: Path) -> None:
        log_file = tmp_path / "smartdash.log"
        configure_logging(
            LoggingSettings(file=str(log_file), max_file_size_mb=2, backup_count=5),
            service="smartdash",
        )

        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 2 * 1024 * 1024
        assert file_handlers[0].backupCount == 5

    def test_file_receives_json_lines(self, tmp_path: Path) -> None:
        log_file = tmp_path / "smartdash.log"
        configure_logging(LoggingSettings(file=str(log_file)), service="smartdash")

        logging.getLogger("smartdash.test").warning("Device went offline")
        for h in logging.getLogger().handlers:
            h.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "Device went offline"
