"""
Tests for logging utilities and configuration.
"""

import json
import logging
import sys
import time

import pytest

from wayfield.core.logging_config import (
    JSONFormatter,
    LogContext,
    resolve_log_level,
    setup_logging,
)
from wayfield.utils.logging import PerformanceTimer, log_performance, log_with_context


def _record(**fields):
    record = logging.LogRecord(
        name="wayfield.test",
        level=logging.INFO,
        pathname="/srv/wayfield/streaming.py",
        lineno=42,
        msg="Chunk served",
        args=(),
        exc_info=None,
    )
    record.__dict__.update(fields)
    return record


def _reset_root():
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_resolve_log_level(self):
        """Test level names resolve case-insensitively."""
        assert resolve_log_level("DEBUG") == logging.DEBUG
        assert resolve_log_level("warning") == logging.WARNING
        assert resolve_log_level(" critical ") == logging.CRITICAL
        assert resolve_log_level("chatty") == logging.INFO

    def test_resolve_log_level_environment_default(self):
        assert resolve_log_level(None, "development") == logging.DEBUG
        assert resolve_log_level(None, "production") == logging.INFO

    def test_setup_logging_console_only(self):
        """Test logging setup with console handler only."""
        handlers = setup_logging(log_level="DEBUG", enable_console=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert handlers == root.handlers
        assert len(handlers) == 1
        assert logging.getLogger("shapely").level == logging.WARNING
        _reset_root()

    def test_setup_logging_json_file(self, tmp_path):
        """Test JSON file logging."""
        log_file = tmp_path / "logs" / "wayfield.log"
        setup_logging(log_level="INFO", log_file=log_file, json_logs=True, enable_console=False)

        logging.getLogger("wayfield.test").info("hello", extra={"chunk_id": "1:2"})
        _reset_root()

        data = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert data["message"] == "hello"
        assert data["chunk_id"] == "1:2"

    def test_log_context(self):
        """Test LogContext fields nest and are removed on exit."""
        old_factory = logging.getLogRecordFactory()

        with LogContext(client_id="alice", chunk_id="0:0"):
            with LogContext(chunk_id="3:2"):
                record = logging.getLogRecordFactory()(
                    "test", logging.INFO, "", 0, "inner", (), None
                )
                assert record.client_id == "alice"
                assert record.chunk_id == "3:2"

        assert logging.getLogRecordFactory() is old_factory


class TestJSONFormatter:
    """Tests for JSON log formatter."""

    def test_json_formatter_basic(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "wayfield.test"
        assert data["message"] == "Chunk served"
        assert data["source"].endswith(":42")
        assert "exception" not in data

    def test_json_formatter_world_fields(self):
        """Test world fields and other extras are emitted."""
        data = json.loads(
            JSONFormatter().format(
                _record(client_id="alice", duration_ms=12.5, batch_size=9)
            )
        )

        assert data["client_id"] == "alice"
        assert data["duration_ms"] == 12.5
        assert data["batch_size"] == 9
        assert "msg" not in data

    def test_json_formatter_exception(self):
        try:
            raise RuntimeError("generator crashed")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: generator crashed" in data["exception"]


class TestPerformanceLogging:
    """Tests for timing helpers."""

    def test_log_performance_returns_result(self, caplog):
        """Test decorated function result is passed through and logged."""

        @log_performance(log_level=logging.INFO)
        def add(a, b):
            return a + b

        with caplog.at_level(logging.INFO):
            assert add(2, 3) == 5
        assert any("add completed in" in r.getMessage() for r in caplog.records)
        assert caplog.records[-1].name == __name__

    def test_log_performance_threshold(self, caplog):
        """Test fast calls below the threshold are not logged."""

        @log_performance(log_level=logging.INFO, threshold_ms=10_000)
        def fast():
            return 1

        with caplog.at_level(logging.INFO):
            fast()
        assert not any("completed in" in r.getMessage() for r in caplog.records)

    def test_performance_timer(self, caplog):
        """Test PerformanceTimer measures a block."""
        with caplog.at_level(logging.INFO):
            with PerformanceTimer("sleepy", log_level=logging.INFO) as timer:
                time.sleep(0.01)

        assert timer.duration_ms is not None
        assert timer.duration_ms >= 5
        assert any("sleepy completed" in r.getMessage() for r in caplog.records)

    def test_performance_timer_failure(self, caplog):
        """Test a raising block is logged as failed and the error propagates."""
        target = logging.getLogger("wayfield.timing")
        with caplog.at_level(logging.INFO):
            with pytest.raises(KeyError):
                with PerformanceTimer("lookup", log_level=logging.INFO, target=target):
                    raise KeyError("chunk")

        record = caplog.records[-1]
        assert record.name == "wayfield.timing"
        assert "lookup failed (KeyError)" in record.getMessage()

    def test_log_with_context(self, caplog):
        """Test extra context is attached to the record."""
        with caplog.at_level(logging.INFO):
            log_with_context(logging.INFO, "Chunk evicted", chunk_id="3:2")

        record = caplog.records[-1]
        assert record.chunk_id == "3:2"
