"""
Tests for structured logging.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from fb.logging import (
    JSONFormatter,
    get_logger,
    get_market,
    get_phase,
    get_run_id,
    log_context,
    set_phase,
    setup_logging,
)


class TestLogContext:
    """Tests for log_context."""

    def test_sets_and_restores(self) -> None:
        """Test that context is scoped to the with-block."""
        assert get_run_id() is None

        with log_context(run_id="run_1", market="US"):
            assert get_run_id() == "run_1"
            assert get_market() == "US"
            set_phase("invoking")
            assert get_phase() == "invoking"

            with log_context(market="KR"):
                assert get_market() == "KR"
                assert get_run_id() == "run_1"

            assert get_market() == "US"

        assert get_run_id() is None
        assert get_market() is None
        assert get_phase() is None


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_includes_context_and_extra(self) -> None:
        """Test that records carry context and structured fields."""
        record = logging.LogRecord("fb.test", logging.INFO, __file__, 1, "hello", None, None)
        record.extra = {"ticker": "AMD"}

        with log_context(run_id="run_2", market="US", phase="extracting"):
            line = json.loads(JSONFormatter().format(record))

        assert line["message"] == "hello"
        assert line["run_id"] == "run_2"
        assert line["market"] == "US"
        assert line["phase"] == "extracting"
        assert line["extra"] == {"ticker": "AMD"}


class TestLogger:
    """Tests for get_logger and setup_logging."""

    def test_prefixes_name(self) -> None:
        """Test that loggers live under the fb namespace."""
        assert get_logger("something").name == "fb.something"
        assert get_logger("fb.store").name == "fb.store"

    def test_file_handler_writes_json_lines(self, temp_dir: Path) -> None:
        """Test that structured fields reach the log file."""
        log_file = temp_dir / "logs" / "fb.jsonl"
        setup_logging("DEBUG", log_file, console_output=False)
        try:
            with log_context(run_id="run_3"):
                get_logger("fb.test").info("Stored report", ticker="NVDA")
        finally:
            for handler in logging.getLogger("fb").handlers:
                handler.close()
            setup_logging("INFO")

        entry = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
        assert entry["message"] == "Stored report"
        assert entry["run_id"] == "run_3"
        assert entry["extra"]["ticker"] == "NVDA"
