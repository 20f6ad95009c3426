"""
Tests for structured logging.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from imgcache.cli.progress import format_duration
from imgcache.logging import (
    JSONFormatter,
    get_controller_id,
    get_job_id,
    get_logger,
    get_namespace,
    log_context,
    setup_logging,
)


class TestLogContext:
    """Tests for scoped logging context."""

    def test_context_is_scoped(self) -> None:
        """Values are set inside the block and restored after it."""
        assert get_job_id() is None

        with log_context(controller_id="ctl_1", namespace="img.example.com"):
            with log_context(job_id="job_1"):
                assert get_controller_id() == "ctl_1"
                assert get_job_id() == "job_1"
                assert get_namespace() == "img.example.com"
            assert get_job_id() is None

        assert get_controller_id() is None
        assert get_namespace() is None


class TestJSONFormatter:
    """Tests for the JSON Lines formatter."""

    def test_format_includes_context_and_fields(self) -> None:
        """Records carry context ids and structured fields."""
        record = logging.LogRecord(
            "imgcache.test", logging.INFO, __file__, 1, "Cache hit", None, None
        )
        record.extra = {"key": "abc.png"}

        with log_context(job_id="job_42"):
            payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Cache hit"
        assert payload["level"] == "INFO"
        assert payload["job_id"] == "job_42"
        assert payload["extra"] == {"key": "abc.png"}

    def test_log_file_output(self, temp_dir: Path) -> None:
        """setup_logging writes JSON lines to the log file."""
        log_file = temp_dir / "logs" / "imgcache.jsonl"
        setup_logging("DEBUG", log_file, console_output=False)
        try:
            get_logger("tests").info("Download job started", uri="https://h/a.png")
            for handler in logging.getLogger("imgcache").handlers:
                handler.flush()

            lines = log_file.read_text(encoding="utf-8").splitlines()
            payload = json.loads(lines[-1])
            assert payload["logger"] == "imgcache.tests"
            assert payload["extra"]["uri"] == "https://h/a.png"
        finally:
            for handler in logging.getLogger("imgcache").handlers:
                handler.close()
            setup_logging("INFO")


class TestFormatDuration:
    """Tests for duration formatting."""

    def test_seconds(self) -> None:
        assert format_duration(12.4) == "12s"

    def test_minutes(self) -> None:
        assert format_duration(184) == "3m 04s"
