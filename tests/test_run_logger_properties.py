"""
Property-based tests for the RunLogger.

Covers masking of sensitive values, the minimum level filter, the output
formats and the per-run log file sink.
"""

import json
from io import StringIO
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_health_auditor.enums import LogLevel
from dns_health_auditor.exceptions import PersistenceError
from dns_health_auditor.run_logger import RunLogger


SENSITIVE = sorted(RunLogger.SENSITIVE_KEYS)
LEVELS = list(LogLevel)


SAFE_KEYS = ["server", "zone", "probe", "count", "status", "file_path"]


class TestSensitiveDataMaskingProperty:
    """Sensitive keys are masked at any nesting depth."""

    @given(
        key=st.sampled_from(SENSITIVE),
        value=st.text(min_size=1, max_size=30),
        prefix=st.sampled_from(["", "smtp_", "Webhook", "x-"]),
    )
    @settings(max_examples=100)
    def test_sensitive_keys_are_masked(self, key: str, value: str, prefix: str) -> None:
        output = StringIO()
        logger = RunLogger(output_format="json", output_stream=output)

        entry = logger.info("Test", "message", {prefix + key: value, "nested": {key: value}})

        assert entry.data[prefix + key] == RunLogger.MASK_VALUE
        assert entry.data["nested"][key] == RunLogger.MASK_VALUE
        written = json.loads(output.getvalue())
        assert written["data"][prefix + key] == RunLogger.MASK_VALUE

    @given(key=st.sampled_from(SAFE_KEYS), value=st.integers())
    @settings(max_examples=50)
    def test_other_keys_are_kept(self, key: str, value: int) -> None:
        logger = RunLogger.quiet()
        entry = logger.info("Test", "message", {key: value, "items": [{key: value}]})
        assert entry.data == {key: value, "items": [{key: value}]}

    def test_masking_does_not_mutate_input(self) -> None:
        data = {"password": "hunter2", "inner": {"token": "abc"}}
        RunLogger.quiet().info("Test", "message", data)
        assert data == {"password": "hunter2", "inner": {"token": "abc"}}


class TestLevelFilterProperty:
    @given(min_level=st.sampled_from(LEVELS), level=st.sampled_from(LEVELS))
    @settings(max_examples=50)
    def test_entries_below_min_level_are_dropped(self, min_level: LogLevel, level: LogLevel) -> None:
        logger = RunLogger.quiet(min_level=min_level)

        entry = logger.log(level, "Test", "message")

        if LEVELS.index(level) < LEVELS.index(min_level):
            assert entry is None
            assert logger.entries == []
        else:
            assert entry is not None
            assert len(logger.entries) == 1


class TestOutputFormatProperty:
    def test_text_format(self) -> None:
        output = StringIO()
        logger = RunLogger(output_format="text", output_stream=output)

        logger.warning("ProbeRunner", "resolution probe failed", {"server": "dc01.corp.test"})

        line = output.getvalue().strip()
        assert line.startswith("[")
        assert ' WARNING [ProbeRunner] resolution probe failed {"server": "dc01.corp.test"}' in line

    def test_both_formats(self) -> None:
        output = StringIO()
        logger = RunLogger(output_format="both", output_stream=output)

        logger.info("Auditor", "done")

        lines = output.getvalue().strip().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["component"] == "Auditor"
        assert "INFO [Auditor] done" in lines[1]

    def test_invalid_format_rejected(self) -> None:
        try:
            RunLogger(output_format="xml")
            assert False, "expected ValueError"
        except ValueError:
            pass

    def test_log_error_carries_error_code(self) -> None:
        logger = RunLogger.quiet()
        error = PersistenceError("io_error", "disk full", {"file_path": "/tmp/x"})

        entry = logger.log_error("HistoryStore", "save failed", error=error, additional_data=error.details)

        assert entry.level is LogLevel.ERROR
        assert entry.data["error_code"] == "io_error"
        assert entry.data["error_type"] == "PersistenceError"
        assert entry.data["file_path"] == "/tmp/x"


class TestLogFileProperty:
    def test_quiet_logger_writes_only_to_file(self, tmp_path: Path) -> None:
        path = tmp_path / "logs" / "DNS_Health_20260315_120000.log"
        logger = RunLogger.quiet()
        logger.add_file(path)

        logger.info("Auditor", "first")
        logger.close()
        logger.info("Auditor", "after close")

        content = path.read_text(encoding="utf-8")
        assert "INFO [Auditor] first" in content
        assert "after close" not in content
        assert len(logger.entries) == 2
