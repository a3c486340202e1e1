"""
Run logger for the DNS health auditor.

Writes timestamped, level-tagged entries to any number of text streams
(stderr, the per-run log file) in human-readable text and/or JSON lines,
masking sensitive values such as SMTP passwords.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TextIO

from .enums import LogLevel


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
}


@dataclass
class LogEntry:
    """Represents a single log entry with all metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class RunLogger:
    """
    Logger used by every component of an audit run.

    Supports:
    - text and JSON-lines output formats
    - a minimum level filter
    - additional file sinks (the per-run log file)
    - recursive masking of sensitive keys
    """

    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'hmac_secret',
        'auth', 'authorization', 'credential', 'credentials',
        'private_key', 'access_token',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        """
        Initialize the run logger.

        Args:
            output_format: Output format - 'json', 'text', or 'both'
            output_stream: Primary stream (defaults to sys.stderr)
            min_level: Entries below this level are dropped
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._streams: list[TextIO] = [output_stream or sys.stderr]
        self._owned_files: list[TextIO] = []
        self._min_level = min_level
        self._entries: list[LogEntry] = []

    @classmethod
    def quiet(cls, min_level: LogLevel = LogLevel.INFO) -> "RunLogger":
        """Create a logger that only records entries (and writes to files added later)."""
        logger = cls(min_level=min_level)
        logger._streams = []
        return logger

    @property
    def output_format(self) -> str:
        """Get the current output format."""
        return self._output_format

    @property
    def entries(self) -> list[LogEntry]:
        """Get all recorded entries."""
        return self._entries.copy()

    def add_file(self, path: Path) -> None:
        """
        Also write entries to a log file.

        Raises:
            OSError: If the file cannot be opened
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a", encoding="utf-8")
        self._streams.append(handle)
        self._owned_files.append(handle)

    def close(self) -> None:
        """Close log files opened by add_file."""
        for handle in self._owned_files:
            if handle in self._streams:
                self._streams.remove(handle)
            handle.close()
        self._owned_files.clear()

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an entry in the configured format(s).

        Returns:
            The created LogEntry, or None if it was below the minimum level
        """
        if _LEVEL_ORDER[level] < _LEVEL_ORDER[self._min_level]:
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)
        self._output_entry(entry)
        return entry

    def info(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, component, message, data)

    def warning(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.WARNING, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an error with its exception context.

        Args:
            component: Component name generating the log
            message: Human-readable error message
            error: Optional exception object
            additional_data: Optional additional context data
        """
        data = additional_data.copy() if additional_data else {}
        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
            code = getattr(error, "code", None)
            if code is not None:
                data["error_code"] = code
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """
        Recursively mask sensitive data in a dictionary.

        Args:
            data: Dictionary potentially containing sensitive data

        Returns:
            New dictionary with sensitive values masked
        """
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in self.SENSITIVE_KEYS):
                masked[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                masked[key] = self.mask_sensitive_data(value)
            elif isinstance(value, list):
                masked[key] = [
                    self.mask_sensitive_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                masked[key] = value
        return masked

    def _output_entry(self, entry: LogEntry) -> None:
        for stream in self._streams:
            if self._output_format in ("json", "both"):
                stream.write(self.format_json(entry) + "\n")
            if self._output_format in ("text", "both"):
                stream.write(self.format_text(entry) + "\n")
            stream.flush()

    def format_json(self, entry: LogEntry) -> str:
        """Format a log entry as a JSON line."""
        return json.dumps(
            {
                "timestamp": entry.timestamp,
                "level": entry.level.value,
                "component": entry.component,
                "message": entry.message,
                "data": entry.data,
            },
            ensure_ascii=False,
            default=str,
        )

    def format_text(self, entry: LogEntry) -> str:
        """Format a log entry as `[TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}`."""
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]
        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))
        return " ".join(parts)
