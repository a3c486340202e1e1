"""
History store for run summaries.

Keeps a time-windowed series of HistoryEntry records in a JSON file in the
output directory. Every write appends the current run, prunes entries older
than the retention window and rewrites the whole file atomically. The file
can optionally be protected with an HMAC to detect tampering.

Reading is best-effort: a missing, unreadable, corrupt or tampered file is
treated as an empty series so the run always proceeds.
"""

import hashlib
import hmac
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .enums import LogLevel
from .exceptions import PersistenceError, TamperingError
from .models import AggregateSummary, HistoryEntry, window_start
from .run_logger import RunLogger


HISTORY_FILENAME = "dns_health_history.json"
DEFAULT_RETENTION_DAYS = 30


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def prune_entries(
    entries: Iterable[HistoryEntry],
    now: datetime,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> list[HistoryEntry]:
    """
    Drop entries older than the retention window.

    Entries exactly at the window boundary are kept. The result is ordered
    by timestamp ascending; entries sharing a timestamp keep their relative
    order. Pruning an already pruned series returns it unchanged.

    Args:
        entries: History entries in any order
        now: Reference time
        retention_days: Maximum entry age in days

    Returns:
        Retained entries ordered by timestamp
    """
    cutoff = window_start(_as_utc(now), retention_days)
    kept = [e for e in entries if _as_utc(e.timestamp) >= cutoff]
    return sorted(kept, key=lambda e: _as_utc(e.timestamp))


class HistoryStore:
    """
    Persistent, retention-bounded series of run summaries.

    File layout::

        {"version": 1, "entries": [...], "hmac": "..."}

    The ``hmac`` field is present only when a secret is configured.
    """

    VERSION = 1

    def __init__(
        self,
        file_path: Path,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        hmac_secret: Optional[str] = None,
        logger: Optional[RunLogger] = None,
    ) -> None:
        """
        Initialize the history store.

        Args:
            file_path: Path to the history file (JSON format)
            retention_days: Retention window in days
            hmac_secret: Optional secret key for HMAC protection
            logger: Optional run logger
        """
        self._file_path = file_path
        self._retention_days = retention_days
        self._hmac_secret = hmac_secret.encode("utf-8") if hmac_secret else None
        self._logger = logger
        self._previous: Optional[HistoryEntry] = None

    def read(self) -> list[HistoryEntry]:
        """
        Read and validate the persisted series.

        Returns:
            Entries as stored, or an empty list if the file does not exist

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if not self._file_path.exists():
            return []

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse history file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read history file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw_data, dict) or not isinstance(raw_data.get("entries"), list):
            raise PersistenceError(
                code="invalid_format",
                message="History file does not contain an entries list",
                details={"file_path": str(self._file_path)},
            )

        if self._hmac_secret is not None:
            stored_hmac = str(raw_data.get("hmac") or "")
            computed_hmac = self.compute_hmac(
                {"version": raw_data.get("version"), "entries": raw_data["entries"]}
            )
            if not self.validate_hmac(stored_hmac, computed_hmac):
                raise TamperingError(
                    code="hmac_mismatch",
                    message="HMAC validation failed - history may have been tampered with",
                    details={"file_path": str(self._file_path)},
                )

        if not all(isinstance(item, dict) for item in raw_data["entries"]):
            raise PersistenceError(
                code="invalid_entry",
                message="History entries must be objects",
                details={"file_path": str(self._file_path)},
            )

        try:
            return [HistoryEntry.from_dict(item) for item in raw_data["entries"]]
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as e:
            raise PersistenceError(
                code="invalid_entry",
                message=f"Malformed history entry: {e}",
                details={"file_path": str(self._file_path)},
            )

    def load(self) -> list[HistoryEntry]:
        """
        Load the persisted series, falling back to an empty one.

        Returns:
            Stored entries, or an empty list if the file is missing or invalid
        """
        try:
            return self.read()
        except PersistenceError as e:
            self._log(
                LogLevel.WARNING,
                f"Discarding history: {e.message}",
                {"error_code": e.code, **e.details},
            )
            return []

    def save(self, entries: list[HistoryEntry]) -> None:
        """
        Rewrite the history file atomically.

        Raises:
            PersistenceError: If the file cannot be written
        """
        payload: dict = {
            "version": self.VERSION,
            "entries": [entry.to_dict() for entry in entries],
        }
        if self._hmac_secret is not None:
            payload["hmac"] = self.compute_hmac(payload)

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".history-",
                suffix=".tmp",
                dir=str(self._file_path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                os.replace(tmp_name, self._file_path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write history file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def append(
        self,
        summary: AggregateSummary,
        status: str,
        now: Optional[datetime] = None,
    ) -> list[HistoryEntry]:
        """
        Append a run summary, prune and persist the series.

        A failed write is logged and does not raise; the returned series is
        what would have been written.

        Args:
            summary: Aggregate summary of the current run
            status: Overall status value of the current run
            now: Reference time for pruning (defaults to the summary timestamp)

        Returns:
            The pruned series including the new entry
        """
        entries = prune_entries(self.load(), summary.timestamp, self._retention_days)
        self._previous = entries[-1] if entries else None

        entries.append(HistoryEntry.from_summary(summary, status))
        entries = prune_entries(entries, now or summary.timestamp, self._retention_days)

        try:
            self.save(entries)
        except PersistenceError as e:
            self._log(
                LogLevel.WARNING,
                f"Could not save history: {e.message}",
                {"error_code": e.code, **e.details},
            )
        else:
            self._log(
                LogLevel.INFO,
                f"History updated ({len(entries)} entries)",
                {"file_path": str(self._file_path)},
            )
        return entries

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Returns:
            Hexadecimal HMAC string (empty when no secret is configured)
        """
        if self._hmac_secret is None:
            return ""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    @property
    def previous_entry(self) -> Optional[HistoryEntry]:
        """Latest entry before the run appended by the last append() call."""
        return self._previous

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "HistoryStore", message, data)
