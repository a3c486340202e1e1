"""
Enumeration types for the DNS health auditor.

These enums provide type-safe constants for probe kinds, severities,
failure reasons, and run-level status throughout the system.
"""

from enum import Enum


class ProbeKind(Enum):
    """Kind of health probe run against a server, in canonical order."""

    RESOLUTION = "resolution"
    SERVICE_CONFIG = "service_config"
    SCAVENGING = "scavenging"
    EVENT_LOG = "event_log"
    PERFORMANCE = "performance"

    @property
    def order(self) -> int:
        return list(ProbeKind).index(self)


# Failed probes of these kinds are infrastructure failures and count as
# critical issues.
CRITICAL_PROBE_KINDS = frozenset({ProbeKind.RESOLUTION, ProbeKind.SERVICE_CONFIG})


class Severity(Enum):
    """Escalation level of a single probe result."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return {"ok": 0, "warning": 1, "error": 2}[self.value]


class OverallStatus(Enum):
    """Run-level status ladder."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class FailureReason(Enum):
    """Classified cause of a failed remote call."""

    UNREACHABLE = "unreachable"
    ACCESS_DENIED = "access_denied"
    NOT_RUNNING = "not_running"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    NO_DATA = "no_data"
    FAILED = "failed"


class EventLevel(Enum):
    """Event log levels collected by the event-log probe."""

    ERROR = "error"
    WARNING = "warning"


class LogLevel(Enum):
    """Run log severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
