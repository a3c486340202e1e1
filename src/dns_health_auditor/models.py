"""
Data models for the DNS health auditor.

This module defines the servers being audited, the typed payload of every
probe kind, the uniform ProbeResult shape, and the run-level aggregate and
history records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from .enums import (
    CRITICAL_PROBE_KINDS,
    EventLevel,
    FailureReason,
    ProbeKind,
    Severity,
)


REMEDIATION_HINTS: dict[FailureReason, str] = {
    FailureReason.UNREACHABLE: (
        "Check network connectivity and firewall rules between this host and the "
        "server (RPC 135, dynamic RPC ports, WinRM 5985/5986)."
    ),
    FailureReason.ACCESS_DENIED: (
        "Run the audit with an account that is a member of DnsAdmins or Domain "
        "Admins and can read the server's event logs."
    ),
}


def window_start(now: datetime, days: int) -> datetime:
    """Start of a window reaching back ``days`` from ``now``, floored at the earliest datetime."""
    try:
        return now - timedelta(days=days)
    except OverflowError:
        return datetime.min.replace(tzinfo=now.tzinfo or timezone.utc)


def derive_severity(
    kind: ProbeKind,
    success: bool,
    degraded: bool = False,
) -> Severity:
    """
    Derive the severity of a probe outcome.

    A failed resolution or service/config probe is an error; any other failed
    probe, or a successful probe whose measured value crossed a threshold, is
    a warning.
    """
    if not success:
        return Severity.ERROR if kind in CRITICAL_PROBE_KINDS else Severity.WARNING
    if degraded:
        return Severity.WARNING
    return Severity.OK


@dataclass(frozen=True)
class Server:
    """A DNS server under audit."""

    name: str
    hostname: str
    operating_system: Optional[str] = None
    is_domain_controller: bool = True


@dataclass(frozen=True)
class Resolution:
    """Answer returned by a name resolver."""

    addresses: tuple[str, ...]
    elapsed_ms: float


@dataclass(frozen=True)
class ResolutionPayload:
    addresses: tuple[str, ...]
    elapsed_ms: float
    threshold_exceeded: bool = False


@dataclass(frozen=True)
class ZoneInfo:
    """One zone hosted by a DNS server."""

    name: str
    zone_type: str
    is_reverse: bool = False
    is_ds_integrated: bool = False
    aging_enabled: bool = False
    is_auto_created: bool = False


@dataclass(frozen=True)
class ServerSettings:
    """Forwarders and listening interfaces of a DNS server."""

    forwarders: tuple[str, ...] = ()
    listening_addresses: tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceConfigPayload:
    running: bool
    forward_zones: int = 0
    reverse_zones: int = 0
    zones_by_type: dict[str, int] = field(default_factory=dict)
    zones: tuple[ZoneInfo, ...] = ()
    forwarders: tuple[str, ...] = ()
    listening_addresses: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScavengingInfo:
    """Scavenging configuration as reported by a DNS server."""

    interval_hours: float
    last_run: Optional[datetime] = None


@dataclass(frozen=True)
class ScavengingPayload:
    interval_hours: float
    enabled: bool
    last_run: Optional[datetime]
    stale: bool
    days_since_last_run: Optional[float]
    aging_zone_count: int
    interval_exceeds_threshold: bool = False


@dataclass(frozen=True)
class EventRecord:
    """One event log entry returned by a DNS server."""

    event_id: int
    level: EventLevel
    message: str
    time_created: datetime
    source: str = "DNS-Server-Service"


@dataclass(frozen=True)
class EventGroup:
    """Events sharing an event id, with one representative message."""

    event_id: int
    level: EventLevel
    count: int
    message: str
    last_seen: datetime


@dataclass(frozen=True)
class EventLogPayload:
    error_count: int
    warning_count: int
    groups: tuple[EventGroup, ...]
    total_groups: int
    lookback_days: int


@dataclass(frozen=True)
class PerformanceSample:
    """One timed resolution made through a server."""

    target: str
    via: str
    success: bool
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    exceeded: bool = False


@dataclass(frozen=True)
class PerformancePayload:
    samples: tuple[PerformanceSample, ...]

    @property
    def slow_count(self) -> int:
        return sum(1 for s in self.samples if s.exceeded)

    @property
    def failed_count(self) -> int:
        return sum(1 for s in self.samples if not s.success)

    @property
    def average_ms(self) -> Optional[float]:
        times = [s.elapsed_ms for s in self.samples if s.success and s.elapsed_ms is not None]
        if not times:
            return None
        return round(sum(times) / len(times), 2)


ProbePayload = Union[
    ResolutionPayload,
    ServiceConfigPayload,
    ScavengingPayload,
    EventLogPayload,
    PerformancePayload,
]


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe against one server. Never mutated after creation."""

    server: Server
    kind: ProbeKind
    success: bool
    severity: Severity
    payload: Optional[ProbePayload] = None
    error: Optional[str] = None
    failure_reason: Optional[FailureReason] = None

    @classmethod
    def build(
        cls,
        server: Server,
        kind: ProbeKind,
        success: bool,
        payload: Optional[ProbePayload] = None,
        error: Optional[str] = None,
        failure_reason: Optional[FailureReason] = None,
        degraded: bool = False,
    ) -> "ProbeResult":
        """Create a result with its severity derived from the outcome."""
        return cls(
            server=server,
            kind=kind,
            success=success,
            severity=derive_severity(kind, success, degraded),
            payload=payload,
            error=error,
            failure_reason=failure_reason,
        )

    @property
    def remediation(self) -> Optional[str]:
        """Remediation hint for known remote-access failure classes."""
        if self.failure_reason is None:
            return None
        return REMEDIATION_HINTS.get(self.failure_reason)

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.ERROR and self.kind in CRITICAL_PROBE_KINDS


@dataclass(frozen=True)
class PerformanceStats:
    """Query-time statistics across servers with a successful resolution."""

    min_ms: float
    avg_ms: float
    max_ms: float
    sample_count: int

    def to_dict(self) -> dict:
        return {
            "min_ms": self.min_ms,
            "avg_ms": self.avg_ms,
            "max_ms": self.max_ms,
            "sample_count": self.sample_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PerformanceStats":
        return cls(
            min_ms=float(data["min_ms"]),
            avg_ms=float(data["avg_ms"]),
            max_ms=float(data["max_ms"]),
            sample_count=int(data.get("sample_count", 0)),
        )


@dataclass(frozen=True)
class AggregateSummary:
    """Run-level rollup of all probe results."""

    timestamp: datetime
    servers_checked: int
    critical_issues: int
    warnings: int
    total_event_errors: int
    total_event_warnings: int
    performance: Optional[PerformanceStats] = None
    alerts: tuple[str, ...] = ()


@dataclass(frozen=True)
class HistoryEntry:
    """Persisted snapshot of one run's aggregate summary."""

    timestamp: datetime
    servers_checked: int
    critical_issues: int
    warnings: int
    total_event_errors: int
    total_event_warnings: int
    alert_count: int
    status: str
    performance: Optional[PerformanceStats] = None

    @classmethod
    def from_summary(cls, summary: AggregateSummary, status: str) -> "HistoryEntry":
        return cls(
            timestamp=summary.timestamp,
            servers_checked=summary.servers_checked,
            critical_issues=summary.critical_issues,
            warnings=summary.warnings,
            total_event_errors=summary.total_event_errors,
            total_event_warnings=summary.total_event_warnings,
            alert_count=len(summary.alerts),
            status=status,
            performance=summary.performance,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "servers_checked": self.servers_checked,
            "critical_issues": self.critical_issues,
            "warnings": self.warnings,
            "total_event_errors": self.total_event_errors,
            "total_event_warnings": self.total_event_warnings,
            "alert_count": self.alert_count,
            "status": self.status,
            "performance": self.performance.to_dict() if self.performance else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        """
        Rebuild an entry from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        performance = data.get("performance")
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            servers_checked=int(data["servers_checked"]),
            critical_issues=int(data["critical_issues"]),
            warnings=int(data["warnings"]),
            total_event_errors=int(data["total_event_errors"]),
            total_event_warnings=int(data["total_event_warnings"]),
            alert_count=int(data.get("alert_count", 0)),
            status=str(data["status"]),
            performance=PerformanceStats.from_dict(performance) if performance else None,
        )
