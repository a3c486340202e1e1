"""
DNS Health Auditor - DNS health audits for Active Directory domain controllers.

This package probes every domain controller (name resolution, DNS service
and zone configuration, scavenging, event log, query performance), rolls
the results into a run summary with an overall status, keeps a bounded
history of runs, raises alerts against configured thresholds and writes
HTML and Markdown reports.
"""

__version__ = "0.1.0"
__author__ = "DNS Health Auditor Team"

from dns_health_auditor.exceptions import (
    AuditorError,
    ConfigurationError,
    DiscoveryError,
    RemoteCallError,
    PersistenceError,
    TamperingError,
    NotificationError,
    ReportError,
)
from dns_health_auditor.enums import (
    ProbeKind,
    Severity,
    OverallStatus,
    FailureReason,
    EventLevel,
    LogLevel,
)
from dns_health_auditor.config import (
    AlertThresholds,
    EmailSettings,
    WebhookSettings,
    AuditConfig,
    DEFAULT_SETTINGS,
    merge_settings,
    resolve_config,
    load_config,
)
from dns_health_auditor.models import (
    Server,
    ProbeResult,
    AggregateSummary,
    HistoryEntry,
    PerformanceStats,
    derive_severity,
)
from dns_health_auditor.collaborators import (
    DirectoryService,
    DnsServerAdmin,
    NameResolver,
)
from dns_health_auditor.probe_runner import ServerProbeRunner, summarize_events
from dns_health_auditor.aggregator import Aggregator, overall_status
from dns_health_auditor.history_store import HistoryStore, prune_entries
from dns_health_auditor.alerts import AlertEvaluation, AlertEvaluator
from dns_health_auditor.notifications import (
    AlertNotification,
    EmailChannel,
    WebhookChannel,
    NotificationRouter,
)
from dns_health_auditor.run_logger import RunLogger
from dns_health_auditor.reports import write_reports
from dns_health_auditor.auditor import DnsHealthAuditor, AuditRunResult

__all__ = [
    "__version__",
    # Exceptions
    "AuditorError",
    "ConfigurationError",
    "DiscoveryError",
    "RemoteCallError",
    "PersistenceError",
    "TamperingError",
    "NotificationError",
    "ReportError",
    # Enums
    "ProbeKind",
    "Severity",
    "OverallStatus",
    "FailureReason",
    "EventLevel",
    "LogLevel",
    # Config
    "AlertThresholds",
    "EmailSettings",
    "WebhookSettings",
    "AuditConfig",
    "DEFAULT_SETTINGS",
    "merge_settings",
    "resolve_config",
    "load_config",
    # Models
    "Server",
    "ProbeResult",
    "AggregateSummary",
    "HistoryEntry",
    "PerformanceStats",
    "derive_severity",
    # Collaborators
    "DirectoryService",
    "DnsServerAdmin",
    "NameResolver",
    # Core
    "ServerProbeRunner",
    "summarize_events",
    "Aggregator",
    "overall_status",
    "HistoryStore",
    "prune_entries",
    "AlertEvaluation",
    "AlertEvaluator",
    # Notifications
    "AlertNotification",
    "EmailChannel",
    "WebhookChannel",
    "NotificationRouter",
    # Run
    "RunLogger",
    "write_reports",
    "DnsHealthAuditor",
    "AuditRunResult",
]
