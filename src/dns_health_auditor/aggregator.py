"""
Aggregator for probe results.

Folds the ProbeResults of one run into an AggregateSummary and evaluates
the run-level status ladder. Aggregation is pure: it never re-queries a
server and the same result list always yields the same summary.
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .alerts import AlertEvaluation
from .enums import OverallStatus, ProbeKind, Severity
from .models import (
    AggregateSummary,
    EventLogPayload,
    PerformanceStats,
    ProbeResult,
    ResolutionPayload,
)


def overall_status(critical_issues: int, warnings: int, alert_count: int = 0) -> OverallStatus:
    """
    Evaluate the status ladder.

    Args:
        critical_issues: Number of critical issues
        warnings: Number of warnings
        alert_count: Number of alert messages

    Returns:
        CRITICAL if any critical issue, else WARNING if any warning or alert,
        else HEALTHY
    """
    if critical_issues > 0:
        return OverallStatus.CRITICAL
    if warnings > 0 or alert_count > 0:
        return OverallStatus.WARNING
    return OverallStatus.HEALTHY


def summary_status(summary: AggregateSummary) -> OverallStatus:
    return overall_status(summary.critical_issues, summary.warnings, len(summary.alerts))


def performance_stats(results: Iterable[ProbeResult]) -> Optional[PerformanceStats]:
    """
    Query-time statistics over servers with a successful resolution probe.

    Returns:
        PerformanceStats, or None if no server resolved successfully
    """
    times = [
        r.payload.elapsed_ms
        for r in results
        if r.kind is ProbeKind.RESOLUTION
        and r.success
        and isinstance(r.payload, ResolutionPayload)
    ]
    if not times:
        return None
    return PerformanceStats(
        min_ms=min(times),
        avg_ms=round(sum(times) / len(times), 2),
        max_ms=max(times),
        sample_count=len(times),
    )


class Aggregator:
    """Builds the run summary from probe results and alert evaluation."""

    def aggregate(
        self,
        results: Sequence[ProbeResult],
        servers_checked: int,
        timestamp: datetime,
    ) -> AggregateSummary:
        """
        Fold probe results into an AggregateSummary.

        Critical issues count error-severity resolution and service/config
        results only. Event log error totals are tracked separately.

        Args:
            results: All ProbeResults of the run
            servers_checked: Number of servers probed
            timestamp: Run timestamp

        Returns:
            AggregateSummary without alerts
        """
        event_payloads = [
            r.payload for r in results if isinstance(r.payload, EventLogPayload)
        ]
        return AggregateSummary(
            timestamp=timestamp,
            servers_checked=servers_checked,
            critical_issues=sum(1 for r in results if r.is_critical),
            warnings=sum(1 for r in results if r.severity is Severity.WARNING),
            total_event_errors=sum(p.error_count for p in event_payloads),
            total_event_warnings=sum(p.warning_count for p in event_payloads),
            performance=performance_stats(results),
        )

    def attach_alerts(
        self,
        summary: AggregateSummary,
        evaluation: AlertEvaluation,
    ) -> AggregateSummary:
        """
        Return a copy of the summary carrying the evaluated alerts.

        Alerts that do not mirror a single ProbeResult add to the warning
        count; a critical standalone alert (no servers discovered) adds to
        the critical issue count.
        """
        return replace(
            summary,
            critical_issues=summary.critical_issues + evaluation.standalone_critical,
            warnings=summary.warnings + evaluation.standalone_warnings,
            alerts=tuple(evaluation.messages),
        )
