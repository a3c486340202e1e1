"""
Alert evaluation for the DNS health auditor.

Compares the aggregated counters and the per-server probe results against
the configured thresholds. Every rule is evaluated independently and all
matching rules fire. Alerts that do not mirror a single ProbeResult are
counted separately so the aggregator can add them to the run's warning and
critical counts.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from .config import AuditConfig
from .enums import FailureReason, LogLevel, OverallStatus, ProbeKind
from .models import (
    AggregateSummary,
    PerformancePayload,
    ProbeResult,
    ResolutionPayload,
    ScavengingPayload,
    Server,
    ServiceConfigPayload,
)
from .notifications import AlertNotification, NotificationRouter

if TYPE_CHECKING:
    from .run_logger import RunLogger


REMOTE_ACCESS_FAILURES = frozenset({FailureReason.UNREACHABLE, FailureReason.ACCESS_DENIED})


@dataclass(frozen=True)
class AlertEvaluation:
    """Alert messages of one run plus the counts of standalone alerts."""

    messages: tuple[str, ...] = ()
    standalone_warnings: int = 0
    standalone_critical: int = 0


def _by_server(results: Sequence[ProbeResult]) -> dict[Server, list[ProbeResult]]:
    grouped: dict[Server, list[ProbeResult]] = {}
    for result in results:
        grouped.setdefault(result.server, []).append(result)
    return grouped


class AlertEvaluator:
    """Produces alert messages for a run and dispatches them when enabled."""

    def __init__(
        self,
        config: AuditConfig,
        router: Optional[NotificationRouter] = None,
        logger: Optional["RunLogger"] = None,
    ) -> None:
        self._config = config
        self._router = router
        self._logger = logger

    def evaluate(
        self,
        summary: AggregateSummary,
        results: Sequence[ProbeResult],
    ) -> AlertEvaluation:
        """
        Evaluate all alert rules.

        Args:
            summary: Aggregate summary of the run (before alerts are attached)
            results: All ProbeResults of the run

        Returns:
            AlertEvaluation with messages in rule order
        """
        thresholds = self._config.alert_thresholds
        messages: list[str] = []
        standalone_warnings = 0
        standalone_critical = 0

        if summary.servers_checked == 0:
            messages.append("CRITICAL: No domain controllers were discovered")
            standalone_critical += 1

        grouped = _by_server(results)

        for server, server_results in grouped.items():
            message = self._failure_alert(server, server_results)
            if message:
                messages.append(message)

        for server, server_results in grouped.items():
            slowest = self._slowest_query(server_results)
            if slowest is not None:
                messages.append(
                    f"Slow DNS queries on {server.hostname}: {slowest:.0f} ms exceeds "
                    f"the {thresholds.max_query_time_ms:.0f} ms threshold"
                )

        if summary.total_event_errors > thresholds.max_event_errors:
            messages.append(
                f"DNS event log errors ({summary.total_event_errors}) exceed the "
                f"threshold of {thresholds.max_event_errors}"
            )
            standalone_warnings += 1

        if summary.total_event_warnings > thresholds.max_event_warnings:
            messages.append(
                f"DNS event log warnings ({summary.total_event_warnings}) exceed the "
                f"threshold of {thresholds.max_event_warnings}"
            )
            standalone_warnings += 1

        for server, server_results in grouped.items():
            for result in server_results:
                payload = result.payload
                if (
                    result.kind is ProbeKind.SERVICE_CONFIG
                    and isinstance(payload, ServiceConfigPayload)
                    and not payload.running
                ):
                    messages.append(f"CRITICAL: DNS service is not running on {server.hostname}")

        for server, server_results in grouped.items():
            for result in server_results:
                payload = result.payload
                if not isinstance(payload, ScavengingPayload):
                    continue
                if payload.stale:
                    messages.append(
                        f"Scavenging on {server.hostname} last ran "
                        f"{payload.days_since_last_run:.0f} days ago"
                    )
                if payload.aging_zone_count == 0:
                    messages.append(
                        f"No zones on {server.hostname} have aging/scavenging enabled"
                    )
                    standalone_warnings += 1

        return AlertEvaluation(
            messages=tuple(messages),
            standalone_warnings=standalone_warnings,
            standalone_critical=standalone_critical,
        )

    def _failure_alert(self, server: Server, results: list[ProbeResult]) -> Optional[str]:
        """One alert for a server that is unreachable or failed to resolve."""
        remote = [r for r in results if not r.success and r.failure_reason in REMOTE_ACCESS_FAILURES]
        resolution = [r for r in results if r.kind is ProbeKind.RESOLUTION and not r.success]
        failed = remote or resolution
        if not failed:
            return None

        first = failed[0]
        message = f"Server {server.name} ({server.hostname}) "
        if first.failure_reason is FailureReason.ACCESS_DENIED:
            message += f"denied access: {first.error}"
        elif first.failure_reason is FailureReason.UNREACHABLE:
            message += f"is unreachable: {first.error}"
        else:
            message += f"failed name resolution: {first.error}"
        if first.remediation:
            message += f" Remediation: {first.remediation}"
        return message

    def _slowest_query(self, results: list[ProbeResult]) -> Optional[float]:
        """Slowest query over the threshold for a server, if any."""
        slow: list[float] = []
        for result in results:
            payload = result.payload
            if isinstance(payload, ResolutionPayload) and payload.threshold_exceeded:
                slow.append(payload.elapsed_ms)
            elif isinstance(payload, PerformancePayload):
                slow.extend(s.elapsed_ms for s in payload.samples if s.exceeded and s.elapsed_ms)
        return max(slow) if slow else None

    async def dispatch(
        self,
        messages: Sequence[str],
        status: OverallStatus,
        timestamp: str,
    ) -> bool:
        """
        Send one notification containing every alert message.

        Nothing is sent when alerting is disabled, no router is configured,
        or there are no messages. Failures are logged and never raised.

        Returns:
            True if at least one channel accepted the notification
        """
        if not self._config.enable_alerting or not messages or self._router is None:
            return False

        if not self._router.channels:
            self._log(LogLevel.WARNING, "Alerting is enabled but no channel is configured")
            return False

        notification = AlertNotification(
            subject=self._config.email_settings.subject,
            status=status.value,
            timestamp=timestamp,
            messages=list(messages),
        )
        try:
            results = await self._router.notify(notification)
        except Exception as e:
            self._log(LogLevel.ERROR, f"Alert dispatch failed: {e}")
            return False

        delivered = [r.channel for r in results if r.success]
        if delivered:
            self._log(
                LogLevel.INFO,
                f"Sent {len(messages)} alert(s)",
                {"channels": delivered},
            )
        return bool(delivered)

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "AlertEvaluator", message, data)
