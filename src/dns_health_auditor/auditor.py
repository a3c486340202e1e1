"""
Audit run orchestration.

Coordinates one audit run end to end:

1. discover domain controllers (a failure means zero servers)
2. run the probe set against every server
3. aggregate the results and evaluate alerts
4. append the run to the history series
5. dispatch alerts (best-effort)
6. write the HTML and Markdown reports

History writes and alert dispatch only happen after every probe has
completed. Writing the reports is the only step whose failure fails the run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from .aggregator import Aggregator, summary_status
from .alerts import AlertEvaluator
from .collaborators import DirectoryService, DnsServerAdmin, NameResolver
from .config import AuditConfig
from .enums import LogLevel, OverallStatus
from .history_store import HISTORY_FILENAME, HistoryStore
from .models import AggregateSummary, HistoryEntry, ProbeResult, Server
from .notifications import NotificationRouter
from .probe_runner import ServerProbeRunner
from .reports import TIMESTAMP_FORMAT, ReportContext, ReportPaths, write_reports
from .run_logger import RunLogger


LOG_PREFIX = "DNS_Health_"


@dataclass
class AuditRunResult:
    """Outcome of one audit run."""

    summary: AggregateSummary
    status: OverallStatus
    results: list[ProbeResult]
    servers: list[Server]
    reports: ReportPaths
    root_domain: Optional[str] = None
    history: list[HistoryEntry] = field(default_factory=list)
    alert_sent: bool = False


class DnsHealthAuditor:
    """
    Runs a complete DNS health audit.

    Collaborators are injected so the same control flow serves real Windows
    environments, dry runs against the simulated fleet, and tests.
    """

    def __init__(
        self,
        config: AuditConfig,
        directory: DirectoryService,
        admin: DnsServerAdmin,
        resolver: NameResolver,
        logger: Optional[RunLogger] = None,
        router: Optional[NotificationRouter] = None,
        history_store: Optional[HistoryStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dry_run: bool = False,
        write_log_file: bool = True,
    ) -> None:
        """
        Initialize the auditor.

        Args:
            config: Resolved audit configuration
            directory: Domain controller discovery
            admin: DNS server management access
            resolver: Timed name resolution
            logger: Run logger (a quiet logger is used when omitted)
            router: Notification router for alert dispatch
            history_store: History store (built from the config when omitted)
            clock: Returns the current UTC time
            dry_run: Marks reports as coming from a simulated fleet
            write_log_file: Also write the run log into the output directory
        """
        self._config = config
        self._directory = directory
        self._logger = logger or RunLogger.quiet()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._dry_run = dry_run
        self._write_log_file = write_log_file

        self._runner = ServerProbeRunner(config, admin, resolver, self._logger, self._clock)
        self._aggregator = Aggregator()
        self._evaluator = AlertEvaluator(config, router, self._logger)

        if history_store is None and config.enable_historical_tracking:
            history_store = HistoryStore(
                config.output_path / HISTORY_FILENAME,
                retention_days=config.history_retention_days,
                hmac_secret=config.history_hmac_secret,
                logger=self._logger,
            )
        self._history_store = history_store if config.enable_historical_tracking else None

    def discover(self) -> tuple[list[Server], Optional[str]]:
        """
        Enumerate domain controllers and the root domain.

        Discovery failures are logged and yield an empty server list.
        """
        try:
            servers = list(self._directory.list_domain_controllers())
        except Exception as e:
            self._logger.log_error("Discovery", "Domain controller discovery failed", e)
            servers = []

        try:
            root_domain: Optional[str] = self._directory.get_root_domain() or None
        except Exception as e:
            self._logger.log_error("Discovery", "Root domain lookup failed", e)
            root_domain = None

        self._logger.info(
            "Discovery",
            f"Found {len(servers)} domain controller(s)",
            {"servers": [s.hostname for s in servers], "root_domain": root_domain},
        )
        return servers, root_domain

    async def run(self) -> AuditRunResult:
        """
        Execute one audit run.

        Returns:
            AuditRunResult with summary, status and report paths

        Raises:
            ReportError: If the reports cannot be written
        """
        started = self._clock()
        if self._write_log_file:
            log_path = self._config.output_path / f"{LOG_PREFIX}{started.strftime(TIMESTAMP_FORMAT)}.log"
            try:
                self._logger.add_file(log_path)
            except OSError as e:
                self._logger.warning("Auditor", f"Cannot open log file {log_path}: {e}")

        try:
            return await self._run(started)
        finally:
            self._logger.close()

    async def _run(self, started: datetime) -> AuditRunResult:
        self._logger.info(
            "Auditor",
            "Starting DNS health audit",
            {"dry_run": self._dry_run, "output_path": str(self._config.output_path)},
        )

        servers, root_domain = self.discover()
        results = await self._runner.run(servers)

        summary = self._aggregator.aggregate(results, len(servers), started)
        evaluation = self._evaluator.evaluate(summary, results)
        summary = self._aggregator.attach_alerts(summary, evaluation)
        status = summary_status(summary)

        for message in summary.alerts:
            self._logger.warning("Alerts", message)

        history: list[HistoryEntry] = []
        previous: Optional[HistoryEntry] = None
        if self._history_store is not None:
            history = self._history_store.append(summary, status.value)
            previous = self._history_store.previous_entry

        alert_sent = await self._evaluator.dispatch(
            summary.alerts,
            status,
            summary.timestamp.isoformat(),
        )

        reports = write_reports(
            ReportContext(
                summary=summary,
                status=status,
                results=results,
                config=self._config,
                root_domain=root_domain,
                previous=previous,
                dry_run=self._dry_run,
            ),
            self._config.output_path,
        )

        level = {
            OverallStatus.HEALTHY: LogLevel.INFO,
            OverallStatus.WARNING: LogLevel.WARNING,
            OverallStatus.CRITICAL: LogLevel.ERROR,
        }[status]
        self._logger.log(
            level,
            "Auditor",
            f"Audit complete: {status.value.upper()}",
            {
                "servers_checked": summary.servers_checked,
                "critical_issues": summary.critical_issues,
                "warnings": summary.warnings,
                "alerts": len(summary.alerts),
                "html_report": str(reports.html),
                "markdown_report": str(reports.markdown),
            },
        )

        return AuditRunResult(
            summary=summary,
            status=status,
            results=results,
            servers=servers,
            reports=reports,
            root_domain=root_domain,
            history=history,
            alert_sent=alert_sent,
        )
