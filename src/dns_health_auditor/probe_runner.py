"""
Server probe runner for the DNS health auditor.

Runs the fixed probe set against every server of the fleet. Servers are
independent units of work: they run concurrently up to the configured
limit, every collaborator call is bounded by the query timeout, and a
failure on one server is recorded in that server's ProbeResults without
affecting any other server.

Results are returned in server order (domain controllers in discovery
order, then custom DNS servers), and per server in canonical probe order.
"""

import asyncio
import threading
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from .collaborators import DnsServerAdmin, NameResolver
from .config import AuditConfig
from .enums import EventLevel, FailureReason, LogLevel, ProbeKind
from .exceptions import RemoteCallError
from .models import (
    EventGroup,
    EventLogPayload,
    EventRecord,
    PerformancePayload,
    PerformanceSample,
    ProbeResult,
    ResolutionPayload,
    ScavengingPayload,
    Server,
    ServiceConfigPayload,
    ZoneInfo,
    window_start,
)
from .run_logger import RunLogger


SCAVENGING_STALE_DAYS = 7
EVENT_TOP_GROUPS = 10
EVENT_MESSAGE_LIMIT = 200


def truncate_message(message: str, limit: int = EVENT_MESSAGE_LIMIT) -> str:
    """Collapse whitespace and cut a message to at most `limit` characters."""
    return " ".join((message or "").split())[:limit]


def summarize_events(
    records: Iterable[EventRecord],
    lookback_days: int,
    top: int = EVENT_TOP_GROUPS,
    limit: int = EVENT_MESSAGE_LIMIT,
) -> EventLogPayload:
    """
    Group event records by event id.

    Groups are ordered by count (descending) then event id. Only the first
    `top` groups are kept for rendering, each with the message of its most
    recent event; every record is still counted in the level totals.
    """
    records = list(records)
    grouped: dict[int, list[EventRecord]] = defaultdict(list)
    for record in records:
        grouped[record.event_id].append(record)

    ordered = sorted(grouped.items(), key=lambda item: (-len(item[1]), item[0]))

    groups = []
    for event_id, members in ordered[:top]:
        latest = max(members, key=lambda r: r.time_created)
        groups.append(
            EventGroup(
                event_id=event_id,
                level=latest.level,
                count=len(members),
                message=truncate_message(latest.message, limit),
                last_seen=latest.time_created,
            )
        )

    return EventLogPayload(
        error_count=sum(1 for r in records if r.level is EventLevel.ERROR),
        warning_count=sum(1 for r in records if r.level is EventLevel.WARNING),
        groups=tuple(groups),
        total_groups=len(grouped),
        lookback_days=lookback_days,
    )


class ServerProbeRunner:
    """
    Executes the probe set against a fleet of DNS servers.

    Collaborator calls are synchronous; each one runs on its own daemon
    thread and is awaited with a timeout. A timed-out call fails only its own
    probe and frees the server's concurrency slot as soon as the wait ends.
    Its thread is abandoned, so a hung call never delays a later one.
    """

    def __init__(
        self,
        config: AuditConfig,
        admin: DnsServerAdmin,
        resolver: NameResolver,
        logger: Optional[RunLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            config: Resolved audit configuration
            admin: DNS server management collaborator
            resolver: Name resolution collaborator
            logger: Optional run logger
            clock: Returns the current UTC time (injectable for tests)
        """
        self._config = config
        self._admin = admin
        self._resolver = resolver
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._timeout = config.query_timeout_seconds
        self._now = self._clock()

    def targets_for(self, servers: Iterable[Server]) -> list[Server]:
        """Domain controllers followed by the configured custom DNS servers."""
        targets = list(servers)
        known = {s.hostname for s in targets}
        for hostname in self._config.custom_dns_servers:
            if hostname not in known:
                targets.append(Server(hostname, hostname, is_domain_controller=False))
                known.add(hostname)
        return targets

    async def run(self, servers: Iterable[Server]) -> list[ProbeResult]:
        """
        Probe every server and return all results.

        Args:
            servers: Domain controllers in discovery order

        Returns:
            ProbeResults ordered by server, then by probe kind
        """
        targets = self.targets_for(servers)
        self._now = self._clock()
        parallel = max(1, self._config.max_parallel_jobs)

        self._log(
            LogLevel.INFO,
            f"Probing {len(targets)} server(s)",
            {"parallel": parallel, "timeout_seconds": self._timeout},
        )

        if parallel == 1:
            per_server = [await self.probe_server(server) for server in targets]
        else:
            semaphore = asyncio.Semaphore(parallel)

            async def bounded(server: Server) -> list[ProbeResult]:
                async with semaphore:
                    return await self.probe_server(server)

            per_server = await asyncio.gather(*(bounded(s) for s in targets))

        return [result for results in per_server for result in results]

    async def probe_server(self, server: Server) -> list[ProbeResult]:
        """Run the probe set for one server in canonical order."""
        if not server.is_domain_controller:
            return [await self._probe_performance(server)]

        self._log(LogLevel.INFO, f"Checking {server.hostname}", {"server": server.name})
        results = [await self._probe_resolution(server)]

        service_result = await self._probe_service_config(server)
        results.append(service_result)

        payload = service_result.payload
        if service_result.success and isinstance(payload, ServiceConfigPayload) and payload.running:
            results.append(await self._probe_scavenging(server, payload.zones))

        results.append(await self._probe_events(server))
        results.append(await self._probe_performance(server))
        return results

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run a collaborator call on a dedicated thread with the query timeout.

        The timeout starts when the thread does, so time spent waiting on
        other servers never counts against this call.

        Raises:
            RemoteCallError: For any failure, classified by reason
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(result: Any, error: Optional[BaseException]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def worker() -> None:
            try:
                result = func(*args)
            except Exception as e:
                outcome: tuple[Any, Optional[BaseException]] = (None, e)
            else:
                outcome = (result, None)
            try:
                loop.call_soon_threadsafe(settle, *outcome)
            except RuntimeError:
                # Event loop already closed; the run has moved on
                pass

        threading.Thread(
            target=worker,
            name=f"dns-probe-{getattr(func, '__name__', 'call')}",
            daemon=True,
        ).start()
        try:
            return await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise RemoteCallError(
                FailureReason.TIMEOUT,
                f"Call timed out after {self._timeout}s",
            )
        except RemoteCallError:
            raise
        except Exception as e:
            raise RemoteCallError(FailureReason.FAILED, f"{type(e).__name__}: {e}")

    def _failure(self, server: Server, kind: ProbeKind, error: RemoteCallError) -> ProbeResult:
        result = ProbeResult.build(
            server,
            kind,
            success=False,
            error=error.message,
            failure_reason=error.reason,
        )
        data = {
            "server": server.hostname,
            "probe": kind.value,
            "reason": error.reason.value,
        }
        if result.remediation:
            data["remediation"] = result.remediation
        self._log(LogLevel.WARNING, f"{kind.value} probe failed: {error.message}", data)
        return result

    async def _probe_resolution(self, server: Server) -> ProbeResult:
        try:
            answer = await self._call(self._resolver.resolve, server.hostname, None, self._timeout)
        except RemoteCallError as e:
            return self._failure(server, ProbeKind.RESOLUTION, e)

        exceeded = answer.elapsed_ms > self._config.alert_thresholds.max_query_time_ms
        return ProbeResult.build(
            server,
            ProbeKind.RESOLUTION,
            success=True,
            payload=ResolutionPayload(
                addresses=answer.addresses,
                elapsed_ms=answer.elapsed_ms,
                threshold_exceeded=exceeded,
            ),
            degraded=exceeded,
        )

    async def _probe_service_config(self, server: Server) -> ProbeResult:
        try:
            running = await self._call(self._admin.is_dns_service_running, server.hostname)
        except RemoteCallError as e:
            return self._failure(server, ProbeKind.SERVICE_CONFIG, e)

        if not running:
            self._log(
                LogLevel.WARNING,
                "DNS service is not running, skipping configuration checks",
                {"server": server.hostname},
            )
            return ProbeResult.build(
                server,
                ProbeKind.SERVICE_CONFIG,
                success=True,
                payload=ServiceConfigPayload(running=False),
                error="DNS service is not running",
                failure_reason=FailureReason.NOT_RUNNING,
                degraded=True,
            )

        try:
            zones = await self._call(self._admin.list_zones, server.hostname)
            settings = await self._call(self._admin.get_server_settings, server.hostname)
        except RemoteCallError as e:
            return self._failure(server, ProbeKind.SERVICE_CONFIG, e)

        reverse = sum(1 for z in zones if z.is_reverse)
        return ProbeResult.build(
            server,
            ProbeKind.SERVICE_CONFIG,
            success=True,
            payload=ServiceConfigPayload(
                running=True,
                forward_zones=len(zones) - reverse,
                reverse_zones=reverse,
                zones_by_type=dict(Counter(z.zone_type for z in zones)),
                zones=tuple(zones),
                forwarders=settings.forwarders,
                listening_addresses=settings.listening_addresses,
            ),
        )

    async def _probe_scavenging(self, server: Server, zones: tuple[ZoneInfo, ...]) -> ProbeResult:
        try:
            info = await self._call(self._admin.get_scavenging, server.hostname)
        except RemoteCallError as e:
            return self._failure(server, ProbeKind.SCAVENGING, e)

        enabled = info.interval_hours > 0
        days_since = None
        stale = False
        if info.last_run is not None:
            elapsed_days = (self._now - info.last_run).total_seconds() / 86400
            days_since = round(elapsed_days, 1)
            stale = enabled and elapsed_days > SCAVENGING_STALE_DAYS

        payload = ScavengingPayload(
            interval_hours=info.interval_hours,
            enabled=enabled,
            last_run=info.last_run,
            stale=stale,
            days_since_last_run=days_since,
            aging_zone_count=sum(1 for z in zones if z.aging_enabled and not z.is_auto_created),
            interval_exceeds_threshold=(
                enabled
                and info.interval_hours / 24 > self._config.stale_record_threshold_days
            ),
        )
        if stale:
            self._log(
                LogLevel.WARNING,
                f"Last scavenging run was {days_since} days ago",
                {"server": server.hostname},
            )
        return ProbeResult.build(
            server,
            ProbeKind.SCAVENGING,
            success=True,
            payload=payload,
            degraded=stale,
        )

    async def _probe_events(self, server: Server) -> ProbeResult:
        days = self._config.event_log_days
        since = window_start(self._now, days)
        try:
            records = await self._call(
                self._admin.get_events,
                server.hostname,
                (EventLevel.ERROR, EventLevel.WARNING),
                since,
            )
        except RemoteCallError as e:
            if e.reason is not FailureReason.NO_DATA:
                return self._failure(server, ProbeKind.EVENT_LOG, e)
            records = []

        payload = summarize_events(records, days)
        return ProbeResult.build(
            server,
            ProbeKind.EVENT_LOG,
            success=True,
            payload=payload,
            failure_reason=FailureReason.NO_DATA if not records else None,
        )

    async def _probe_performance(self, server: Server) -> ProbeResult:
        names = list(self._config.test_external_names)
        if server.is_domain_controller and server.hostname not in names:
            names.append(server.hostname)

        threshold = self._config.alert_thresholds.max_query_time_ms
        samples = []
        for name in names:
            try:
                answer = await self._call(self._resolver.resolve, name, server.hostname, self._timeout)
            except RemoteCallError as e:
                samples.append(
                    PerformanceSample(
                        target=name,
                        via=server.hostname,
                        success=False,
                        error=e.message,
                        failure_reason=e.reason,
                    )
                )
                continue
            samples.append(
                PerformanceSample(
                    target=name,
                    via=server.hostname,
                    success=True,
                    elapsed_ms=answer.elapsed_ms,
                    exceeded=answer.elapsed_ms > threshold,
                )
            )

        payload = PerformancePayload(samples=tuple(samples))
        if samples and payload.failed_count == len(samples):
            first = samples[0]
            error = RemoteCallError(
                first.failure_reason or FailureReason.FAILED,
                f"All {len(samples)} lookups through {server.hostname} failed: {first.error}",
            )
            failed = self._failure(server, ProbeKind.PERFORMANCE, error)
            return ProbeResult(
                server=failed.server,
                kind=failed.kind,
                success=False,
                severity=failed.severity,
                payload=payload,
                error=failed.error,
                failure_reason=failed.failure_reason,
            )

        return ProbeResult.build(
            server,
            ProbeKind.PERFORMANCE,
            success=True,
            payload=payload,
            degraded=payload.slow_count > 0 or payload.failed_count > 0,
        )

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "ProbeRunner", message, data)
