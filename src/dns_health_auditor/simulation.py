"""
Simulated fleet for dry runs.

Implements all collaborator protocols in memory with a fixed three-server
fleet, so a complete audit (probes, aggregation, history, reports) can run
without touching the network. Server hostnames drive behaviour:

- ``dc01``: healthy, scavenging enabled and recent
- ``dc02``: running, scavenging disabled, no aging zones, noisy event log
- ``dc03``: its name resolves, but management calls fail as unreachable
  and lookups sent through it time out
"""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

from .enums import EventLevel, FailureReason
from .exceptions import RemoteCallError
from .models import (
    EventRecord,
    Resolution,
    ScavengingInfo,
    Server,
    ServerSettings,
    ZoneInfo,
)


SIMULATED_DOMAIN = "corp.example.com"


class SimulatedFleet:
    """In-memory DirectoryService, DnsServerAdmin and NameResolver."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self._now = now or datetime.now(timezone.utc)
        self._servers = [
            Server("DC01", f"dc01.{SIMULATED_DOMAIN}", "Windows Server 2022 Datacenter"),
            Server("DC02", f"dc02.{SIMULATED_DOMAIN}", "Windows Server 2019 Standard"),
            Server("DC03", f"dc03.{SIMULATED_DOMAIN}", "Windows Server 2016 Standard"),
        ]

    # DirectoryService

    def list_domain_controllers(self) -> list[Server]:
        return list(self._servers)

    def get_root_domain(self) -> str:
        return SIMULATED_DOMAIN

    # DnsServerAdmin

    def _check_reachable(self, hostname: str) -> None:
        if hostname.startswith("dc03."):
            raise RemoteCallError(
                FailureReason.UNREACHABLE,
                f"[SIMULATED] The RPC server is unavailable ({hostname})",
            )

    def is_dns_service_running(self, hostname: str) -> bool:
        self._check_reachable(hostname)
        return True

    def list_zones(self, hostname: str) -> list[ZoneInfo]:
        self._check_reachable(hostname)
        aging = hostname.startswith("dc01.")
        return [
            ZoneInfo(SIMULATED_DOMAIN, "Primary", is_ds_integrated=True, aging_enabled=aging),
            ZoneInfo(f"_msdcs.{SIMULATED_DOMAIN}", "Primary", is_ds_integrated=True),
            ZoneInfo("10.in-addr.arpa", "Primary", is_reverse=True, is_ds_integrated=True,
                     aging_enabled=aging),
            ZoneInfo("0.in-addr.arpa", "Primary", is_reverse=True, is_auto_created=True),
            ZoneInfo("TrustAnchors", "Primary", is_ds_integrated=True),
        ]

    def get_server_settings(self, hostname: str) -> ServerSettings:
        self._check_reachable(hostname)
        return ServerSettings(
            forwarders=("1.1.1.1", "8.8.8.8"),
            listening_addresses=(self._address_of(hostname),),
        )

    def get_scavenging(self, hostname: str) -> ScavengingInfo:
        self._check_reachable(hostname)
        if hostname.startswith("dc01."):
            return ScavengingInfo(interval_hours=168.0, last_run=self._now - timedelta(days=2))
        return ScavengingInfo(interval_hours=0.0, last_run=None)

    def get_events(
        self,
        hostname: str,
        levels: tuple[EventLevel, ...],
        since: datetime,
    ) -> list[EventRecord]:
        self._check_reachable(hostname)
        if hostname.startswith("dc01."):
            pattern = [(4013, EventLevel.WARNING, 2)]
        else:
            pattern = [
                (4000, EventLevel.ERROR, 4),
                (4015, EventLevel.ERROR, 3),
                (4013, EventLevel.WARNING, 5),
                (5501, EventLevel.WARNING, 1),
            ]

        records = []
        for event_id, level, count in pattern:
            if level not in levels:
                continue
            for i in range(count):
                records.append(
                    EventRecord(
                        event_id=event_id,
                        level=level,
                        message=f"[SIMULATED] DNS Server event {event_id} on {hostname} (#{i + 1})",
                        time_created=self._now - timedelta(hours=i + 1),
                    )
                )
        return [r for r in records if r.time_created >= since]

    # NameResolver

    def resolve(
        self,
        name: str,
        server: Optional[str] = None,
        timeout: float = 5.0,
    ) -> Resolution:
        if server is not None and server.startswith("dc03."):
            raise RemoteCallError(
                FailureReason.TIMEOUT,
                f"[SIMULATED] Resolution of {name} via {server} timed out after {timeout}s",
            )
        elapsed = 12.0 + self._stable_jitter(f"{name}@{server}")
        if server is not None and server.startswith("dc02."):
            elapsed += 40.0
        return Resolution(addresses=(self._address_of(name),), elapsed_ms=elapsed)

    @staticmethod
    def _stable_jitter(key: str) -> float:
        return int(hashlib.sha256(key.encode("utf-8")).hexdigest()[:4], 16) % 30

    @staticmethod
    def _address_of(name: str) -> str:
        digest = hashlib.sha256(name.encode("utf-8")).digest()
        return f"10.{digest[0]}.{digest[1]}.{max(1, digest[2] % 255)}"
