"""
Interfaces to the systems the auditor inspects.

The probe runner only talks to these protocols. Implementations report
failures by raising RemoteCallError with a FailureReason; they never
return partial error text for the caller to interpret.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from .enums import EventLevel
from .models import (
    EventRecord,
    Resolution,
    ScavengingInfo,
    Server,
    ServerSettings,
    ZoneInfo,
)


@runtime_checkable
class DirectoryService(Protocol):
    """Source of the domain controllers to audit."""

    @abstractmethod
    def list_domain_controllers(self) -> list[Server]:
        """
        Enumerate domain controllers in discovery order.

        Raises:
            DiscoveryError: If the directory cannot be queried
        """
        ...

    @abstractmethod
    def get_root_domain(self) -> str:
        """Return the forest root domain name."""
        ...


@runtime_checkable
class DnsServerAdmin(Protocol):
    """Remote management access to a DNS server."""

    @abstractmethod
    def is_dns_service_running(self, hostname: str) -> bool:
        ...

    @abstractmethod
    def list_zones(self, hostname: str) -> list[ZoneInfo]:
        ...

    @abstractmethod
    def get_server_settings(self, hostname: str) -> ServerSettings:
        ...

    @abstractmethod
    def get_scavenging(self, hostname: str) -> ScavengingInfo:
        ...

    @abstractmethod
    def get_events(
        self,
        hostname: str,
        levels: tuple[EventLevel, ...],
        since: datetime,
    ) -> list[EventRecord]:
        """
        Fetch DNS Server event log entries at the given levels since a time.

        An empty list means no matching events (not an error).
        """
        ...


@runtime_checkable
class NameResolver(Protocol):
    """Timed DNS name resolution."""

    @abstractmethod
    def resolve(
        self,
        name: str,
        server: Optional[str] = None,
        timeout: float = 5.0,
    ) -> Resolution:
        """
        Resolve a name, optionally through a specific DNS server.

        Raises:
            RemoteCallError: If the name cannot be resolved
        """
        ...
