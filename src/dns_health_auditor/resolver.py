"""
dnspython-backed name resolver.

Resolves A/AAAA records, optionally through an explicit DNS server, and
reports elapsed wall time in milliseconds. Failures are classified into
FailureReason values.
"""

import threading
import time
from typing import Optional

import dns.exception
import dns.resolver

from .enums import FailureReason
from .exceptions import RemoteCallError
from .hostnames import is_ip_address
from .models import Resolution


class DnsPythonResolver:
    """Timed resolver built on dns.resolver."""

    def __init__(self, record_types: tuple[str, ...] = ("A", "AAAA")) -> None:
        """
        Initialize the resolver.

        Args:
            record_types: Record types queried for every name
        """
        self._record_types = record_types
        self._server_addresses: dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve(
        self,
        name: str,
        server: Optional[str] = None,
        timeout: float = 5.0,
    ) -> Resolution:
        resolver = self._build_resolver(server, timeout)

        addresses: list[str] = []
        start = time.perf_counter()
        try:
            for record_type in self._record_types:
                try:
                    answer = resolver.resolve(name, record_type, search=False)
                except dns.resolver.NoAnswer:
                    continue
                addresses.extend(rdata.to_text() for rdata in answer)
        except dns.resolver.NXDOMAIN as e:
            raise RemoteCallError(
                FailureReason.NOT_FOUND,
                f"Name does not exist: {name}",
                {"name": name, "server": server, "error": str(e)},
            )
        except dns.exception.Timeout:
            raise RemoteCallError(
                FailureReason.TIMEOUT,
                f"Resolution of {name} timed out after {timeout}s",
                {"name": name, "server": server},
            )
        except dns.resolver.NoNameservers as e:
            raise RemoteCallError(
                FailureReason.UNREACHABLE,
                f"No DNS server answered for {name}",
                {"name": name, "server": server, "error": str(e)},
            )
        except dns.exception.DNSException as e:
            raise RemoteCallError(
                FailureReason.FAILED,
                f"Resolution of {name} failed: {e}",
                {"name": name, "server": server},
            )
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        if not addresses:
            raise RemoteCallError(
                FailureReason.NO_DATA,
                f"No address records for {name}",
                {"name": name, "server": server},
            )

        return Resolution(addresses=tuple(addresses), elapsed_ms=elapsed_ms)

    def _build_resolver(self, server: Optional[str], timeout: float) -> dns.resolver.Resolver:
        try:
            if server is None:
                resolver = dns.resolver.Resolver(configure=True)
            else:
                resolver = dns.resolver.Resolver(configure=False)
                resolver.nameservers = [self._server_address(server, timeout)]
        except dns.resolver.NoResolverConfiguration as e:
            raise RemoteCallError(
                FailureReason.UNREACHABLE,
                "No system resolver configuration available",
                {"error": str(e)},
            )
        resolver.timeout = timeout
        resolver.lifetime = timeout
        return resolver

    def _server_address(self, server: str, timeout: float) -> str:
        """Return the IP address of a DNS server given by name or address."""
        if is_ip_address(server):
            return server

        with self._lock:
            cached = self._server_addresses.get(server)
        if cached:
            return cached

        try:
            answer = dns.resolver.resolve(server, "A", lifetime=timeout)
        except dns.exception.DNSException as e:
            raise RemoteCallError(
                FailureReason.UNREACHABLE,
                f"Cannot locate DNS server {server}: {e}",
                {"server": server},
            )
        address = answer[0].to_text()
        with self._lock:
            self._server_addresses[server] = address
        return address
