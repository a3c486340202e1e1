"""
Tests for the dnspython resolver.

dns.resolver.Resolver.resolve is replaced so the failure classification and
answer handling can be checked offline.
"""

import dns.exception
import dns.resolver

from dns_health_auditor.enums import FailureReason
from dns_health_auditor.exceptions import RemoteCallError
from dns_health_auditor.resolver import DnsPythonResolver


class FakeRdata:
    def __init__(self, text: str) -> None:
        self._text = text

    def to_text(self) -> str:
        return self._text


def patch_resolve(monkeypatch, behaviour: dict):
    """behaviour maps record type to a list of addresses or an exception."""
    seen = []

    def fake_resolve(self, qname, rdtype="A", *args, **kwargs):
        addresses = tuple(getattr(ns, "address", ns) for ns in self.nameservers)
        seen.append((qname, rdtype, addresses, self.lifetime))
        outcome = behaviour.get(rdtype, [])
        if isinstance(outcome, Exception):
            raise outcome
        return [FakeRdata(a) for a in outcome]

    monkeypatch.setattr(dns.resolver.Resolver, "resolve", fake_resolve)
    return seen


def expect_reason(resolver: DnsPythonResolver, reason: FailureReason) -> None:
    try:
        resolver.resolve("www.corp.test", server="10.0.0.53", timeout=2.0)
        assert False, "expected RemoteCallError"
    except RemoteCallError as e:
        assert e.reason is reason


class TestResolverAnswers:
    def test_addresses_from_all_record_types(self, monkeypatch) -> None:
        seen = patch_resolve(monkeypatch, {"A": ["10.1.1.1"], "AAAA": ["fd00::1"]})

        answer = DnsPythonResolver().resolve("www.corp.test", server="10.0.0.53", timeout=2.0)

        assert answer.addresses == ("10.1.1.1", "fd00::1")
        assert answer.elapsed_ms >= 0
        assert seen[0] == ("www.corp.test", "A", ("10.0.0.53",), 2.0)

    def test_missing_aaaa_is_fine(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": ["10.1.1.1"], "AAAA": dns.resolver.NoAnswer()})
        answer = DnsPythonResolver().resolve("www.corp.test", server="10.0.0.53")
        assert answer.addresses == ("10.1.1.1",)

    def test_no_records_at_all(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": dns.resolver.NoAnswer(), "AAAA": dns.resolver.NoAnswer()})
        expect_reason(DnsPythonResolver(), FailureReason.NO_DATA)


class TestResolverFailures:
    def test_nxdomain(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": dns.resolver.NXDOMAIN()})
        expect_reason(DnsPythonResolver(), FailureReason.NOT_FOUND)

    def test_timeout(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": dns.exception.Timeout()})
        expect_reason(DnsPythonResolver(), FailureReason.TIMEOUT)

    def test_no_nameservers(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": dns.resolver.NoNameservers()})
        expect_reason(DnsPythonResolver(), FailureReason.UNREACHABLE)

    def test_other_dns_error(self, monkeypatch) -> None:
        patch_resolve(monkeypatch, {"A": dns.exception.DNSException("bad packet")})
        expect_reason(DnsPythonResolver(), FailureReason.FAILED)

    def test_server_name_lookup_failure(self, monkeypatch) -> None:
        def failing_lookup(*args, **kwargs):
            raise dns.resolver.NXDOMAIN()

        monkeypatch.setattr(dns.resolver, "resolve", failing_lookup)
        try:
            DnsPythonResolver().resolve("www.corp.test", server="dc09.corp.test")
            assert False, "expected RemoteCallError"
        except RemoteCallError as e:
            assert e.reason is FailureReason.UNREACHABLE

    def test_server_address_is_cached(self, monkeypatch) -> None:
        lookups = []

        def lookup(name, rdtype, lifetime=None):
            lookups.append(name)
            return [FakeRdata("10.0.0.9")]

        monkeypatch.setattr(dns.resolver, "resolve", lookup)
        seen = patch_resolve(monkeypatch, {"A": ["10.1.1.1"]})
        resolver = DnsPythonResolver(record_types=("A",))

        resolver.resolve("a.corp.test", server="dc09.corp.test")
        resolver.resolve("b.corp.test", server="dc09.corp.test")

        assert lookups == ["dc09.corp.test"]
        assert all(nameservers == ("10.0.0.9",) for _, _, nameservers, _ in seen)
