"""
End-to-end tests for the audit run and the command line interface.

The simulated fleet stands in for Active Directory and the DNS servers, so
a full run (discovery, probes, aggregation, history, alerts and reports)
executes against temporary directories.
"""

import asyncio
import json
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

from dns_health_auditor.auditor import DnsHealthAuditor
from dns_health_auditor.cli import EXIT_CRITICAL, EXIT_FAILURE, EXIT_OK, main
from dns_health_auditor.enums import FailureReason, OverallStatus, ProbeKind
from dns_health_auditor.exceptions import DiscoveryError, ReportError
from dns_health_auditor.history_store import HISTORY_FILENAME, HistoryStore
from dns_health_auditor.models import HistoryEntry
from dns_health_auditor.notifications import NotificationRouter
from dns_health_auditor.run_logger import RunLogger
from dns_health_auditor.simulation import SimulatedFleet

from fakes import (
    FIXED_NOW,
    RecordingChannel,
    ScriptedAdmin,
    ScriptedDirectory,
    ScriptedResolver,
    make_config,
    make_server,
)


def simulated_auditor(output: Path, now=FIXED_NOW, **kwargs) -> DnsHealthAuditor:
    fleet = SimulatedFleet(now=now)
    config = kwargs.pop("config", None) or make_config(output_path=output)
    return DnsHealthAuditor(
        config=config,
        directory=fleet,
        admin=fleet,
        resolver=fleet,
        clock=lambda: now,
        dry_run=True,
        **kwargs,
    )


def make_history_entry(timestamp) -> HistoryEntry:
    return HistoryEntry(
        timestamp=timestamp,
        servers_checked=3,
        critical_issues=0,
        warnings=0,
        total_event_errors=0,
        total_event_warnings=0,
        alert_count=0,
        status="healthy",
    )


class TestSimulatedRun:
    def test_full_run_writes_all_artifacts(self, tmp_path: Path) -> None:
        result = asyncio.run(simulated_auditor(tmp_path).run())

        assert result.reports.html.exists()
        assert result.reports.markdown.exists()
        assert (tmp_path / HISTORY_FILENAME).exists()
        assert (tmp_path / "DNS_Health_20260315_120000.log").exists()
        assert result.root_domain == "corp.example.com"
        assert [s.name for s in result.servers] == ["DC01", "DC02", "DC03"]

    def test_unreachable_server_is_critical(self, tmp_path: Path) -> None:
        result = asyncio.run(simulated_auditor(tmp_path).run())

        assert result.status is OverallStatus.CRITICAL
        assert result.summary.servers_checked == 3
        assert result.summary.critical_issues == 1

        dc03 = [r for r in result.results if r.server.name == "DC03"]
        assert [r.kind for r in dc03] == [
            ProbeKind.RESOLUTION,
            ProbeKind.SERVICE_CONFIG,
            ProbeKind.EVENT_LOG,
            ProbeKind.PERFORMANCE,
        ]
        assert dc03[1].failure_reason is FailureReason.UNREACHABLE
        assert any("DC03" in alert and "Remediation" in alert for alert in result.summary.alerts)
        assert any("No zones on dc02" in alert for alert in result.summary.alerts)

    def test_second_run_sees_previous(self, tmp_path: Path) -> None:
        asyncio.run(simulated_auditor(tmp_path).run())
        later = FIXED_NOW + timedelta(hours=1)

        result = asyncio.run(simulated_auditor(tmp_path, now=later).run())

        assert len(result.history) == 2
        assert result.history[0].timestamp == FIXED_NOW
        markdown = result.reports.markdown.read_text(encoding="utf-8")
        assert "Previous run: 2026-03-15T12:00:00+00:00 (critical)" in markdown
        assert "| Critical issues | 1 | (=) |" in markdown

    def test_history_disabled(self, tmp_path: Path) -> None:
        config = make_config(output_path=tmp_path, enable_historical_tracking=False)

        result = asyncio.run(simulated_auditor(tmp_path, config=config).run())

        assert result.history == []
        assert not (tmp_path / HISTORY_FILENAME).exists()

    def test_alerts_dispatched_once_after_probes(self, tmp_path: Path) -> None:
        channel = RecordingChannel()
        router = NotificationRouter(base_delay_seconds=0.0)
        router.register_channel(channel)
        config = make_config(output_path=tmp_path, enable_alerting=True)

        result = asyncio.run(simulated_auditor(tmp_path, config=config, router=router).run())

        assert result.alert_sent is True
        assert len(channel.sent) == 1
        assert channel.sent[0].messages == list(result.summary.alerts)
        assert channel.sent[0].status == "critical"


class TestDegradedRuns:
    def test_discovery_failure_still_reports(self, tmp_path: Path) -> None:
        logger = RunLogger.quiet()
        auditor = DnsHealthAuditor(
            config=make_config(output_path=tmp_path),
            directory=ScriptedDirectory([], error=DiscoveryError("unreachable", "no DC answered")),
            admin=ScriptedAdmin(),
            resolver=ScriptedResolver(),
            logger=logger,
            clock=lambda: FIXED_NOW,
        )

        result = asyncio.run(auditor.run())

        assert result.status is OverallStatus.CRITICAL
        assert result.summary.alerts == ("CRITICAL: No domain controllers were discovered",)
        assert result.reports.html.exists()
        assert any(e.component == "Discovery" and e.data.get("error_code") == "unreachable"
                   for e in logger.entries)

    def test_healthy_fleet(self, tmp_path: Path) -> None:
        servers = [make_server(1), make_server(2)]
        auditor = DnsHealthAuditor(
            config=make_config(output_path=tmp_path),
            directory=ScriptedDirectory(servers),
            admin=ScriptedAdmin(),
            resolver=ScriptedResolver(),
            clock=lambda: FIXED_NOW,
            write_log_file=False,
        )

        result = asyncio.run(auditor.run())

        assert result.status is OverallStatus.HEALTHY
        assert result.summary.alerts == ()
        assert not list(tmp_path.glob("*.log"))

    def test_report_failure_propagates(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        auditor = simulated_auditor(blocker, config=make_config(output_path=blocker / "out"))

        try:
            asyncio.run(auditor.run())
            assert False, "expected ReportError"
        except ReportError as e:
            assert e.code == "write_failed"


class TestCommandLine:
    def test_dry_run(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        config_path = tmp_path / "dns_audit_config.json"

        code = main(["run", "--dry-run", "--config", str(config_path)])

        assert code == EXIT_OK
        assert config_path.exists()
        out = capsys.readouterr().out
        assert "Overall status: CRITICAL" in out
        assert list((tmp_path / "reports").glob("DNS_Health_Report_*.html"))

    def test_fail_on_critical(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        code = main([
            "run", "--dry-run", "--sequential", "--fail-on-critical",
            "--output", str(tmp_path / "out"),
            "--config", str(tmp_path / "cfg.json"),
        ])
        assert code == EXIT_CRITICAL
        assert list((tmp_path / "out").glob("DNS_Health_Report_*.md"))

    def test_history_after_run(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        config_path = str(tmp_path / "dns_audit_config.json")
        main(["run", "--dry-run", "--config", config_path])
        capsys.readouterr()

        assert main(["history", "--config", config_path]) == EXIT_OK
        out = capsys.readouterr().out
        assert "critical" in out

    def test_history_limit_below_one_shows_latest(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        store = HistoryStore(tmp_path / "reports" / HISTORY_FILENAME)
        store.save([
            replace(make_history_entry(FIXED_NOW - timedelta(hours=h)), status=status)
            for h, status in ((3, "healthy"), (2, "warning"), (1, "critical"))
        ])
        config_path = str(tmp_path / "missing.json")

        for limit in ("0", "-5"):
            assert main(["history", "--config", config_path, "--limit", limit]) == EXIT_OK
            rows = capsys.readouterr().out.strip().splitlines()[1:]
            assert len(rows) == 1
            assert "critical" in rows[0]

    def test_history_with_damaged_entries(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "reports" / HISTORY_FILENAME
        path.parent.mkdir()
        path.write_text(json.dumps({"version": 1, "entries": ["garbage", None]}), encoding="utf-8")

        code = main(["history", "--config", str(tmp_path / "missing.json")])

        assert code == EXIT_FAILURE
        assert "History entries must be objects" in capsys.readouterr().err

    def test_config_init_and_validate(self, tmp_path: Path, capsys) -> None:
        path = str(tmp_path / "cfg.json")

        assert main(["config", "init", "--path", path]) == EXIT_OK
        assert main(["config", "init", "--path", path]) == EXIT_FAILURE
        assert main(["config", "validate", "--path", path]) == EXIT_OK
        assert main(["config", "show", "--path", path]) == EXIT_OK

    def test_config_validate_reports_problems(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"maxParallelJobs": "many"}), encoding="utf-8")

        assert main(["config", "validate", "--path", str(path)]) == EXIT_FAILURE
        assert "maxParallelJobs" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == EXIT_OK
        assert "dns-health-audit" in capsys.readouterr().out


def test_config_overrides_apply(tmp_path: Path) -> None:
    config = replace(make_config(output_path=tmp_path), custom_dns_servers=("dns9.corp.test",))
    auditor = simulated_auditor(tmp_path, config=config, write_log_file=False)

    result = asyncio.run(auditor.run())

    custom = [r for r in result.results if r.server.hostname == "dns9.corp.test"]
    assert [r.kind for r in custom] == [ProbeKind.PERFORMANCE]
    assert result.summary.servers_checked == 3


def test_unbounded_windows_do_not_abort_run(tmp_path: Path) -> None:
    config = make_config(
        output_path=tmp_path,
        history_retention_days=1000000,
        event_log_days=1000000,
    )
    asyncio.run(simulated_auditor(tmp_path, config=config, write_log_file=False).run())

    result = asyncio.run(
        simulated_auditor(
            tmp_path, now=FIXED_NOW + timedelta(days=400), config=config, write_log_file=False
        ).run()
    )

    assert len(result.history) == 2
    assert result.reports.markdown.exists()
