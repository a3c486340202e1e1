"""
HTML and Markdown report writers.

Both documents are rendered from the same ReportContext: executive summary,
trend against the previous run, alerts, per-server probe tables, event
groups and remediation hints. Files are named with the run timestamp so
runs never overwrite each other.
"""

import html
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from .config import AuditConfig
from .enums import OverallStatus, Severity
from .exceptions import ReportError
from .models import (
    AggregateSummary,
    EventLogPayload,
    HistoryEntry,
    PerformancePayload,
    ProbeResult,
    ResolutionPayload,
    ScavengingPayload,
    Server,
    ServiceConfigPayload,
)


REPORT_PREFIX = "DNS_Health_Report_"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

STATUS_COLORS = {
    OverallStatus.HEALTHY: "#22c55e",
    OverallStatus.WARNING: "#f59e0b",
    OverallStatus.CRITICAL: "#ef4444",
}

SEVERITY_LABELS = {
    Severity.OK: "OK",
    Severity.WARNING: "WARNING",
    Severity.ERROR: "ERROR",
}


@dataclass
class ReportContext:
    """Everything a report renders."""

    summary: AggregateSummary
    status: OverallStatus
    results: Sequence[ProbeResult]
    config: AuditConfig
    root_domain: Optional[str] = None
    previous: Optional[HistoryEntry] = None
    dry_run: bool = False

    @property
    def servers(self) -> list[Server]:
        seen: dict[Server, None] = {}
        for result in self.results:
            seen.setdefault(result.server, None)
        return list(seen)

    def results_for(self, server: Server) -> list[ProbeResult]:
        return [r for r in self.results if r.server == server]


@dataclass
class ReportPaths:
    html: Path
    markdown: Path


def report_basename(timestamp: datetime) -> str:
    return f"{REPORT_PREFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}"


def describe_result(result: ProbeResult) -> str:
    """One-line, plain-text description of a probe outcome."""
    payload = result.payload
    if not result.success:
        return f"Failed ({result.failure_reason.value if result.failure_reason else 'failed'}): {result.error}"

    if isinstance(payload, ResolutionPayload):
        text = f"{', '.join(payload.addresses)} in {payload.elapsed_ms:.1f} ms"
        if payload.threshold_exceeded:
            text += " (over threshold)"
        return text

    if isinstance(payload, ServiceConfigPayload):
        if not payload.running:
            return "DNS service is not running"
        by_type = ", ".join(f"{k}: {v}" for k, v in sorted(payload.zones_by_type.items()))
        forwarders = ", ".join(payload.forwarders) or "none"
        return (
            f"Running; {payload.forward_zones} forward / {payload.reverse_zones} reverse zones "
            f"({by_type}); forwarders: {forwarders}"
        )

    if isinstance(payload, ScavengingPayload):
        if not payload.enabled:
            return f"Scavenging disabled; {payload.aging_zone_count} zone(s) with aging"
        last = payload.last_run.strftime("%Y-%m-%d %H:%M") if payload.last_run else "never"
        text = (
            f"Every {payload.interval_hours:.0f} h, last run {last}; "
            f"{payload.aging_zone_count} zone(s) with aging"
        )
        if payload.stale:
            text += f" (stale: {payload.days_since_last_run:.0f} days)"
        if payload.interval_exceeds_threshold:
            text += " (interval longer than stale record threshold)"
        return text

    if isinstance(payload, EventLogPayload):
        if not payload.error_count and not payload.warning_count:
            return f"No errors or warnings in the last {payload.lookback_days} day(s)"
        return (
            f"{payload.error_count} error(s), {payload.warning_count} warning(s) in the last "
            f"{payload.lookback_days} day(s) across {payload.total_groups} event id(s)"
        )

    if isinstance(payload, PerformancePayload):
        average = f"{payload.average_ms:.1f} ms avg" if payload.average_ms is not None else "no answers"
        return (
            f"{len(payload.samples)} lookup(s), {average}, {payload.slow_count} slow, "
            f"{payload.failed_count} failed"
        )

    return result.error or ""


def thresholds_line(config: AuditConfig) -> str:
    thresholds = config.alert_thresholds
    return (
        f"Thresholds: query time {thresholds.max_query_time_ms:.0f} ms, "
        f"event errors {thresholds.max_event_errors}, "
        f"event warnings {thresholds.max_event_warnings}, "
        f"stale records {config.stale_record_threshold_days} days, "
        f"event lookback {config.event_log_days} days"
    )


def _trend(current: int, previous: Optional[int]) -> str:
    if previous is None:
        return ""
    delta = current - previous
    if delta == 0:
        return "(=)"
    return f"({delta:+d})"


def render_markdown(ctx: ReportContext) -> str:
    summary = ctx.summary
    prev = ctx.previous
    lines = [
        "# DNS Health Report",
        "",
        f"Generated: {summary.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
    ]
    if ctx.root_domain:
        lines.append(f"Domain: {ctx.root_domain}")
    if ctx.dry_run:
        lines.append("")
        lines.append("> Dry run: results come from a simulated fleet.")

    lines += [
        "",
        "## Executive Summary",
        "",
        f"**Overall status: {ctx.status.value.upper()}**",
        "",
        "| Metric | Value | Trend |",
        "|---|---|---|",
        f"| Servers checked | {summary.servers_checked} | {_trend(summary.servers_checked, prev.servers_checked if prev else None)} |",
        f"| Critical issues | {summary.critical_issues} | {_trend(summary.critical_issues, prev.critical_issues if prev else None)} |",
        f"| Warnings | {summary.warnings} | {_trend(summary.warnings, prev.warnings if prev else None)} |",
        f"| Event log errors | {summary.total_event_errors} | {_trend(summary.total_event_errors, prev.total_event_errors if prev else None)} |",
        f"| Event log warnings | {summary.total_event_warnings} | {_trend(summary.total_event_warnings, prev.total_event_warnings if prev else None)} |",
    ]
    if summary.performance:
        perf = summary.performance
        lines.append(
            f"| Query time (min / avg / max) | {perf.min_ms:.1f} / {perf.avg_ms:.1f} / {perf.max_ms:.1f} ms | |"
        )
    if prev:
        lines += ["", f"Previous run: {prev.timestamp.isoformat()} ({prev.status})"]
    lines += ["", thresholds_line(ctx.config)]

    lines += ["", "## Alerts", ""]
    if summary.alerts:
        lines += [f"- {alert}" for alert in summary.alerts]
    else:
        lines.append("No alerts.")

    for server in ctx.servers:
        title = server.name if server.name == server.hostname else f"{server.name} ({server.hostname})"
        lines += ["", f"## {title}", ""]
        if server.operating_system:
            lines += [f"Operating system: {server.operating_system}", ""]
        lines += ["| Probe | Severity | Details |", "|---|---|---|"]
        results = ctx.results_for(server)
        for result in results:
            details = describe_result(result).replace("|", "\\|")
            lines.append(f"| {result.kind.value} | {SEVERITY_LABELS[result.severity]} | {details} |")

        for result in results:
            if result.remediation:
                lines += ["", f"> Remediation ({result.kind.value}): {result.remediation}"]

        for result in results:
            payload = result.payload
            if isinstance(payload, EventLogPayload) and payload.groups:
                lines += ["", "| Event ID | Level | Count | Last seen | Message |", "|---|---|---|---|---|"]
                for group in payload.groups:
                    message = group.message.replace("|", "\\|")
                    lines.append(
                        f"| {group.event_id} | {group.level.value} | {group.count} | "
                        f"{group.last_seen.strftime('%Y-%m-%d %H:%M')} | {message} |"
                    )
                hidden = payload.total_groups - len(payload.groups)
                if hidden > 0:
                    lines.append(f"\n{hidden} more event id(s) not shown.")

    return "\n".join(lines) + "\n"


def _e(value: object) -> str:
    return html.escape(str(value))


def _html_summary_row(label: str, value: object, trend: str = "") -> str:
    return f"<tr><th>{_e(label)}</th><td>{_e(value)}</td><td>{_e(trend)}</td></tr>"


def render_html(ctx: ReportContext) -> str:
    summary = ctx.summary
    prev = ctx.previous
    color = STATUS_COLORS[ctx.status]

    rows = [
        _html_summary_row("Servers checked", summary.servers_checked,
                          _trend(summary.servers_checked, prev.servers_checked if prev else None)),
        _html_summary_row("Critical issues", summary.critical_issues,
                          _trend(summary.critical_issues, prev.critical_issues if prev else None)),
        _html_summary_row("Warnings", summary.warnings,
                          _trend(summary.warnings, prev.warnings if prev else None)),
        _html_summary_row("Event log errors", summary.total_event_errors,
                          _trend(summary.total_event_errors, prev.total_event_errors if prev else None)),
        _html_summary_row("Event log warnings", summary.total_event_warnings,
                          _trend(summary.total_event_warnings, prev.total_event_warnings if prev else None)),
    ]
    if summary.performance:
        perf = summary.performance
        rows.append(_html_summary_row(
            "Query time (min / avg / max)",
            f"{perf.min_ms:.1f} / {perf.avg_ms:.1f} / {perf.max_ms:.1f} ms",
        ))

    if summary.alerts:
        alerts = "<ul>" + "".join(f"<li>{_e(a)}</li>" for a in summary.alerts) + "</ul>"
    else:
        alerts = "<p>No alerts.</p>"

    sections = []
    for server in ctx.servers:
        results = ctx.results_for(server)
        probe_rows = "".join(
            f'<tr class="sev-{r.severity.value}"><td>{_e(r.kind.value)}</td>'
            f"<td>{_e(SEVERITY_LABELS[r.severity])}</td><td>{_e(describe_result(r))}</td></tr>"
            for r in results
        )
        hints = "".join(
            f'<p class="hint">Remediation ({_e(r.kind.value)}): {_e(r.remediation)}</p>'
            for r in results
            if r.remediation
        )
        events = ""
        for r in results:
            if isinstance(r.payload, EventLogPayload) and r.payload.groups:
                event_rows = "".join(
                    f"<tr><td>{g.event_id}</td><td>{_e(g.level.value)}</td><td>{g.count}</td>"
                    f"<td>{_e(g.last_seen.strftime('%Y-%m-%d %H:%M'))}</td><td>{_e(g.message)}</td></tr>"
                    for g in r.payload.groups
                )
                events = (
                    "<table><tr><th>Event ID</th><th>Level</th><th>Count</th>"
                    f"<th>Last seen</th><th>Message</th></tr>{event_rows}</table>"
                )
        os_line = f"<p>Operating system: {_e(server.operating_system)}</p>" if server.operating_system else ""
        sections.append(
            f"<section><h2>{_e(server.name)} <small>{_e(server.hostname)}</small></h2>{os_line}"
            f"<table><tr><th>Probe</th><th>Severity</th><th>Details</th></tr>{probe_rows}</table>"
            f"{hints}{events}</section>"
        )

    banner = '<p class="dry-run">Dry run: results come from a simulated fleet.</p>' if ctx.dry_run else ""
    domain = f"<p>Domain: {_e(ctx.root_domain)}</p>" if ctx.root_domain else ""
    previous = (
        f"<p>Previous run: {_e(prev.timestamp.isoformat())} ({_e(prev.status)})</p>" if prev else ""
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>DNS Health Report</title>
    <style>
body {{ font-family: Segoe UI, Arial, sans-serif; margin: 2em; color: #1f2937; }}
table {{ border-collapse: collapse; margin: 0.5em 0 1em; }}
th, td {{ border: 1px solid #e5e7eb; padding: 4px 8px; text-align: left; vertical-align: top; }}
.status {{ color: #fff; background: {color}; padding: 6px 12px; display: inline-block; }}
.sev-warning td {{ background: #fef3c7; }}
.sev-error td {{ background: #fee2e2; }}
.hint {{ color: #4b5563; font-style: italic; }}
.dry-run {{ background: #e0f2fe; padding: 6px; }}
    </style>
</head>
<body>
    <h1>DNS Health Report</h1>
    <p>Generated: {_e(summary.timestamp.isoformat())}</p>
    {domain}
    {banner}
    <h2>Executive Summary</h2>
    <p class="status">{_e(ctx.status.value.upper())}</p>
    <table>{"".join(rows)}</table>
    {previous}
    <p>{_e(thresholds_line(ctx.config))}</p>
    <h2>Alerts</h2>
    {alerts}
    {"".join(sections)}
</body>
</html>
"""


def write_reports(ctx: ReportContext, output_dir: Path) -> ReportPaths:
    """
    Write the HTML and Markdown reports for a run.

    Args:
        ctx: Report content
        output_dir: Directory receiving the documents

    Returns:
        Paths of the written documents

    Raises:
        ReportError: If either document cannot be written
    """
    base = report_basename(ctx.summary.timestamp)
    paths = ReportPaths(
        html=output_dir / f"{base}.html",
        markdown=output_dir / f"{base}.md",
    )
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        paths.html.write_text(render_html(ctx), encoding="utf-8")
        paths.markdown.write_text(render_markdown(ctx), encoding="utf-8")
    except OSError as e:
        raise ReportError(
            code="write_failed",
            message=f"Failed to write reports to {output_dir}: {e}",
            details={"output_dir": str(output_dir)},
        )
    return paths
