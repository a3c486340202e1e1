"""
Windows collaborator built on PowerShell.

Runs the ActiveDirectory and DnsServer cmdlets through a PowerShell
subprocess, reads their output as JSON, and classifies failures into
FailureReason values from the platform error identifiers PowerShell
reports.
"""

import json
import subprocess
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import EventLevel, FailureReason
from .exceptions import DiscoveryError, RemoteCallError
from .models import (
    EventRecord,
    ScavengingInfo,
    Server,
    ServerSettings,
    ZoneInfo,
)


# Ordered: the first matching identifier wins.
ERROR_SIGNATURES: list[tuple[str, FailureReason]] = [
    ("0x800706ba", FailureReason.UNREACHABLE),
    ("rpc server is unavailable", FailureReason.UNREACHABLE),
    ("0x80338012", FailureReason.UNREACHABLE),
    ("winrm cannot complete the operation", FailureReason.UNREACHABLE),
    ("cannot open service control manager", FailureReason.UNREACHABLE),
    ("unable to contact the server", FailureReason.UNREACHABLE),
    ("the network path was not found", FailureReason.UNREACHABLE),
    ("0x80070005", FailureReason.ACCESS_DENIED),
    ("access is denied", FailureReason.ACCESS_DENIED),
    ("unauthorizedaccess", FailureReason.ACCESS_DENIED),
    ("permissiondenied", FailureReason.ACCESS_DENIED),
    ("no events were found", FailureReason.NO_DATA),
    ("cannot find any service with service name", FailureReason.NOT_FOUND),
    ("the specified log name", FailureReason.NOT_FOUND),
    ("is not recognized as the name of a cmdlet", FailureReason.FAILED),
]

EVENT_LEVEL_CODES = {EventLevel.ERROR: 2, EventLevel.WARNING: 3}

_TIME_FORMAT = "yyyy-MM-ddTHH:mm:ss"


def classify_error(text: str) -> FailureReason:
    """Map PowerShell error output to a FailureReason."""
    lowered = (text or "").lower()
    for signature, reason in ERROR_SIGNATURES:
        if signature in lowered:
            return reason
    return FailureReason.FAILED


def _quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


def _as_list(value: Any) -> list:
    """ConvertTo-Json emits a bare object for one-element results."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


# Windows reports DateTime.MinValue (0001-01-01) for "never"
MIN_REAL_YEAR = 1900


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")
    if parsed.year < MIN_REAL_YEAR:
        return None
    return parsed.replace(tzinfo=timezone.utc)


class PowerShellBackend:
    """
    DirectoryService and DnsServerAdmin implementation for Windows hosts.

    Every call runs a fresh PowerShell process bounded by a hard timeout, so
    a hung remote call always releases its worker thread.
    """

    def __init__(
        self,
        executable: str = "powershell.exe",
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the backend.

        Args:
            executable: PowerShell executable (powershell.exe or pwsh)
            timeout: Hard limit in seconds for a single PowerShell invocation
        """
        self._executable = executable
        self._timeout = timeout

    def run_script(self, script: str) -> Any:
        """
        Run a script whose output is piped through ConvertTo-Json.

        Returns:
            Parsed JSON output, or None if the script printed nothing

        Raises:
            RemoteCallError: If the process fails, times out or prints invalid JSON
        """
        command = [
            self._executable,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            f"$ErrorActionPreference = 'Stop'; {script}",
        ]
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise RemoteCallError(
                FailureReason.TIMEOUT,
                f"PowerShell call timed out after {self._timeout}s",
            )
        except OSError as e:
            raise RemoteCallError(
                FailureReason.FAILED,
                f"Cannot start {self._executable}: {e}",
            )

        if completed.returncode != 0:
            stderr = completed.stderr.strip() or completed.stdout.strip()
            raise RemoteCallError(
                classify_error(stderr),
                stderr.splitlines()[0] if stderr else f"exit code {completed.returncode}",
                {"stderr": stderr[:2000]},
            )

        output = completed.stdout.strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise RemoteCallError(
                FailureReason.FAILED,
                f"Unexpected PowerShell output: {e}",
                {"stdout": output[:2000]},
            )

    # DirectoryService

    def list_domain_controllers(self) -> list[Server]:
        script = (
            "Import-Module ActiveDirectory; "
            "Get-ADDomainController -Filter * | "
            "Select-Object Name,HostName,OperatingSystem | "
            "ConvertTo-Json -Depth 3 -Compress"
        )
        try:
            rows = _as_list(self.run_script(script))
        except RemoteCallError as e:
            raise DiscoveryError(
                code=e.reason.value,
                message=f"Domain controller discovery failed: {e.message}",
                details=e.details,
            )
        return [
            Server(
                name=str(row.get("Name") or row.get("HostName")),
                hostname=str(row.get("HostName") or row.get("Name")).lower(),
                operating_system=row.get("OperatingSystem"),
            )
            for row in rows
            if row.get("HostName") or row.get("Name")
        ]

    def get_root_domain(self) -> str:
        script = "Import-Module ActiveDirectory; (Get-ADDomain).DNSRoot | ConvertTo-Json -Compress"
        try:
            return str(self.run_script(script) or "")
        except RemoteCallError as e:
            raise DiscoveryError(
                code=e.reason.value,
                message=f"Root domain lookup failed: {e.message}",
                details=e.details,
            )

    # DnsServerAdmin

    def is_dns_service_running(self, hostname: str) -> bool:
        script = (
            f"(Get-Service -ComputerName {_quote(hostname)} -Name DNS).Status.ToString() | "
            "ConvertTo-Json -Compress"
        )
        return self.run_script(script) == "Running"

    def list_zones(self, hostname: str) -> list[ZoneInfo]:
        host = _quote(hostname)
        script = (
            f"Get-DnsServerZone -ComputerName {host} | ForEach-Object {{ "
            f"$aging = Get-DnsServerZoneAging -ComputerName {host} -Name $_.ZoneName "
            "-ErrorAction SilentlyContinue; "
            "[pscustomobject]@{ ZoneName = $_.ZoneName; ZoneType = $_.ZoneType; "
            "IsReverseLookupZone = $_.IsReverseLookupZone; IsDsIntegrated = $_.IsDsIntegrated; "
            "IsAutoCreated = $_.IsAutoCreated; AgingEnabled = [bool]$aging.AgingEnabled } "
            "} | ConvertTo-Json -Depth 3 -Compress"
        )
        return [
            ZoneInfo(
                name=str(row.get("ZoneName", "")),
                zone_type=str(row.get("ZoneType") or "Unknown"),
                is_reverse=bool(row.get("IsReverseLookupZone")),
                is_ds_integrated=bool(row.get("IsDsIntegrated")),
                aging_enabled=bool(row.get("AgingEnabled")),
                is_auto_created=bool(row.get("IsAutoCreated")),
            )
            for row in _as_list(self.run_script(script))
        ]

    def get_server_settings(self, hostname: str) -> ServerSettings:
        host = _quote(hostname)
        script = (
            f"$f = Get-DnsServerForwarder -ComputerName {host}; "
            f"$s = Get-DnsServerSetting -ComputerName {host} -All; "
            "[pscustomobject]@{ "
            "Forwarders = @($f.IPAddress | ForEach-Object { $_.IPAddressToString }); "
            "ListeningAddresses = @($s.ListeningIPAddress | ForEach-Object { $_.IPAddressToString }) "
            "} | ConvertTo-Json -Depth 3 -Compress"
        )
        data = self.run_script(script) or {}
        return ServerSettings(
            forwarders=tuple(str(a) for a in _as_list(data.get("Forwarders"))),
            listening_addresses=tuple(str(a) for a in _as_list(data.get("ListeningAddresses"))),
        )

    def get_scavenging(self, hostname: str) -> ScavengingInfo:
        script = (
            f"$s = Get-DnsServerScavenging -ComputerName {_quote(hostname)}; "
            "[pscustomobject]@{ "
            "IntervalHours = $s.ScavengingInterval.TotalHours; "
            "LastRun = if ($s.LastScavengeTime -and $s.LastScavengeTime.Year -ge 1900) "
            f"{{ $s.LastScavengeTime.ToUniversalTime().ToString('{_TIME_FORMAT}') }} else {{ $null }} "
            "} | ConvertTo-Json -Compress"
        )
        data = self.run_script(script) or {}
        return ScavengingInfo(
            interval_hours=float(data.get("IntervalHours") or 0.0),
            last_run=_parse_time(data.get("LastRun")),
        )

    def get_events(
        self,
        hostname: str,
        levels: tuple[EventLevel, ...],
        since: datetime,
    ) -> list[EventRecord]:
        level_codes = ",".join(str(EVENT_LEVEL_CODES[level]) for level in levels)
        start = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        script = (
            f"Get-WinEvent -ComputerName {_quote(hostname)} -FilterHashtable @{{ "
            f"LogName = 'DNS Server'; Level = {level_codes}; "
            f"StartTime = [datetime]::Parse('{start}').ToLocalTime() }} | "
            "Select-Object Id, Level, ProviderName, Message, "
            f"@{{ n = 'Time'; e = {{ $_.TimeCreated.ToUniversalTime().ToString('{_TIME_FORMAT}') }} }} | "
            "ConvertTo-Json -Depth 3 -Compress"
        )
        try:
            rows = _as_list(self.run_script(script))
        except RemoteCallError as e:
            if e.reason is FailureReason.NO_DATA:
                return []
            raise

        code_to_level = {code: level for level, code in EVENT_LEVEL_CODES.items()}
        records = []
        for row in rows:
            level = code_to_level.get(row.get("Level"))
            if level is None:
                continue
            records.append(
                EventRecord(
                    event_id=int(row.get("Id", 0)),
                    level=level,
                    message=str(row.get("Message") or ""),
                    time_created=_parse_time(row.get("Time")) or since,
                    source=str(row.get("ProviderName") or "DNS-Server-Service"),
                )
            )
        return records
