"""
Configuration for the DNS health auditor.

The persisted settings file is a JSON document with camelCase keys. Loaded
settings are merged field-by-field over the built-in defaults (nested
sections included), so a partially written file never wipes out the fields
it does not mention. The merged settings are then frozen into AuditConfig.
"""

import copy
import json
import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .enums import LogLevel
from .exceptions import ConfigurationError
from .hostnames import normalize_hostnames

if TYPE_CHECKING:
    from .run_logger import RunLogger


DEFAULT_CONFIG_FILENAME = "dns_audit_config.json"
CONFIG_PATH_ENV = "DNS_AUDIT_CONFIG"
SMTP_PASSWORD_ENV = "DNS_AUDIT_SMTP_PASSWORD"

# Upper bound for every day-count setting (about ten years)
MAX_WINDOW_DAYS = 3650

DEFAULT_SETTINGS: dict[str, Any] = {
    "outputPath": "reports",
    "eventLogDays": 7,
    "queryTimeoutSeconds": 5,
    "maxParallelJobs": 5,
    "enableAlerting": False,
    "alertThresholds": {
        "maxQueryTimeMs": 1000,
        "maxEventErrors": 10,
        "maxEventWarnings": 50,
    },
    "emailSettings": {
        "smtpServer": "smtp.example.com",
        "smtpPort": 25,
        "from": "dns-monitor@example.com",
        "to": [],
        "subject": "DNS Health Alert",
        "username": None,
        "useTls": False,
    },
    "webhookSettings": {
        "url": None,
        "headers": {},
    },
    "testExternalNames": ["google.com", "microsoft.com", "cloudflare.com"],
    "customDnsServers": [],
    "enableHistoricalTracking": True,
    "staleRecordThresholdDays": 14,
    "historyRetentionDays": 30,
    "historyHmacSecret": None,
}


@dataclass(frozen=True)
class AlertThresholds:
    """Thresholds the alert evaluator compares a run against."""

    max_query_time_ms: float = 1000.0
    max_event_errors: int = 10
    max_event_warnings: int = 50


@dataclass(frozen=True)
class EmailSettings:
    """SMTP settings for alert mail."""

    smtp_server: str
    smtp_port: int = 25
    from_address: str = ""
    to_addresses: tuple[str, ...] = ()
    subject: str = "DNS Health Alert"
    username: Optional[str] = None
    password: Optional[str] = None  # from the environment only, never persisted
    use_tls: bool = False


@dataclass(frozen=True)
class WebhookSettings:
    """Optional webhook receiving the same alert text as the mail."""

    url: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditConfig:
    """Complete, resolved configuration for one audit run."""

    output_path: Path
    event_log_days: int
    query_timeout_seconds: float
    max_parallel_jobs: int
    enable_alerting: bool
    alert_thresholds: AlertThresholds
    email_settings: EmailSettings
    webhook_settings: WebhookSettings
    test_external_names: tuple[str, ...]
    custom_dns_servers: tuple[str, ...]
    enable_historical_tracking: bool
    stale_record_threshold_days: int
    history_retention_days: int
    history_hmac_secret: Optional[str] = None


def _type_matches(default: Any, value: Any) -> bool:
    """Check that a supplied value has the JSON type of the default."""
    if default is None:
        return value is None or isinstance(value, str)
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value)
        )
    if isinstance(default, list):
        return isinstance(value, list)
    if isinstance(default, dict):
        return isinstance(value, dict)
    return isinstance(value, type(default))


def merge_settings(
    supplied: Optional[dict],
    defaults: dict,
    problems: Optional[list[str]] = None,
    _prefix: str = "",
) -> dict:
    """
    Merge supplied settings over defaults, field by field.

    Nested sections are merged recursively. Fields missing from the supplied
    settings, or supplied with the wrong type, take the default value. Keys
    unknown to the default schema are dropped.

    Args:
        supplied: Settings parsed from the settings file (may be None)
        defaults: Complete default settings
        problems: Optional list collecting a message per rejected field

    Returns:
        New settings dict containing every default key
    """
    supplied = supplied or {}
    merged: dict = {}

    for key, default_value in defaults.items():
        name = f"{_prefix}{key}"
        if key not in supplied:
            merged[key] = copy.deepcopy(default_value)
            continue

        value = supplied[key]
        if isinstance(default_value, dict) and default_value and isinstance(value, dict):
            merged[key] = merge_settings(value, default_value, problems, f"{name}.")
        elif _type_matches(default_value, value):
            merged[key] = copy.deepcopy(value)
        else:
            if problems is not None:
                problems.append(
                    f"{name}: expected {type(default_value).__name__}, "
                    f"got {type(value).__name__}; using default"
                )
            merged[key] = copy.deepcopy(default_value)

    if problems is not None:
        for key in supplied:
            if key not in defaults:
                problems.append(f"{_prefix}{key}: unknown setting ignored")

    return merged


def _days(settings: dict, key: str, problems: Optional[list[str]]) -> int:
    days = max(1, int(settings[key]))
    if days > MAX_WINDOW_DAYS:
        if problems is not None:
            problems.append(
                f"{key}: {days} exceeds {MAX_WINDOW_DAYS} days; using {MAX_WINDOW_DAYS}"
            )
        days = MAX_WINDOW_DAYS
    return days


def config_from_settings(
    settings: dict,
    problems: Optional[list[str]] = None,
) -> AuditConfig:
    """
    Build an AuditConfig from a complete (already merged) settings dict.

    Numeric values are clamped to usable ranges and hostnames normalized.
    """
    thresholds = settings["alertThresholds"]
    email = settings["emailSettings"]
    webhook = settings["webhookSettings"]

    external_names, rejected_names = normalize_hostnames(settings["testExternalNames"])
    custom_servers, rejected_servers = normalize_hostnames(settings["customDnsServers"])
    if problems is not None:
        problems.extend(f"testExternalNames: {msg}" for msg in rejected_names)
        problems.extend(f"customDnsServers: {msg}" for msg in rejected_servers)

    return AuditConfig(
        output_path=Path(settings["outputPath"]),
        event_log_days=_days(settings, "eventLogDays", problems),
        query_timeout_seconds=max(0.1, float(settings["queryTimeoutSeconds"])),
        max_parallel_jobs=max(1, int(settings["maxParallelJobs"])),
        enable_alerting=settings["enableAlerting"],
        alert_thresholds=AlertThresholds(
            max_query_time_ms=float(thresholds["maxQueryTimeMs"]),
            max_event_errors=int(thresholds["maxEventErrors"]),
            max_event_warnings=int(thresholds["maxEventWarnings"]),
        ),
        email_settings=EmailSettings(
            smtp_server=email["smtpServer"],
            smtp_port=int(email["smtpPort"]),
            from_address=email["from"],
            to_addresses=tuple(str(addr) for addr in email["to"]),
            subject=email["subject"],
            username=email["username"],
            use_tls=email["useTls"],
        ),
        webhook_settings=WebhookSettings(
            url=webhook["url"],
            headers={str(k): str(v) for k, v in webhook["headers"].items()},
        ),
        test_external_names=tuple(external_names),
        custom_dns_servers=tuple(custom_servers),
        enable_historical_tracking=settings["enableHistoricalTracking"],
        stale_record_threshold_days=_days(settings, "staleRecordThresholdDays", problems),
        history_retention_days=_days(settings, "historyRetentionDays", problems),
        history_hmac_secret=settings["historyHmacSecret"],
    )


def config_to_settings(config: AuditConfig) -> dict:
    """Convert an AuditConfig back to the persisted settings layout."""
    return {
        "outputPath": str(config.output_path),
        "eventLogDays": config.event_log_days,
        "queryTimeoutSeconds": config.query_timeout_seconds,
        "maxParallelJobs": config.max_parallel_jobs,
        "enableAlerting": config.enable_alerting,
        "alertThresholds": {
            "maxQueryTimeMs": config.alert_thresholds.max_query_time_ms,
            "maxEventErrors": config.alert_thresholds.max_event_errors,
            "maxEventWarnings": config.alert_thresholds.max_event_warnings,
        },
        "emailSettings": {
            "smtpServer": config.email_settings.smtp_server,
            "smtpPort": config.email_settings.smtp_port,
            "from": config.email_settings.from_address,
            "to": list(config.email_settings.to_addresses),
            "subject": config.email_settings.subject,
            "username": config.email_settings.username,
            "useTls": config.email_settings.use_tls,
        },
        "webhookSettings": {
            "url": config.webhook_settings.url,
            "headers": dict(config.webhook_settings.headers),
        },
        "testExternalNames": list(config.test_external_names),
        "customDnsServers": list(config.custom_dns_servers),
        "enableHistoricalTracking": config.enable_historical_tracking,
        "staleRecordThresholdDays": config.stale_record_threshold_days,
        "historyRetentionDays": config.history_retention_days,
        "historyHmacSecret": config.history_hmac_secret,
    }


def default_config() -> AuditConfig:
    """Return the built-in default configuration."""
    return config_from_settings(copy.deepcopy(DEFAULT_SETTINGS))


def resolve_config(
    supplied: Optional[dict],
    defaults: Optional[dict] = None,
    logger: Optional["RunLogger"] = None,
) -> AuditConfig:
    """
    Resolve supplied settings against the defaults into a complete config.

    Args:
        supplied: Partial settings (None when nothing was loaded)
        defaults: Default settings (DEFAULT_SETTINGS when omitted)
        logger: Optional run logger receiving one warning per rejected field

    Returns:
        AuditConfig with every field populated
    """
    problems: list[str] = []
    merged = merge_settings(supplied, defaults or DEFAULT_SETTINGS, problems)
    config = config_from_settings(merged, problems)

    if logger is not None:
        for problem in problems:
            logger.log(LogLevel.WARNING, "Config", f"Setting adjusted: {problem}")

    return config


def read_settings_file(config_path: Path) -> dict:
    """
    Read and parse a settings file.

    Raises:
        ConfigurationError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(config_path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            code="parse_error",
            message=f"Failed to parse settings file: {e}",
            details={"file_path": str(config_path)},
        )
    except OSError as e:
        raise ConfigurationError(
            code="io_error",
            message=f"Failed to read settings file: {e}",
            details={"file_path": str(config_path)},
        )

    if not isinstance(data, dict):
        raise ConfigurationError(
            code="invalid_format",
            message="Settings file must contain a JSON object",
            details={"file_path": str(config_path)},
        )
    return data


def save_settings_file(settings: dict, config_path: Path) -> None:
    """
    Write settings to disk.

    Raises:
        ConfigurationError: If the file cannot be written
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ConfigurationError(
            code="io_error",
            message=f"Failed to write settings file: {e}",
            details={"file_path": str(config_path)},
        )


def load_config(
    config_path: Path,
    logger: Optional["RunLogger"] = None,
) -> AuditConfig:
    """
    Load the configuration for a run. Never fails.

    A missing settings file is created with the defaults (a failed write is
    logged and ignored). An unreadable or malformed file falls back to the
    full default configuration.

    Args:
        config_path: Path to the settings file
        logger: Optional run logger

    Returns:
        Resolved AuditConfig
    """
    if not config_path.exists():
        if logger is not None:
            logger.log(
                LogLevel.INFO,
                "Config",
                "No settings file found, writing defaults",
                {"file_path": str(config_path)},
            )
        try:
            save_settings_file(copy.deepcopy(DEFAULT_SETTINGS), config_path)
        except ConfigurationError as e:
            if logger is not None:
                logger.log_error("Config", "Could not write default settings", error=e)
        return default_config()

    try:
        supplied = read_settings_file(config_path)
    except ConfigurationError as e:
        if logger is not None:
            logger.log_error(
                "Config",
                "Settings file unusable, falling back to defaults",
                error=e,
                additional_data=e.details,
            )
        return default_config()

    return resolve_config(supplied, logger=logger)


def default_config_path() -> Path:
    """Settings file path from DNS_AUDIT_CONFIG, or the file in the working directory."""
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILENAME)


def apply_environment(config: AuditConfig) -> AuditConfig:
    """Fill in secrets that are only ever taken from the environment."""
    password = os.environ.get(SMTP_PASSWORD_ENV)
    if not password:
        return config
    return replace(
        config,
        email_settings=replace(config.email_settings, password=password),
    )
