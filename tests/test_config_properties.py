"""
Property-based tests for configuration loading.

Covers the field-level merge of partial settings over the defaults, type
validation, and the never-fail behaviour of load_config.
"""

import copy
import json
import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_health_auditor.config import (
    DEFAULT_SETTINGS,
    MAX_WINDOW_DAYS,
    SMTP_PASSWORD_ENV,
    CONFIG_PATH_ENV,
    apply_environment,
    config_from_settings,
    config_to_settings,
    default_config,
    default_config_path,
    load_config,
    merge_settings,
    resolve_config,
)
from dns_health_auditor.run_logger import RunLogger


TOP_LEVEL_SCALARS = {
    "eventLogDays": st.integers(min_value=1, max_value=60),
    "queryTimeoutSeconds": st.integers(min_value=1, max_value=30),
    "maxParallelJobs": st.integers(min_value=1, max_value=16),
    "enableAlerting": st.booleans(),
    "enableHistoricalTracking": st.booleans(),
    "staleRecordThresholdDays": st.integers(min_value=1, max_value=90),
    "historyRetentionDays": st.integers(min_value=1, max_value=365),
}

THRESHOLD_FIELDS = {
    "maxQueryTimeMs": st.integers(min_value=1, max_value=10000),
    "maxEventErrors": st.integers(min_value=0, max_value=500),
    "maxEventWarnings": st.integers(min_value=0, max_value=500),
}

EMAIL_FIELDS = {
    "smtpServer": st.sampled_from(["mail.corp.test", "smtp.example.org"]),
    "smtpPort": st.sampled_from([25, 465, 587]),
    "subject": st.text(min_size=1, max_size=30),
    "useTls": st.booleans(),
}


@st.composite
def partial_settings_strategy(draw) -> dict:
    """A settings document supplying an arbitrary subset of fields."""
    supplied: dict = {}
    for key, strategy in TOP_LEVEL_SCALARS.items():
        if draw(st.booleans()):
            supplied[key] = draw(strategy)

    for section, fields in (("alertThresholds", THRESHOLD_FIELDS), ("emailSettings", EMAIL_FIELDS)):
        if draw(st.booleans()):
            supplied[section] = {
                key: draw(strategy) for key, strategy in fields.items() if draw(st.booleans())
            }
    return supplied


class TestFieldLevelMergeProperty:
    """Every field not supplied keeps its default, every supplied field wins."""

    @given(supplied=partial_settings_strategy())
    @settings(max_examples=100)
    def test_merge_is_field_level(self, supplied: dict) -> None:
        merged = merge_settings(supplied, DEFAULT_SETTINGS)

        assert set(merged) == set(DEFAULT_SETTINGS)
        for key, default in DEFAULT_SETTINGS.items():
            if isinstance(default, dict) and default:
                section = supplied.get(key, {})
                for field_name, field_default in default.items():
                    expected = section.get(field_name, field_default)
                    assert merged[key][field_name] == expected
            else:
                assert merged[key] == supplied.get(key, default)

    @given(supplied=partial_settings_strategy())
    @settings(max_examples=100)
    def test_merge_is_idempotent(self, supplied: dict) -> None:
        once = merge_settings(supplied, DEFAULT_SETTINGS)
        assert merge_settings(once, DEFAULT_SETTINGS) == once

    @given(supplied=partial_settings_strategy())
    @settings(max_examples=50)
    def test_merge_does_not_mutate_defaults(self, supplied: dict) -> None:
        before = copy.deepcopy(DEFAULT_SETTINGS)
        merged = merge_settings(supplied, DEFAULT_SETTINGS)
        merged["emailSettings"]["to"].append("ops@corp.test")
        assert DEFAULT_SETTINGS == before

    def test_partial_thresholds_keep_sibling_defaults(self) -> None:
        config = resolve_config({"alertThresholds": {"maxEventErrors": 3}})

        assert config.alert_thresholds.max_event_errors == 3
        assert config.alert_thresholds.max_query_time_ms == 1000.0
        assert config.alert_thresholds.max_event_warnings == 50


class TestTypeValidationProperty:
    """Wrongly typed fields fall back to their default and are reported."""

    @given(
        key=st.sampled_from(sorted(TOP_LEVEL_SCALARS)),
        value=st.one_of(st.text(max_size=5), st.lists(st.integers(), max_size=2)),
    )
    @settings(max_examples=100)
    def test_wrong_type_uses_default(self, key: str, value) -> None:
        problems: list[str] = []
        merged = merge_settings({key: value}, DEFAULT_SETTINGS, problems)

        assert merged[key] == DEFAULT_SETTINGS[key]
        assert len(problems) == 1
        assert problems[0].startswith(key)

    def test_bool_is_not_a_number(self) -> None:
        problems: list[str] = []
        merged = merge_settings({"maxParallelJobs": True}, DEFAULT_SETTINGS, problems)
        assert merged["maxParallelJobs"] == 5
        assert problems

    def test_nested_wrong_type_names_full_path(self) -> None:
        problems: list[str] = []
        merge_settings({"emailSettings": {"smtpPort": "twenty-five"}}, DEFAULT_SETTINGS, problems)
        assert problems == ["emailSettings.smtpPort: expected int, got str; using default"]

    def test_unknown_keys_are_dropped(self) -> None:
        problems: list[str] = []
        merged = merge_settings(
            {"enableAlerting": True, "colour": "blue", "alertThresholds": {"maxFoo": 1}},
            DEFAULT_SETTINGS,
            problems,
        )

        assert "colour" not in merged
        assert "maxFoo" not in merged["alertThresholds"]
        assert merged["enableAlerting"] is True
        assert "colour: unknown setting ignored" in problems
        assert "alertThresholds.maxFoo: unknown setting ignored" in problems

    def test_problems_are_logged(self) -> None:
        logger = RunLogger.quiet()
        resolve_config({"eventLogDays": "seven"}, logger=logger)
        assert any("eventLogDays" in e.message for e in logger.entries)

    def test_invalid_hostnames_are_rejected(self) -> None:
        problems: list[str] = []
        merged = merge_settings(
            {"customDnsServers": ["dns1.corp.test", "bad host!", "DNS1.corp.test."]},
            DEFAULT_SETTINGS,
        )
        config = config_from_settings(merged, problems)

        assert config.custom_dns_servers == ("dns1.corp.test",)
        assert any("customDnsServers" in p for p in problems)

    def test_values_are_clamped(self) -> None:
        config = resolve_config({"maxParallelJobs": 0, "eventLogDays": -3})
        assert config.max_parallel_jobs == 1
        assert config.event_log_days == 1

    @given(
        key=st.sampled_from(["eventLogDays", "historyRetentionDays", "staleRecordThresholdDays"]),
        days=st.integers(min_value=MAX_WINDOW_DAYS + 1, max_value=10 ** 12),
    )
    @settings(max_examples=50)
    def test_day_windows_are_capped(self, key: str, days: int) -> None:
        problems: list[str] = []
        config = config_from_settings(merge_settings({key: days}, DEFAULT_SETTINGS), problems)

        assert config.event_log_days <= MAX_WINDOW_DAYS
        assert config.history_retention_days <= MAX_WINDOW_DAYS
        assert config.stale_record_threshold_days <= MAX_WINDOW_DAYS
        assert any(p.startswith(f"{key}:") for p in problems)

    def test_keep_forever_retention(self) -> None:
        config = resolve_config({"historyRetentionDays": 1000000, "eventLogDays": 1000000})
        assert config.history_retention_days == MAX_WINDOW_DAYS
        assert config.event_log_days == MAX_WINDOW_DAYS

    @given(value=st.sampled_from([float("inf"), float("-inf"), float("nan")]))
    @settings(max_examples=10)
    def test_non_finite_numbers_use_default(self, value: float) -> None:
        problems: list[str] = []
        merged = merge_settings(
            {"eventLogDays": value, "alertThresholds": {"maxQueryTimeMs": value}},
            DEFAULT_SETTINGS,
            problems,
        )

        assert merged["eventLogDays"] == DEFAULT_SETTINGS["eventLogDays"]
        assert merged["alertThresholds"]["maxQueryTimeMs"] == 1000
        assert len(problems) == 2


class TestConfigRoundTripProperty:
    @given(supplied=partial_settings_strategy())
    @settings(max_examples=50)
    def test_settings_round_trip(self, supplied: dict) -> None:
        config = resolve_config(supplied)
        assert resolve_config(config_to_settings(config)) == config


class TestLoadConfigProperty:
    """load_config never fails."""

    def test_missing_file_writes_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dns_audit_config.json"

        config = load_config(path)

        assert config == default_config()
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == DEFAULT_SETTINGS

    def test_corrupt_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "dns_audit_config.json"
        path.write_text("{ this is not json", encoding="utf-8")
        logger = RunLogger.quiet()

        config = load_config(path, logger)

        assert config == default_config()
        assert path.read_text(encoding="utf-8") == "{ this is not json"
        assert any(e.data.get("error_code") == "parse_error" for e in logger.entries)

    def test_non_object_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "dns_audit_config.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert load_config(path) == default_config()

    def test_unwritable_location_still_returns_defaults(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        logger = RunLogger.quiet()

        config = load_config(blocker / "dns_audit_config.json", logger)

        assert config == default_config()
        assert any(e.data.get("error_code") == "io_error" for e in logger.entries)

    def test_infinity_in_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "dns_audit_config.json"
        path.write_text('{"eventLogDays": Infinity, "historyRetentionDays": NaN}', encoding="utf-8")
        logger = RunLogger.quiet()

        config = load_config(path, logger)

        assert config == default_config()
        assert any("eventLogDays" in e.message for e in logger.entries)

    def test_utf8_bom_is_accepted(self, tmp_path: Path) -> None:
        path = tmp_path / "dns_audit_config.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"maxParallelJobs": 9}).encode("utf-8"))
        assert load_config(path).max_parallel_jobs == 9

    @given(supplied=partial_settings_strategy())
    @settings(max_examples=30)
    def test_loaded_file_matches_resolve(self, supplied: dict) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "dns_audit_config.json"
            path.write_text(json.dumps(supplied), encoding="utf-8")
            assert load_config(path) == resolve_config(supplied)


class TestEnvironmentProperty:
    def test_smtp_password_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv(SMTP_PASSWORD_ENV, "hunter2")
        config = apply_environment(default_config())
        assert config.email_settings.password == "hunter2"
        assert "hunter2" not in json.dumps(config_to_settings(config))

    def test_no_password_leaves_config_unchanged(self, monkeypatch) -> None:
        monkeypatch.delenv(SMTP_PASSWORD_ENV, raising=False)
        config = default_config()
        assert apply_environment(config) is config

    def test_config_path_from_environment(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "audit.json"))
        assert default_config_path() == tmp_path / "audit.json"

        monkeypatch.delenv(CONFIG_PATH_ENV)
        assert default_config_path() == Path("dns_audit_config.json")
