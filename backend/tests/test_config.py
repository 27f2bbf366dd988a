"""Tests for YAML settings loading.

Covers:
* Defaults when the settings file is missing
* Partial files (omitted sections and keys keep defaults)
* Validation of timing values
* get_config / set_config caching
"""
import pytest
from pydantic import ValidationError

from nulm.config import (
    AppSettings,
    ReportSettings,
    SessionSettings,
    get_config,
    load_settings,
    set_config,
)


def write_settings(tmp_path, text):
    path = tmp_path / "nulm.settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")

        assert settings.server.port == 3000
        assert settings.session.duration_seconds == 8 * 60 * 60
        assert settings.reports.ban_threshold == 100
        assert settings.reports.timezone == "Asia/Seoul"
        assert settings.matching.restart_requeue_delay == 5.0
        assert settings.chat_log.enabled is True

    def test_empty_file_uses_defaults(self, tmp_path):
        settings = load_settings(write_settings(tmp_path, ""))
        assert settings == AppSettings()


class TestLoading:
    def test_partial_file_overrides_only_given_keys(self, tmp_path):
        path = write_settings(tmp_path, "reports:\n  ban_threshold: 3\nsession:\n  duration_seconds: 10\n")
        settings = load_settings(path)

        assert settings.reports.ban_threshold == 3
        assert settings.reports.notice_delay == 2.0
        assert settings.session.duration_seconds == 10
        assert settings.matching.ready_delay == 1.0

    def test_shipped_settings_file_matches_defaults(self):
        from pathlib import Path

        shipped = Path(__file__).resolve().parents[2] / "nulm.settings.yaml"
        assert load_settings(shipped) == AppSettings()


class TestValidation:
    def test_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            SessionSettings(duration_seconds=0)

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            ReportSettings(ban_threshold=0)

    def test_negative_delay_rejected(self, tmp_path):
        path = write_settings(tmp_path, "matching:\n  ready_delay: -1\n")
        with pytest.raises(ValidationError):
            load_settings(path)


def test_get_config_is_cached_and_replaceable():
    original = get_config()
    try:
        assert get_config() is original
        custom = AppSettings(reports=ReportSettings(ban_threshold=7))
        set_config(custom)
        assert get_config().reports.ban_threshold == 7
    finally:
        set_config(original)
