"""
Smoke tests for config / settings loading.
Run: python -m pytest tests/ -v
"""
import logging
from pathlib import Path

import pytest

from competency_workflow.config import configure_logging, get_settings
from competency_workflow.errors import MalformedInput
from competency_workflow.service import CompetencyService

from factories import make_settings

_VARS = (
    "COMPETENCY_DB_PATH", "TEST_PASS_MARK", "TEST_COOLDOWN_HOURS",
    "LEARNING_RESOURCE_BASE_URL", "COMPETENCY_LOG_LEVEL",
)


class TestSettingsLoading:
    def test_defaults(self, monkeypatch):
        for var in _VARS:
            monkeypatch.delenv(var, raising=False)
        s = get_settings()
        assert s.rules.pass_mark == 70
        assert s.rules.cooldown_hours == 24.0
        assert s.rules.resource_base_url == "https://example.com/learn"
        assert s.storage.db_path.name == "competency_data.db"
        assert s.app.log_level == "INFO"
        assert s.rules.is_valid

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COMPETENCY_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("TEST_PASS_MARK", "80")
        monkeypatch.setenv("TEST_COOLDOWN_HOURS", "12.5")
        monkeypatch.setenv("LEARNING_RESOURCE_BASE_URL", "https://learn.example.org/")
        monkeypatch.setenv("COMPETENCY_LOG_LEVEL", "debug")
        s = get_settings()
        assert s.storage.db_path == Path(tmp_path / "x.db")
        assert s.rules.pass_mark == 80
        assert s.rules.cooldown_hours == 12.5
        assert s.rules.resource_base_url == "https://learn.example.org"
        assert s.app.log_level == "DEBUG"

    def test_blank_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("TEST_PASS_MARK", "")
        assert get_settings().rules.pass_mark == 70

    def test_invalid_rules_detected(self):
        assert not make_settings(pass_mark=0).rules.is_valid
        assert not make_settings(cooldown_hours=-1).rules.is_valid

    @pytest.mark.parametrize("var,value", [
        ("TEST_PASS_MARK", "0"),
        ("TEST_PASS_MARK", "101"),
        ("TEST_COOLDOWN_HOURS", "-1"),
        ("TEST_PASS_MARK", "seventy"),
    ])
    def test_invalid_rules_rejected_on_load(self, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(MalformedInput):
            get_settings()

    def test_service_rejects_invalid_rules(self, repo):
        with pytest.raises(MalformedInput):
            CompetencyService(repo, make_settings(pass_mark=0))


class TestStatusSummary:
    def test_summary_keys(self):
        summary = make_settings(pass_mark=75).status_summary()
        assert summary["Pass mark"] == "75%"
        assert summary["Cooldown"] == "24 h"
        assert "Database" in summary


class TestConfigureLogging:
    def test_does_not_raise(self):
        configure_logging(make_settings())
        assert logging.getLogger("competency_workflow") is not None
