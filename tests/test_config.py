"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from aumai_rulegrounding.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AUMAI_RULEGROUNDING_INITIAL_RULE_ID", raising=False)
        monkeypatch.delenv("AUMAI_RULEGROUNDING_ORACLE_RETRIES", raising=False)
        monkeypatch.delenv("AUMAI_RULEGROUNDING_LOG_LEVEL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.initial_rule_id == 0
        assert settings.oracle_retries == 0
        assert settings.log_level == "WARNING"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUMAI_RULEGROUNDING_INITIAL_RULE_ID", "41")
        monkeypatch.setenv("AUMAI_RULEGROUNDING_ORACLE_RETRIES", "2")
        monkeypatch.setenv("AUMAI_RULEGROUNDING_LOG_LEVEL", "debug")
        settings = get_settings()
        assert settings.initial_rule_id == 41
        assert settings.oracle_retries == 2
        assert settings.log_level == "DEBUG"

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, oracle_retries=-1)

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
