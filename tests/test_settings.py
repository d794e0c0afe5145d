"""Tests for settings and configuration."""

import pytest
from pydantic import ValidationError

from morning_letter.models.settings import DEFAULT_FEED_SOURCES, Settings

ENV_KEYS = [
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "CLAUDE_API_KEY",
    "STIBEE_API_KEY",
    "STIBEE_LIST_ID",
    "DELIVERY_MODE",
    "FEED_SOURCES",
    "DEBUG",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_settings_defaults(clean_env):
    """Test that settings have proper default values."""
    settings = Settings(_env_file=None)
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert settings.delivery_mode == "broadcast"
    assert settings.send_delay_ms == 100
    assert settings.feed_item_limit == 10
    assert settings.ingest_hour_utc == 21
    assert settings.gemini_model == "gemini-2.0-flash"
    assert settings.default_user_agent == "Mozilla/5.0 (compatible; MorningLetterBot/1.0)"
    assert set(settings.feed_sources) == set(DEFAULT_FEED_SOURCES)
    assert settings.stibee_configured is False


def test_settings_from_env(clean_env, monkeypatch):
    """Test that settings are loaded from environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "test_openai_key")
    monkeypatch.setenv("DELIVERY_MODE", "Personalized")
    monkeypatch.setenv("DEBUG", "true")

    settings = Settings(_env_file=None)
    assert settings.openai_api_key == "test_openai_key"
    assert settings.delivery_mode == "personalized"
    assert settings.debug is True


def test_feed_sources_from_json_env(clean_env, monkeypatch):
    monkeypatch.setenv(
        "FEED_SOURCES", '{"tech": {"url": "https://t.example.com/rss", "source": "T"}}'
    )
    settings = Settings(_env_file=None)
    assert list(settings.feed_sources) == ["tech"]
    assert settings.feed_sources["tech"].source == "T"


def test_settings_case_insensitive(clean_env, monkeypatch):
    monkeypatch.setenv("stibee_api_key", "lower")
    monkeypatch.setenv("STIBEE_LIST_ID", "42")
    settings = Settings(_env_file=None)
    assert settings.stibee_api_key == "lower"
    assert settings.stibee_configured is True


def test_invalid_delivery_mode_rejected(clean_env):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, delivery_mode="carrier-pigeon")


def test_timeout_bounds_enforced(clean_env):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, feed_timeout=1.0)


def test_configured_ai_providers_keeps_priority_order(clean_env):
    settings = Settings(_env_file=None, claude_api_key="c")
    assert list(settings.configured_ai_providers) == ["gemini", "openai", "claude"]
    assert settings.configured_ai_providers["claude"] is True
    assert settings.configured_ai_providers["gemini"] is False
