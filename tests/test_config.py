"""
Tests for settings validation and log sanitizing.
"""
import pytest

from atsscanner.core.config import Settings
from atsscanner.core.exceptions import ConfigurationMissing
from atsscanner.core.logging_config import sanitize_log_data


def test_missing_secret_key_fails_fast(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(_env_file=None)

    with pytest.raises(ConfigurationMissing) as exc_info:
        settings.validate_required()
    assert "SECRET_KEY" in exc_info.value.message


def test_production_requires_stripe_keys():
    settings = Settings(_env_file=None, ENV="production", SECRET_KEY="s")

    with pytest.raises(ConfigurationMissing) as exc_info:
        settings.validate_required()
    assert "STRIPE_SECRET_KEY" in exc_info.value.message
    assert "STRIPE_WEBHOOK_SECRET" in exc_info.value.message


def test_development_without_stripe_is_allowed():
    Settings(_env_file=None, SECRET_KEY="s").validate_required()


def test_cors_origins_are_split():
    settings = Settings(_env_file=None, SECRET_KEY="s", CORS_ORIGINS="https://a.example, https://b.example,")
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_sanitize_log_data_redacts_secrets():
    data = {"SECRET_KEY": "abc", "STRIPE_WEBHOOK_SECRET": "whsec", "DATABASE_URL": "postgres://", "ENV": "prod"}

    sanitized = sanitize_log_data(data)

    assert sanitized["SECRET_KEY"] == "***REDACTED***"
    assert sanitized["STRIPE_WEBHOOK_SECRET"] == "***REDACTED***"
    assert sanitized["DATABASE_URL"] == "***REDACTED***"
    assert sanitized["ENV"] == "prod"
