"""Unit tests for core/config.py -- SECRET_KEY policy and env overrides."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_generates_secret_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=True, secret_key="too-short")


def test_defaults():
    settings = Settings(debug=True)
    assert settings.token_expire_seconds == 60 * 60 * 60
    assert settings.otp_valid_minutes == 10
    assert settings.default_role == "USER"
    assert settings.login_rate_limit == "10/minute"
    assert settings.resend_rate_limit == "3/hour"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RESEND_RATE_LIMIT", "1/minute")
    monkeypatch.setenv("TOKEN_EXPIRE_SECONDS", "900")
    settings = Settings(debug=True)
    assert settings.resend_rate_limit == "1/minute"
    assert settings.token_expire_seconds == 900


def test_bcrypt_rounds_bounded():
    with pytest.raises(ValidationError):
        Settings(debug=True, bcrypt_rounds=3)
