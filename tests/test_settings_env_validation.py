from __future__ import annotations

import pytest

from core import settings as settings_module


def _set_minimal_valid_env(monkeypatch: pytest.MonkeyPatch) -> None:
    values = {
        "SECRET_KEY": "secret",
        "MONGO_URL": "mongodb://localhost:27017",
        "DB_NAME": "docshare",
        "STORAGE_BACKEND": "local",
        "RATE_LIMIT_BACKEND": "memory",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    for key in settings_module._POSITIVE_INT_DEFAULTS:
        monkeypatch.delenv(key, raising=False)


def test_missing_base_keys_are_reported(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.setenv("DB_NAME", "   ")

    assert settings_module.collect_missing_required_env_vars() == ["DB_NAME", "SECRET_KEY"]


def test_bucket_is_required_only_for_s3_backend(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("S3_BUCKET_NAME", raising=False)
    assert "S3_BUCKET_NAME" not in settings_module.collect_missing_required_env_vars()

    monkeypatch.setenv("STORAGE_BACKEND", "s3")
    assert "S3_BUCKET_NAME" in settings_module.collect_missing_required_env_vars()


def test_validate_required_environment_lists_every_problem(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("MONGO_URL", raising=False)
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "memcached")
    monkeypatch.setenv("TRANSACTION_TIMEOUT_MS", "-5")
    monkeypatch.setenv("PRESIGNED_URL_EXPIRES_IN", "soon")

    with pytest.raises(RuntimeError) as exc_info:
        settings_module.validate_required_environment()

    message = str(exc_info.value)
    assert "- MONGO_URL" in message
    assert "RATE_LIMIT_BACKEND must be one of" in message
    assert "TRANSACTION_TIMEOUT_MS must be a positive integer" in message
    assert "PRESIGNED_URL_EXPIRES_IN must be a positive integer" in message


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("RATE_LIMIT_BACKEND", raising=False)
    settings_module.get_settings.cache_clear()

    settings = settings_module.get_settings()

    assert settings.rate_limit_backend == "redis"
    assert settings.transaction_max_wait_ms == 5000
    assert settings.transaction_timeout_ms == 30000
    assert settings.presigned_url_expires_in == 3600
    assert settings.is_production is False
