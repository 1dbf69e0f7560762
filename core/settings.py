from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_STORAGE_BACKENDS = {"local", "s3"}
SUPPORTED_RATE_LIMIT_BACKENDS = {"memory", "redis"}

_POSITIVE_INT_DEFAULTS = {
    "TRANSACTION_MAX_WAIT_MS": 5_000,
    "TRANSACTION_TIMEOUT_MS": 30_000,
    "RATE_LIMIT_SWEEP_SECONDS": 300,
    "PRESIGNED_URL_EXPIRES_IN": 3_600,
    "DOWNLOAD_URL_EXPIRES_IN": 3_600,
}


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _env_int(name: str) -> int:
    value = _env(name)
    if value is None:
        return _POSITIVE_INT_DEFAULTS[name]
    return int(value)


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    for var_name in ("SECRET_KEY", "MONGO_URL", "DB_NAME"):
        if _env(var_name) is None:
            missing.append(var_name)

    storage_backend = (_env("STORAGE_BACKEND") or "local").lower()
    if storage_backend == "s3" and _env("S3_BUCKET_NAME") is None:
        missing.append("S3_BUCKET_NAME")

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    storage_backend = (_env("STORAGE_BACKEND") or "local").lower()
    if storage_backend not in SUPPORTED_STORAGE_BACKENDS:
        invalid_values.append("STORAGE_BACKEND must be one of: local, s3")

    rate_limit_backend = (_env("RATE_LIMIT_BACKEND") or "redis").lower()
    if rate_limit_backend not in SUPPORTED_RATE_LIMIT_BACKENDS:
        invalid_values.append("RATE_LIMIT_BACKEND must be one of: memory, redis")

    for var_name in _POSITIVE_INT_DEFAULTS:
        raw = _env(var_name)
        if raw is None:
            continue
        try:
            if int(raw) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append(f"{var_name} must be a positive integer")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    secret_key: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    log_level: str | None
    mongo_url: str
    db_name: str
    redis_url: str
    s3_bucket_name: str | None
    s3_region: str | None
    s3_endpoint_url: str | None
    storage_backend: str
    storage_local_root: str
    rate_limit_backend: str
    rate_limit_sweep_seconds: int
    transaction_max_wait_ms: int
    transaction_timeout_ms: int
    presigned_url_expires_in: int
    download_url_expires_in: int
    role_rate_limits: str | None = None

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    default_redis = (
        os.getenv("REDIS_URL")
        or f"redis://{os.getenv('REDIS_HOST', '127.0.0.1')}:{os.getenv('REDIS_PORT', '6379')}/0"
    )

    return Settings(
        env=os.getenv("ENV", "development"),
        secret_key=os.getenv("SECRET_KEY", ""),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=os.getenv("DEBUG_INCLUDE_ERROR_DETAILS", "false").lower()
        in {"1", "true", "yes"},
        log_level=_env("LOG_LEVEL"),
        mongo_url=os.getenv("MONGO_URL", ""),
        db_name=os.getenv("DB_NAME", ""),
        redis_url=default_redis,
        s3_bucket_name=os.getenv("S3_BUCKET_NAME"),
        s3_region=os.getenv("S3_REGION"),
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL"),
        storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
        storage_local_root=os.getenv("STORAGE_LOCAL_ROOT", "uploads"),
        rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "redis").lower(),
        rate_limit_sweep_seconds=_env_int("RATE_LIMIT_SWEEP_SECONDS"),
        transaction_max_wait_ms=_env_int("TRANSACTION_MAX_WAIT_MS"),
        transaction_timeout_ms=_env_int("TRANSACTION_TIMEOUT_MS"),
        presigned_url_expires_in=_env_int("PRESIGNED_URL_EXPIRES_IN"),
        download_url_expires_in=_env_int("DOWNLOAD_URL_EXPIRES_IN"),
        role_rate_limits=_env("ROLE_RATE_LIMITS"),
    )
