from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEV_CERTIFICATE_SECRET = "dev-certificate-secret"


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    certificate_secret: str
    local_cache_dir: str
    api_base_url: str
    http_timeout_seconds: float

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    timeout_raw = _getenv("HTTP_TIMEOUT_SECONDS", "10")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        http_timeout_seconds = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"HTTP_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if http_timeout_seconds <= 0:
        raise ValueError(
            f"HTTP_TIMEOUT_SECONDS must be positive (got {timeout_raw!r})"
        )

    certificate_secret = _getenv("CERTIFICATE_SECRET", "")
    if not certificate_secret:
        if app_env_raw == "prod":
            raise ValueError("CERTIFICATE_SECRET is required when APP_ENV=prod")
        certificate_secret = _DEV_CERTIFICATE_SECRET

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_parse_bool("LOG_JSON", _getenv("LOG_JSON", "false")),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        certificate_secret=certificate_secret,
        local_cache_dir=_getenv("LOCAL_CACHE_DIR", ".coursetrack"),
        api_base_url=_getenv("API_BASE_URL", "http://localhost:8000").rstrip("/"),
        http_timeout_seconds=http_timeout_seconds,
    )


SETTINGS = load_settings()
