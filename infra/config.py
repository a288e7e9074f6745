"""Centralized application configuration with schema validation.

This module is intentionally compatibility-first:
- Supports the flat environment names the SEAD data server has always read
  (for example ``POSTGRES_HOST`` or ``API_PORT``) and ``DB_URL``.
- Supports nested names (for example ``DB__URL``) for future consistency.
- Optionally reads a local ``.env`` file before process env values.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from threading import Lock
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_flag(value: object, default: bool) -> bool:
    if value is None:
        return default
    text = str(value).strip().lower()
    if text == "":
        return default
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


class ConnectionPolicy(str, Enum):
    """How queries obtain a database connection.

    POOLED: one pooled connection per query; parallelism bounded by pool size.
    STATIC: one shared connection for the whole process; every query is
    serialized on it, so effective parallelism is 1 whatever the fan-out.
    """

    POOLED = "pooled"
    STATIC = "static"


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    model_config = ConfigDict(frozen=True)

    url: str | None = Field(default=None, description="Postgres connection URL")
    host: str | None = Field(default=None)
    port: int = Field(default=5432, ge=1, le=65535)
    name: str | None = Field(default=None)
    user: str | None = Field(default=None)
    password: str | None = Field(default=None)
    policy: ConnectionPolicy = Field(default=ConnectionPolicy.POOLED)
    pool_maxconn: int = Field(default=50, ge=1, le=500)
    idle_timeout: int = Field(default=30, ge=1, le=3600)
    connect_timeout: int = Field(default=30, ge=1, le=300)

    @field_validator("policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: object) -> ConnectionPolicy:
        if isinstance(value, ConnectionPolicy):
            return value
        text = str(value or "").strip().lower()
        if not text:
            return ConnectionPolicy.POOLED
        return ConnectionPolicy(text)

    def dsn(self) -> str:
        """Return a libpq connection string, preferring ``url`` when set."""
        if self.url:
            return self.url
        if not self.host:
            raise RuntimeError("DB_URL (or POSTGRES_HOST) is not set")
        auth = ""
        if self.user:
            auth = quote(self.user, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"postgresql://{auth}{self.host}:{self.port}/{self.name or ''}"


class AssemblyConfig(BaseModel):
    """Site assembly runtime settings."""

    model_config = ConfigDict(frozen=True)

    query_timeout_seconds: float | None = Field(default=None, gt=0.0)
    include_method_specific_data: bool = Field(default=True)

    @field_validator("include_method_specific_data", mode="before")
    @classmethod
    def _normalize_include(cls, value: object) -> bool:
        return _parse_flag(value, True)


class CacheConfig(BaseModel):
    """Site document cache settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    directory: str = Field(default="site_cache")

    @field_validator("enabled", mode="before")
    @classmethod
    def _normalize_enabled(cls, value: object) -> bool:
        return _parse_flag(value, False)

    @field_validator("directory", mode="before")
    @classmethod
    def _normalize_directory(cls, value: object) -> str:
        return str(value or "").strip() or "site_cache"


class PreloadConfig(BaseModel):
    """Bulk preload settings."""

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(default=5, ge=1, le=100)


class APIConfig(BaseModel):
    """Flask API runtime configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    debug_errors: bool = Field(default=False)

    @field_validator("debug_errors", mode="before")
    @classmethod
    def _normalize_debug_errors(cls, value: object) -> bool:
        return _parse_flag(value, False)


class LoggingSettings(BaseModel):
    """Repository-wide logging settings."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    override_root_handlers: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        text = str(value or "").strip().upper()
        if text in _LOG_LEVELS:
            return text
        return "INFO"

    @field_validator("json_logs", "override_root_handlers", mode="before")
    @classmethod
    def _normalize_flags(cls, value: object) -> bool:
        return _parse_flag(value, False)


class DbMetricsConfig(BaseModel):
    """DB query instrumentation settings."""

    model_config = ConfigDict(frozen=True)

    metrics_enabled: bool = Field(default=True)
    slow_query_threshold_ms: float = Field(default=1000.0, ge=0.0)

    @field_validator("metrics_enabled", mode="before")
    @classmethod
    def _normalize_metrics_enabled(cls, value: object) -> bool:
        return _parse_flag(value, True)

    @field_validator("slow_query_threshold_ms", mode="before")
    @classmethod
    def _normalize_threshold_ms(cls, value: object) -> float:
        if value is None:
            return 1000.0
        text = str(value).strip()
        if text == "":
            return 1000.0
        try:
            parsed = float(text)
        except (TypeError, ValueError):
            return 1000.0
        return max(0.0, parsed)


class Settings(BaseModel):
    """Top-level settings model."""

    model_config = ConfigDict(frozen=True)

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    assembly: AssemblyConfig = Field(default_factory=AssemblyConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    preload: PreloadConfig = Field(default_factory=PreloadConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    db_metrics: DbMetricsConfig = Field(default_factory=DbMetricsConfig)

    @classmethod
    def from_env(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str = ".env",
    ) -> Settings:
        """Build settings from `.env` then environment variables."""
        runtime_env = os.environ if env is None else env
        merged_env = _merge_env(_load_dotenv(Path(env_file)), runtime_env)
        payload = _build_payload(merged_env)
        return cls.model_validate(payload)


def _load_dotenv(path: Path) -> dict[str, str]:
    """Parse a minimal `.env` file format."""
    if not path.exists() or not path.is_file():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        key_clean = key.strip()
        value = raw_value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        if key_clean:
            values[key_clean] = value
    return values


def _merge_env(dotenv_values: Mapping[str, str], runtime_env: Mapping[str, str]) -> dict[str, str]:
    """Return env map where process env overrides `.env` values."""
    merged = {str(k): str(v) for k, v in dotenv_values.items()}
    for key, value in runtime_env.items():
        merged[str(key)] = str(value)
    return merged


def _first_non_empty(env: Mapping[str, str], *keys: str) -> str | None:
    """Return the first non-empty value for the provided keys."""
    for key in keys:
        value = str(env.get(key, "")).strip()
        if value:
            return value
    return None


def _legacy_policy(env: Mapping[str, str]) -> str | None:
    """Map the boolean USE_STATIC_DB_CONNECTION switch onto a policy name."""
    raw = _first_non_empty(env, "USE_STATIC_DB_CONNECTION")
    if raw is None:
        return None
    return ConnectionPolicy.STATIC.value if _parse_flag(raw, False) else ConnectionPolicy.POOLED.value


def _build_payload(env: Mapping[str, str]) -> dict[str, object]:
    """Build nested settings payload from env values."""
    db = {
        "url": _first_non_empty(env, "DB__URL", "DB_URL"),
        "host": _first_non_empty(env, "DB__HOST", "POSTGRES_HOST"),
        "port": _first_non_empty(env, "DB__PORT", "POSTGRES_PORT"),
        "name": _first_non_empty(env, "DB__NAME", "POSTGRES_DATABASE"),
        "user": _first_non_empty(env, "DB__USER", "POSTGRES_USER"),
        "password": _first_non_empty(env, "DB__PASSWORD", "POSTGRES_PASS"),
        "policy": _first_non_empty(env, "DB__POLICY", "DB_CONNECTION_POLICY") or _legacy_policy(env),
        "pool_maxconn": _first_non_empty(env, "DB__POOL_MAXCONN", "DB_POOL_MAXCONN"),
        "idle_timeout": _first_non_empty(env, "DB__IDLE_TIMEOUT", "DB_IDLE_TIMEOUT"),
        "connect_timeout": _first_non_empty(env, "DB__CONNECT_TIMEOUT", "DB_CONNECT_TIMEOUT"),
    }
    assembly = {
        "query_timeout_seconds": _first_non_empty(
            env, "ASSEMBLY__QUERY_TIMEOUT_SECONDS", "QUERY_TIMEOUT_SECONDS"
        ),
        "include_method_specific_data": _first_non_empty(
            env, "ASSEMBLY__INCLUDE_METHOD_SPECIFIC_DATA", "INCLUDE_METHOD_SPECIFIC_DATA"
        ),
    }
    cache = {
        "enabled": _first_non_empty(env, "CACHE__ENABLED", "USE_SITE_CACHING"),
        "directory": _first_non_empty(env, "CACHE__DIRECTORY", "SITE_CACHE_DIR"),
    }
    preload = {
        "max_concurrency": _first_non_empty(
            env, "PRELOAD__MAX_CONCURRENCY", "PRELOAD_MAX_CONCURRENCY"
        ),
    }
    api = {
        "host": _first_non_empty(env, "API__HOST", "API_HOST", "HOST"),
        "port": _first_non_empty(env, "API__PORT", "API_PORT", "PORT"),
        "debug_errors": _first_non_empty(env, "API__DEBUG_ERRORS", "API_DEBUG_ERRORS"),
    }
    logging_settings = {
        "level": _first_non_empty(env, "LOGGING__LEVEL", "SEAD_LOG_LEVEL"),
        "json_logs": _first_non_empty(env, "LOGGING__JSON_LOGS", "SEAD_LOG_JSON"),
        "override_root_handlers": _first_non_empty(
            env, "LOGGING__OVERRIDE_ROOT_HANDLERS", "SEAD_LOG_OVERRIDE"
        ),
    }
    db_metrics = {
        "metrics_enabled": _first_non_empty(env, "DB_METRICS__ENABLED", "DB_QUERY_METRICS_ENABLED"),
        "slow_query_threshold_ms": _first_non_empty(
            env, "DB_METRICS__SLOW_QUERY_THRESHOLD_MS", "DB_SLOW_QUERY_THRESHOLD_MS"
        ),
    }
    return {
        "db": {k: v for k, v in db.items() if v is not None},
        "assembly": {k: v for k, v in assembly.items() if v is not None},
        "cache": {k: v for k, v in cache.items() if v is not None},
        "preload": {k: v for k, v in preload.items() if v is not None},
        "api": {k: v for k, v in api.items() if v is not None},
        "logging": {k: v for k, v in logging_settings.items() if v is not None},
        "db_metrics": {k: v for k, v in db_metrics.items() if v is not None},
    }


_SETTINGS_LOCK = Lock()
_SETTINGS_CACHE: Settings | None = None


def get_settings(*, reload: bool = False) -> Settings:
    """Return cached settings, optionally forcing reload from env."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        if reload or _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = Settings.from_env()
        return _SETTINGS_CACHE


def clear_settings_cache() -> None:
    """Clear in-process settings cache."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


__all__ = [
    "APIConfig",
    "AssemblyConfig",
    "CacheConfig",
    "ConnectionPolicy",
    "DatabaseConfig",
    "DbMetricsConfig",
    "LoggingSettings",
    "PreloadConfig",
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "ValidationError",
]
