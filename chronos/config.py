"""Chronos configuration loaded from environment variables."""

from __future__ import annotations

import json
import math
import re
from urllib.parse import quote

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

_TRUTHY = {"1", "true", "yes", "y", "on"}
_DEV_ENVS = {"development", "dev", "local"}
_LEADING_INT = re.compile(r"[+-]?\d+")


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Server
    app_env: str = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "NODE_ENV"),
    )
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")
    cors_origins: str = Field(default="[]", alias="CORS_ORIGINS")
    rate_limit_default: str = Field(default="100/minute", alias="RATE_LIMIT_DEFAULT")

    # MongoDB
    mongo_uri: str = Field(default="", alias="MONGO_URI")
    mongo_host: str = Field(default="localhost", alias="MONGO_HOST")
    mongo_port: int = Field(default=27017, alias="MONGO_PORT")
    mongo_db_name: str = Field(default="chronos", alias="MONGO_DB_NAME")
    mongo_root_user: str = Field(default="", alias="MONGO_ROOT_USER")
    mongo_root_password: str = Field(default="", alias="MONGO_ROOT_PASSWORD")
    mongo_server_selection_timeout_ms: int = Field(
        default=5000, alias="MONGO_SERVER_SELECTION_TIMEOUT_MS"
    )

    # Redis
    redis_url: str = Field(default="", alias="REDIS_URL")
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_connect_timeout_ms: int = Field(default=5000, alias="REDIS_CONNECT_TIMEOUT_MS")
    health_check_interval_ms: int = Field(default=10_000, alias="HEALTH_CHECK_INTERVAL_MS")

    # Stats dashboard
    stats_latency_samples: int = Field(default=500, alias="STATS_LATENCY_SAMPLES")
    stats_cache_ttl_ms: int = Field(default=10_000, alias="STATS_CACHE_TTL_MS")
    stats_max_collections: int = Field(default=25, alias="STATS_MAX_COLLECTIONS")
    stats_enable_collection_counts: bool = Field(
        default=True, alias="STATS_ENABLE_COLLECTION_COUNTS"
    )
    stats_show_coverage: bool = Field(default=True, alias="STATS_SHOW_COVERAGE")
    stats_coverage_summary_path: str = Field(
        default="coverage.json", alias="STATS_COVERAGE_SUMMARY_PATH"
    )
    stats_serve_coverage_report: bool = Field(
        default=True, alias="STATS_SERVE_COVERAGE_REPORT"
    )
    stats_coverage_report_dir: str = Field(default="htmlcov", alias="STATS_COVERAGE_REPORT_DIR")
    stats_embed_coverage_report: bool = Field(
        default=False, alias="STATS_EMBED_COVERAGE_REPORT"
    )

    # Request logging
    request_logging_enabled: bool = Field(default=True, alias="REQUEST_LOGGING_ENABLED")
    request_logging_include_query: bool = Field(
        default=True, alias="REQUEST_LOGGING_INCLUDE_QUERY"
    )

    @field_validator(
        "port",
        "mongo_port",
        "mongo_server_selection_timeout_ms",
        "redis_port",
        "redis_connect_timeout_ms",
        "health_check_interval_ms",
        "stats_latency_samples",
        "stats_cache_ttl_ms",
        "stats_max_collections",
        mode="before",
    )
    @classmethod
    def _int_or_default(cls, value, info):
        # Invalid numbers fall back to the field default instead of failing startup.
        default = cls.model_fields[info.field_name].default
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else default
        raw = str(value).strip() if value is not None else ""
        if not raw:
            return default
        try:
            return int(raw, 10)
        except ValueError:
            return _leading_int(raw, default)

    @field_validator(
        "stats_enable_collection_counts",
        "stats_show_coverage",
        "stats_serve_coverage_report",
        "stats_embed_coverage_report",
        "request_logging_enabled",
        "request_logging_include_query",
        mode="before",
    )
    @classmethod
    def _bool_or_default(cls, value, info):
        if isinstance(value, bool):
            return value
        raw = str(value).strip().lower() if value is not None else ""
        if not raw:
            return cls.model_fields[info.field_name].default
        return raw in _TRUTHY

    @property
    def environment(self) -> str:
        return (self.app_env or "").strip().lower()

    @property
    def is_development(self) -> bool:
        return self.environment in _DEV_ENVS

    @property
    def is_production(self) -> bool:
        return self.environment in {"production", "prod"}

    @property
    def cors_origins_list(self) -> list[str]:
        raw = (self.cors_origins or "").strip()
        if not raw:
            return []

        # Supports JSON list format and comma-separated format.
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(origin).strip() for origin in parsed if str(origin).strip()]
            except json.JSONDecodeError:
                pass

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def build_mongo_uri(self) -> str:
        if self.mongo_uri.strip():
            return self.mongo_uri.strip()

        credentials = ""
        if self.mongo_root_user and self.mongo_root_password:
            credentials = (
                f"{quote(self.mongo_root_user, safe='')}:"
                f"{quote(self.mongo_root_password, safe='')}@"
            )
        auth_source = "?authSource=admin" if credentials else ""
        return (
            f"mongodb://{credentials}{self.mongo_host}:{self.mongo_port}"
            f"/{self.mongo_db_name}{auth_source}"
        )

    def build_redis_url(self) -> str:
        if self.redis_url.strip():
            return self.redis_url.strip()
        return f"redis://{self.redis_host}:{self.redis_port}"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


def _leading_int(raw: str, default: int) -> int:
    """Parse a leading decimal integer the way ``parseInt`` does ("25ms" -> 25)."""
    match = _LEADING_INT.match(raw)
    return int(match.group(0)) if match else default


def get_settings() -> Settings:
    return Settings()
