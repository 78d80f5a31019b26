"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("/v1/models, /v1/health")
        ['/v1/models', '/v1/health']
        >>> parse_csv(None)
        []
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class RateLimitSettings(BaseSettings):
    """Sliding-window admission policy."""

    limit: int = Field(
        2,
        description="Maximum admitted non-exempt requests per window (per client)",
        ge=1,
    )
    window_seconds: int = Field(
        120,
        description="Sliding window length in seconds",
        ge=1,
    )
    exempt_paths: str = Field(
        "/v1/models",
        description="Comma-separated request paths that are never throttled",
    )
    store_failure_mode: Literal["open", "closed", "error"] = Field(
        "error",
        description=(
            "What an admission check does when the quota store fails: "
            "admit (open), reject (closed) or answer 500 (error)"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @property
    def exempt_path_set(self) -> frozenset[str]:
        return frozenset(parse_csv(self.exempt_paths))


class StoreSettings(BaseSettings):
    """Quota store backend and its two logical partitions."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Quota store backend (memory is per-process only)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL used when backend=redis",
    )
    rate_limit_namespace: str = Field(
        "rate_limits",
        description="Key prefix of the timestamp log partition",
    )
    stats_namespace: str = Field(
        "ip_stats",
        description="Key prefix of the usage counter partition",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class ProxySettings(BaseSettings):
    """Upstream forwarding configuration."""

    upstream_origin: str = Field(
        "https://example.com",
        description="Fixed upstream origin every request is forwarded to",
    )
    client_ip_header: str = Field(
        "CF-Connecting-IP",
        description="Trusted header carrying the caller IP (client identity)",
    )
    timeout_seconds: float = Field(
        60.0,
        description="Upstream request timeout in seconds",
        gt=0,
    )
    follow_redirects: bool = Field(
        True,
        description="Follow upstream redirects instead of returning them",
    )
    health_path: str = Field(
        "/__proxy/health",
        description="Local health check route (never forwarded)",
    )

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Bind address for the bundled uvicorn runner."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(8787, description="TCP port to bind", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    log: LogSettings = Field(default_factory=LogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
