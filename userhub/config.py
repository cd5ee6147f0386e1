"""
userhub Configuration System.

Uses pydantic-settings for type-safe configuration with TOML file support
and environment variable overrides.

Resolution priority (highest wins):
  1. Environment variables (USERHUB_ prefix, e.g. USERHUB_PROBE__READINESS_TIMEOUT)
  2. TOML config file (~/.userhub/config.toml)
  3. Built-in defaults

The deployment variables PG_URL_WRITE, PG_URL_READ, APP_VERSION, ENVIRONMENT
and FAULT_MODE are honored for fields still at their defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from userhub.errors import ConfigError

# Default config file location
CONFIG_DIR = Path.home() / ".userhub"
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_DB_URL = "sqlite+aiosqlite:///./userhub.db"

_TRUTHY = ("1", "true", "yes", "on")


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"


class DatabaseConfig(BaseModel):
    """Write-primary and read-replica connection URLs.

    Any SQLAlchemy async URL works, e.g. ``postgresql+asyncpg://...``.
    """

    write_url: str = DEFAULT_DB_URL
    read_url: str = DEFAULT_DB_URL
    echo: bool = False


class DeploymentConfig(BaseModel):
    """Process identity, fixed at startup."""

    version: str = "v1"
    environment: str = "development"


class ProbeConfig(BaseModel):
    """Readiness probe configuration."""

    readiness_timeout: float = Field(default=2.0, gt=0)  # seconds, per store


class FaultConfig(BaseModel):
    """Fault injection: force write-path calls down the failure branch."""

    fault_mode: bool = False


class TracingConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    console: bool = False
    otlp_endpoint: str | None = None


class TomlSource(PydanticBaseSettingsSource):
    """Settings source that reads the default TOML file, if present."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        # Not used because we return full dict in __call__
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        if CONFIG_PATH.exists():
            return _read_toml(CONFIG_PATH)
        return {}


def _read_toml(path: Path) -> dict[str, Any]:
    import tomllib

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc


class UserhubConfig(BaseSettings):
    """Root configuration for the userhub service.

    Load order (highest priority wins):
    1. Init arguments
    2. Environment variables (USERHUB_ prefix)
    3. TOML config file (~/.userhub/config.toml)
    4. Built-in defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="USERHUB_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    faults: FaultConfig = Field(default_factory=FaultConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlSource(settings_cls),
            file_secret_settings,
        )

    def model_post_init(self, __context: Any) -> None:
        """Apply deployment env var overrides after normal loading, then validate."""
        import logging as _logging

        _log = _logging.getLogger("userhub.config")

        legacy_map = [
            (self.database, "write_url", DEFAULT_DB_URL, "PG_URL_WRITE"),
            (self.database, "read_url", DEFAULT_DB_URL, "PG_URL_READ"),
            (self.deployment, "version", "v1", "APP_VERSION"),
            (self.deployment, "environment", "development", "ENVIRONMENT"),
        ]
        for section, field_name, default, env_key in legacy_map:
            val = os.getenv(env_key)
            if val and getattr(section, field_name) == default:
                object.__setattr__(section, field_name, val)

        fault_env = os.getenv("FAULT_MODE")
        if fault_env is not None and not self.faults.fault_mode:
            object.__setattr__(self.faults, "fault_mode", fault_env.strip().lower() in _TRUTHY)

        if self.faults.fault_mode:
            _log.warning("Fault mode is enabled: every write request will fail with HTTP 500.")

        if self.probe.readiness_timeout > 30:
            _log.warning(
                "probe.readiness_timeout=%.1fs is very high; orchestrators usually "
                "give up on /ready well before that.",
                self.probe.readiness_timeout,
            )

    @classmethod
    def load(cls, config_path: Path | None = None) -> UserhubConfig:
        """Load configuration.

        Args:
            config_path: Override for TOML file location.  When it exists, its
                         values are passed as init args and win over env vars.
        """
        if config_path and config_path.exists():
            return cls(**_read_toml(config_path))

        return cls()
