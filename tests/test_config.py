"""Unit tests for userhub.config: pydantic-settings configuration system."""

import pytest
from pydantic import ValidationError

from userhub.config import (
    DatabaseConfig,
    DeploymentConfig,
    FaultConfig,
    ProbeConfig,
    ServerConfig,
    UserhubConfig,
)
from userhub.errors import ConfigError

# ---------------------------------------------------------------------------
# Sub-config defaults
# ---------------------------------------------------------------------------


class TestConfigDefaults:
    def test_server_defaults(self):
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 8080
        assert cfg.log_level == "INFO"
        assert cfg.log_format == "console"

    def test_database_defaults(self):
        cfg = DatabaseConfig()
        assert cfg.write_url.startswith("sqlite+aiosqlite")
        assert cfg.read_url == cfg.write_url

    def test_deployment_defaults(self):
        cfg = DeploymentConfig()
        assert cfg.version == "v1"
        assert cfg.environment == "development"

    def test_probe_defaults(self):
        assert ProbeConfig().readiness_timeout == 2.0

    def test_fault_defaults(self):
        assert FaultConfig().fault_mode is False

    def test_probe_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProbeConfig(readiness_timeout=0)

    def test_log_format_restricted(self):
        with pytest.raises(ValidationError):
            ServerConfig(log_format="xml")


# ---------------------------------------------------------------------------
# UserhubConfig.load()
# ---------------------------------------------------------------------------


class TestUserhubConfigLoad:
    def test_load_returns_defaults(self):
        cfg = UserhubConfig.load()
        assert cfg.server.port == 8080
        assert cfg.deployment.version == "v1"
        assert cfg.faults.fault_mode is False

    def test_load_from_toml(self, tmp_toml):
        toml_path = tmp_toml(
            """
[deployment]
version = "v2.3.0"
environment = "staging"

[probe]
readiness_timeout = 0.5
"""
        )
        cfg = UserhubConfig.load(config_path=toml_path)
        assert cfg.deployment.version == "v2.3.0"
        assert cfg.deployment.environment == "staging"
        assert cfg.probe.readiness_timeout == 0.5
        # Unspecified fields keep defaults
        assert cfg.server.port == 8080

    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("USERHUB_SERVER__PORT", "7777")
        monkeypatch.setenv("USERHUB_FAULTS__FAULT_MODE", "true")
        cfg = UserhubConfig.load()
        assert cfg.server.port == 7777
        assert cfg.faults.fault_mode is True

    def test_default_toml_location(self, monkeypatch, tmp_path):
        import userhub.config as config_mod

        path = tmp_path / "default.toml"
        path.write_text('[deployment]\nenvironment = "from-file"\n')
        monkeypatch.setattr(config_mod, "CONFIG_PATH", path)
        assert UserhubConfig.load().deployment.environment == "from-file"

    def test_env_beats_default_toml(self, monkeypatch, tmp_path):
        import userhub.config as config_mod

        path = tmp_path / "default.toml"
        path.write_text('[deployment]\nenvironment = "from-file"\n')
        monkeypatch.setattr(config_mod, "CONFIG_PATH", path)
        monkeypatch.setenv("USERHUB_DEPLOYMENT__ENVIRONMENT", "from-env")
        assert UserhubConfig.load().deployment.environment == "from-env"


# ---------------------------------------------------------------------------
# Deployment env vars (PG_URL_WRITE, APP_VERSION, ...)
# ---------------------------------------------------------------------------


class TestDeploymentEnvVars:
    def test_database_urls(self, monkeypatch):
        monkeypatch.setenv("PG_URL_WRITE", "postgresql+asyncpg://w@primary/app")
        monkeypatch.setenv("PG_URL_READ", "postgresql+asyncpg://r@replica/app")
        cfg = UserhubConfig.load()
        assert cfg.database.write_url == "postgresql+asyncpg://w@primary/app"
        assert cfg.database.read_url == "postgresql+asyncpg://r@replica/app"

    def test_version_and_environment(self, monkeypatch):
        monkeypatch.setenv("APP_VERSION", "v9")
        monkeypatch.setenv("ENVIRONMENT", "production")
        cfg = UserhubConfig.load()
        assert cfg.deployment.version == "v9"
        assert cfg.deployment.environment == "production"

    def test_explicit_setting_wins(self, monkeypatch):
        monkeypatch.setenv("APP_VERSION", "v9")
        cfg = UserhubConfig(deployment={"version": "v10"})
        assert cfg.deployment.version == "v10"

    @pytest.mark.parametrize(("raw", "expected"), [("true", True), ("1", True), ("false", False), ("", False)])
    def test_fault_mode(self, monkeypatch, raw, expected):
        monkeypatch.setenv("FAULT_MODE", raw)
        assert UserhubConfig.load().faults.fault_mode is expected


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------


class TestConfigEdgeCases:
    def test_nonexistent_toml_path_uses_defaults(self, tmp_path):
        cfg = UserhubConfig.load(config_path=tmp_path / "nonexistent.toml")
        assert cfg.deployment.version == "v1"

    def test_empty_toml_uses_defaults(self, tmp_toml):
        cfg = UserhubConfig.load(config_path=tmp_toml(""))
        assert cfg.server.port == 8080

    def test_malformed_toml_raises_config_error(self, tmp_toml):
        with pytest.raises(ConfigError):
            UserhubConfig.load(config_path=tmp_toml("[deployment\nversion = "))
