"""Shared test fixtures for the userhub test suite."""

import pytest

from tests.mocks.stores import FakeCheck, FakeUserRepository
from userhub.bootstrap import UserhubApp
from userhub.config import UserhubConfig
from userhub.metrics import MetricsStore
from userhub.readiness import ReadinessProbe

_DEPLOYMENT_ENV = ("PG_URL_WRITE", "PG_URL_READ", "APP_VERSION", "ENVIRONMENT", "FAULT_MODE")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep real deployment variables and config files out of the tests."""
    import os

    import userhub.config as config_mod

    for key in _DEPLOYMENT_ENV:
        monkeypatch.delenv(key, raising=False)
    for key in list(os.environ):
        if key.startswith("USERHUB_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_mod, "CONFIG_PATH", tmp_path / "absent.toml")


@pytest.fixture
def tmp_toml(tmp_path):
    """Create a temporary TOML config file and return its Path."""

    def _write(content: str):
        p = tmp_path / "config.toml"
        p.write_text(content)
        return p

    return _write


@pytest.fixture
def tmp_db_urls(tmp_path):
    """Separate on-disk SQLite files for the write and read stores."""
    return {
        "write_url": f"sqlite+aiosqlite:///{tmp_path / 'write.db'}",
        "read_url": f"sqlite+aiosqlite:///{tmp_path / 'read.db'}",
    }


@pytest.fixture
def metrics():
    """A fresh metrics store per test."""
    return MetricsStore(version="v-test")


@pytest.fixture
def write_check():
    return FakeCheck("write")


@pytest.fixture
def read_check():
    return FakeCheck("read")


@pytest.fixture
def make_core(write_check, read_check):
    """Build a UserhubApp around fake stores; keyword args override config."""

    def _make(*, fault_mode: bool = False, timeout: float = 0.2, environment: str = "test"):
        config = UserhubConfig(
            deployment={"version": "v-test", "environment": environment},
            faults={"fault_mode": fault_mode},
            probe={"readiness_timeout": timeout},
        )
        probe = ReadinessProbe(write_check, read_check, timeout=timeout)
        return UserhubApp.assemble(config, readiness=probe, users=FakeUserRepository())

    return _make
