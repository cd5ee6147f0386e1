"""Tests for userhub.bootstrap: UserhubApp wiring and lifecycle."""

import asyncio
import signal
from unittest.mock import MagicMock

import pytest

from tests.mocks.stores import FakeCheck
from userhub.bootstrap import UserhubApp
from userhub.config import UserhubConfig
from userhub.errors import StorageError
from userhub.readiness import EngineCheck, ReadinessProbe


def _probe():
    return ReadinessProbe(FakeCheck("write"), FakeCheck("read"))


class TestAssemble:
    def test_components_share_one_metrics_store(self):
        core = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        with core.instrumentation.track("op"):
            pass
        assert core.metrics.snapshot().total_requests == 1
        core.health.mark_unhealthy()
        assert core.deployment.assemble().healthy is False
        assert core.instrumentation.metrics is core.metrics

    def test_uses_config_identity(self):
        cfg = UserhubConfig(deployment={"version": "v7", "environment": "qa"}, faults={"fault_mode": True})
        core = UserhubApp.assemble(cfg, readiness=_probe())
        assert core.metrics.version == "v7"
        assert core.deployment.environment == "qa"
        assert core.instrumentation.fault_mode is True

    def test_fresh_store_per_app(self):
        a = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        b = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        assert a.metrics is not b.metrics


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_and_shutdown(self, tmp_db_urls):
        cfg = UserhubConfig(database=tmp_db_urls, probe={"readiness_timeout": 1.0})
        core = await UserhubApp.create(cfg)
        try:
            assert core.engines is not None
            assert core.users is not None
            assert isinstance(core.readiness, ReadinessProbe)
            assert core.readiness.timeout == 1.0
            result = await core.readiness.check_readiness()
            assert result.ready is True
        finally:
            await core.shutdown()
        assert core.engines is None

    @pytest.mark.asyncio
    async def test_unreachable_store_is_fatal(self, tmp_path):
        bad = f"sqlite+aiosqlite:///{tmp_path / 'nope' / 'x.db'}"
        cfg = UserhubConfig(database={"write_url": bad, "read_url": bad})
        with pytest.raises(StorageError):
            await UserhubApp.create(cfg)

    def test_engine_checks_named(self):
        check = EngineCheck("write", MagicMock())
        assert check.name == "write"


class TestSignalHandlers:
    def test_registers_usr1_and_usr2(self):
        core = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        loop = MagicMock(spec=asyncio.AbstractEventLoop)
        core.install_signal_handlers(loop)
        registered = {c.args[0] for c in loop.add_signal_handler.call_args_list}
        assert registered == {signal.SIGUSR1, signal.SIGUSR2}

    def test_handlers_toggle_liveness(self):
        core = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        loop = MagicMock(spec=asyncio.AbstractEventLoop)
        core.install_signal_handlers(loop)
        handlers = {c.args[0]: (c.args[1], c.args[2]) for c in loop.add_signal_handler.call_args_list}

        fn, arg = handlers[signal.SIGUSR1]
        fn(arg)
        assert core.health.is_healthy() is False
        fn, arg = handlers[signal.SIGUSR2]
        fn(arg)
        assert core.health.is_healthy() is True

    def test_unsupported_loop_is_tolerated(self):
        core = UserhubApp.assemble(UserhubConfig(), readiness=_probe())
        loop = MagicMock(spec=asyncio.AbstractEventLoop)
        loop.add_signal_handler.side_effect = NotImplementedError
        core.install_signal_handlers(loop)
