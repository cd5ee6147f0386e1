"""userhub application bootstrap: builds the shared core and owns its lifecycle."""

from __future__ import annotations

import asyncio
import signal

from userhub.config import UserhubConfig
from userhub.db.session import DatabaseEngines
from userhub.deployment import DeploymentInfoAssembler
from userhub.health import HealthEvaluator
from userhub.instrumentation import RequestInstrumentation
from userhub.logging import get_logger, setup_logging
from userhub.metrics import MetricsStore
from userhub.readiness import EngineCheck, ReadinessProbe
from userhub.tracing import setup_tracing
from userhub.users import UserRepository

log = get_logger("userhub.bootstrap")


class UserhubApp:
    """Owns every subsystem instance and its lifecycle.

    The one :class:`MetricsStore` of the process is created here and passed
    by reference to the instrumentation, health evaluator and deployment
    assembler.  ``create()`` initializes in three phases:

    1. **Config & observability**: load settings, set up logging & tracing.
    2. **Storage**: connect both stores (fatal on failure), bootstrap schema.
    3. **Core**: metrics, instrumentation, probes, repository.
    """

    def __init__(
        self,
        config: UserhubConfig,
        *,
        metrics: MetricsStore,
        instrumentation: RequestInstrumentation,
        health: HealthEvaluator,
        readiness: ReadinessProbe,
        deployment: DeploymentInfoAssembler,
        users: UserRepository | None = None,
        engines: DatabaseEngines | None = None,
    ) -> None:
        self.config = config
        self.metrics = metrics
        self.instrumentation = instrumentation
        self.health = health
        self.readiness = readiness
        self.deployment = deployment
        self.users = users
        self.engines = engines

    # ------------------------------------------------------------------
    # Lifecycle: public entry points
    # ------------------------------------------------------------------

    @classmethod
    async def create(cls, config: UserhubConfig | None = None) -> UserhubApp:
        """Build and initialize all subsystems; return a ready-to-use instance."""
        config = config or UserhubConfig.load()
        cls._init_observability(config)

        engines = DatabaseEngines.from_config(config.database)
        try:
            await engines.connect()
            await engines.init_schema()
        except Exception:
            await engines.dispose()
            raise

        readiness = ReadinessProbe(
            EngineCheck("write", engines.write_engine),
            EngineCheck("read", engines.read_engine),
            timeout=config.probe.readiness_timeout,
        )
        app = cls.assemble(config, readiness=readiness, users=UserRepository(engines))
        app.engines = engines
        log.info(
            "core_ready",
            version=config.deployment.version,
            environment=config.deployment.environment,
            fault_mode=config.faults.fault_mode,
        )
        return app

    @classmethod
    def assemble(
        cls,
        config: UserhubConfig,
        *,
        readiness: ReadinessProbe,
        users: UserRepository | None = None,
        metrics: MetricsStore | None = None,
    ) -> UserhubApp:
        """Wire the core around one shared metrics store, without I/O."""
        metrics = metrics or MetricsStore(version=config.deployment.version)
        return cls(
            config,
            metrics=metrics,
            instrumentation=RequestInstrumentation(metrics, fault_mode=config.faults.fault_mode),
            health=HealthEvaluator(metrics),
            readiness=readiness,
            deployment=DeploymentInfoAssembler(metrics, config.deployment.environment),
            users=users,
        )

    async def shutdown(self) -> None:
        """Release the connection pools.  Metrics are not persisted."""
        log.info("graceful_shutdown_started")
        if self.engines is not None:
            await self.engines.dispose()
            self.engines = None
        snap = self.metrics.snapshot()
        log.info(
            "graceful_shutdown_complete",
            total_requests=snap.total_requests,
            failed_requests=snap.failed_requests,
        )

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Mark the process unhealthy on SIGUSR1 and healthy again on SIGUSR2."""

        def _handle_signal(sig: int) -> None:
            log.info("signal_received", signal=signal.Signals(sig).name)
            if sig == signal.SIGUSR1:
                self.health.mark_unhealthy()
            else:
                self.health.mark_healthy()

        for sig in (signal.SIGUSR1, signal.SIGUSR2):
            try:
                loop.add_signal_handler(sig, _handle_signal, sig)
            except (NotImplementedError, RuntimeError) as exc:
                # Not the main thread, or a loop without signal support.
                log.warning("signal_handler_unavailable", signal=sig.name, error=str(exc))

    # ------------------------------------------------------------------
    # Phase 1: Config & observability
    # ------------------------------------------------------------------

    @staticmethod
    def _init_observability(config: UserhubConfig) -> None:
        setup_logging(
            json_output=config.server.log_format == "json",
            level=config.server.log_level,
            version=config.deployment.version,
            environment=config.deployment.environment,
        )
        log.info(
            "config_loaded",
            host=config.server.host,
            port=config.server.port,
            readiness_timeout=config.probe.readiness_timeout,
        )
        setup_tracing(
            config.tracing,
            version=config.deployment.version,
            environment=config.deployment.environment,
        )
