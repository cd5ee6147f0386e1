"""userhub Application Entry Point."""

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import BaseModel, ValidationError
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

load_dotenv()

from userhub.bootstrap import UserhubApp  # noqa: E402
from userhub.config import UserhubConfig  # noqa: E402
from userhub.db.models import UserCreate, UserRead  # noqa: E402
from userhub.deployment import DeploymentInfo  # noqa: E402
from userhub.errors import InjectedFaultError, InvalidRequestError, StorageError  # noqa: E402
from userhub.logging import get_logger  # noqa: E402
from userhub.users import UserRepository  # noqa: E402

log = get_logger("userhub.main")


class LivenessUpdate(BaseModel):
    healthy: bool


class FaultModeUpdate(BaseModel):
    enabled: bool


def _core(request: Request) -> UserhubApp:
    return request.app.state.userhub


def _users(core: UserhubApp) -> UserRepository:
    if core.users is None:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="User store not initialized.")
    return core.users


async def _parse_user(request: Request) -> UserCreate:
    try:
        return UserCreate.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        raise InvalidRequestError("Invalid request. A 'name' field is required.") from exc


def create_app(core: UserhubApp | None = None) -> FastAPI:
    """Build the FastAPI app.

    When ``core`` is given it is used as-is and left open on shutdown;
    otherwise the lifespan builds one from configuration and owns it.
    """

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        owned = app_instance.state.userhub is None
        if owned:
            app_instance.state.userhub = await UserhubApp.create()
            app_instance.state.userhub.install_signal_handlers(asyncio.get_running_loop())
        try:
            yield
        finally:
            if owned:
                await app_instance.state.userhub.shutdown()

    app_instance = FastAPI(title="userhub", lifespan=lifespan)
    app_instance.state.userhub = core
    FastAPIInstrumentor.instrument_app(app_instance)

    @app_instance.middleware("http")
    async def structlog_access_log(request: Request, call_next) -> Response:  # type: ignore[type-arg]
        """Log every HTTP request with method, path, status, and duration."""
        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1_000
        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 1),
        )
        return response

    app_instance.add_api_route("/users", add_user, methods=["POST"], status_code=HTTP_201_CREATED)
    app_instance.add_api_route("/users", list_users, methods=["GET"])
    app_instance.add_api_route("/health", health_check, methods=["GET"])
    app_instance.add_api_route("/ready", readiness_check, methods=["GET"])
    app_instance.add_api_route("/metrics", get_metrics, methods=["GET"])
    app_instance.add_api_route("/deployment-info", get_deployment_info, methods=["GET"])
    app_instance.add_api_route("/version", get_version, methods=["GET"])
    app_instance.add_api_route("/admin/liveness", set_liveness, methods=["PUT"])
    app_instance.add_api_route("/admin/fault-mode", set_fault_mode, methods=["PUT"])
    return app_instance


# ---------------------------------------------------------------------------
# User registry (instrumented)
# ---------------------------------------------------------------------------
async def add_user(request: Request) -> UserRead:
    """Insert a user on the write store."""
    core = _core(request)
    users = _users(core)
    try:
        with core.instrumentation.track("add_user", write=True):
            body = await _parse_user(request)
            return await users.add_user(body.name)
    except InjectedFaultError as exc:
        raise HTTPException(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Intentional test failure (FAULT_MODE).",
        ) from exc
    except InvalidRequestError as exc:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not create user.") from exc


async def list_users(request: Request) -> list[UserRead]:
    """List users from the read store, ordered by id."""
    core = _core(request)
    users = _users(core)
    try:
        return await core.instrumentation.run(users.list_users, name="list_users")
    except StorageError as exc:
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not list users.") from exc


# ---------------------------------------------------------------------------
# Monitoring (not instrumented)
# ---------------------------------------------------------------------------
async def health_check(request: Request) -> JSONResponse:
    """Liveness: 503 only when the process has been explicitly marked unhealthy."""
    report = _core(request).health.status_report()
    if not report.healthy:
        return JSONResponse(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            content={**report.as_dict(), "error": "Service is unhealthy."},
        )
    return JSONResponse(content=report.as_dict())


async def readiness_check(request: Request) -> JSONResponse:
    """Readiness: 503 unless both the write store and the read store answer."""
    core = _core(request)
    result = await core.readiness.check_readiness()
    body: dict[str, object] = {
        "ready": result.ready,
        "db_write": result.write.label,
        "db_read": result.read.label,
        "version": core.metrics.version,
    }
    if not result.ready:
        body["error"] = result.error
        body["reasons"] = result.reasons
        return JSONResponse(status_code=HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return JSONResponse(content=body)


async def get_metrics(request: Request) -> dict[str, object]:
    snap = _core(request).metrics.snapshot()
    return {
        "total_requests": snap.total_requests,
        "successful_requests": snap.successful_requests,
        "failed_requests": snap.failed_requests,
        "success_rate": snap.success_rate,
        "average_latency_ms": snap.average_latency_ms,
        "healthy": snap.healthy,
        "uptime": snap.uptime,
        "uptime_seconds": round(snap.uptime_seconds, 3),
    }


async def get_deployment_info(request: Request) -> DeploymentInfo:
    return _core(request).deployment.assemble()


async def get_version(request: Request) -> dict[str, object]:
    return {
        "version": _core(request).metrics.version,
        "timestamp": datetime.now(UTC).isoformat(),
    }


# ---------------------------------------------------------------------------
# Operator toggles
# ---------------------------------------------------------------------------
async def set_liveness(update: LivenessUpdate, request: Request) -> dict[str, bool]:
    """Flip the liveness flag (e.g. to drain this instance)."""
    health = _core(request).health
    if update.healthy:
        health.mark_healthy()
    else:
        health.mark_unhealthy()
    return {"healthy": health.is_healthy()}


async def set_fault_mode(update: FaultModeUpdate, request: Request) -> dict[str, bool]:
    """Turn write-path fault injection on or off."""
    instrumentation = _core(request).instrumentation
    instrumentation.fault_mode = update.enabled
    log.warning("fault_mode_changed", enabled=update.enabled)
    return {"fault_mode": instrumentation.fault_mode}


app = create_app()


# ---------------------------------------------------------------------------
# Server startup
# ---------------------------------------------------------------------------
def main():
    """Start the userhub server using Granian (Rust ASGI server)."""
    from granian import Granian
    from granian.constants import Interfaces

    cfg = UserhubConfig.load()
    log.info("server_starting", host=cfg.server.host, port=cfg.server.port, server="granian")

    server = Granian(
        "main:app",
        address=cfg.server.host,
        port=cfg.server.port,
        interface=Interfaces.ASGI,
        workers=1,
    )
    server.serve()


if __name__ == "__main__":
    main()
