"""FastAPI health endpoints for liveness and readiness probes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import SupervisorStatus

if TYPE_CHECKING:
    from .supervisor import IngestionSupervisor

_LIVE_STATUSES = (SupervisorStatus.STARTING, SupervisorStatus.RUNNING)


def create_health_app(supervisor: IngestionSupervisor, *, title: str = "inboxwatch") -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/health`` reports per-account session details. It answers 503 once an
    account has dropped or the supervisor is stopping. ``/ready`` is 200
    only while running.
    """
    app = FastAPI(title=f"{title} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        status = supervisor.health()
        code = 200 if status.status in _LIVE_STATUSES else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = supervisor.status == SupervisorStatus.RUNNING
        return JSONResponse(
            content={"ready": is_ready, "accounts": len(supervisor.sessions)},
            status_code=200 if is_ready else 503,
        )

    return app
