"""HTTP views over a HealthMonitor.

``GET /health`` answers 200 ``{"status": "healthy"}`` or 503
``{"status": "unhealthy"}``. ``GET /health/status`` adds every check's last
state. Both read the monitor's snapshot and never run checks themselves.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from pgfleet import __version__
from pgfleet.core.output import console
from pgfleet.health.monitor import HealthMonitor


def _status_code(healthy: bool) -> int:
    return 200 if healthy else 503


def _lookup_failed(e: Exception) -> JSONResponse:
    console.error(f"Health state lookup failed: {e}")
    return JSONResponse(status_code=500, content={"error": str(e)})


def create_app(monitor: HealthMonitor, *, manage_monitor: bool = False) -> FastAPI:
    """Build the health API.

    Args:
        monitor: Monitor whose state is served
        manage_monitor: Start the monitor on startup and stop it on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_monitor:
            monitor.start()
        try:
            yield
        finally:
            if manage_monitor:
                # stop() joins the check threads; keep it off the event loop
                await run_in_threadpool(monitor.stop)

    app = FastAPI(
        title="pgfleet health",
        description="Health of a PostgreSQL host and its companion services.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    def health() -> JSONResponse:
        """Summary view."""
        try:
            healthy = monitor.is_healthy()
        except Exception as e:
            return _lookup_failed(e)
        return JSONResponse(
            status_code=_status_code(healthy),
            content={"status": "healthy" if healthy else "unhealthy"},
        )

    @app.get("/health/status")
    def health_status() -> JSONResponse:
        """Detailed view."""
        try:
            states = monitor.snapshot()
            healthy = monitor.is_healthy(states)
        except Exception as e:
            return _lookup_failed(e)

        content: dict[str, Any] = {
            "status": "healthy" if healthy else "unhealthy",
            "checks": {name: state.to_json() for name, state in sorted(states.items())},
        }
        return JSONResponse(status_code=_status_code(healthy), content=content)

    return app
