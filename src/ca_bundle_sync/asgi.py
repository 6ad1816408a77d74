"""
FastAPI + Uvicorn ASGI application for Kubernetes deployment.

Runs the reconciler as a web service with probe endpoints. The reconcile
loop and watch streams run on daemon threads, and the resync scheduler
runs in a background thread while Uvicorn serves HTTP.

  - /health  liveness: worker and scheduler threads alive, no startup error
  - /ready   readiness: at least one reconciliation cycle succeeded
  - /info    metadata and the last cycle outcome
  - /trigger manual reconciliation, run synchronously in a worker thread

Entry point for production: uvicorn ca_bundle_sync.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ca_bundle_sync import __version__
from ca_bundle_sync.config import AppSettings
from ca_bundle_sync.controller import ReconcileLoop
from ca_bundle_sync.main import configure_structlog, create_engine, start_engine, stop_engine
from ca_bundle_sync.scheduler import create_scheduler

# ─────────────────────── Global State ───────────────────────
# Set during app startup and read by the probes.

_scheduler_thread: threading.Thread | None = None
_loop: ReconcileLoop | None = None
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: build the engine, start worker + watches + scheduler thread.
    Shutdown: stop the scheduler, watches and worker.
    """
    global _scheduler_thread, _loop, _error_message

    log.info("asgi.startup", event="lifespan_startup")

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)

    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
        watch_enabled=settings.watch_enabled,
    )

    try:
        engine = create_engine(settings)
        start_engine(engine, settings)
        _loop = engine.loop
        scheduler = create_scheduler(
            trigger_fn=engine.loop.enqueue,
            cron=settings.scheduler.cron,
            run_on_startup=settings.run_on_startup,
            register_signals=False,
        )
    except Exception as e:
        _error_message = f"Failed to initialize engine/scheduler: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    def run_scheduler() -> None:
        """Run scheduler in background thread (blocking)."""
        global _error_message
        try:
            log.info("asgi.scheduler_thread_started")
            scheduler.start()
        except Exception as e:
            _error_message = f"Scheduler error: {e}"
            log.error("asgi.scheduler_error", error=_error_message)

    _scheduler_thread = threading.Thread(target=run_scheduler, name="resync-scheduler", daemon=True)
    _scheduler_thread.start()

    log.info("asgi.startup_complete")

    yield  # ← App is running here; Uvicorn handles requests

    log.info("asgi.shutdown", reason="SIGTERM or server stop")

    try:
        scheduler.shutdown(wait=True)
    except Exception as e:
        log.warning("asgi.scheduler_shutdown_error", error=str(e))
    stop_engine(engine)

    if _scheduler_thread.is_alive():
        _scheduler_thread.join(timeout=5.0)
        if _scheduler_thread.is_alive():
            log.warning("asgi.scheduler_thread_timeout", timeout_seconds=5.0)

    log.info("asgi.shutdown_complete")


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="trusted-ca-sync",
    description="Merges system, user and provider CA bundles into one ConfigMap and keeps it converged",
    version=__version__,
    lifespan=lifespan,
)


def _threads_alive() -> bool:
    return (
        _loop is not None
        and _loop.is_running()
        and _scheduler_thread is not None
        and _scheduler_thread.is_alive()
    )


@app.get("/health")
async def health() -> JSONResponse:
    """
    Kubernetes liveness probe.

    A failing reconciliation cycle does NOT make the process unhealthy: the
    loop retries with backoff. Only startup errors and dead threads do.
    """
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )

    if not _threads_alive():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "reconcile loop or scheduler not running"},
        )

    return JSONResponse(status_code=200, content={"status": "healthy"})


@app.get("/ready")
async def ready() -> JSONResponse:
    """Kubernetes readiness probe — ready once the artifact has been converged once."""
    if _error_message:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": _error_message},
        )

    if _loop is None or not _loop.has_succeeded:
        return JSONResponse(
            status_code=503,
            content={"status": "starting", "cycles": _loop.cycles if _loop else 0},
        )

    return JSONResponse(status_code=200, content={"status": "ready"})


@app.get("/info")
async def info() -> dict[str, Any]:
    """Application metadata and the state of the reconcile loop."""
    last = _loop.last_result if _loop is not None else None
    return {
        "name": "trusted-ca-sync",
        "version": __version__,
        "loop_running": _loop is not None and _loop.is_running(),
        "scheduler_running": _scheduler_thread is not None and _scheduler_thread.is_alive(),
        "cycles": _loop.cycles if _loop is not None else 0,
        "consecutive_failures": _loop.consecutive_failures if _loop is not None else 0,
        "last_result": None if last is None else repr(last),
        "has_error": _error_message is not None,
    }


@app.post("/trigger")
async def trigger() -> JSONResponse:
    """
    Run one reconciliation cycle now.

    Runs in a worker thread to avoid blocking the event loop; the
    reconciler's lock serializes it with the background loop.

    Returns 200 with the outcome (unchanged/created/updated) on success,
    500 with the failure on error, 503 if the engine is not initialized.
    """
    if _loop is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Reconcile loop not initialized"},
        )

    log.info("trigger.manual_start", source="REST")

    try:
        result = await asyncio.to_thread(_loop.run_now, "manual")
    except Exception as e:
        log.error("trigger.exception", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"status": "error", "error": str(e)},
        )

    if result.is_success():
        outcome = result.value()
        log.info("trigger.completed", outcome=outcome.value)
        return JSONResponse(
            status_code=200,
            content={"status": "success", "outcome": outcome.value},
        )

    failure = result.error()
    log.error("trigger.reconcile_failed", failure=str(failure))
    return JSONResponse(
        status_code=500,
        content={
            "status": "failed",
            "error_code": failure.code.value,
            "message": failure.message,
        },
    )


if __name__ == "__main__":
    # For local testing: python -m uvicorn ca_bundle_sync.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "ca_bundle_sync.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
