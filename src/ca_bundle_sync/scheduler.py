"""
Scheduler — periodic resync trigger for the reconcile loop.

Infrastructure layer — uses APScheduler (3.x) for lightweight in-process
scheduling driven by a standard 5-field cron expression.

The resync job does not reconcile by itself: it enqueues a trigger, so
resyncs coalesce with watch-driven cycles and never run concurrently
with them. It catches drift that produced no notification, such as a
missed deletion of the output ConfigMap or a changed system bundle file.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

log = structlog.get_logger()

RESYNC_JOB_ID = "trusted_ca_resync"


def create_scheduler(
    trigger_fn: Callable[[str], None],
    cron: str = "*/5 * * * *",
    run_on_startup: bool = True,
    on_shutdown: Callable[[], None] | None = None,
    register_signals: bool = True,
) -> BlockingScheduler:
    """
    Create a configured APScheduler that requests a resync on a cron schedule.

    Args:
        trigger_fn: Called with a reason string; normally ReconcileLoop.enqueue.
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, request one cycle immediately.
        on_shutdown: Extra cleanup run when SIGINT/SIGTERM arrives.
        register_signals: False when the host process (uvicorn) owns signal handling.

    Returns:
        A configured BlockingScheduler (call .start() to begin).
    """
    scheduler = BlockingScheduler()

    def _job() -> None:
        log.debug("scheduler.resync_requested")
        trigger_fn("resync")

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=RESYNC_JOB_ID,
        name="Trusted CA bundle resync",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )

    if run_on_startup:
        log.info("scheduler.startup_run", message="Requesting reconciliation on startup")
        trigger_fn("startup")

    if register_signals:
        _register_shutdown_signals(scheduler, on_shutdown)

    return scheduler


def _register_shutdown_signals(
    scheduler: BlockingScheduler,
    on_shutdown: Callable[[], None] | None,
) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        sig_name = signal.Signals(signum).name
        log.info("scheduler.shutdown_requested", signal=sig_name)
        if on_shutdown is not None:
            on_shutdown()
        if scheduler.running:
            scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
