"""
Reconcile loop — turns change notifications into serialized reconciliation cycles.

Infrastructure layer. Watches and the resync scheduler call enqueue(reason)
from any thread; a single worker thread drains the queue:

  - Triggers coalesce: any number of enqueue() calls while a cycle is
    pending or running collapse into one follow-up cycle.
  - At most one cycle runs at a time, whether started by the worker
    or by run_now() on another thread.
  - A failed cycle is re-enqueued after exponential backoff
    (base * 2**(failures - 1), capped); a successful cycle resets it.

Notifications are only "wake up" signals; every cycle recomputes the full
desired state, so spurious and duplicate triggers are harmless.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from ca_bundle_sync.domain.models import ReconcileOutcome
from ca_bundle_sync.railway import LoggingExecutionContext
from ca_bundle_sync.railway.result import Result

log = structlog.get_logger()


class ReconcileLoop:
    def __init__(
        self,
        reconcile_fn: Callable[[], Result[ReconcileOutcome]],
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 300.0,
    ) -> None:
        self._reconcile_fn = reconcile_fn
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._ctx = LoggingExecutionContext(operation="TrustBundleReconcile")

        self._condition = threading.Condition()
        self._pending_reasons: list[str] = []
        self._stopped = False
        self._worker: threading.Thread | None = None
        self._retry_timer: threading.Timer | None = None
        self._cycle_lock = threading.Lock()

        self._failures = 0
        self._cycles = 0
        self._last_result: Result[ReconcileOutcome] | None = None
        self._has_succeeded = False

    # ──────────────────────── Triggers ────────────────────────

    def enqueue(self, reason: str) -> None:
        """Request a cycle. Safe to call from any thread, any number of times."""
        with self._condition:
            if self._stopped:
                return
            self._pending_reasons.append(reason)
            self._condition.notify()

    @property
    def pending(self) -> bool:
        with self._condition:
            return bool(self._pending_reasons)

    # ──────────────────────── State ────────────────────────

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_result(self) -> Result[ReconcileOutcome] | None:
        return self._last_result

    @property
    def has_succeeded(self) -> bool:
        return self._has_succeeded

    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def next_backoff(self) -> float:
        """Delay before retrying after the current streak of failures."""
        if self._failures == 0:
            return 0.0
        return min(self._backoff_base * 2 ** (self._failures - 1), self._backoff_max)

    # ──────────────────────── Processing ────────────────────────

    def run_pending(self) -> Result[ReconcileOutcome] | None:
        """
        Run one cycle if any trigger is pending; return its result.

        Used by the worker thread and, synchronously, by tests.
        """
        with self._condition:
            if not self._pending_reasons:
                return None
            reasons = self._pending_reasons
            self._pending_reasons = []
        return self._process(reasons)

    def run_now(self, reason: str) -> Result[ReconcileOutcome]:
        """Run one cycle immediately on the caller's thread (manual trigger)."""
        return self._process([reason])

    def _process(self, reasons: list[str]) -> Result[ReconcileOutcome]:
        with self._cycle_lock:
            log.debug("controller.cycle_started", reasons=sorted(set(reasons)), coalesced=len(reasons))
            result = self._ctx.execute(self._reconcile_fn)
            self._cycles += 1
            self._last_result = result

            if result.is_success():
                self._failures = 0
                self._has_succeeded = True
                self._cancel_retry()
                log.info("controller.cycle_succeeded", outcome=result.value().value)
            else:
                self._failures += 1
                delay = self.next_backoff()
                log.error(
                    "controller.cycle_failed",
                    failure=str(result.error()),
                    consecutive_failures=self._failures,
                    retry_in_seconds=delay,
                )
                self._schedule_retry(delay)
            return result

    def _cancel_retry(self) -> None:
        with self._condition:
            if self._retry_timer is not None:
                self._retry_timer.cancel()
                self._retry_timer = None

    def _schedule_retry(self, delay: float) -> None:
        with self._condition:
            if self._stopped:
                return
            if self._retry_timer is not None:
                self._retry_timer.cancel()
            self._retry_timer = threading.Timer(delay, self.enqueue, args=("retry",))
            self._retry_timer.daemon = True
            self._retry_timer.start()

    # ──────────────────────── Lifecycle ────────────────────────

    def start(self) -> None:
        """Start the worker thread."""
        if self.is_running():
            return
        with self._condition:
            self._stopped = False
        self._worker = threading.Thread(target=self._run, name="reconcile-loop", daemon=True)
        self._worker.start()
        log.info("controller.started")

    def stop(self, timeout: float = 5.0) -> None:
        with self._condition:
            self._stopped = True
            if self._retry_timer is not None:
                self._retry_timer.cancel()
            self._condition.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
        log.info("controller.stopped")

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._pending_reasons and not self._stopped:
                    self._condition.wait()
                if self._stopped:
                    return
            self.run_pending()
