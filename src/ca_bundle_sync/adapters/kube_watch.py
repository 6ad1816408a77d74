"""
Kubernetes watch adapter — change notifications for the reconcile loop.

One long-lived `?watch=true` stream per input object kind:

  proxy     → the cluster Proxy (holds the user CA pointer)
  user      → every ConfigMap in the user namespace (the pointer target may change)
  target    → the provider ConfigMap and the output ConfigMap in the target namespace

Each relevant event becomes an enqueue(reason) call. Streams are opened
without a resourceVersion, so every (re)connect replays the current objects
as ADDED events; the resulting extra triggers are harmless because cycles
are idempotent. Closed or failed streams reconnect with backoff.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from ca_bundle_sync.adapters.kube_client import (
    PROXY_API_PATH,
    HttpKubernetesClient,
    JsonObject,
    config_map_path,
)
from ca_bundle_sync.config import TrustBundleSettings
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Result

log = structlog.get_logger()


def _any_object(obj: JsonObject) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class WatchTarget:
    """A watchable collection plus the predicate that filters its events."""

    name: str
    path: str
    field_selector: str | None = None
    predicate: Callable[[JsonObject], bool] = field(default=_any_object, repr=False)

    def params(self) -> dict[str, str]:
        return {"fieldSelector": self.field_selector} if self.field_selector else {}


def build_watch_targets(settings: TrustBundleSettings) -> list[WatchTarget]:
    """The watches that cover every input of the merge plus the output itself."""
    watched_names = {settings.provider_config_map_name, settings.output_config_map_name}

    def is_watched_target_config_map(obj: JsonObject) -> bool:
        return (obj.get("metadata") or {}).get("name") in watched_names

    return [
        WatchTarget(
            name="proxy",
            path=PROXY_API_PATH,
            field_selector=f"metadata.name={settings.proxy_name}",
        ),
        WatchTarget(
            name="user",
            path=config_map_path(settings.user_namespace),
        ),
        WatchTarget(
            name="target",
            path=config_map_path(settings.target_namespace),
            predicate=is_watched_target_config_map,
        ),
    ]


class KubernetesWatcher:
    """Run watch streams on daemon threads and forward relevant events."""

    def __init__(
        self,
        client: HttpKubernetesClient,
        on_change: Callable[[str], None],
        timeout_seconds: int = 300,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 60.0,
    ) -> None:
        self._client = client
        self._on_change = on_change
        self._timeout_seconds = timeout_seconds
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def watch_once(self, target: WatchTarget) -> Result[int]:
        """
        Consume a single watch stream until the server closes it.

        Returns Result.success(number of events forwarded), or a failure if
        the stream could not be opened or broke mid-way.
        """
        return self._watch(target, self._stop)

    def _watch(self, target: WatchTarget, stop: threading.Event) -> Result[int]:
        return Result.from_computation(
            lambda: self._consume(target, stop),
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            f"Watch on {target.name} ({target.path}) failed",
        )

    def _consume(self, target: WatchTarget, stop: threading.Event) -> int:
        forwarded = 0
        for event in self._client.stream_watch(target.path, target.params(), self._timeout_seconds):
            if stop.is_set():
                break
            event_type = event.get("type", "")
            obj = event.get("object") or {}
            if event_type == "ERROR":
                # Typically 410 Gone: the stream is stale, reconnect from scratch.
                log.warning("watch.stream_error", target=target.name, status=obj.get("message"))
                break
            if event_type == "BOOKMARK" or not target.predicate(obj):
                continue
            metadata = obj.get("metadata") or {}
            object_key = "/".join(part for part in (metadata.get("namespace"), metadata.get("name")) if part)
            log.debug("watch.event", target=target.name, type=event_type, object=object_key)
            self._on_change(f"{target.name}:{event_type}:{object_key}")
            forwarded += 1
        return forwarded

    def run(self, target: WatchTarget, stop: threading.Event | None = None) -> None:
        """Reconnect loop for one target; returns once its stop event is set."""
        stop = stop if stop is not None else self._stop
        failures = 0
        while not stop.is_set():
            result = self._watch(target, stop)
            if result.is_success():
                failures = 0
                log.debug("watch.stream_closed", target=target.name, events=result.value())
                if result.value() == 0:
                    # Streams that close without events still back off.
                    stop.wait(self._backoff_base)
                continue
            failures += 1
            delay = min(self._backoff_base * 2 ** (failures - 1), self._backoff_max)
            log.warning(
                "watch.stream_failed",
                target=target.name,
                failure=str(result.error()),
                retry_in_seconds=delay,
            )
            stop.wait(delay)

    def start(self, targets: list[WatchTarget]) -> None:
        # Each start gets its own stop event; threads left over from an earlier
        # start keep the old, already set one.
        self._stop = threading.Event()
        for target in targets:
            thread = threading.Thread(
                target=self.run, args=(target, self._stop), name=f"watch-{target.name}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        log.info("watch.started", targets=[t.name for t in targets])

    def stop(self, timeout: float = 1.0) -> None:
        """Signal every stream and join its thread, waiting at most timeout seconds each."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        lingering = [thread.name for thread in self._threads if thread.is_alive()]
        self._threads = []
        if lingering:
            # Blocked in a read: they exit on the next event or server timeout.
            log.warning("watch.stop_timed_out", threads=lingering)
        log.info("watch.stopped")

    def alive(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)
