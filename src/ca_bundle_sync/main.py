"""
Application entry point — wires dependencies and starts the control loop.

Composition root: creates concrete adapters, injects them into the source
accessor and reconciler, and hands the reconciler to the reconcile loop,
the watches and the resync scheduler.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog
  2. Load and validate configuration from environment
  3. Create the Kubernetes client, PEM codec and system bundle reader
  4. Wire source accessor → reconciler → reconcile loop
  5. Start watches and the worker, then block in the resync scheduler
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

import structlog

from ca_bundle_sync import __version__
from ca_bundle_sync.adapters.events import KubernetesEventRecorder, LoggingEventRecorder
from ca_bundle_sync.adapters.kube_client import HttpKubernetesClient
from ca_bundle_sync.adapters.kube_watch import KubernetesWatcher, WatchTarget, build_watch_targets
from ca_bundle_sync.adapters.pem_codec import PemCertificateCodec
from ca_bundle_sync.adapters.system_bundle import FileSystemBundleReader
from ca_bundle_sync.config import AppSettings
from ca_bundle_sync.controller import ReconcileLoop
from ca_bundle_sync.reconciler import TrustBundleReconciler
from ca_bundle_sync.scheduler import create_scheduler
from ca_bundle_sync.sources import TrustSourceAccessor


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog for structured, human-readable console logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass(frozen=True, slots=True)
class Engine:
    """The wired object graph of a running instance."""

    client: HttpKubernetesClient
    reconciler: TrustBundleReconciler
    loop: ReconcileLoop
    watcher: KubernetesWatcher
    watch_targets: list[WatchTarget]


def create_engine(settings: AppSettings) -> Engine:
    """Instantiate and wire every component from application settings."""
    kube = settings.kubernetes
    client = HttpKubernetesClient(
        api_url=kube.api_url,
        token=kube.token.get_secret_value() if kube.token is not None else None,
        token_path=kube.token_path,
        verify=kube.tls_verify(),
        timeout=settings.http_timeout_seconds,
    )
    codec = PemCertificateCodec()
    sources = TrustSourceAccessor(
        settings=settings.trust_bundle,
        system_reader=FileSystemBundleReader(settings.trust_bundle.system_bundle_path),
        config_maps=client,
        proxies=client,
        codec=codec,
    )
    recorder = KubernetesEventRecorder(client) if settings.record_events else LoggingEventRecorder()
    reconciler = TrustBundleReconciler(
        settings=settings.trust_bundle,
        sources=sources,
        config_maps=client,
        codec=codec,
        recorder=recorder,
        conflict_attempts=settings.retry.conflict_attempts,
        conflict_backoff_seconds=settings.retry.conflict_backoff_seconds,
    )
    loop = ReconcileLoop(
        reconciler.reconcile,
        backoff_base_seconds=settings.retry.backoff_base_seconds,
        backoff_max_seconds=settings.retry.backoff_max_seconds,
    )
    watcher = KubernetesWatcher(
        client,
        on_change=loop.enqueue,
        timeout_seconds=settings.watch_timeout_seconds,
    )
    return Engine(
        client=client,
        reconciler=reconciler,
        loop=loop,
        watcher=watcher,
        watch_targets=build_watch_targets(settings.trust_bundle),
    )


def start_engine(engine: Engine, settings: AppSettings) -> None:
    """Start the worker thread and, when enabled, the watch streams."""
    engine.loop.start()
    if settings.watch_enabled:
        engine.watcher.start(engine.watch_targets)


def stop_engine(engine: Engine) -> None:
    engine.watcher.stop()
    engine.loop.stop()


def main() -> None:
    """Wire dependencies and run until SIGINT/SIGTERM."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        target=f"{settings.trust_bundle.target_namespace}/{settings.trust_bundle.output_config_map_name}",
        system_bundle=str(settings.trust_bundle.system_bundle_path),
        watch_enabled=settings.watch_enabled,
    )

    engine = create_engine(settings)
    start_engine(engine, settings)

    scheduler = create_scheduler(
        trigger_fn=engine.loop.enqueue,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
        on_shutdown=lambda: stop_engine(engine),
    )

    log.info("app.scheduler_starting", cron=settings.scheduler.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
        stop_engine(engine)
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        stop_engine(engine)
        sys.exit(1)


if __name__ == "__main__":
    main()
