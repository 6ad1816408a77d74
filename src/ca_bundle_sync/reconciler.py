"""
Output reconciler — one level-triggered read → merge → compare → write cycle.

Domain layer — all I/O is injected via ports. The railway:

  sources.read_all()
    → merge_readings(readings)
      → converge(bundle)         read artifact, compare bytes, upsert if different

Each cycle recomputes the full desired state, so a cycle can be repeated,
coalesced or reordered freely. A missing artifact (or missing key) counts as
empty content, which is what makes deletion and tampering self-healing.

Write conflicts (409 on replace, AlreadyExists on create) re-run the whole
cycle against a fresh read via tenacity; only when the attempts are
exhausted does the conflict surface as the cycle's failure.
"""

from __future__ import annotations

import threading

import structlog
from tenacity import (
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ca_bundle_sync.config import TrustBundleSettings
from ca_bundle_sync.domain.models import ConfigMap, MergedBundle, ReconcileOutcome
from ca_bundle_sync.domain.ports import CertificateCodec, ConfigMapStore, EventRecorder
from ca_bundle_sync.merger import merge_readings
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Failure, Result, Success
from ca_bundle_sync.sources import TrustSourceAccessor

log = structlog.get_logger()


def _is_conflict(result: Result[ReconcileOutcome]) -> bool:
    return result.is_failure() and result.error().code is ErrorCode.CONFLICT_ERROR


class TrustBundleReconciler:
    """
    Converge the output ConfigMap to the merge of the current sources.

    Cycles are serialized by a lock that is held for exactly one cycle, so
    a newer trigger always writes against a read taken after the previous
    write finished.
    """

    def __init__(
        self,
        settings: TrustBundleSettings,
        sources: TrustSourceAccessor,
        config_maps: ConfigMapStore,
        codec: CertificateCodec,
        recorder: EventRecorder | None = None,
        conflict_attempts: int = 5,
        conflict_backoff_seconds: float = 0.2,
    ) -> None:
        self._settings = settings
        self._sources = sources
        self._config_maps = config_maps
        self._codec = codec
        self._recorder = recorder
        self._conflict_attempts = conflict_attempts
        self._conflict_backoff_seconds = conflict_backoff_seconds
        self._lock = threading.Lock()

    def reconcile(self) -> Result[ReconcileOutcome]:
        """
        Run one reconciliation cycle, re-running it on write conflicts.

        Returns Success(UNCHANGED | CREATED | UPDATED), or the failure of the
        last attempt (fatal system source error, API error, exhausted conflicts).
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._conflict_attempts),
            wait=wait_exponential(multiplier=self._conflict_backoff_seconds, max=5),
            retry=retry_if_result(_is_conflict),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=lambda state: log.info(
                "reconciler.conflict_retry", attempt=state.attempt_number
            ),
        )
        return retrying(self._run_cycle)

    def _run_cycle(self) -> Result[ReconcileOutcome]:
        with self._lock:
            return (
                self._sources.read_all()
                .flat_map(lambda readings: merge_readings(readings, self._codec))
                .peek(self._log_bundle)
                .flat_map(self._converge)
            )

    def _converge(self, bundle: MergedBundle) -> Result[ReconcileOutcome]:
        namespace = self._settings.target_namespace
        name = self._settings.output_config_map_name
        desired = bundle.data.decode("utf-8")

        match self._config_maps.get_config_map(namespace, name):
            case Failure(err) if err.code is ErrorCode.NOT_FOUND:
                return self._create(ConfigMap(namespace=namespace, name=name, data={self._settings.output_key: desired}))
            case Failure(err):
                return Result.failure_from(err)
            case Success(current) if current.value_of(self._settings.output_key) == desired:
                log.debug("reconciler.artifact_in_sync", config_map=f"{namespace}/{name}")
                return Result.success(ReconcileOutcome.UNCHANGED)
            case Success(current):
                return self._replace(
                    ConfigMap(
                        namespace=namespace,
                        name=name,
                        data={self._settings.output_key: desired},
                        resource_version=current.resource_version,
                    )
                )
        raise TypeError("unreachable")  # pragma: no cover

    def _create(self, config_map: ConfigMap) -> Result[ReconcileOutcome]:
        return (
            self._config_maps.create_config_map(config_map)
            .peek(lambda created: self._record_success(created, "created"))
            .peek_failure(lambda err: self._record_failure(config_map, err.message, err.code))
            .map(lambda _: ReconcileOutcome.CREATED)
        )

    def _replace(self, config_map: ConfigMap) -> Result[ReconcileOutcome]:
        return (
            self._config_maps.replace_config_map(config_map)
            .peek(lambda updated: self._record_success(updated, "updated"))
            .peek_failure(lambda err: self._record_failure(config_map, err.message, err.code))
            .map(lambda _: ReconcileOutcome.UPDATED)
        )

    def _log_bundle(self, bundle: MergedBundle) -> None:
        log.debug(
            "reconciler.bundle_merged",
            provider=bundle.provider_count,
            user=bundle.user_count,
            system=bundle.system_count,
            total=bundle.total_certificates,
        )

    def _record_success(self, config_map: ConfigMap, action: str) -> None:
        log.info(
            f"reconciler.artifact_{action}",
            config_map=f"{config_map.namespace}/{config_map.name}",
            resource_version=config_map.resource_version,
        )
        if self._recorder is not None:
            self._recorder.record(config_map, "Updated successfully", f"Trusted CA bundle {action}")

    def _record_failure(self, config_map: ConfigMap, message: str, code: ErrorCode) -> None:
        if code is ErrorCode.CONFLICT_ERROR:
            log.info("reconciler.write_conflict", config_map=f"{config_map.namespace}/{config_map.name}")
            return
        log.error(
            "reconciler.write_failed",
            config_map=f"{config_map.namespace}/{config_map.name}",
            error=message,
        )
        if self._recorder is not None:
            self._recorder.record(config_map, "Update failed", message, warning=True)
