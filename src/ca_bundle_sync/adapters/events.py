"""
Kubernetes Event recorder — surfaces artifact writes to `kubectl describe`.

Implements the EventRecorder port. Recording is best effort: a failure to
post the event is logged and never fails the reconciliation cycle.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

import structlog

from ca_bundle_sync.adapters.kube_client import HttpKubernetesClient, JsonObject
from ca_bundle_sync.domain.models import ConfigMap

log = structlog.get_logger()


def build_event(
    config_map: ConfigMap,
    reason: str,
    message: str,
    warning: bool,
    component: str,
) -> JsonObject:
    """Build a core/v1 Event whose involvedObject is the given ConfigMap."""
    now = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    return {
        "apiVersion": "v1",
        "kind": "Event",
        "metadata": {
            "name": f"{config_map.name}.{uuid.uuid4().hex[:16]}",
            "namespace": config_map.namespace,
        },
        "involvedObject": {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "name": config_map.name,
            "namespace": config_map.namespace,
        },
        "reason": reason,
        "message": message,
        "type": "Warning" if warning else "Normal",
        "source": {"component": component},
        "firstTimestamp": now,
        "lastTimestamp": now,
        "count": 1,
    }


class KubernetesEventRecorder:
    def __init__(self, client: HttpKubernetesClient, component: str = "trusted-ca-sync") -> None:
        self._client = client
        self._component = component

    def record(self, config_map: ConfigMap, reason: str, message: str, warning: bool = False) -> None:
        event = build_event(config_map, reason, message, warning, self._component)
        self._client.create_event(config_map.namespace, event).peek_failure(
            lambda err: log.warning("events.record_failed", reason=reason, error=str(err))
        )


class LoggingEventRecorder:
    """Recorder used when Kubernetes events are disabled: log only."""

    def record(self, config_map: ConfigMap, reason: str, message: str, warning: bool = False) -> None:
        log.info(
            "events.recorded",
            config_map=f"{config_map.namespace}/{config_map.name}",
            reason=reason,
            message=message,
            type="Warning" if warning else "Normal",
        )
