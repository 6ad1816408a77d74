"""
Kubernetes API adapter — ConfigMap and Proxy access via httpx.

Adapter layer — implements the ConfigMapStore and ProxyReader ports by
talking to the API server's REST interface directly:

  GET  /api/v1/namespaces/{ns}/configmaps/{name}
  POST /api/v1/namespaces/{ns}/configmaps
  PUT  /api/v1/namespaces/{ns}/configmaps/{name}      (carries resourceVersion)
  GET  /apis/config.openshift.io/v1/proxies/{name}
  POST /api/v1/namespaces/{ns}/events
  GET  ...?watch=true                                  (newline-delimited JSON stream)

Retry/backoff via tenacity on transient errors (network, timeout).
HTTP statuses are mapped onto error codes so callers can tell "absent"
(404 → NOT_FOUND) and "stale write" (409 → CONFLICT_ERROR) apart from
genuine failures. No exception leaks past this module except from
stream_watch(), whose caller owns the reconnect loop.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ca_bundle_sync.domain.models import ConfigMap, ProxyConfig
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Result

log = structlog.get_logger()

type JsonObject = dict[str, Any]

PROXY_API_PATH = "/apis/config.openshift.io/v1/proxies"


def config_map_path(namespace: str, name: str | None = None) -> str:
    base = f"/api/v1/namespaces/{namespace}/configmaps"
    return base if name is None else f"{base}/{name}"


def _status_to_code(status: int) -> ErrorCode:
    match status:
        case 404:
            return ErrorCode.NOT_FOUND
        case 409:
            return ErrorCode.CONFLICT_ERROR
        case 401 | 403:
            return ErrorCode.AUTHORIZATION_ERROR
        case 422:
            return ErrorCode.VALIDATION_ERROR
        case _:
            return ErrorCode.EXTERNAL_SERVICE_ERROR


def config_map_from_json(obj: JsonObject) -> ConfigMap:
    """Build a ConfigMap from its API representation. `data` may be missing."""
    metadata = obj.get("metadata") or {}
    return ConfigMap(
        namespace=metadata["namespace"],
        name=metadata["name"],
        data=dict(obj.get("data") or {}),
        resource_version=metadata.get("resourceVersion"),
    )


def config_map_to_json(config_map: ConfigMap) -> JsonObject:
    metadata: JsonObject = {"name": config_map.name, "namespace": config_map.namespace}
    if config_map.resource_version is not None:
        metadata["resourceVersion"] = config_map.resource_version
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": metadata,
        "data": dict(config_map.data),
    }


def proxy_from_json(obj: JsonObject) -> ProxyConfig:
    """Build a ProxyConfig; an unset spec.trustedCA becomes an empty name."""
    trusted_ca = (obj.get("spec") or {}).get("trustedCA") or {}
    return ProxyConfig(
        name=obj["metadata"]["name"],
        trusted_ca_name=trusted_ca.get("name") or "",
    )


class HttpKubernetesClient:
    """
    Minimal Kubernetes REST client.

    Implements the ConfigMapStore and ProxyReader ports.
    Authenticates with a bearer token: either given explicitly, or read from
    the service-account token file on every request (tokens are rotated).
    """

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        token_path: Path | str | None = None,
        verify: bool | str = True,
        timeout: int = 30,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._token_path = Path(token_path) if token_path is not None else None
        self._verify = verify
        self._timeout = timeout

    # ──────────────────────── ConfigMapStore ────────────────────────

    def get_config_map(self, namespace: str, name: str) -> Result[ConfigMap]:
        """
        Fetch a ConfigMap.

        Returns Result.failure(NOT_FOUND, ...) when the object does not exist.
        """
        return self._call(
            lambda: config_map_from_json(self._request("GET", config_map_path(namespace, name))),
            f"Failed to get configmap {namespace}/{name}",
        )

    def create_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]:
        """Create a ConfigMap. AlreadyExists surfaces as CONFLICT_ERROR."""
        body = config_map_to_json(config_map)
        body["metadata"].pop("resourceVersion", None)
        return self._call(
            lambda: config_map_from_json(
                self._request("POST", config_map_path(config_map.namespace), body)
            ),
            f"Failed to create configmap {config_map.namespace}/{config_map.name}",
        )

    def replace_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]:
        """
        Replace a ConfigMap using its resource_version as the precondition.

        The API server answers 409 Conflict when the version is stale.
        """
        return self._call(
            lambda: config_map_from_json(
                self._request(
                    "PUT",
                    config_map_path(config_map.namespace, config_map.name),
                    config_map_to_json(config_map),
                )
            ),
            f"Failed to replace configmap {config_map.namespace}/{config_map.name}",
        )

    # ──────────────────────── ProxyReader ────────────────────────

    def get_proxy(self, name: str) -> Result[ProxyConfig]:
        return self._call(
            lambda: proxy_from_json(self._request("GET", f"{PROXY_API_PATH}/{name}")),
            f"Failed to get proxy {name}",
        )

    # ──────────────────────── Events ────────────────────────

    def create_event(self, namespace: str, event: JsonObject) -> Result[str]:
        """POST a core/v1 Event; returns the server-assigned event name."""
        return self._call(
            lambda: self._request("POST", f"/api/v1/namespaces/{namespace}/events", event)["metadata"]["name"],
            f"Failed to create event in {namespace}",
        )

    # ──────────────────────── Watch ────────────────────────

    def stream_watch(
        self,
        path: str,
        params: dict[str, str] | None = None,
        timeout_seconds: int = 300,
    ) -> Iterator[JsonObject]:
        """
        Open a watch stream and yield decoded watch events until it closes.

        The server ends the stream after `timeoutSeconds`; transport and
        HTTP errors propagate to the caller's reconnect loop.
        """
        query = {**(params or {}), "watch": "true", "timeoutSeconds": str(timeout_seconds)}
        # Read timeout must outlast the server-side watch timeout.
        timeout = httpx.Timeout(self._timeout, read=timeout_seconds + self._timeout)
        with self._client(timeout) as client, client.stream("GET", path, params=query) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if line.strip():
                    yield json.loads(line)

    # ──────────────────────── Internals ────────────────────────

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token
        if token is None and self._token_path is not None and self._token_path.exists():
            token = self._token_path.read_text().strip()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _client(self, timeout: httpx.Timeout | int | None = None) -> httpx.Client:
        return httpx.Client(
            base_url=self._api_url,
            headers=self._headers(),
            verify=self._verify,
            timeout=timeout if timeout is not None else self._timeout,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=30),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    def _request(self, method: str, path: str, body: JsonObject | None = None) -> JsonObject:
        """HTTP call with retry — exceptions are mapped by _call."""
        with self._client() as client:
            response = client.request(method, path, json=body)
            response.raise_for_status()
            payload: JsonObject = response.json()
            log.debug("kube.request", method=method, path=path, status=response.status_code)
            return payload

    def _call[T](self, request: Callable[[], T], message: str) -> Result[T]:
        try:
            return Result.success(request())
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            return Result.failure(_status_to_code(status), f"{message}: HTTP {status}", e)
        except httpx.TimeoutException as e:
            return Result.failure(ErrorCode.TIMEOUT_ERROR, f"{message}: timed out", e)
        except (httpx.HTTPError, OSError, ValueError, KeyError) as e:
            return Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, f"{message}: {e}", e)
