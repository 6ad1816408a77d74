"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the engine needs without specifying HOW it's done:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters, and the in-memory
fakes used by the tests, satisfy the contract simply by implementing the
methods.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from ca_bundle_sync.domain.models import CertificateRecord, ConfigMap, ProxyConfig
from ca_bundle_sync.railway.result import Result


@runtime_checkable
class CertificateCodec(Protocol):
    """
    Port: convert between PEM byte blobs and certificate records.

    parse() is all-or-nothing: either at least one certificate is decoded
    and every certificate block is valid, or the whole blob is rejected.
    """

    def parse(self, data: bytes) -> Result[tuple[CertificateRecord, ...]]: ...

    def serialize(self, certificates: Sequence[CertificateRecord]) -> bytes: ...


@runtime_checkable
class SystemBundleReader(Protocol):
    """Port: read the raw bytes of the local system trust bundle."""

    def read(self) -> Result[bytes]: ...


@runtime_checkable
class ConfigMapReader(Protocol):
    """
    Port: fetch a ConfigMap.

    A missing object is Result.failure(NOT_FOUND, ...), never a None success.
    """

    def get_config_map(self, namespace: str, name: str) -> Result[ConfigMap]: ...


@runtime_checkable
class ConfigMapWriter(Protocol):
    """
    Port: persist a ConfigMap.

    replace_config_map() sends the ConfigMap's resource_version; a stale
    version yields Result.failure(CONFLICT_ERROR, ...). create_config_map()
    yields CONFLICT_ERROR when the object already exists.
    """

    def create_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]: ...

    def replace_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]: ...


@runtime_checkable
class ConfigMapStore(ConfigMapReader, ConfigMapWriter, Protocol):
    """Read and write access to ConfigMaps."""


@runtime_checkable
class ProxyReader(Protocol):
    """Port: fetch the cluster Proxy object holding the user CA pointer."""

    def get_proxy(self, name: str) -> Result[ProxyConfig]: ...


@runtime_checkable
class EventRecorder(Protocol):
    """Port: record an event against the output artifact."""

    def record(self, config_map: ConfigMap, reason: str, message: str, warning: bool = False) -> None: ...
