"""
Shared test fixtures and helpers for the trusted-ca-sync test suite.

Provides:
  - throwaway CA certificates generated with `cryptography` (no fixture files),
    organised like the production scenarios: a two-certificate GlobalSign
    system bundle, an Amazon user bundle and a Microsoft provider bundle
  - InMemoryCluster: a fake API server implementing the ConfigMapStore and
    ProxyReader ports, with resource versions and injectable conflicts
  - builders wiring the real codec, source accessor and reconciler onto it
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import cache
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from ca_bundle_sync.adapters.pem_codec import PemCertificateCodec
from ca_bundle_sync.adapters.system_bundle import FileSystemBundleReader
from ca_bundle_sync.config import TrustBundleSettings
from ca_bundle_sync.domain.models import CertificateRecord, ConfigMap, ProxyConfig
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Result
from ca_bundle_sync.reconciler import TrustBundleReconciler
from ca_bundle_sync.sources import TrustSourceAccessor

USER_CA_CONFIG_MAP = "user-ca-bundle"
GARBAGE = "kekekeke"

# ─────────────────────── Certificates ───────────────────────


def make_ca_pem(organization: str, common_name: str) -> str:
    """Generate a self-signed CA certificate and return it PEM-encoded."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime(2020, 1, 1, tzinfo=UTC))
        .not_valid_after(datetime(2045, 1, 1, tzinfo=UTC))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(Encoding.PEM).decode("ascii")


@cache
def system_bundle_pem() -> str:
    """Two GlobalSign roots, like a trimmed-down distribution bundle."""
    return make_ca_pem("GlobalSign", "GlobalSign Root CA - R3") + make_ca_pem(
        "GlobalSign", "GlobalSign Root CA - R6"
    )


@cache
def amazon_pem() -> str:
    return make_ca_pem("Amazon", "Amazon Root CA 1")


@cache
def microsoft_pem() -> str:
    return make_ca_pem("Microsoft Corporation", "Microsoft RSA Root Certificate Authority 2017")


def organizations(certificates: tuple[CertificateRecord, ...]) -> list[str | None]:
    return [record.issuer_organization for record in certificates]


# ─────────────────────── In-memory cluster ───────────────────────


@dataclass
class InMemoryCluster:
    """
    Fake API server for ConfigMaps and the cluster Proxy.

    Every write bumps a global resource version, like etcd. Tests mutate
    state directly through put/delete helpers, which play the role of
    external actors.
    """

    config_maps: dict[tuple[str, str], ConfigMap] = field(default_factory=dict)
    proxies: dict[str, ProxyConfig] = field(default_factory=dict)
    writes: list[ConfigMap] = field(default_factory=list)
    conflicts_to_inject: int = 0
    unavailable: set[tuple[str, str]] = field(default_factory=set)
    _version: int = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    # ── external actors ──

    def put_config_map(self, namespace: str, name: str, data: dict[str, str]) -> ConfigMap:
        config_map = ConfigMap(namespace, name, dict(data), self._next_version())
        self.config_maps[(namespace, name)] = config_map
        return config_map

    def delete_config_map(self, namespace: str, name: str) -> None:
        self.config_maps.pop((namespace, name), None)

    def set_proxy(self, name: str, trusted_ca_name: str) -> None:
        self.proxies[name] = ProxyConfig(name=name, trusted_ca_name=trusted_ca_name)

    def delete_proxy(self, name: str) -> None:
        self.proxies.pop(name, None)

    # ── ConfigMapStore / ProxyReader ports ──

    def get_config_map(self, namespace: str, name: str) -> Result[ConfigMap]:
        if (namespace, name) in self.unavailable:
            return Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, f"Failed to get configmap {namespace}/{name}: HTTP 500")
        return Result.from_optional(
            self.config_maps.get((namespace, name)),
            f"Failed to get configmap {namespace}/{name}: HTTP 404",
        )

    def create_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]:
        key = (config_map.namespace, config_map.name)
        if self.conflicts_to_inject > 0 or key in self.config_maps:
            self.conflicts_to_inject = max(self.conflicts_to_inject - 1, 0)
            return Result.failure(ErrorCode.CONFLICT_ERROR, f"configmap {key} already exists")
        return self._store(config_map)

    def replace_config_map(self, config_map: ConfigMap) -> Result[ConfigMap]:
        key = (config_map.namespace, config_map.name)
        current = self.config_maps.get(key)
        if current is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"configmap {key} not found")
        if self.conflicts_to_inject > 0 or current.resource_version != config_map.resource_version:
            self.conflicts_to_inject = max(self.conflicts_to_inject - 1, 0)
            return Result.failure(ErrorCode.CONFLICT_ERROR, f"configmap {key} has been modified")
        return self._store(config_map)

    def get_proxy(self, name: str) -> Result[ProxyConfig]:
        return Result.from_optional(self.proxies.get(name), f"Failed to get proxy {name}: HTTP 404")

    def _store(self, config_map: ConfigMap) -> Result[ConfigMap]:
        stored = replace(config_map, data=dict(config_map.data), resource_version=self._next_version())
        self.config_maps[(stored.namespace, stored.name)] = stored
        self.writes.append(stored)
        return Result.success(stored)


@dataclass
class RecordingEventRecorder:
    events: list[tuple[str, str, bool]] = field(default_factory=list)

    def record(self, config_map: ConfigMap, reason: str, message: str, warning: bool = False) -> None:
        self.events.append((reason, message, warning))


# ─────────────────────── Wiring helpers ───────────────────────


def build_accessor(settings: TrustBundleSettings, cluster: InMemoryCluster) -> TrustSourceAccessor:
    return TrustSourceAccessor(
        settings=settings,
        system_reader=FileSystemBundleReader(settings.system_bundle_path),
        config_maps=cluster,
        proxies=cluster,
        codec=PemCertificateCodec(),
    )


def build_reconciler(
    settings: TrustBundleSettings,
    cluster: InMemoryCluster,
    recorder: RecordingEventRecorder | None = None,
    conflict_attempts: int = 5,
) -> TrustBundleReconciler:
    return TrustBundleReconciler(
        settings=settings,
        sources=build_accessor(settings, cluster),
        config_maps=cluster,
        codec=PemCertificateCodec(),
        recorder=recorder,
        conflict_attempts=conflict_attempts,
        conflict_backoff_seconds=0,
    )


def merged_output(cluster: InMemoryCluster, settings: TrustBundleSettings) -> tuple[CertificateRecord, ...]:
    """Parse the output ConfigMap's bundle; fails the test if it is missing or unparseable."""
    config_map = cluster.config_maps[(settings.target_namespace, settings.output_config_map_name)]
    content = config_map.data[settings.output_key]
    return PemCertificateCodec().parse(content.encode()).value()


# ─────────────────────── Fixtures ───────────────────────


@pytest.fixture()
def system_bundle_file(tmp_path: Path) -> Path:
    path = tmp_path / "tls-ca-bundle.pem"
    path.write_text(system_bundle_pem())
    return path


@pytest.fixture()
def settings(system_bundle_file: Path) -> TrustBundleSettings:
    return TrustBundleSettings(system_bundle_path=system_bundle_file)


@pytest.fixture()
def cluster(settings: TrustBundleSettings) -> InMemoryCluster:
    """
    Default cluster state: Proxy points at the Amazon user bundle,
    the provider ConfigMap exists but is empty.
    """
    cluster = InMemoryCluster()
    cluster.set_proxy(settings.proxy_name, USER_CA_CONFIG_MAP)
    cluster.put_config_map(settings.user_namespace, USER_CA_CONFIG_MAP, {settings.user_key: amazon_pem()})
    cluster.put_config_map(settings.target_namespace, settings.provider_config_map_name, {})
    return cluster


@pytest.fixture()
def codec() -> PemCertificateCodec:
    return PemCertificateCodec()
