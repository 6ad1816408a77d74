"""
Source accessor — classifies each trust source as valid, invalid or absent.

Domain layer — all I/O is injected via ports. No merge logic lives here.

  system   → local file; any read or parse failure is fatal to the cycle
  user     → Proxy.spec.trustedCA.name → ConfigMap in the user namespace → key
  provider → fixed ConfigMap in the target namespace → key

For user and provider, "not configured" and "not found" are AbsentSource,
while unparseable content (or an API error other than 404) is InvalidSource.
Neither is an error: both are ordinary states the merger folds into its output.
"""

from __future__ import annotations

import structlog

from ca_bundle_sync.config import TrustBundleSettings
from ca_bundle_sync.domain.models import (
    AbsentSource,
    InvalidSource,
    SourceReadings,
    SourceState,
    TrustSource,
    ValidSource,
)
from ca_bundle_sync.domain.ports import (
    CertificateCodec,
    ConfigMapReader,
    ProxyReader,
    SystemBundleReader,
)
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Failure, Result, Success

log = structlog.get_logger()


class TrustSourceAccessor:
    """Read the system, user and provider sources for one reconciliation cycle."""

    def __init__(
        self,
        settings: TrustBundleSettings,
        system_reader: SystemBundleReader,
        config_maps: ConfigMapReader,
        proxies: ProxyReader,
        codec: CertificateCodec,
    ) -> None:
        self._settings = settings
        self._system_reader = system_reader
        self._config_maps = config_maps
        self._proxies = proxies
        self._codec = codec

    def read_all(self) -> Result[SourceReadings]:
        """
        Snapshot all three sources.

        Fails only when the system source fails; user and provider problems
        are carried inside the readings as InvalidSource/AbsentSource.
        """
        return self.read_system().map(
            lambda system: SourceReadings(
                system=system,
                user=self.read_user(),
                provider=self.read_provider(),
            )
        )

    def read_system(self) -> Result[ValidSource]:
        """
        Read and parse the system bundle.

        Read failures keep the operating system's message verbatim; parse
        failures carry "failed to parse certificate PEM".
        """
        return self._system_reader.read().flat_map(
            lambda data: self._codec.parse(data).map(
                lambda certificates: ValidSource(data=data, certificates=certificates)
            )
        )

    def read_user(self) -> SourceState:
        """Follow the Proxy's trustedCA pointer to the user bundle."""
        match self._proxies.get_proxy(self._settings.proxy_name):
            case Failure(err) if err.code is ErrorCode.NOT_FOUND:
                return self._absent(TrustSource.USER, f"proxy {self._settings.proxy_name!r} not found")
            case Failure(err):
                return self._invalid(TrustSource.USER, err.message)
            case Success(proxy) if not proxy.trusted_ca_name:
                return self._absent(TrustSource.USER, "proxy does not reference a trusted CA configmap")
            case Success(proxy):
                return self._read_config_map_source(
                    TrustSource.USER,
                    self._settings.user_namespace,
                    proxy.trusted_ca_name,
                    self._settings.user_key,
                )
        raise TypeError("unreachable")  # pragma: no cover

    def read_provider(self) -> SourceState:
        """Read the bundle an external sync process mirrors into the target namespace."""
        return self._read_config_map_source(
            TrustSource.PROVIDER,
            self._settings.target_namespace,
            self._settings.provider_config_map_name,
            self._settings.provider_key,
        )

    def classify(self, role: TrustSource, data: bytes) -> SourceState:
        """Valid when the whole blob parses, Invalid otherwise."""
        return self._codec.parse(data).either(
            on_success=lambda certificates: ValidSource(data=data, certificates=certificates),
            on_failure=lambda err: self._invalid(role, err.message),
        )

    def _read_config_map_source(
        self,
        role: TrustSource,
        namespace: str,
        name: str,
        key: str,
    ) -> SourceState:
        match self._config_maps.get_config_map(namespace, name):
            case Failure(err) if err.code is ErrorCode.NOT_FOUND:
                return self._absent(role, f"configmap {namespace}/{name} not found")
            case Failure(err):
                return self._invalid(role, err.message)
            case Success(config_map):
                value = config_map.value_of(key)
                if value is None:
                    return self._absent(role, f"key {key!r} missing from configmap {namespace}/{name}")
                return self.classify(role, value.encode("utf-8"))
        raise TypeError("unreachable")  # pragma: no cover

    @staticmethod
    def _absent(role: TrustSource, reason: str) -> AbsentSource:
        log.info("sources.absent", source=role.value, reason=reason)
        return AbsentSource(reason=reason)

    @staticmethod
    def _invalid(role: TrustSource, reason: str) -> InvalidSource:
        log.warning("sources.invalid", source=role.value, reason=reason)
        return InvalidSource(reason=reason)
