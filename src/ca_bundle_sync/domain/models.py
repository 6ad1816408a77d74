"""
Domain models — immutable data structures for certificates, trust sources,
and the Kubernetes objects the engine reads and writes.

All models are frozen dataclasses. A trust source resolves to exactly one of
three states (ValidSource, InvalidSource, AbsentSource); all three are
ordinary steady-state values, never exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, StrEnum


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """
    A parsed X.509 CA certificate.

    The `certificate` field holds the raw DER encoding; the remaining fields
    are metadata extracted for logging and assertions.
    """

    certificate: bytes = field(repr=False)
    issuer: str | None = None
    issuer_organization: str | None = None
    subject: str | None = None
    serial_number: str | None = None


class TrustSource(StrEnum):
    """The three roles that feed the merged bundle."""

    SYSTEM = "system"
    USER = "user"
    PROVIDER = "provider"


@dataclass(frozen=True, slots=True)
class ValidSource:
    """Source present and parseable: raw bytes plus the decoded certificates."""

    data: bytes = field(repr=False)
    certificates: tuple[CertificateRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class InvalidSource:
    """Source present but its content failed PEM parsing (or could not be read)."""

    reason: str


@dataclass(frozen=True, slots=True)
class AbsentSource:
    """Source not configured or not found."""

    reason: str = ""


type SourceState = ValidSource | InvalidSource | AbsentSource


@dataclass(frozen=True, slots=True)
class SourceReadings:
    """One evaluation-time snapshot of all three sources."""

    system: ValidSource
    user: SourceState
    provider: SourceState


@dataclass(frozen=True, slots=True)
class MergedBundle:
    """
    The canonical trust bundle produced by one reconciliation cycle.

    Ordering: provider certificates, then user certificates, then system
    certificates. `data` is the serialized PEM form written to the artifact.
    """

    certificates: tuple[CertificateRecord, ...]
    data: bytes = field(repr=False)
    provider_count: int = 0
    user_count: int = 0
    system_count: int = 0

    @property
    def total_certificates(self) -> int:
        return len(self.certificates)


@dataclass(frozen=True, slots=True)
class ConfigMap:
    """
    A Kubernetes core/v1 ConfigMap — the key/value map object.

    `resource_version` is the optimistic-concurrency token returned by the
    API server; None for an object that has not been persisted yet.
    """

    namespace: str
    name: str
    data: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None

    def value_of(self, key: str) -> str | None:
        return self.data.get(key)


@dataclass(frozen=True, slots=True)
class ProxyConfig:
    """
    The cluster-wide Proxy object (config.openshift.io/v1).

    Only `spec.trustedCA.name` matters here: the name of the ConfigMap that
    holds the user-supplied CA bundle. An empty string means "unset".
    """

    name: str
    trusted_ca_name: str = ""


class ReconcileOutcome(Enum):
    """What a successful reconciliation cycle did to the output artifact."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"
