"""
Bundle merger — the precedence rules that turn three sources into one bundle.

Domain layer — PURE. Same readings in, byte-identical bundle out.

Output order:

  [provider certificates]  only if valid AND its raw bytes differ from the user bytes
  [user certificates]      only if valid
  [system certificates]    always, must be valid

Absent and invalid user/provider sources contribute nothing and raise no
error. No de-duplication happens beyond the provider/user raw-byte check:
the provider source usually mirrors the user bundle, and re-adding it
would duplicate every user certificate.
"""

from __future__ import annotations

from ca_bundle_sync.domain.models import (
    CertificateRecord,
    MergedBundle,
    SourceReadings,
    SourceState,
    ValidSource,
)
from ca_bundle_sync.domain.ports import CertificateCodec
from ca_bundle_sync.railway.result import Result
from ca_bundle_sync.railway.result_failures import ResultFailures


def _raw_bytes(state: SourceState) -> bytes:
    """Raw content used for the provider/user comparison; empty unless valid."""
    return state.data if isinstance(state, ValidSource) else b""


def _contribution(state: SourceState) -> tuple[CertificateRecord, ...]:
    return state.certificates if isinstance(state, ValidSource) else ()


def provider_is_distinct(user: SourceState, provider: SourceState) -> bool:
    """True when the provider is valid and not a byte-for-byte copy of the user bundle."""
    return isinstance(provider, ValidSource) and provider.data != _raw_bytes(user)


def merge(
    system: SourceState,
    user: SourceState,
    provider: SourceState,
    codec: CertificateCodec,
) -> Result[MergedBundle]:
    """
    Merge the three source states into a MergedBundle.

    Returns Result.failure(CONFIGURATION_ERROR, ...) if the system source is
    not valid; there is no safe bundle without the system trust anchors.
    """
    if not isinstance(system, ValidSource):
        reason = getattr(system, "reason", "") or "system trust bundle unavailable"
        return ResultFailures.configuration_error(f"system trust bundle is not usable: {reason}")

    provider_certs = _contribution(provider) if provider_is_distinct(user, provider) else ()
    user_certs = _contribution(user)
    system_certs = system.certificates
    certificates = provider_certs + user_certs + system_certs

    return Result.success(
        MergedBundle(
            certificates=certificates,
            data=codec.serialize(certificates),
            provider_count=len(provider_certs),
            user_count=len(user_certs),
            system_count=len(system_certs),
        )
    )


def merge_readings(readings: SourceReadings, codec: CertificateCodec) -> Result[MergedBundle]:
    return merge(readings.system, readings.user, readings.provider, codec)
