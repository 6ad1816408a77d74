"""
Unit tests for the bundle merger.

Covers every combination the merge rules distinguish:
  - provider distinct from user → provider, user, system
  - provider identical to user → user, system
  - invalid/absent user or provider → contribute nothing
  - invalid/absent system → CONFIGURATION_ERROR
"""

from __future__ import annotations

import pytest

from ca_bundle_sync.adapters.pem_codec import PemCertificateCodec
from ca_bundle_sync.domain.models import AbsentSource, InvalidSource, SourceReadings, ValidSource
from ca_bundle_sync.merger import merge, merge_readings, provider_is_distinct
from ca_bundle_sync.railway import ErrorCode, ResultAssertions
from tests.conftest import amazon_pem, microsoft_pem, organizations, system_bundle_pem

GLOBALSIGN = ["GlobalSign", "GlobalSign"]


def _valid(pem: str, codec: PemCertificateCodec) -> ValidSource:
    data = pem.encode()
    return ValidSource(data=data, certificates=codec.parse(data).value())


@pytest.fixture()
def system(codec: PemCertificateCodec) -> ValidSource:
    return _valid(system_bundle_pem(), codec)


@pytest.fixture()
def user(codec: PemCertificateCodec) -> ValidSource:
    return _valid(amazon_pem(), codec)


@pytest.fixture()
def provider(codec: PemCertificateCodec) -> ValidSource:
    return _valid(microsoft_pem(), codec)


class TestMergeOrdering:
    def test_system_only(self, system: ValidSource, codec: PemCertificateCodec) -> None:
        """
        GIVEN only a valid system source
        WHEN merging
        THEN the bundle holds just the system certificates.
        """
        bundle = ResultAssertions.assert_success(merge(system, AbsentSource(), AbsentSource(), codec))

        assert organizations(bundle.certificates) == GLOBALSIGN
        assert (bundle.provider_count, bundle.user_count, bundle.system_count) == (0, 0, 2)

    def test_user_before_system(self, system: ValidSource, user: ValidSource, codec: PemCertificateCodec) -> None:
        bundle = ResultAssertions.assert_success(merge(system, user, AbsentSource(), codec))

        assert organizations(bundle.certificates) == ["Amazon", *GLOBALSIGN]

    def test_provider_before_user_before_system(
        self,
        system: ValidSource,
        user: ValidSource,
        provider: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        """
        GIVEN valid system, user and a provider that differs from the user
        WHEN merging
        THEN the order is provider, user, system.
        """
        bundle = ResultAssertions.assert_success(merge(system, user, provider, codec))

        assert organizations(bundle.certificates) == ["Microsoft Corporation", "Amazon", *GLOBALSIGN]
        assert bundle.total_certificates == 4

    def test_provider_without_user(self, system: ValidSource, provider: ValidSource, codec: PemCertificateCodec) -> None:
        bundle = ResultAssertions.assert_success(merge(system, AbsentSource(), provider, codec))

        assert organizations(bundle.certificates) == ["Microsoft Corporation", *GLOBALSIGN]

    def test_provider_identical_to_user_is_skipped(
        self,
        system: ValidSource,
        user: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        """
        GIVEN a provider whose raw bytes equal the user's raw bytes
        WHEN merging
        THEN the user certificates appear exactly once.
        """
        mirrored = ValidSource(data=user.data, certificates=user.certificates)

        bundle = ResultAssertions.assert_success(merge(system, user, mirrored, codec))

        assert organizations(bundle.certificates) == ["Amazon", *GLOBALSIGN]
        assert bundle.provider_count == 0

    def test_provider_with_same_certificates_but_different_bytes_is_kept(
        self,
        system: ValidSource,
        user: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        reformatted = ValidSource(data=user.data + b"\n", certificates=user.certificates)

        bundle = ResultAssertions.assert_success(merge(system, user, reformatted, codec))

        assert organizations(bundle.certificates) == ["Amazon", "Amazon", *GLOBALSIGN]


class TestMergeIgnoredSources:
    @pytest.mark.parametrize(
        "user_state",
        [InvalidSource("failed to parse certificate PEM"), AbsentSource("proxy has no trustedCA")],
        ids=["invalid", "absent"],
    )
    def test_unusable_user_contributes_nothing(
        self,
        system: ValidSource,
        provider: ValidSource,
        codec: PemCertificateCodec,
        user_state: InvalidSource | AbsentSource,
    ) -> None:
        bundle = ResultAssertions.assert_success(merge(system, user_state, provider, codec))

        assert organizations(bundle.certificates) == ["Microsoft Corporation", *GLOBALSIGN]

    @pytest.mark.parametrize(
        "provider_state",
        [InvalidSource("failed to parse certificate PEM"), AbsentSource("configmap not found")],
        ids=["invalid", "absent"],
    )
    def test_unusable_provider_contributes_nothing(
        self,
        system: ValidSource,
        user: ValidSource,
        codec: PemCertificateCodec,
        provider_state: InvalidSource | AbsentSource,
    ) -> None:
        bundle = ResultAssertions.assert_success(merge(system, user, provider_state, codec))

        assert organizations(bundle.certificates) == ["Amazon", *GLOBALSIGN]

    def test_invalid_user_and_invalid_provider(self, system: ValidSource, codec: PemCertificateCodec) -> None:
        """
        GIVEN garbage in both the user and the provider source
        WHEN merging
        THEN the bundle degrades to the system certificates, no error.
        """
        bundle = ResultAssertions.assert_success(
            merge(system, InvalidSource("bad"), InvalidSource("bad"), codec)
        )

        assert organizations(bundle.certificates) == GLOBALSIGN


class TestMergeSystemFailure:
    @pytest.mark.parametrize(
        "system_state",
        [InvalidSource("failed to parse certificate PEM"), AbsentSource("No such file or directory")],
        ids=["invalid", "absent"],
    )
    def test_unusable_system_is_a_configuration_error(
        self,
        user: ValidSource,
        codec: PemCertificateCodec,
        system_state: InvalidSource | AbsentSource,
    ) -> None:
        result = merge(system_state, user, AbsentSource(), codec)

        ResultAssertions.assert_failure(result, ErrorCode.CONFIGURATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, system_state.reason)


class TestMergeProperties:
    def test_is_deterministic(
        self,
        system: ValidSource,
        user: ValidSource,
        provider: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        first = merge(system, user, provider, codec).value()
        second = merge(system, user, provider, codec).value()

        assert first.data == second.data

    def test_data_is_serialized_certificates(
        self,
        system: ValidSource,
        user: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        bundle = merge(system, user, AbsentSource(), codec).value()

        assert codec.parse(bundle.data).value() == bundle.certificates

    def test_merge_readings_matches_merge(
        self,
        system: ValidSource,
        user: ValidSource,
        provider: ValidSource,
        codec: PemCertificateCodec,
    ) -> None:
        readings = SourceReadings(system=system, user=user, provider=provider)

        assert merge_readings(readings, codec).value().data == merge(system, user, provider, codec).value().data


class TestProviderIsDistinct:
    def test_absent_provider_is_not_distinct(self, user: ValidSource) -> None:
        assert provider_is_distinct(user, AbsentSource()) is False

    def test_valid_provider_against_invalid_user_is_distinct(self, provider: ValidSource) -> None:
        assert provider_is_distinct(InvalidSource("bad"), provider) is True

    def test_identical_bytes_are_not_distinct(self, user: ValidSource) -> None:
        assert provider_is_distinct(user, ValidSource(data=user.data)) is False
