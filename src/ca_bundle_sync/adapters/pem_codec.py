"""
PEM codec adapter — PEM bundle ⇄ certificate records.

Adapter layer — implements the CertificateCodec port using:
  - base64 block decoding of the PEM armour
  - cryptography (PyCA): X.509 DER parsing and metadata extraction

Parsing rules:
  - Blocks whose label is not CERTIFICATE, or that carry PEM headers, are skipped.
  - A CERTIFICATE block with a broken base64 body or DER payload rejects the
    whole blob; there is no partial success.
  - A blob with zero certificate blocks is rejected exactly like garbage input.
"""

from __future__ import annotations

import base64
import binascii
import re
import textwrap
from collections.abc import Sequence

import structlog
from cryptography import x509
from cryptography.x509.oid import NameOID

from ca_bundle_sync.domain.models import CertificateRecord
from ca_bundle_sync.railway import ErrorCode
from ca_bundle_sync.railway.result import Result

log = structlog.get_logger()

PARSE_ERROR_MESSAGE = "failed to parse certificate PEM"

_PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----[ \t]*\r?\n"
    rb"(?P<body>.*?)"
    rb"-----END (?P=label)-----",
    re.DOTALL,
)


class PemDecodeError(ValueError):
    """A CERTIFICATE block could not be decoded."""


def _first_organization(name: x509.Name) -> str | None:
    """Return the first O= attribute of an X.509 name, or None if absent."""
    attributes = name.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode()


def _der_to_certificate_record(der_bytes: bytes) -> CertificateRecord:
    cert = x509.load_der_x509_certificate(der_bytes)
    return CertificateRecord(
        certificate=der_bytes,
        issuer=cert.issuer.rfc4514_string(),
        issuer_organization=_first_organization(cert.issuer),
        subject=cert.subject.rfc4514_string(),
        serial_number=hex(cert.serial_number),
    )


def _has_headers(body: bytes) -> bool:
    """PEM headers are 'Name: value' lines before the base64 payload."""
    first_line = body.lstrip().split(b"\n", 1)[0]
    return b":" in first_line


def _decode_body(body: bytes) -> bytes:
    compact = b"".join(body.split())
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as e:
        raise PemDecodeError(f"invalid base64 in certificate block: {e}") from e


def _decode_certificates(data: bytes) -> tuple[CertificateRecord, ...]:
    records: list[CertificateRecord] = []
    for match in _PEM_BLOCK.finditer(data):
        body = match.group("body")
        if match.group("label") != b"CERTIFICATE" or _has_headers(body):
            continue
        records.append(_der_to_certificate_record(_decode_body(body)))

    if not records:
        raise PemDecodeError(PARSE_ERROR_MESSAGE)
    return tuple(records)


def encode_certificate(der_bytes: bytes) -> bytes:
    """Encode DER bytes as a single 64-column PEM CERTIFICATE block."""
    body = "\n".join(textwrap.wrap(base64.b64encode(der_bytes).decode("ascii"), 64))
    return f"-----BEGIN CERTIFICATE-----\n{body}\n-----END CERTIFICATE-----\n".encode("ascii")


class PemCertificateCodec:
    """
    Parse and serialize PEM-encoded certificate bundles.

    Implements the CertificateCodec port.
    All decoding exceptions are caught at this adapter boundary and reported
    as a single VALIDATION_ERROR with the message "failed to parse certificate PEM".
    """

    def parse(self, data: bytes) -> Result[tuple[CertificateRecord, ...]]:
        """
        Decode every certificate in a PEM blob, preserving order.

        Returns Result.success(records) with at least one record, or
        Result.failure(VALIDATION_ERROR, "failed to parse certificate PEM").
        """
        return Result.from_computation(
            lambda: _decode_certificates(data),
            ErrorCode.VALIDATION_ERROR,
            PARSE_ERROR_MESSAGE,
        ).peek_failure(
            lambda err: log.debug("pem_codec.rejected", size_bytes=len(data), cause=str(err.exception))
        )

    def serialize(self, certificates: Sequence[CertificateRecord]) -> bytes:
        """Concatenate the records as PEM blocks in the given order."""
        return b"".join(encode_certificate(record.certificate) for record in certificates)
