"""Signing certificate decoding.

``packages.xml`` stores each signing certificate as DER bytes rendered in
hex. Decoding unhexes, then DER-parses, and takes a SHA-1 digest
over the raw DER so certificates can be compared without re-parsing.
"""

from __future__ import annotations

import binascii
import hashlib
from dataclasses import dataclass

from cryptography import x509

from pkgdb.errors import CertificateError

FINGERPRINT_SIZE = hashlib.sha1().digest_size


@dataclass(frozen=True)
class DecodedCertificate:
    """A parsed certificate together with its raw encoding and digest."""

    certificate: x509.Certificate
    fingerprint: bytes
    der: bytes

    @property
    def fingerprint_hex(self) -> str:
        return self.fingerprint.hex()


def fingerprint(der: bytes) -> bytes:
    """Return the SHA-1 digest of a certificate's DER encoding."""
    return hashlib.sha1(der).digest()


def decode_certificate_hex(hex_text: str, package: str = "") -> DecodedCertificate | None:
    """Decode a hex-encoded DER certificate.

    Hex digits may be upper or lower case. Returns ``None`` for an empty
    string or when the decoded byte sequence is empty.

    Raises:
        CertificateError: if the hex is malformed or the bytes are not a
            valid X.509 certificate.
    """
    if not hex_text:
        return None

    try:
        der = binascii.unhexlify(hex_text)
    except (binascii.Error, ValueError) as e:
        raise CertificateError(
            f"Can't decode cert hex: {e}",
            field="key",
            package=package,
            raw=_abbreviate(hex_text),
        ) from e

    if not der:
        return None

    return decode_certificate_der(der, package=package)


def decode_certificate_der(der: bytes, package: str = "") -> DecodedCertificate:
    """Parse raw DER bytes into a ``DecodedCertificate``."""
    try:
        cert = x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise CertificateError(
            f"Can't parse X509 DER cert: {e}",
            field="key",
            package=package,
            raw=_abbreviate(der.hex()),
        ) from e

    return DecodedCertificate(certificate=cert, fingerprint=fingerprint(der), der=der)


def _abbreviate(text: str, limit: int = 64) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
