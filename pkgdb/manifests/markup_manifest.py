"""Parser for ``packages.xml``.

Only the attributes the registry needs are read::

    <packages>
      <version sdkVersion="..." databaseVersion="..." />
      <package name="..." codePath="..." userId="10050" ...>
        <sigs count="1">
          <cert index="0" key="3082..." />
        </sigs>
      </package>
      <package name="..." sharedUserId="1000" ...>
        <sigs count="1">
          <cert index="0" />
        </sigs>
      </package>
    </packages>

A ``cert`` element without a ``key`` refers back to an earlier element
carrying the same ``index``; the platform writes each distinct signing
certificate once.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from xml.etree import ElementTree as ET

from pkgdb.errors import CertificateError, ManifestIOError, ParseError
from pkgdb.manifests.certificate import DecodedCertificate, decode_certificate_hex
from pkgdb.manifests.numbers import parse_decimal_uint32
from pkgdb.registry.models import PackageRecord

logger = logging.getLogger(__name__)


class CertificatePolicy(Enum):
    """What to do when one package's certificate cannot be decoded."""

    STRICT = "strict"  # Abort the whole parse
    DEGRADE = "degrade"  # Keep the package, drop its certificate


def parse_markup_manifest(
    path: str | Path,
    certificate_policy: CertificatePolicy = CertificatePolicy.STRICT,
) -> list[PackageRecord]:
    """Parse a ``packages.xml`` file into package records."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ManifestIOError(str(path), e.strerror or str(e)) from e

    return parse_markup_manifest_bytes(
        data, certificate_policy=certificate_policy, source=str(path)
    )


def parse_markup_manifest_bytes(
    data: bytes,
    certificate_policy: CertificatePolicy = CertificatePolicy.STRICT,
    source: str = "",
) -> list[PackageRecord]:
    """Parse ``packages.xml`` content.

    Records carry name, install path, resolved owner id and (optionally)
    the decoded signing certificate; list-only fields are left empty.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ParseError(
            f"Cannot parse document: {e}", field="document", source=source
        ) from e

    if root.tag != "packages":
        raise ParseError(
            f"unexpected root element <{root.tag}>",
            field="document",
            raw=root.tag,
            source=source,
        )

    # index -> hex key, filled as cert elements with a key are encountered
    known_keys: dict[str, str] = {}
    records = []

    for elem in root.findall("package"):
        name = elem.get("name", "")
        if not name:
            raise ParseError(
                "package element without a name", field="name", source=source
            )

        owner_id = _resolve_owner_id(elem, name, source)
        hex_key = _certificate_key(elem, known_keys)

        try:
            decoded = decode_certificate_hex(hex_key, package=name)
        except CertificateError as e:
            if certificate_policy is CertificatePolicy.STRICT:
                e.source = source
                raise
            logger.warning("%s: dropping undecodable certificate: %s", name, e)
            decoded = None

        records.append(_make_record(elem, name, owner_id, decoded))

    logger.debug("Parsed %d packages from %s", len(records), source or "<bytes>")
    return records


def _resolve_owner_id(elem: ET.Element, name: str, source: str) -> int:
    """Use ``userId`` when set, else fall back to ``sharedUserId``."""
    uid = _uint32_attr(elem, "userId", name, source)
    if uid > 0:
        return uid

    shared_uid = _uint32_attr(elem, "sharedUserId", name, source)
    if shared_uid > 0:
        return shared_uid

    raise ParseError(
        "owner id and shared owner id both absent",
        field="userId",
        package=name,
        source=source,
    )


def _uint32_attr(elem: ET.Element, attr: str, name: str, source: str) -> int:
    text = elem.get(attr)
    if text is None or text == "":
        return 0
    try:
        return parse_decimal_uint32(text)
    except ValueError as e:
        raise ParseError(
            f"Cannot parse {attr} <{text}>: {e}",
            field=attr,
            package=name,
            raw=text,
            source=source,
        ) from e


def _certificate_key(elem: ET.Element, known_keys: dict[str, str]) -> str:
    """Return the hex certificate for a package, or an empty string."""
    certs = elem.findall("sigs/cert")
    for cert in certs:
        index = cert.get("index")
        key = cert.get("key")
        if key and index is not None:
            known_keys.setdefault(index, key)

    if not certs:
        return ""

    # Only the first signer is indexed
    first = certs[0]
    key = first.get("key")
    if key:
        return key

    index = first.get("index")
    if index is not None:
        return known_keys.get(index, "")
    return ""


def _make_record(
    elem: ET.Element,
    name: str,
    owner_id: int,
    decoded: DecodedCertificate | None,
) -> PackageRecord:
    return PackageRecord(
        name=name,
        owner_id=owner_id,
        install_path=elem.get("codePath", ""),
        certificate=decoded.certificate if decoded else None,
        certificate_fingerprint=decoded.fingerprint if decoded else None,
    )
