"""Shared fixtures: throwaway signing certificates and manifest writers."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


def make_certificate_der(common_name: str) -> bytes:
    """Create a self-signed certificate and return its DER encoding."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


def package_xml(*packages: str) -> str:
    """Wrap <package> elements in a packages.xml document."""
    body = "\n".join(packages)
    return (
        "<?xml version='1.0' encoding='utf-8' standalone='yes' ?>\n"
        "<packages>\n"
        '<version sdkVersion="30" databaseVersion="3" fingerprint="test" />\n'
        f"{body}\n"
        "</packages>\n"
    )


def package_element(name: str, user_id: int = 0, shared_user_id: int = 0,
                    code_path: str = "", cert_hex: str | None = None) -> str:
    attrs = f'name="{name}" codePath="{code_path or "/data/app/" + name}" publicFlags="0"'
    if user_id:
        attrs += f' userId="{user_id}"'
    if shared_user_id:
        attrs += f' sharedUserId="{shared_user_id}"'
    attrs += ' installer="com.android.vending" version="1"'
    if cert_hex is None:
        return f"<package {attrs} />"
    return (
        f"<package {attrs}>\n"
        f'  <sigs count="1">\n'
        f'    <cert index="0" key="{cert_hex}" />\n'
        f"  </sigs>\n"
        f"</package>"
    )


def set_mtime(path: Path, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(path, (ts, ts))


class FakeClock:
    """Controllable replacement for the registry's UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope="session")
def cert_der() -> bytes:
    return make_certificate_der("Test Signer")


@pytest.fixture(scope="session")
def other_cert_der() -> bytes:
    return make_certificate_der("Platform Signer")


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_manifests(workdir):
    """Write packages.xml / packages.list into workdir.

    Returns a function ``(xml_text, list_text, mtime=None) -> (xml, list)``.
    """

    def _write(xml_text: str, list_text: str, mtime: datetime | None = None):
        xml_path = workdir / "packages.xml"
        list_path = workdir / "packages.list"
        xml_path.write_text(xml_text)
        list_path.write_text(list_text)
        if mtime is not None:
            set_mtime(xml_path, mtime)
            set_mtime(list_path, mtime)
        return xml_path, list_path

    return _write
