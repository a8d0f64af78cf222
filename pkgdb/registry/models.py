"""Registry data models — package records and the immutable snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType

from cryptography import x509
from cryptography.x509.oid import NameOID

from pkgdb.errors import DuplicatePackageError


@dataclass(frozen=True)
class PackageRecord:
    """One installed package, merged from both manifests."""

    # Identity (packages.xml)
    name: str
    owner_id: int

    # packages.list only
    group_ids: tuple[int, ...] = ()
    data_path: str = ""
    security_label: str = ""

    # packages.xml only
    install_path: str = ""
    certificate: x509.Certificate | None = field(default=None, compare=False)
    certificate_fingerprint: bytes | None = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("package name must be non-empty")
        if (self.certificate is None) != (self.certificate_fingerprint is None):
            raise ValueError(
                f"{self.name}: certificate and fingerprint must be set together"
            )

    @property
    def has_certificate(self) -> bool:
        return self.certificate is not None

    @property
    def fingerprint_hex(self) -> str:
        return self.certificate_fingerprint.hex() if self.certificate_fingerprint else ""

    @property
    def certificate_subject(self) -> str:
        """Common name of the signing certificate's subject, if any."""
        if self.certificate is None:
            return ""
        names = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not names:
            return ""
        value = names[0].value
        return value if isinstance(value, str) else value.decode("utf-8", "replace")

    def __str__(self) -> str:
        crt = ""
        if self.certificate is not None:
            crt = f" [SN/{self.certificate_subject}: hash/{self.fingerprint_hex}]"
        return f"{self.name}: {self.owner_id}{crt}"


@dataclass(frozen=True)
class RegistrySnapshot:
    """One complete build of both indices plus its build time.

    Snapshots are never mutated after construction; a rebuild produces a
    new one and the old one is discarded wholesale.
    """

    by_name: Mapping[str, PackageRecord]
    by_owner_id: Mapping[int, tuple[PackageRecord, ...]]
    built_at: datetime

    @classmethod
    def build(
        cls,
        records: Iterable[PackageRecord],
        built_at: datetime | None = None,
    ) -> RegistrySnapshot:
        """Index records by name and by owner id.

        Owner-id buckets are ordered by package name so that "first match"
        lookups are reproducible across rebuilds.

        Raises:
            DuplicatePackageError: if two records share a name.
        """
        by_name: dict[str, PackageRecord] = {}
        for record in records:
            if record.name in by_name:
                raise DuplicatePackageError(
                    "duplicate package name",
                    field="name",
                    package=record.name,
                    raw=record.name,
                )
            by_name[record.name] = record

        buckets: dict[int, list[PackageRecord]] = {}
        for record in by_name.values():
            buckets.setdefault(record.owner_id, []).append(record)

        by_owner_id = {
            owner_id: tuple(sorted(bucket, key=lambda r: r.name))
            for owner_id, bucket in buckets.items()
        }

        return cls(
            by_name=MappingProxyType(by_name),
            by_owner_id=MappingProxyType(by_owner_id),
            built_at=built_at or datetime.now(timezone.utc),
        )

    @classmethod
    def empty(cls, built_at: datetime | None = None) -> RegistrySnapshot:
        return cls.build([], built_at=built_at)

    def get_by_name(self, name: str) -> PackageRecord | None:
        return self.by_name.get(name)

    def get_all_by_owner_id(self, owner_id: int) -> tuple[PackageRecord, ...]:
        return self.by_owner_id.get(owner_id, ())

    def get_first_by_owner_id(self, owner_id: int) -> PackageRecord | None:
        bucket = self.by_owner_id.get(owner_id)
        return bucket[0] if bucket else None

    def iter_by_name(self) -> Iterator[PackageRecord]:
        """Yield every record in name order."""
        for name in sorted(self.by_name):
            yield self.by_name[name]

    def iter_by_owner_id(self) -> Iterator[tuple[PackageRecord, ...]]:
        """Yield each owner-id bucket in ascending owner-id order."""
        for owner_id in sorted(self.by_owner_id):
            yield self.by_owner_id[owner_id]

    def __len__(self) -> int:
        return len(self.by_name)

    def __contains__(self, name: object) -> bool:
        return name in self.by_name
