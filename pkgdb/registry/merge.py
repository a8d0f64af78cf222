"""Merge packages.xml and packages.list records.

packages.xml is the source of truth for identity and owner id;
packages.list contributes data path, security label and group ids.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from enum import Enum

from pkgdb.errors import DuplicatePackageError
from pkgdb.registry.models import PackageRecord

logger = logging.getLogger(__name__)


class OrphanPolicy(Enum):
    """What to do with a packages.list entry that packages.xml doesn't know."""

    ADMIT = "admit"  # Index it as an independent entry
    DROP = "drop"  # Discard it


def merge_records(
    markup_records: Iterable[PackageRecord],
    line_records: Iterable[PackageRecord],
    orphan_policy: OrphanPolicy = OrphanPolicy.ADMIT,
) -> list[PackageRecord]:
    """Overlay list-manifest fields onto the canonical markup records.

    Returns markup records in their original order, followed by any
    admitted orphans in list order.

    Raises:
        DuplicatePackageError: if either input names a package twice.
    """
    merged: dict[str, PackageRecord] = {}
    for record in markup_records:
        if record.name in merged:
            raise DuplicatePackageError(
                "duplicate package in packages.xml",
                field="name",
                package=record.name,
                raw=record.name,
            )
        merged[record.name] = record

    markup_names = set(merged)
    seen: set[str] = set()
    orphans: list[PackageRecord] = []

    for record in line_records:
        if record.name in seen:
            raise DuplicatePackageError(
                "duplicate package in packages.list",
                field="name",
                package=record.name,
                raw=record.name,
            )
        seen.add(record.name)

        if record.name in markup_names:
            merged[record.name] = dataclasses.replace(
                merged[record.name],
                data_path=record.data_path,
                security_label=record.security_label,
                group_ids=record.group_ids,
            )
        elif orphan_policy is OrphanPolicy.ADMIT:
            orphans.append(record)
        else:
            logger.info("Dropping %s: listed in packages.list only", record.name)

    if orphans:
        logger.debug("Admitted %d packages.list-only entries", len(orphans))

    return list(merged.values()) + orphans
