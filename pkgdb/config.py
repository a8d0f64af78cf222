"""Configuration — where the manifests live and which merge policies apply.

Settings come from an optional YAML file, then environment overrides::

    markup_manifest: /data/system/packages.xml
    line_manifest: /data/system/packages.list
    orphan_policy: admit        # admit | drop
    certificate_policy: strict  # strict | degrade
    self_entry: auto            # auto | off | caller
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import yaml

from pkgdb.manifests.markup_manifest import CertificatePolicy
from pkgdb.registry.merge import OrphanPolicy
from pkgdb.registry.self_entry import (
    CallerSelfEntry,
    NoSelfEntry,
    SelfEntryProvider,
    default_self_entry_provider,
)

DEFAULT_MARKUP_MANIFEST = "/data/system/packages.xml"
DEFAULT_LINE_MANIFEST = "/data/system/packages.list"

ENV_MARKUP_MANIFEST = "PKGDB_MARKUP_MANIFEST"
ENV_LINE_MANIFEST = "PKGDB_LINE_MANIFEST"


class SelfEntryMode(Enum):
    AUTO = "auto"  # Inject only when not running on a device
    OFF = "off"
    CALLER = "caller"  # Always inject


@dataclass
class PackageDBConfig:
    """Settings for opening a ``PackageDB``."""

    markup_manifest: str = DEFAULT_MARKUP_MANIFEST
    line_manifest: str = DEFAULT_LINE_MANIFEST
    orphan_policy: OrphanPolicy = OrphanPolicy.ADMIT
    certificate_policy: CertificatePolicy = CertificatePolicy.STRICT
    self_entry: SelfEntryMode = SelfEntryMode.AUTO

    def self_entry_provider(self) -> SelfEntryProvider:
        if self.self_entry == SelfEntryMode.OFF:
            return NoSelfEntry()
        if self.self_entry == SelfEntryMode.CALLER:
            return CallerSelfEntry()
        return default_self_entry_provider()


def load_config(path: str | Path | None = None) -> PackageDBConfig:
    """Load settings from a YAML file (if given) and the environment."""
    data: dict = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")

    config = PackageDBConfig(
        markup_manifest=str(data.get("markup_manifest", DEFAULT_MARKUP_MANIFEST)),
        line_manifest=str(data.get("line_manifest", DEFAULT_LINE_MANIFEST)),
        orphan_policy=_enum_value(OrphanPolicy, data, "orphan_policy", "admit"),
        certificate_policy=_enum_value(
            CertificatePolicy, data, "certificate_policy", "strict"
        ),
        self_entry=_enum_value(SelfEntryMode, data, "self_entry", "auto"),
    )

    config.markup_manifest = os.environ.get(ENV_MARKUP_MANIFEST, config.markup_manifest)
    config.line_manifest = os.environ.get(ENV_LINE_MANIFEST, config.line_manifest)
    return config


def _enum_value(enum_cls: type[Enum], data: dict, key: str, default: str):
    value = data.get(key, default)
    if value is False:
        # YAML 1.1 reads a bare `off` as a boolean
        value = "off"
    raw = str(value).lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{key}: '{raw}' is not one of {allowed}") from None
