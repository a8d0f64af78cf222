"""Self-entry providers — a pseudo package for the calling process.

Off-device (a development host with copied manifests) the calling uid is
usually absent from the registry. A provider may inject one record for it
so lookups by the caller's own uid succeed while debugging.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path

from pkgdb.registry.models import PackageRecord

SELF_ENTRY_PREFIX = "caller-uid-"

# Present on every Android system image
DEVICE_MARKER = Path("/system/build.prop")


class SelfEntryProvider(ABC):
    """Consulted once per rebuild."""

    @abstractmethod
    def get_self_entry(self) -> PackageRecord | None:
        ...


class NoSelfEntry(SelfEntryProvider):
    """Never inject anything. Use on the device."""

    def get_self_entry(self) -> PackageRecord | None:
        return None


class CallerSelfEntry(SelfEntryProvider):
    """Always inject a record for the calling process's uid."""

    def __init__(self, uid: int | None = None):
        self._uid = uid

    def get_self_entry(self) -> PackageRecord | None:
        uid = self._uid if self._uid is not None else os.getuid()
        return PackageRecord(name=f"{SELF_ENTRY_PREFIX}{uid}", owner_id=uid)


class DeviceAwareSelfEntry(SelfEntryProvider):
    """Inject the caller's record unless running on an Android device."""

    def __init__(self, marker: str | Path = DEVICE_MARKER, uid: int | None = None):
        self.marker = Path(marker)
        self._caller = CallerSelfEntry(uid)

    def get_self_entry(self) -> PackageRecord | None:
        if self.marker.exists():
            return None
        return self._caller.get_self_entry()


def default_self_entry_provider() -> SelfEntryProvider:
    """Pick a provider for the current platform."""
    if hasattr(os, "getuid"):
        return DeviceAwareSelfEntry()
    return NoSelfEntry()
