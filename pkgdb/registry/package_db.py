"""Package database handle — lookups over a self-refreshing snapshot.

The handle owns one published ``RegistrySnapshot``. Every lookup first
checks the manifests' modification times against the snapshot's build time
and rebuilds when either file is newer. A rebuild parses both manifests,
merges them, adds the optional self entry and only then swaps the new
snapshot in. If any step fails the previous snapshot stays published.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pkgdb.errors import PackageDBError
from pkgdb.manifests.line_manifest import parse_line_manifest
from pkgdb.manifests.markup_manifest import CertificatePolicy, parse_markup_manifest
from pkgdb.registry.merge import OrphanPolicy, merge_records
from pkgdb.registry.models import PackageRecord, RegistrySnapshot
from pkgdb.registry.self_entry import SelfEntryProvider, default_self_entry_provider

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_RETRY_INTERVAL = timedelta(seconds=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FileState:
    """What a stat says about one manifest, enough to tell if it was touched."""

    mtime: datetime
    mtime_ns: int
    size: int
    inode: int
    ctime_ns: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> FileState:
        return cls(
            mtime=datetime.fromtimestamp(st.st_mtime, timezone.utc),
            mtime_ns=st.st_mtime_ns,
            size=st.st_size,
            inode=st.st_ino,
            ctime_ns=st.st_ctime_ns,
        )


# (packages.list, packages.xml)
SourceIdentity = tuple[FileState, FileState]


class PackageDB:
    """Queryable view of ``packages.xml`` + ``packages.list``.

    Parameters
    ----------
    markup_path : str | Path
        Path to ``packages.xml``.
    line_path : str | Path
        Path to ``packages.list``.
    orphan_policy : OrphanPolicy
        Whether packages.list-only entries are indexed.
    certificate_policy : CertificatePolicy
        Whether one bad certificate aborts the rebuild.
    self_entry_provider : SelfEntryProvider | None
        Source of the optional caller pseudo-package. Defaults to
        ``default_self_entry_provider()``.
    clock : Callable[[], datetime]
        Returns the current UTC time; used to stamp snapshots.
    retry_interval : timedelta
        After a failed rebuild, how long to keep serving the previous
        snapshot before retrying when neither manifest has been touched.

    The initial build happens here and raises ``ManifestIOError`` or
    ``ParseError`` on failure.
    """

    def __init__(
        self,
        markup_path: str | Path,
        line_path: str | Path,
        *,
        orphan_policy: OrphanPolicy = OrphanPolicy.ADMIT,
        certificate_policy: CertificatePolicy = CertificatePolicy.STRICT,
        self_entry_provider: SelfEntryProvider | None = None,
        clock: Clock = utc_now,
        retry_interval: timedelta = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        self.markup_path = Path(markup_path)
        self.line_path = Path(line_path)
        self.orphan_policy = orphan_policy
        self.certificate_policy = certificate_policy
        self.self_entry_provider = self_entry_provider or default_self_entry_provider()
        self.retry_interval = retry_interval
        self._clock = clock

        self._lock = threading.Lock()
        self._snapshot: RegistrySnapshot | None = None
        self._closed = False
        # (source identity, time) of the last failed rebuild
        self._failure: tuple[SourceIdentity, datetime] | None = None
        self.last_error: PackageDBError | None = None

        self._snapshot = self._build()

    @classmethod
    def from_config(cls, config) -> PackageDB:
        """Open a database described by a ``PackageDBConfig``."""
        return cls(
            config.markup_manifest,
            config.line_manifest,
            orphan_policy=config.orphan_policy,
            certificate_policy=config.certificate_policy,
            self_entry_provider=config.self_entry_provider(),
        )

    # -- lookups ----------------------------------------------------------

    @property
    def snapshot(self) -> RegistrySnapshot | None:
        """The currently published snapshot, ``None`` once closed."""
        return self._snapshot

    def lookup_by_name(self, name: str) -> PackageRecord | None:
        snapshot = self._current()
        return snapshot.get_by_name(name) if snapshot else None

    def lookup_all_by_owner_id(self, owner_id: int) -> tuple[PackageRecord, ...]:
        """Return every package running under ``owner_id``, ordered by name."""
        snapshot = self._current()
        return snapshot.get_all_by_owner_id(owner_id) if snapshot else ()

    def lookup_first_by_owner_id(self, owner_id: int) -> PackageRecord | None:
        """Return the alphabetically first package running under ``owner_id``."""
        snapshot = self._current()
        return snapshot.get_first_by_owner_id(owner_id) if snapshot else None

    def iter_by_name(self) -> Iterator[PackageRecord]:
        snapshot = self._current()
        return snapshot.iter_by_name() if snapshot else iter(())

    def iter_by_owner_id(self) -> Iterator[tuple[PackageRecord, ...]]:
        snapshot = self._current()
        return snapshot.iter_by_owner_id() if snapshot else iter(())

    def last_update_time(self) -> datetime | None:
        """Build time of the published snapshot. Does not refresh."""
        snapshot = self._snapshot
        return snapshot.built_at if snapshot else None

    def __len__(self) -> int:
        snapshot = self._current()
        return len(snapshot) if snapshot else 0

    # -- refresh ----------------------------------------------------------

    def maybe_refresh(self) -> bool:
        """Rebuild if either manifest changed since the last build.

        Returns True when a new snapshot was published. If the manifests
        can't be stat'ed the current snapshot is kept. A failed rebuild
        re-raises its error and the previous snapshot stays published.
        The next stale call retries as soon as either file is touched
        (mtime, size, inode or ctime differ) or ``retry_interval`` has
        passed; until then it serves the previous snapshot.
        """
        if self._closed:
            return False

        identity = self._source_identity()
        if identity is None:
            return False

        with self._lock:
            snapshot = self._snapshot
            if snapshot is None or not _is_stale(identity, snapshot.built_at):
                return False
            if self._retry_suppressed(identity):
                return False

            try:
                new_snapshot = self._build()
            except PackageDBError as e:
                self._failure = (identity, self._clock())
                self.last_error = e
                logger.warning("Rebuild failed, keeping snapshot from %s: %s",
                               snapshot.built_at.isoformat(), e)
                raise

            self._publish(new_snapshot)
            return True

    def refresh(self) -> None:
        """Rebuild unconditionally; the old snapshot survives a failure."""
        if self._closed:
            raise PackageDBError("package database is closed")

        with self._lock:
            try:
                new_snapshot = self._build()
            except PackageDBError as e:
                self.last_error = e
                raise
            self._publish(new_snapshot)

    def close(self) -> None:
        """Release the in-memory indices. Safe to call more than once."""
        with self._lock:
            self._closed = True
            self._snapshot = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> PackageDB:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- internals --------------------------------------------------------

    def _current(self) -> RegistrySnapshot | None:
        self.maybe_refresh()
        return self._snapshot

    def _publish(self, snapshot: RegistrySnapshot) -> None:
        self._snapshot = snapshot
        self._failure = None
        self.last_error = None

    def _retry_suppressed(self, identity: SourceIdentity) -> bool:
        if self._failure is None:
            return False
        failed_identity, failed_at = self._failure
        if failed_identity != identity:
            return False
        return self._clock() - failed_at < self.retry_interval

    def _build(self) -> RegistrySnapshot:
        started = self._clock()
        logger.info("Rebuilding package registry from %s and %s",
                    self.markup_path, self.line_path)

        line_records = parse_line_manifest(self.line_path)
        markup_records = parse_markup_manifest(
            self.markup_path, certificate_policy=self.certificate_policy
        )
        records = merge_records(markup_records, line_records, self.orphan_policy)

        self_entry = self.self_entry_provider.get_self_entry()
        if self_entry is not None:
            if any(r.name == self_entry.name for r in records):
                logger.warning("Self entry %s shadows a real package; skipped",
                               self_entry.name)
            else:
                records.append(self_entry)

        snapshot = RegistrySnapshot.build(records, built_at=started)
        logger.info("Indexed %d packages across %d owner ids",
                    len(snapshot.by_name), len(snapshot.by_owner_id))
        return snapshot

    def _source_identity(self) -> SourceIdentity | None:
        try:
            line_stat = os.stat(self.line_path)
            markup_stat = os.stat(self.markup_path)
        except OSError as e:
            logger.debug("Skipping refresh, cannot stat manifests: %s", e)
            return None
        return (FileState.from_stat(line_stat), FileState.from_stat(markup_stat))


def _is_stale(identity: SourceIdentity, built_at: datetime) -> bool:
    return any(state.mtime > built_at for state in identity)


def open_package_db(
    markup_path: str | Path,
    line_path: str | Path,
    **kwargs,
) -> PackageDB:
    """Open and build a ``PackageDB``; see ``PackageDB`` for options."""
    return PackageDB(markup_path, line_path, **kwargs)
