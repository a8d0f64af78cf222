"""Parser for ``packages.list``.

Each non-blank line describes one package::

    pkgName  uid  debug(0|1)  dataPath  seInfo  gid[,gid]..|none

Newer platform releases append extra columns; those are ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from pkgdb.errors import ManifestIOError, ParseError
from pkgdb.manifests.numbers import parse_uint32
from pkgdb.registry.models import PackageRecord

logger = logging.getLogger(__name__)

NO_GROUPS = "none"
MIN_FIELDS = 6
DEFAULT_CHUNK_SIZE = 64 * 1024

# Column positions
_NAME = 0
_UID = 1
_DATA_PATH = 3
_SEINFO = 4
_GIDS = 5


def iter_lines(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield complete, non-blank lines from a binary stream.

    Lines are reassembled across however the stream happens to be chunked.
    The trailing newline and one trailing carriage return are stripped.
    """
    pending = b""
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            line = _strip_cr(line)
            if line:
                yield line

    line = _strip_cr(pending)
    if line:
        yield line


def _strip_cr(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\r") else line


def parse_line_manifest(path: str | Path) -> list[PackageRecord]:
    """Parse a ``packages.list`` file into partial package records."""
    path = Path(path)
    try:
        f = open(path, "rb")
    except OSError as e:
        raise ManifestIOError(str(path), e.strerror or str(e)) from e

    with f:
        try:
            return parse_line_manifest_stream(f, source=str(path))
        except OSError as e:
            raise ManifestIOError(str(path), e.strerror or str(e)) from e


def parse_line_manifest_stream(stream: BinaryIO, source: str = "") -> list[PackageRecord]:
    """Parse ``packages.list`` content from an open binary stream.

    Records carry name, owner id, data path, security label and group ids;
    install path and certificate are left empty.
    """
    records = []
    for lineno, line in enumerate(iter_lines(stream), start=1):
        fields = [f.decode("utf-8", "surrogateescape") for f in line.split()]
        if not fields:
            continue
        records.append(_parse_fields(fields, lineno, source))

    logger.debug("Parsed %d entries from %s", len(records), source or "<stream>")
    return records


def _parse_fields(fields: list[str], lineno: int, source: str) -> PackageRecord:
    name = fields[_NAME]
    if len(fields) < MIN_FIELDS:
        raise ParseError(
            f"line {lineno}: expected {MIN_FIELDS} fields, got {len(fields)}",
            field="fields",
            package=name,
            raw=" ".join(fields),
            source=source,
        )

    uid_text = fields[_UID]
    try:
        owner_id = parse_uint32(uid_text)
    except ValueError as e:
        raise ParseError(
            f"Cannot parse UID <{uid_text}>: {e}",
            field="ownerId",
            package=name,
            raw=uid_text,
            source=source,
        ) from e

    return PackageRecord(
        name=name,
        owner_id=owner_id,
        group_ids=_parse_group_ids(fields[_GIDS], name, source),
        data_path=fields[_DATA_PATH],
        security_label=fields[_SEINFO],
    )


def _parse_group_ids(text: str, name: str, source: str) -> tuple[int, ...]:
    if text == NO_GROUPS:
        return ()

    gids = []
    for gid_text in text.split(","):
        try:
            gids.append(parse_uint32(gid_text))
        except ValueError as e:
            raise ParseError(
                f"Cannot parse GID <{gid_text}>: {e}",
                field="groupIds",
                package=name,
                raw=gid_text,
                source=source,
            ) from e
    return tuple(gids)
