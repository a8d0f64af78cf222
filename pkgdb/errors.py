"""Error types raised while reading and indexing package manifests."""

from __future__ import annotations


class PackageDBError(Exception):
    """Base class for every pkgdb failure."""


class ManifestIOError(PackageDBError, OSError):
    """A manifest file could not be opened or read."""

    def __init__(self, path: str, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"Cannot read manifest {self.path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ParseError(PackageDBError, ValueError):
    """A manifest field does not match its expected grammar.

    Carries enough context to diagnose the problem without re-reading the
    file: the offending field, the package it belongs to, and the raw text.
    The underlying conversion error, if any, is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str = "",
        package: str = "",
        raw: str | None = None,
        source: str = "",
    ):
        self.field = field
        self.package = package
        self.raw = raw
        self.source = str(source) if source else ""
        super().__init__(message)

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(self.source)
        if self.package:
            parts.append(self.package)
        prefix = ": ".join(parts)
        message = super().__str__()
        return f"{prefix}: {message}" if prefix else message


class CertificateError(ParseError):
    """Signing certificate could not be hex-decoded or DER-parsed."""


class DuplicatePackageError(ParseError):
    """The same package name appeared more than once in one build."""
