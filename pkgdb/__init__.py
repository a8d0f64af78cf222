"""pkgdb — unified registry of installed Android packages.

Reconciles ``packages.xml`` and ``packages.list`` into one queryable,
self-refreshing index keyed by package name and by owner uid.
"""

__version__ = "0.1.0"
