"""Registry — the queryable, self-refreshing package index.

The registry provides:
- Merging: reconcile packages.xml and packages.list into one record set
- Indexing: immutable snapshots keyed by name and by owner id
- Refreshing: rebuild on manifest change, keep the last good snapshot on failure
"""
