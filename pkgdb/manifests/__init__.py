"""Manifest parsers — the two on-disk package databases.

- ``packages.list``: line-oriented, one package per line
- ``packages.xml``: hierarchical, carries install paths and signing certs
"""
