"""Unsigned 32-bit integer parsing for manifest fields."""

from __future__ import annotations

import re

UINT32_MAX = 0xFFFFFFFF

# Literal forms accepted in packages.list, mapped to their base.
_PREFIXED = re.compile(
    r"""
    (?P<hex>0[xX][0-9a-fA-F]+)
    | (?P<oct>0[oO][0-7]+)
    | (?P<bin>0[bB][01]+)
    | (?P<legacy_oct>0[0-7]*)
    | (?P<dec>[1-9][0-9]*)
    """,
    re.VERBOSE,
)

_DECIMAL = re.compile(r"[0-9]+")


def parse_uint32(text: str) -> int:
    """Parse an unsigned 32-bit literal, detecting the base from its prefix.

    Accepts decimal, ``0x`` hex, ``0o`` octal, ``0b`` binary and the C-style
    leading-zero octal (``010`` is 8). Raises ``ValueError`` otherwise.
    """
    match = _PREFIXED.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid syntax: {text!r}")

    kind = match.lastgroup
    if kind == "hex":
        value = int(text[2:], 16)
    elif kind == "oct":
        value = int(text[2:], 8)
    elif kind == "bin":
        value = int(text[2:], 2)
    elif kind == "legacy_oct":
        value = int(text, 8)
    else:
        value = int(text, 10)

    return _check_range(text, value)


def parse_decimal_uint32(text: str) -> int:
    """Parse a plain decimal unsigned 32-bit value."""
    if _DECIMAL.fullmatch(text) is None:
        raise ValueError(f"invalid syntax: {text!r}")
    return _check_range(text, int(text, 10))


def _check_range(text: str, value: int) -> int:
    if value > UINT32_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value
