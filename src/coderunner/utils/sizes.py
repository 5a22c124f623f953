"""Parse Docker-style byte sizes (``"128m"``, ``"1g"``, ``"64k"``)."""

from __future__ import annotations

import re

_UNITS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
}

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([bkmg]?)(?:i?b)?\s*$", re.IGNORECASE)


def parse_size(value: object) -> int:
    """Return *value* in bytes.

    Integers pass through unchanged.  Strings accept an optional unit suffix
    (``b``, ``k``, ``m``, ``g``, also ``kb``/``MiB`` spellings).

    Raises:
        ValueError: If *value* is not an integer or a recognised size string.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid size: {value!r} (expected an integer or a string)")
    match = _SIZE_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(number) * _UNITS[unit.lower()]


def format_size(num_bytes: int) -> str:
    """Render *num_bytes* with the largest exact binary unit."""
    for suffix, factor in (("GiB", 1024**3), ("MiB", 1024**2), ("KiB", 1024)):
        if num_bytes >= factor and num_bytes % factor == 0:
            return f"{num_bytes // factor} {suffix}"
    return f"{num_bytes} B"
