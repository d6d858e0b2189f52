"""
Version comparison (pure).

Dotted-numeric ordering, not string ordering: ``"9" < "10"``.
No I/O, no subprocess.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# Leading numeric part only: "1.2.3-rc1" → "1.2.3", "24.0.7+dfsg" → "24.0.7"
_NUMERIC_PREFIX = re.compile(r"^(\d+(?:\.\d+)*)")

MODES = ("min", "max", "exact")


def parse_version(version: str | None) -> tuple[int, ...] | None:
    """Parse a version string into integer segments.

    Returns:
        ``(1, 2, 3)`` for ``"v1.2.3"``, or ``None`` if the string
        has no leading numeric segment.
    """
    if not version:
        return None
    text = str(version).strip().lstrip("vV")
    match = _NUMERIC_PREFIX.match(text)
    if not match:
        return None
    return tuple(int(part) for part in match.group(1).split("."))


def _padded(a: tuple[int, ...], b: tuple[int, ...]) -> tuple[tuple[int, ...], tuple[int, ...]]:
    width = max(len(a), len(b))
    return a + (0,) * (width - len(a)), b + (0,) * (width - len(b))


def satisfies(current: str | None, required: str | None, mode: str = "min") -> bool:
    """Check ``current`` against ``required`` under ``mode``.

    Modes:
        - ``min``:   current >= required
        - ``max``:   current <= required
        - ``exact``: current == required (``"2.0" == "2.0.0"``)

    Unknown modes and unparsable versions fail closed (``False``);
    this function never raises.
    """
    if mode not in MODES:
        logger.error("Unknown version comparison mode %r — failing closed", mode)
        return False

    cur = parse_version(current)
    req = parse_version(required)
    if cur is None or req is None:
        logger.debug("Unparsable version (current=%r, required=%r)", current, required)
        return False

    cur, req = _padded(cur, req)
    if mode == "min":
        return cur >= req
    if mode == "max":
        return cur <= req
    return cur == req
