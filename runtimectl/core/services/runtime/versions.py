"""
Numeric version comparison.

Versions are compared component by component as integers, so
``8.3.10`` sorts above ``8.3.9``.  Non-numeric noise (``-rc1``) is
ignored.
"""

from __future__ import annotations

import re


def parse_version(version: str) -> tuple[int, ...]:
    """Parse ``"8.3.12"`` into ``(8, 3, 12)``. Empty tuple if no digits."""
    return tuple(int(part) for part in re.findall(r"\d+", version))


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is lower, equal or higher than ``b``."""
    pa, pb = parse_version(a), parse_version(b)
    width = max(len(pa), len(pb))
    pa += (0,) * (width - len(pa))
    pb += (0,) * (width - len(pb))
    return (pa > pb) - (pa < pb)


def is_newer(candidate: str, current: str) -> bool:
    """True if ``candidate`` is strictly newer than ``current``."""
    return compare_versions(candidate, current) > 0
