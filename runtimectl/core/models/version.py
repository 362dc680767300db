"""
VersionRecord — one known installed major of a runtime kind.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class VersionRecord(BaseModel):
    """A persisted record of an installed major.

    ``seq`` is assigned by the store on insertion and never reused; it
    orders records deterministically when two are otherwise equal.
    """

    major: str
    full_version: str = ""
    is_default: bool = False
    seq: int = 0
    installed_at: str = Field(default_factory=_now_iso)
