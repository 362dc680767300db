"""
StoreState — the persisted record set.

Serialized to ``<data>/state/versions.json``.  Records are kept as a
list per kind (not a map keyed by major): duplicates can show up when
state is copied between machines and are healed by reconciliation.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from runtimectl.core.models.version import VersionRecord


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StoreState(BaseModel):
    """Root persisted document for all runtime kinds."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Records ──────────────────────────────────────────────────
    next_seq: int = 1
    runtimes: dict[str, list[VersionRecord]] = Field(default_factory=dict)

    # ── Dependent entities ───────────────────────────────────────
    # project directory → {kind: major}
    pins: dict[str, dict[str, str]] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()
