"""
VersionStore — the record set and project pins, backed by the state file.

One store is shared by every runtime manager.  All reads and writes go
through an ``RLock`` so a save from one kind never serializes a list
another kind is halfway through mutating.

The store also acts as the dependent-entity store: a *pin* binds a
project directory to a major of a kind.  Removal of a major only needs
``entities_using`` and ``clear_reference``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from runtimectl.core.models.state import StoreState
from runtimectl.core.models.version import VersionRecord
from runtimectl.core.persistence.state_file import load_state, save_state

logger = logging.getLogger(__name__)


class VersionStore:
    """Thread-safe access to the persisted record set."""

    def __init__(self, path: Path, state: StoreState | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._state = state if state is not None else load_state(path)

    @property
    def path(self) -> Path:
        return self._path

    # ── Records ─────────────────────────────────────────────────

    def records(self, kind: str) -> list[VersionRecord]:
        """Records of a kind, in insertion (``seq``) order.

        The returned objects are live: mutate them, then ``save()``.
        """
        with self._lock:
            return sorted(self._state.runtimes.get(kind, []), key=lambda r: r.seq)

    def find(self, kind: str, major: str) -> VersionRecord | None:
        """First record (lowest ``seq``) for a major, or None."""
        for record in self.records(kind):
            if record.major == major:
                return record
        return None

    def default(self, kind: str) -> VersionRecord | None:
        """The default record of a kind, or None."""
        for record in self.records(kind):
            if record.is_default:
                return record
        return None

    def add(
        self,
        kind: str,
        major: str,
        full_version: str,
        *,
        is_default: bool = False,
    ) -> VersionRecord:
        """Insert a new record with the next sequence number."""
        with self._lock:
            record = VersionRecord(
                major=major,
                full_version=full_version,
                is_default=is_default,
                seq=self._state.next_seq,
            )
            self._state.next_seq += 1
            self._state.runtimes.setdefault(kind, []).append(record)
        logger.debug("Record added: %s %s (%s)", kind, major, full_version)
        return record

    def delete(self, kind: str, record: VersionRecord) -> None:
        """Delete one record (matched by identity, so duplicates survive)."""
        with self._lock:
            bucket = self._state.runtimes.get(kind, [])
            self._state.runtimes[kind] = [r for r in bucket if r is not record]
        logger.debug("Record deleted: %s %s (seq=%d)", kind, record.major, record.seq)

    def save(self) -> None:
        with self._lock:
            save_state(self._state, self._path)

    # ── Pins (dependent entities) ───────────────────────────────

    def pins(self, kind: str) -> dict[str, str]:
        """Project → major for one kind."""
        with self._lock:
            return {
                entity: kinds[kind]
                for entity, kinds in sorted(self._state.pins.items())
                if kind in kinds
            }

    def pin(self, kind: str, entity: str, major: str) -> None:
        with self._lock:
            self._state.pins.setdefault(entity, {})[kind] = major

    def entities_using(self, kind: str, major: str) -> list[str]:
        """Projects pinned to ``major`` of ``kind``."""
        return [entity for entity, pinned in self.pins(kind).items() if pinned == major]

    def clear_reference(self, kind: str, entity: str) -> bool:
        """Drop a project's pin for a kind. Returns True if one existed."""
        with self._lock:
            kinds = self._state.pins.get(entity)
            if not kinds or kind not in kinds:
                return False
            del kinds[kind]
            if not kinds:
                del self._state.pins[entity]
        logger.debug("Pin cleared: %s %s", entity, kind)
        return True
