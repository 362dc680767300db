"""
Status use case — per-kind summary without touching the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from runtimectl.core.services.runtime.registry import RuntimeRegistry

logger = logging.getLogger(__name__)


@dataclass
class KindStatus:
    """Installed versions of one kind."""

    kind: str
    display_name: str
    default: str | None
    versions: list[dict[str, Any]] = field(default_factory=list)
    pinned_projects: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "display_name": self.display_name,
            "default": self.default,
            "versions": self.versions,
            "pinned_projects": self.pinned_projects,
        }


@dataclass
class StatusResult:
    """Result of a status query."""

    data_dir: Path
    kinds: list[KindStatus] = field(default_factory=list)
    last_operation: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "kinds": [k.to_dict() for k in self.kinds],
            "last_operation": self.last_operation,
        }


def get_status(registry: RuntimeRegistry) -> StatusResult:
    """Summarize every configured kind from the record store."""
    result = StatusResult(data_dir=registry.paths.data_dir)

    for manager in registry:
        kind = manager.kind.name
        result.kinds.append(
            KindStatus(
                kind=kind,
                display_name=manager.label,
                default=manager.default_major(),
                versions=[
                    {"major": r.major, "version": r.full_version, "default": r.is_default}
                    for r in manager.records()
                ],
                pinned_projects=registry.store.pins(kind),
            )
        )

    if registry.audit is not None:
        recent = registry.audit.read_recent(1)
        if recent:
            result.last_operation = recent[0].model_dump(mode="json")

    return result
