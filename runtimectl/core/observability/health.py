"""
Health checker — aggregate runtime health from components.

Reports per-kind drift (records vs disk vs pointer) and the catalog
circuit breakers.  Used by the CLI ``health`` command and
``GET /api/health``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from runtimectl.core.reliability.circuit_breaker import CircuitBreakerRegistry, CircuitState

if TYPE_CHECKING:
    from runtimectl.core.services.runtime.manager import RuntimeManager
    from runtimectl.core.services.runtime.registry import RuntimeRegistry

logger = logging.getLogger(__name__)


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the entire system."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_runtime(manager: RuntimeManager) -> ComponentHealth:
    """Compare one kind's records with the disk and the pointer.

    Read-only: drift is reported, never repaired (that is ``sync``).
    """
    kind = manager.kind
    records = manager.records()
    name = f"runtime:{kind.name}"

    if not records:
        return ComponentHealth(
            name=name,
            status="unhealthy" if kind.required else "healthy",
            message=f"No {kind.display_name} version installed",
        )

    problems: list[str] = []
    defaults = [r.major for r in records if r.is_default]
    if len(defaults) != 1:
        problems.append(f"{len(defaults)} default records")

    pointer = manager.probe.detect_default_pointer()
    if defaults and pointer != defaults[0]:
        problems.append(f"pointer names {pointer or 'nothing'}, default is {defaults[0]}")

    missing = [
        r.major for r in records
        if not manager.probe.binary_path(r.major).exists()
    ]
    if missing:
        problems.append(f"missing binaries: {', '.join(missing)}")

    details = {
        "records": [r.major for r in records],
        "default": defaults[0] if defaults else None,
        "pointer": pointer,
        "missing": missing,
        "updates": manager.available_updates(),
    }
    if problems:
        return ComponentHealth(name=name, status="degraded", message="; ".join(problems), details=details)

    return ComponentHealth(
        name=name,
        status="healthy",
        message=f"{len(records)} version(s), default {defaults[0]}",
        details=details,
    )


def check_circuit_breakers(registry: CircuitBreakerRegistry) -> ComponentHealth:
    """Check the catalog circuit breakers."""
    if not registry.breakers:
        return ComponentHealth(
            name="circuit_breakers",
            status="healthy",
            message="No circuit breakers registered",
        )

    open_count = sum(1 for cb in registry.breakers.values() if cb.state == CircuitState.OPEN)
    half_open_count = sum(1 for cb in registry.breakers.values() if cb.state == CircuitState.HALF_OPEN)
    total = len(registry.breakers)

    # An unreachable catalog only blocks installs and updates
    if open_count > 0:
        status = "degraded"
        message = f"{open_count}/{total} catalog circuits open"
    elif half_open_count > 0:
        status = "degraded"
        message = f"{half_open_count}/{total} catalog circuits half-open"
    else:
        status = "healthy"
        message = f"All {total} catalog circuits closed"

    return ComponentHealth(
        name="circuit_breakers",
        status=status,
        message=message,
        details=registry.get_status(),
    )


def check_system_health(registry: RuntimeRegistry) -> SystemHealth:
    """Run all health checks and return aggregate status."""
    health = SystemHealth()
    for manager in registry:
        health.add(check_runtime(manager))
    health.add(check_circuit_breakers(registry.breakers))
    return health
