"""
Circuit breaker — stop hammering a metadata host that keeps failing.

States:
    CLOSED    → Normal operation. Failures counted.
    OPEN      → Catalog fetches rejected. Timer running.
    HALF_OPEN → One probe fetch allowed to test recovery.

Transitions:
    CLOSED → OPEN:      failure_count >= threshold
    OPEN → HALF_OPEN:   recovery_timeout elapsed
    HALF_OPEN → CLOSED: probe succeeds
    HALF_OPEN → OPEN:   probe fails
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-host circuit breaker.

    Args:
        name: Identifier (the catalog host).
        failure_threshold: Consecutive failures before opening the circuit.
        recovery_timeout: Seconds before a probe fetch is let through.
        success_threshold: Consecutive successes needed to close from half-open.
    """

    name: str
    failure_threshold: int = 3
    recovery_timeout: float = 60.0
    success_threshold: int = 1

    # ── Internal state ───────────────────────────────────────────
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float = 0.0
    last_state_change: float = field(default_factory=time.monotonic)
    total_rejections: int = 0

    def allow_request(self) -> bool:
        """True if a fetch may proceed, False if the circuit rejects it."""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            elapsed = time.monotonic() - self.last_failure_time
            if elapsed >= self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                return True
            self.total_rejections += 1
            return False

        return True  # HALF_OPEN: let the probe through

    def record_success(self) -> None:
        """Record a successful fetch."""
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def record_failure(self) -> None:
        """Record a failed fetch."""
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.HALF_OPEN:
            self.success_count = 0
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED:
            self.failure_count += 1
            if self.failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force-reset the circuit breaker to closed state."""
        self._transition(CircuitState.CLOSED)
        self.total_rejections = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "total_rejections": self.total_rejections,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    def _transition(self, new_state: CircuitState) -> None:
        old = self.state
        self.state = new_state
        self.last_state_change = time.monotonic()
        if new_state == CircuitState.CLOSED:
            self.failure_count = 0
            self.success_count = 0
        elif new_state == CircuitState.HALF_OPEN:
            self.success_count = 0
        logger.info("Circuit breaker '%s': %s → %s", self.name, old.value, new_state.value)


@dataclass
class CircuitBreakerRegistry:
    """One breaker per catalog host, shared by every runtime kind."""

    breakers: dict[str, CircuitBreaker] = field(default_factory=dict)
    default_threshold: int = 3
    default_timeout: float = 60.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get_or_create(self, name: str) -> CircuitBreaker:
        """Get or create the breaker for a host."""
        with self._lock:
            if name not in self.breakers:
                self.breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=self.default_threshold,
                    recovery_timeout=self.default_timeout,
                )
            return self.breakers[name]

    def get_status(self) -> dict[str, dict[str, Any]]:
        return {name: cb.to_dict() for name, cb in self.breakers.items()}
