"""
Runtime version management — probe, catalog, archives, reconciliation
and the guarded lifecycle operations built on them.

    from runtimectl.core.services.runtime import build_registry
    registry = build_registry(load_settings())
    registry.get("php").install("8.4")
"""

from runtimectl.core.services.runtime.manager import OperationState, RuntimeManager
from runtimectl.core.services.runtime.reconcile import Reconciler, ReconcileReport
from runtimectl.core.services.runtime.registry import RuntimeRegistry, build_registry

__all__ = [
    "OperationState",
    "ReconcileReport",
    "Reconciler",
    "RuntimeManager",
    "RuntimeRegistry",
    "build_registry",
]
