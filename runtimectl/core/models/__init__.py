"""
Domain models — Pydantic types for runtimectl.

All models are re-exported here for convenient access:

    from runtimectl.core.models import RuntimeKind, VersionRecord, StoreState
"""

from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.kind import RuntimeKind
from runtimectl.core.models.php_config import PHPSettings
from runtimectl.core.models.pointer import DefaultPointer
from runtimectl.core.models.state import StoreState
from runtimectl.core.models.version import VersionRecord

__all__ = [
    "DefaultPointer",
    "PHPSettings",
    "RemoteMetadataEntry",
    "RuntimeKind",
    "StoreState",
    "VersionRecord",
]
