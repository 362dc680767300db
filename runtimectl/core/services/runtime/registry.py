"""
RuntimeRegistry — one RuntimeManager per configured kind.

``build_registry`` wires everything from Settings: paths, the shared
version store, the audit ledger, one circuit breaker per catalog host,
and the archive service.  Entry points (CLI, web server) call it once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from runtimectl.core.config.loader import ConfigError, Settings
from runtimectl.core.config.paths import RuntimePaths
from runtimectl.core.persistence.audit import AuditWriter
from runtimectl.core.persistence.version_store import VersionStore
from runtimectl.core.reliability.circuit_breaker import CircuitBreakerRegistry
from runtimectl.core.services.event_bus import EventBus, bus
from runtimectl.core.services.runtime.archive import ArchiveService
from runtimectl.core.services.runtime.catalog import MetadataCatalogClient
from runtimectl.core.services.runtime.kinds import get_kind
from runtimectl.core.services.runtime.manager import RuntimeManager
from runtimectl.core.services.runtime.probe import FilesystemProbe

logger = logging.getLogger(__name__)


class RuntimeRegistry:
    """Managers keyed by kind name, in configuration order."""

    def __init__(
        self,
        managers: dict[str, RuntimeManager],
        *,
        paths: RuntimePaths,
        store: VersionStore,
        breakers: CircuitBreakerRegistry,
        audit: AuditWriter | None = None,
    ) -> None:
        self._managers = managers
        self.paths = paths
        self.store = store
        self.breakers = breakers
        self.audit = audit

    def get(self, kind: str) -> RuntimeManager:
        """Manager for ``kind``.

        Raises:
            KeyError: If the kind is not configured.
        """
        try:
            return self._managers[kind]
        except KeyError:
            raise KeyError(f"Runtime kind {kind!r} is not configured") from None

    def kinds(self) -> list[str]:
        return list(self._managers)

    def __iter__(self) -> Iterator[RuntimeManager]:
        return iter(self._managers.values())

    def __contains__(self, kind: object) -> bool:
        return kind in self._managers


def build_registry(settings: Settings, *, events: EventBus | None = None) -> RuntimeRegistry:
    """Create the managers for every configured kind.

    Raises:
        ConfigError: If a configured kind is unknown.
    """
    paths = RuntimePaths(data_dir=settings.data_dir, bundled_dir=settings.resolved_bundled_dir)
    store = VersionStore(paths.state_file)
    audit = AuditWriter(paths.audit_file)
    breakers = CircuitBreakerRegistry()
    archives = ArchiveService(settings.binaries_base_url, paths.cache_dir, timeout=settings.http_timeout)

    catalog_client = MetadataCatalogClient(settings.metadata_base_url, timeout=settings.http_timeout)
    catalog_client.breaker = breakers.get_or_create(catalog_client.host)

    managers: dict[str, RuntimeManager] = {}
    for name in settings.kinds:
        try:
            kind = get_kind(name)
        except KeyError as e:
            raise ConfigError(str(e.args[0])) from e
        probe = FilesystemProbe(kind, paths, version_timeout=settings.version_timeout)
        managers[name] = RuntimeManager(
            probe,
            store,
            catalog_client,
            archives,
            events=events or bus,
            audit=audit,
        )

    logger.debug("Runtime registry: %s (data_dir=%s)", ", ".join(managers), paths.data_dir)
    return RuntimeRegistry(managers, paths=paths, store=store, breakers=breakers, audit=audit)
