"""
RuntimeManager — guarded lifecycle operations for one runtime kind.

Install, update, remove, set-default and sync share a single-flight
guard: while one of them runs, any other mutating call on the same kind
fails immediately with ``AnotherOperationInProgress``.  Different kinds
have their own managers and never block each other.

Progress is reported as a fraction in ``[0, 1]`` through an optional
callback, stored in ``OperationState.progress`` for polling, and
published as ``runtime:progress`` events.

PHP settings edits (``update_settings``) take the same guard.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.php_config import PHPSettings
from runtimectl.core.models.version import VersionRecord
from runtimectl.core.persistence.audit import AuditEntry, AuditWriter
from runtimectl.core.persistence.version_store import VersionStore
from runtimectl.core.services.event_bus import EventBus, bus
from runtimectl.core.services.runtime import php_ini
from runtimectl.core.services.runtime.archive import ArchiveService
from runtimectl.core.services.runtime.catalog import MetadataCatalogClient
from runtimectl.core.services.runtime.errors import (
    AlreadyInstalled,
    AnotherOperationInProgress,
    CannotRemoveDefaultVersion,
    CannotRemoveLastVersion,
    ConfigFileError,
    ConfigNotSupported,
    InvalidSetting,
    MetadataUnavailable,
    NoUpdateAvailable,
    ScanFailed,
    VersionNotAvailable,
    VersionNotInstalled,
)
from runtimectl.core.services.runtime.probe import FilesystemProbe
from runtimectl.core.services.runtime.reconcile import Reconciler, ReconcileReport
from runtimectl.core.services.runtime.versions import is_newer, parse_version

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

CATALOG_ERROR_MESSAGE = "Unable to check for updates"


@dataclass
class OperationState:
    """In-flight operations of one kind.

    Only the owning manager mutates this, always under its lock.
    """

    installing: set[str] = field(default_factory=set)
    updating: set[str] = field(default_factory=set)
    removing: set[str] = field(default_factory=set)
    progress: dict[str, float] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    # set_default / sync, which are not tied to one in-flight major
    exclusive: str | None = None

    @property
    def busy(self) -> bool:
        return bool(self.installing or self.updating or self.removing or self.exclusive)

    def _bucket(self, operation: str) -> set[str] | None:
        return {
            "install": self.installing,
            "update": self.updating,
            "remove": self.removing,
        }.get(operation)

    def start(self, operation: str, major: str | None) -> None:
        bucket = self._bucket(operation)
        if bucket is not None and major is not None:
            bucket.add(major)
        else:
            self.exclusive = operation
        if major is not None:
            self.errors.pop(major, None)

    def finish(self, operation: str, major: str | None) -> None:
        bucket = self._bucket(operation)
        if bucket is not None and major is not None:
            bucket.discard(major)
            self.progress.pop(major, None)
        else:
            self.exclusive = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "busy": self.busy,
            "installing": sorted(self.installing),
            "updating": sorted(self.updating),
            "removing": sorted(self.removing),
            "exclusive": self.exclusive,
            "progress": dict(self.progress),
            "errors": dict(self.errors),
        }


class RuntimeManager:
    """Lifecycle operations and reconciliation for one runtime kind.

    Args:
        probe: Filesystem probe of the kind.
        store: Shared record store (also the dependent-entity store).
        catalog_client: Remote metadata client.
        archives: Download and extraction service.
        events: Event bus for collaborator notifications.
        audit: Optional audit ledger.
    """

    def __init__(
        self,
        probe: FilesystemProbe,
        store: VersionStore,
        catalog_client: MetadataCatalogClient,
        archives: ArchiveService,
        *,
        events: EventBus | None = None,
        audit: AuditWriter | None = None,
    ) -> None:
        self.kind = probe.kind
        self.probe = probe
        self._store = store
        self._catalog_client = catalog_client
        self._archives = archives
        self._events = events or bus
        self._audit = audit

        self._lock = threading.Lock()
        self._state = OperationState()

        self._catalog_lock = threading.Lock()
        self._catalog: dict[str, RemoteMetadataEntry] = {}
        self.catalog_error: str | None = None

    # ── Read side ───────────────────────────────────────────────

    @property
    def label(self) -> str:
        return self.kind.display_name

    @property
    def catalog(self) -> Mapping[str, RemoteMetadataEntry]:
        return self._catalog

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._state.busy

    def operations(self) -> dict[str, Any]:
        """Snapshot of the in-flight state, safe to serialize."""
        with self._lock:
            return self._state.to_dict()

    def records(self) -> list[VersionRecord]:
        return self._store.records(self.kind.name)

    def default_major(self) -> str | None:
        record = self._store.default(self.kind.name)
        return record.major if record else None

    def available_updates(self) -> dict[str, str]:
        """Installed majors whose catalog release is newer: major → latest."""
        updates: dict[str, str] = {}
        for record in self.records():
            entry = self._catalog.get(record.major)
            if entry is not None and is_newer(entry.latest, record.full_version):
                updates[record.major] = entry.latest
        return updates

    def snapshot(self) -> dict[str, Any]:
        """Everything a UI needs to render this kind."""
        installed = {r.major for r in self.records()}
        return {
            "kind": self.kind.name,
            "display_name": self.label,
            "default": self.default_major(),
            "pointer": self.probe.detect_default_pointer(),
            "records": [r.model_dump(mode="json") for r in self.records()],
            "operations": self.operations(),
            "catalog": {
                major: {
                    "latest": entry.latest,
                    "is_lts": entry.is_lts,
                    "is_eol": entry.is_eol,
                    "installed": major in installed,
                }
                for major, entry in sorted(self._catalog.items(), key=lambda kv: parse_version(kv[0]))
            },
            "catalog_error": self.catalog_error,
            "updates": self.available_updates(),
        }

    # ── Catalog ─────────────────────────────────────────────────

    def refresh(self) -> bool:
        """Fetch the remote catalog. Never raises.

        On failure the previous catalog is kept and ``catalog_error``
        is set.  A refresh already in progress is not repeated.

        Returns:
            True if the catalog was refreshed.
        """
        if not self._catalog_lock.acquire(blocking=False):
            return False
        try:
            self._catalog = self._catalog_client.fetch(self.kind)
            self.catalog_error = None
            return True
        except MetadataUnavailable as e:
            logger.warning("%s catalog unavailable: %s", self.label, e)
            self.catalog_error = CATALOG_ERROR_MESSAGE
            return False
        finally:
            self._catalog_lock.release()

    def _catalog_entry(self, major: str) -> RemoteMetadataEntry:
        if not self._catalog:
            self.refresh()
        if not self._catalog and self.catalog_error:
            raise MetadataUnavailable(self.label, self.catalog_error)
        entry = self._catalog.get(major)
        if entry is None:
            raise VersionNotAvailable(self.label, major)
        return entry

    # ── Guard ───────────────────────────────────────────────────

    @contextmanager
    def _guard(self, operation: str, major: str | None) -> Iterator[AuditEntry]:
        """Single-flight guard with error recording and audit.

        Raises AnotherOperationInProgress before touching any state when
        another operation of this kind is running.
        """
        with self._lock:
            if self._state.busy:
                raise AnotherOperationInProgress(self.label)
            self._state.start(operation, major)

        entry = AuditEntry(operation_type=operation, kind=self.kind.name, major=major or "")
        started = time.monotonic()
        try:
            yield entry
            entry.status = "ok"
        except Exception as e:
            entry.status = "failed"
            entry.errors.append(str(e))
            if major is not None:
                with self._lock:
                    self._state.errors[major] = str(e)
            logger.error("%s %s %s failed: %s", self.label, operation, major or "", e)
            raise
        finally:
            with self._lock:
                self._state.finish(operation, major)
            entry.duration_ms = int((time.monotonic() - started) * 1000)
            if self._audit is not None:
                self._audit.write(entry)

    def _reporter(self, major: str, callback: ProgressCallback | None) -> ProgressCallback:
        def report(value: float) -> None:
            with self._lock:
                self._state.progress[major] = value
            self._events.publish(
                "runtime:progress",
                key=self._key(major),
                data={"kind": self.kind.name, "major": major, "progress": round(value, 3)},
            )
            if callback is not None:
                callback(value)

        return report

    # ── Operations ──────────────────────────────────────────────

    def install(self, major: str, progress: ProgressCallback | None = None) -> VersionRecord:
        """Download and install a new major.

        The first installed major becomes the default.

        Raises:
            AnotherOperationInProgress, VersionNotAvailable, AlreadyInstalled,
            MetadataUnavailable, DownloadFailed, ChecksumMismatch,
            ExtractionFailed, IntegrityError.
        """
        with self._guard("install", major) as audit:
            report = self._reporter(major, progress)

            entry = self._catalog_entry(major)
            report(0.05)

            existing = self._store.find(self.kind.name, major)
            if existing is not None:
                raise AlreadyInstalled(self.label, existing.full_version)
            report(0.10)

            if self.probe.has_valid_binary(major):
                logger.info("%s %s already on disk, skipping download", self.label, major)
            else:
                archive = self._archives.download(
                    f"{self.label} {major}",
                    entry,
                    lambda p: report(0.10 + p * 0.30),
                )
                self.probe.install_archive(major, archive, self._archives)
                report(0.70)

            self.probe.ensure_config_files(major)
            report(0.80)

            full_version = self.probe.extract_version(self.probe.binary_path(major))
            is_default = not self.records()
            record = self._store.add(self.kind.name, major, full_version, is_default=is_default)
            report(0.90)

            if is_default:
                self.probe.update_default_pointer(major)
                self.probe.install_wrappers()
            self._store.save()
            self._publish_shell_refresh()
            report(0.95)

            self._events.publish(
                "runtime:installed",
                key=self._key(major),
                data={"kind": self.kind.name, "major": major, "version": full_version, "default": is_default},
            )
            audit.context = {"version": full_version, "default": is_default}
            report(1.0)
            logger.info("Installed %s %s", self.label, full_version)
            return record

    def update(self, major: str, progress: ProgressCallback | None = None) -> VersionRecord:
        """Replace an installed major with the catalog's latest release.

        Raises:
            AnotherOperationInProgress, VersionNotInstalled,
            VersionNotAvailable, NoUpdateAvailable, InstallError,
            IntegrityError.
        """
        with self._guard("update", major) as audit:
            report = self._reporter(major, progress)

            record = self._store.find(self.kind.name, major)
            if record is None:
                raise VersionNotInstalled(self.label, major)
            report(0.05)

            entry = self._catalog_entry(major)
            if entry.latest == record.full_version:
                raise NoUpdateAvailable(self.label, major)
            previous = record.full_version
            report(0.20)

            archive = self._archives.download(
                f"{self.label} {entry.latest}",
                entry,
                lambda p: report(0.20 + p * 0.30),
            )
            self.probe.delete_installation(major)
            self.probe.install_archive(major, archive, self._archives)
            report(0.85)

            record.full_version = self.probe.extract_version(self.probe.binary_path(major))
            report(0.90)

            if record.is_default:
                self.probe.update_default_pointer(major)
            self._store.save()
            self._publish_shell_refresh()
            report(0.95)

            self._events.publish(
                "runtime:updated",
                key=self._key(major),
                data={
                    "kind": self.kind.name,
                    "major": major,
                    "previous": previous,
                    "version": record.full_version,
                    "restart": True,
                },
            )
            audit.context = {"previous": previous, "version": record.full_version}
            report(1.0)
            logger.info("Updated %s %s → %s", self.label, previous, record.full_version)
            return record

    def remove(self, major: str) -> None:
        """Uninstall a non-default major.

        Projects pinned to it fall back to the default.

        Raises:
            AnotherOperationInProgress, CannotRemoveLastVersion,
            VersionNotInstalled, CannotRemoveDefaultVersion.
        """
        kind = self.kind.name
        with self._guard("remove", major) as audit:
            records = self.records()
            if len(records) == 1:
                raise CannotRemoveLastVersion(self.label)
            targets = [r for r in records if r.major == major]
            if not targets:
                raise VersionNotInstalled(self.label, major)
            if any(r.is_default for r in targets):
                raise CannotRemoveDefaultVersion(self.label)

            affected = self._store.entities_using(kind, major)
            for entity in affected:
                self._store.clear_reference(kind, entity)
            if affected:
                logger.info("Unpinned %d project(s) from %s %s", len(affected), self.label, major)
                self._store.save()

            self._events.publish(
                "runtime:removing",
                key=self._key(major),
                data={"kind": kind, "major": major, "stop": True},
            )
            self.probe.delete_installation(major)
            self.probe.delete_config_directory(major)

            for record in targets:
                self._store.delete(kind, record)
            if not self.records():
                self.probe.remove_wrappers()
            self._store.save()
            self._publish_shell_refresh()

            self._events.publish("runtime:removed", key=self._key(major), data={"kind": kind, "major": major})
            if affected:
                self._events.publish("proxy:reconcile", key=kind, data={"kind": kind, "entities": affected})
            audit.context = {"unpinned": affected}
            logger.info("Removed %s %s", self.label, major)

    def set_default(self, major: str) -> None:
        """Make ``major`` the default.

        Raises:
            AnotherOperationInProgress, VersionNotInstalled.
        """
        kind = self.kind.name
        with self._guard("set_default", major) as audit:
            records = self.records()
            if not any(r.major == major for r in records):
                raise VersionNotInstalled(self.label, major)

            previous = self.default_major()
            for record in records:
                record.is_default = record.major == major
            self.probe.update_default_pointer(major)
            self._store.save()

            self._events.publish(
                "runtime:default_changed",
                key=kind,
                data={"kind": kind, "major": major, "previous": previous},
            )
            self._events.publish("proxy:reconcile", key=kind, data={"kind": kind})
            audit.context = {"previous": previous}

    def sync(self, *, bootstrap: bool = False) -> ReconcileReport:
        """Run one guarded reconciliation pass.

        Args:
            bootstrap: Install the bundled copy first when nothing is on disk.

        Raises:
            AnotherOperationInProgress, ScanFailed, NoRuntimeAvailable.
        """
        with self._guard("sync", None) as audit:
            reconciler = Reconciler(self.probe, self._store, self._catalog, self._archives)
            if bootstrap:
                reconciler.ensure_bundled()
            report = reconciler.run()

            kind = self.kind.name
            self._events.publish("runtime:reconciled", key=kind, data=report.to_dict())
            self._publish_shell_refresh()
            audit.context = report.to_dict()
            audit.errors.extend(report.errors)
            return report

    def initialize(self) -> ReconcileReport | None:
        """Start-up sequence: catalog refresh, bootstrap, reconciliation.

        A scan failure is logged and leaves the stale state in place.

        Raises:
            NoRuntimeAvailable: A required kind has nothing installed
                and no bundled copy.
        """
        self.refresh()
        try:
            return self.sync(bootstrap=True)
        except ScanFailed as e:
            logger.error("Skipping %s reconciliation: %s", self.label, e)
            return None

    # ── Configuration ───────────────────────────────────────────

    def _settings_path(self, major: str) -> Path:
        if not self.kind.settings_file:
            raise ConfigNotSupported(self.label)
        if not any(r.major == major for r in self.records()):
            raise VersionNotInstalled(self.label, major)
        try:
            self.probe.ensure_config_files(major)
        except OSError as e:
            raise ConfigFileError(self.probe.paths.config_dir(self.kind, major), e.strerror or str(e)) from e
        return self.probe.paths.config_dir(self.kind, major) / self.kind.settings_file

    def read_settings(self, major: str) -> PHPSettings:
        """Managed php.ini values of an installed major.

        Raises:
            ConfigNotSupported, VersionNotInstalled, ConfigFileError.
        """
        path = self._settings_path(major)
        try:
            return php_ini.read_settings(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigFileError(path, getattr(e, "strerror", None) or str(e)) from e

    def update_settings(
        self,
        major: str,
        *,
        memory_limit: int | None = None,
        upload_max_filesize: int | None = None,
    ) -> list[str]:
        """Rewrite the managed directives of an installed major's php.ini.

        Unset arguments keep their current value. The CA directives are
        always pointed at the shared bundle when one exists.

        Returns:
            Names of the directives that changed.

        Raises:
            AnotherOperationInProgress, ConfigNotSupported,
            VersionNotInstalled, InvalidSetting, ConfigFileError.
        """
        kind = self.kind.name
        with self._guard("configure", major) as audit:
            current = self.read_settings(major)
            values = current.model_dump()
            if memory_limit is not None:
                values["memory_limit"] = memory_limit
            if upload_max_filesize is not None:
                values["upload_max_filesize"] = upload_max_filesize
            try:
                settings = PHPSettings(**values)
            except ValidationError as e:
                error = e.errors()[0]
                raise InvalidSetting(str(error["loc"][0]), error["msg"]) from e

            path = self._settings_path(major)
            try:
                settings.ca_bundle = php_ini.ensure_ca_bundle(self.probe.paths) or current.ca_bundle
                changed = php_ini.write_settings(path, settings)
            except (OSError, UnicodeDecodeError) as e:
                raise ConfigFileError(path, getattr(e, "strerror", None) or str(e)) from e

            if changed:
                self._events.publish(
                    "runtime:config_changed",
                    key=self._key(major),
                    data={"kind": kind, "major": major, "changed": changed, "restart": True},
                )
            audit.context = {"changed": changed}
            return changed

    # ── Helpers ─────────────────────────────────────────────────

    def _key(self, major: str) -> str:
        return f"{self.kind.name}:{major}"

    def _publish_shell_refresh(self) -> None:
        self._events.publish(
            "shell:refresh",
            key=self.kind.name,
            data={"kind": self.kind.name, "installed": [r.major for r in self.records()]},
        )
