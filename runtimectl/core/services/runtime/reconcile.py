"""
Reconciler — converge the record store, the disk and the default pointer.

One pass runs five ordered stages:

    0. scan       list binaries and read the pointer (ScanFailed aborts)
    1. dedupe     one record per major: highest version, then lowest seq
    2. forward    disk → records; unusable binaries are deleted
    3. backward   records without a binary: bundled copy, then download,
                  else the record goes
    4. enforce    exactly one default, agreeing with the pointer
    5. artifacts  config files per record, wrappers iff records exist

Every stage tolerates per-item failures (logged, never fatal), so a
pass always leaves a consistent state behind and a second pass over
the same disk state changes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.version import VersionRecord
from runtimectl.core.persistence.version_store import VersionStore
from runtimectl.core.services.runtime.archive import ArchiveService
from runtimectl.core.services.runtime.errors import NoRuntimeAvailable, RuntimeCtlError
from runtimectl.core.services.runtime.probe import FilesystemProbe
from runtimectl.core.services.runtime.versions import parse_version

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """What one reconciliation pass changed."""

    kind: str
    duplicates_removed: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    default_changes: list[str] = field(default_factory=list)
    binaries_removed: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    pointer_rewrites: list[str] = field(default_factory=list)
    artifacts_created: list[str] = field(default_factory=list)
    artifacts_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        """Number of changes made to records, binaries, pointer or artifacts."""
        return sum(
            len(items)
            for items in (
                self.duplicates_removed,
                self.created,
                self.updated,
                self.default_changes,
                self.binaries_removed,
                self.recovered,
                self.deleted,
                self.pointer_rewrites,
                self.artifacts_created,
                self.artifacts_removed,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "mutations": self.mutations,
            "duplicates_removed": self.duplicates_removed,
            "created": self.created,
            "updated": self.updated,
            "default_changes": self.default_changes,
            "binaries_removed": self.binaries_removed,
            "recovered": self.recovered,
            "deleted": self.deleted,
            "pointer_rewrites": self.pointer_rewrites,
            "artifacts_created": self.artifacts_created,
            "artifacts_removed": self.artifacts_removed,
            "errors": self.errors,
        }


class Reconciler:
    """Single-pass reconciliation for one runtime kind.

    Args:
        probe: Filesystem probe of the kind.
        store: Shared record store.
        catalog: Remote metadata (may be empty when offline).
        archives: Archive service used for download recovery.
    """

    def __init__(
        self,
        probe: FilesystemProbe,
        store: VersionStore,
        catalog: Mapping[str, RemoteMetadataEntry],
        archives: ArchiveService,
    ) -> None:
        self._probe = probe
        self._kind = probe.kind
        self._store = store
        self._catalog = catalog
        self._archives = archives
        self._bundled_major: str | None = None
        self._bundled_checked = False

    # ── Entry points ────────────────────────────────────────────

    def run(self) -> ReconcileReport:
        """Run one full pass.

        Raises:
            ScanFailed: The bin directory could not be listed; nothing
                was changed.
        """
        kind = self._kind.name
        report = ReconcileReport(kind=kind)

        installed = self._probe.scan_installed()
        pointer = self._probe.detect_default_pointer()

        self._deduplicate(report)
        if report.duplicates_removed:
            self._store.save()

        valid = self._forward_pass(installed, pointer, report)
        self._recover_orphans(valid, report)
        self._enforce_default(report)
        self._sync_artifacts(report)

        if report.mutations:
            self._store.save()

        logger.info(
            "Reconciled %s: %d record(s), %d change(s)",
            self._kind.display_name, len(self._store.records(kind)), report.mutations,
        )
        return report

    def ensure_bundled(self) -> VersionRecord | None:
        """Install the bundled copy when no binary of the kind is on disk.

        Returns:
            The record of the bundled major, or None when nothing was done.

        Raises:
            NoRuntimeAvailable: The kind is required and nothing could be
                installed.
        """
        if self._probe.scan_installed():
            return None

        label = self._kind.display_name
        major = self._bundled_version()
        if major is None:
            if self._kind.required:
                raise NoRuntimeAvailable(label)
            logger.info("No %s installed and no bundled copy; skipping", label)
            return None

        try:
            binary = self._probe.copy_bundled(major)
            full_version = self._probe.extract_version(binary)
        except (RuntimeCtlError, OSError) as e:
            if self._kind.required:
                raise NoRuntimeAvailable(label, str(e)) from e
            logger.error("Cannot install bundled %s %s: %s", label, major, e)
            return None

        kind = self._kind.name
        record = self._store.find(kind, major)
        if record is None:
            has_default = any(r.is_default for r in self._store.records(kind))
            record = self._store.add(kind, major, full_version, is_default=not has_default)
        else:
            record.full_version = full_version

        if record.is_default:
            self._probe.update_default_pointer(major)
        self._probe.ensure_config_files(major)
        self._probe.install_wrappers()
        self._store.save()

        logger.info("Bootstrapped bundled %s %s", label, full_version)
        return record

    # ── Stage 1 ─────────────────────────────────────────────────

    def _deduplicate(self, report: ReconcileReport) -> None:
        kind = self._kind.name
        groups: dict[str, list[VersionRecord]] = {}
        for record in self._store.records(kind):
            groups.setdefault(record.major, []).append(record)

        for major, group in groups.items():
            if len(group) < 2:
                continue
            # records() is seq-ordered, so max() keeps the lowest seq on ties
            keeper = max(group, key=lambda r: parse_version(r.full_version))
            for record in group:
                if record is not keeper:
                    self._store.delete(kind, record)
                    report.duplicates_removed.append(major)
            logger.warning(
                "Removed %d duplicate %s %s record(s), kept %s",
                len(group) - 1, self._kind.display_name, major, keeper.full_version,
            )

    # ── Stage 2 ─────────────────────────────────────────────────

    def _forward_pass(
        self,
        installed: dict[str, Path],
        pointer: str | None,
        report: ReconcileReport,
    ) -> set[str]:
        kind = self._kind.name
        valid: set[str] = set()

        for major, path in sorted(installed.items()):
            full_version = None
            if self._probe.validate_integrity(path):
                try:
                    full_version = self._probe.extract_version(path)
                except RuntimeCtlError as e:
                    logger.warning("%s changed during the check: %s", path.name, e)

            if full_version is None:
                logger.warning(
                    "%s %s binary is unusable, deleting it for recovery",
                    self._kind.display_name, major,
                )
                try:
                    self._probe.delete_installation(major)
                except OSError as e:
                    report.errors.append(f"{major}: {e}")
                    logger.error("Cannot delete %s: %s", path, e)
                report.binaries_removed.append(major)
                continue

            valid.add(major)
            is_default = major == pointer
            record = self._store.find(kind, major)
            if record is None:
                self._store.add(kind, major, full_version, is_default=is_default)
                report.created.append(major)
                logger.info("Registered %s %s found on disk", self._kind.display_name, full_version)
                continue

            if record.full_version != full_version:
                logger.info(
                    "%s %s changed on disk: %s → %s",
                    self._kind.display_name, major, record.full_version or "?", full_version,
                )
                record.full_version = full_version
                report.updated.append(major)
            if record.is_default != is_default:
                record.is_default = is_default
                report.default_changes.append(major)

        return valid

    # ── Stage 3 ─────────────────────────────────────────────────

    def _recover_orphans(self, valid: set[str], report: ReconcileReport) -> None:
        kind = self._kind.name
        for record in self._store.records(kind):
            if record.major in valid:
                continue
            logger.warning("%s %s is recorded but missing on disk", self._kind.display_name, record.major)
            if self._recover(record, report):
                valid.add(record.major)
                continue
            logger.warning(
                "Cannot recover %s %s, dropping its record",
                self._kind.display_name, record.major,
            )
            self._store.delete(kind, record)
            report.deleted.append(record.major)

    def _recover(self, record: VersionRecord, report: ReconcileReport) -> bool:
        major = record.major
        label = f"{self._kind.display_name} {major}"
        binary = None

        if self._bundled_version() == major:
            try:
                binary = self._probe.copy_bundled(major)
                logger.info("Recovered %s from the bundled copy", label)
            except (RuntimeCtlError, OSError) as e:
                report.errors.append(f"{major}: bundled copy failed: {e}")
                logger.warning("Bundled recovery of %s failed: %s", label, e)

        entry = self._catalog.get(major)
        if binary is None and entry is not None:
            try:
                archive = self._archives.download(label, entry)
                binary = self._probe.install_archive(major, archive, self._archives)
                logger.info("Recovered %s by downloading %s", label, entry.latest)
            except (RuntimeCtlError, OSError) as e:
                report.errors.append(f"{major}: download failed: {e}")
                logger.warning("Download recovery of %s failed: %s", label, e)

        if binary is None:
            return False

        try:
            record.full_version = self._probe.extract_version(binary)
            self._probe.ensure_config_files(major)
            if record.is_default and self._probe.detect_default_pointer() in (None, major):
                self._probe.update_default_pointer(major)
        except (RuntimeCtlError, OSError) as e:
            report.errors.append(f"{major}: recovered binary unusable: {e}")
            logger.warning("Recovered %s is unusable: %s", label, e)
            return False

        report.recovered.append(major)
        return True

    def _bundled_version(self) -> str | None:
        if not self._bundled_checked:
            self._bundled_major = self._probe.detect_bundled_version()
            self._bundled_checked = True
        return self._bundled_major

    # ── Stage 4 ─────────────────────────────────────────────────

    def _enforce_default(self, report: ReconcileReport) -> None:
        records = self._store.records(self._kind.name)
        if not records:
            return

        pointer = self._probe.detect_default_pointer()
        defaults = [r for r in records if r.is_default]

        if len(defaults) == 1:
            if pointer != defaults[0].major:
                self._write_pointer(defaults[0].major, report)
            return

        chosen = records[0]
        if len(defaults) > 1:
            named = [r for r in records if r.major == pointer]
            if named:
                chosen = named[0]
            logger.warning(
                "%d default %s records, keeping %s",
                len(defaults), self._kind.display_name, chosen.major,
            )
        else:
            logger.warning("No default %s, promoting %s", self._kind.display_name, chosen.major)

        for record in records:
            is_default = record is chosen
            if record.is_default != is_default:
                record.is_default = is_default
                report.default_changes.append(record.major)
        if pointer != chosen.major:
            self._write_pointer(chosen.major, report)

    def _write_pointer(self, major: str, report: ReconcileReport) -> None:
        try:
            self._probe.update_default_pointer(major)
            report.pointer_rewrites.append(major)
        except OSError as e:
            report.errors.append(f"pointer: {e}")
            logger.error("Cannot write the default %s pointer: %s", self._kind.display_name, e)

    # ── Stage 5 ─────────────────────────────────────────────────

    def _sync_artifacts(self, report: ReconcileReport) -> None:
        records = self._store.records(self._kind.name)
        try:
            for record in records:
                for path in self._probe.ensure_config_files(record.major):
                    report.artifacts_created.append(str(path))
            if records:
                for path in self._probe.install_wrappers():
                    report.artifacts_created.append(str(path))
            else:
                for path in self._probe.remove_wrappers():
                    report.artifacts_removed.append(str(path))
        except OSError as e:
            report.errors.append(f"artifacts: {e}")
            logger.error("Cannot sync %s artifacts: %s", self._kind.display_name, e)
