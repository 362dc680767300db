"""
Filesystem probe — what is actually on disk for one runtime kind.

The probe is the only component that touches the bin directory, the
unpacked trees and the per-major config directories.  Reads never
raise for "not there"; deletions are idempotent.

Files layout (PHP)::

    bin/php83, bin/php83-fpm            versioned binaries
    bin/php.default → php83             default pointer
    bin/php-fpm.default → php83-fpm
    bin/php                             wrapper script

Tree layout (Node.js)::

    runtimes/node/22/bin/node           unpacked release
    bin/node22 → .../runtimes/node/22/bin/node
    bin/node.default → node22
    bin/node, bin/npm, bin/npx          wrapper scripts
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from runtimectl.core.config.paths import RuntimePaths
from runtimectl.core.models.kind import RuntimeKind
from runtimectl.core.models.pointer import DefaultPointer
from runtimectl.core.services.runtime import artifacts, php_ini
from runtimectl.core.services.runtime.errors import (
    BinaryNotExecutable,
    BundledBinaryNotFound,
    ExtractionFailed,
    IntegrityError,
    ScanFailed,
    VersionExtractionFailed,
    VersionParsingFailed,
)
from runtimectl.core.services.runtime.subprocess_runner import run_command

if TYPE_CHECKING:
    from runtimectl.core.services.runtime.archive import ArchiveService

logger = logging.getLogger(__name__)

_EXECUTABLE = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def _remove_path(path: Path) -> bool:
    """Remove a file, symlink or directory tree. True if something was removed."""
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


class FilesystemProbe:
    """Disk state of one runtime kind.

    Args:
        kind: The runtime kind.
        paths: Resolved data directory layout.
        version_timeout: Seconds allowed for ``<binary> --version``.
    """

    def __init__(self, kind: RuntimeKind, paths: RuntimePaths, version_timeout: float = 10) -> None:
        self.kind = kind
        self.paths = paths
        self._version_timeout = version_timeout

    # ── Scanning ────────────────────────────────────────────────

    def scan_installed(self) -> dict[str, Path]:
        """Versioned binaries in the bin directory, keyed by major.

        Every canonical versioned name is returned, even dangling
        links and non-executable files; integrity is judged
        separately by ``validate_integrity``.

        Raises:
            ScanFailed: If the bin directory exists but cannot be listed.
        """
        bin_dir = self.paths.bin_dir
        if not bin_dir.is_dir():
            logger.debug("No bin directory at %s", bin_dir)
            return {}

        try:
            entries = sorted(bin_dir.iterdir())
        except OSError as e:
            raise ScanFailed(bin_dir, str(e)) from e

        found: dict[str, Path] = {}
        for entry in entries:
            major = self.kind.parse_binary_name(entry.name)
            if major is None:
                continue
            # Canonical names only: node22, never node022
            if self.kind.binary_name(major) != entry.name:
                logger.warning("Ignoring %s: not the canonical name of %s", entry, major)
                continue
            found[major] = entry
            if not _is_executable(entry):
                logger.warning("%s is present but not executable", entry)

        logger.info("Scanned %s: %d %s binaries", bin_dir, len(found), self.kind.display_name)
        return found

    def binary_path(self, major: str) -> Path:
        """Where the main binary of ``major`` lives (or would live)."""
        return self.paths.bin_dir / self.kind.binary_name(major)

    # ── Integrity ───────────────────────────────────────────────

    def extract_version(self, path: Path) -> str:
        """Run ``<binary> --version`` and parse the full version.

        Raises:
            BinaryNotExecutable: Missing or not executable.
            VersionExtractionFailed: Non-zero exit, timeout or OS error.
            VersionParsingFailed: Output does not contain a version.
        """
        if not _is_executable(path):
            raise BinaryNotExecutable(path)

        result = run_command([str(path), "--version"], timeout=self._version_timeout)
        if not result["ok"]:
            raise VersionExtractionFailed(path, result["error"])

        version = self.kind.parse_version_output(result["stdout"])
        if version is None:
            raise VersionParsingFailed(path)
        return version

    def validate_integrity(self, path: Path) -> bool:
        """True iff the binary is executable and reports a parseable version."""
        try:
            version = self.extract_version(path)
        except IntegrityError as e:
            logger.warning("Integrity check failed for %s: %s", path, e)
            return False
        logger.debug("%s reports %s", path.name, version)
        return True

    def has_valid_binary(self, major: str) -> bool:
        """True if a usable binary for ``major`` is already on disk."""
        path = self.binary_path(major)
        return (path.exists() or path.is_symlink()) and self.validate_integrity(path)

    # ── Default pointer ─────────────────────────────────────────

    def detect_default_pointer(self) -> str | None:
        """Major named by ``{kind}.default``, or None if absent or malformed.

        The target's name is parsed even when it dangles, so a default
        survives until its binary has been recovered.
        """
        link = self.paths.bin_dir / self.kind.pointer_name
        if not link.is_symlink():
            return None
        try:
            target = os.readlink(link)
        except OSError as e:
            logger.warning("Cannot read %s: %s", link, e)
            return None

        pointer = DefaultPointer.parse(self.kind, Path(target).name)
        if pointer is None:
            logger.warning("Ignoring malformed default pointer %s → %s", link, target)
            return None
        return pointer.major

    def update_default_pointer(self, major: str) -> None:
        """Point ``{kind}.default`` (and companions) at ``major``.

        Each link is swapped in with a rename so readers never see a
        missing pointer.
        """
        bin_dir = self.paths.bin_dir
        bin_dir.mkdir(parents=True, exist_ok=True)

        for link_name, target in DefaultPointer(self.kind, major).links():
            link = bin_dir / link_name
            tmp = bin_dir / f".{link_name}.tmp"
            tmp.unlink(missing_ok=True)
            tmp.symlink_to(target)
            os.replace(tmp, link)
        logger.info("Default %s is now %s", self.kind.display_name, major)

    # ── Installation ────────────────────────────────────────────

    def delete_installation(self, major: str) -> None:
        """Remove every binary (and the tree) of ``major``. Idempotent."""
        bin_dir = self.paths.bin_dir
        removed = False
        for suffix in self.kind.binary_suffixes:
            removed |= _remove_path(bin_dir / self.kind.binary_name(major, suffix))
        if self.kind.layout == "tree":
            removed |= _remove_path(self.paths.install_dir(self.kind, major))
        if removed:
            logger.info("Deleted %s %s installation", self.kind.display_name, major)

    def install_archive(self, major: str, archive: Path, extractor: ArchiveService) -> Path:
        """Unpack a downloaded release for ``major`` and return its binary.

        ``extractor`` is the archive service; it removes the archive
        when done.
        """
        if self.kind.layout == "tree":
            install_dir = self.paths.install_dir(self.kind, major)
            extractor.extract(
                archive,
                install_dir,
                strip_components=self.kind.strip_components,
            )
            self._link_tree_binary(major)
        else:
            renames = {
                member: self.kind.binary_name(major, suffix)
                for member, suffix in self.kind.archive_files.items()
            }
            extractor.extract(archive, self.paths.bin_dir, rename=renames)
        return self.binary_path(major)

    def _link_tree_binary(self, major: str) -> None:
        target = self.paths.install_dir(self.kind, major) / self.kind.tree_binary
        if not target.is_file():
            raise ExtractionFailed(f"{self.kind.tree_binary} missing from {self.kind.display_name} {major} archive")
        link = self.binary_path(major)
        link.parent.mkdir(parents=True, exist_ok=True)
        _remove_path(link)
        link.symlink_to(target)

    # ── Bundled fallback ────────────────────────────────────────

    def _bundled_binary(self) -> Path:
        source = self.paths.bundled_kind_dir(self.kind)
        if self.kind.layout == "tree":
            return source / self.kind.tree_binary
        main_member = next(m for m, s in self.kind.archive_files.items() if s == "")
        return source / main_member

    def detect_bundled_version(self) -> str | None:
        """Major of the bundled fallback copy, or None if there is none."""
        binary = self._bundled_binary()
        if not binary.exists():
            logger.debug("No bundled %s at %s", self.kind.display_name, binary)
            return None
        try:
            full_version = self.extract_version(binary)
        except IntegrityError as e:
            logger.warning("Bundled %s is unusable: %s", self.kind.display_name, e)
            return None
        return self.kind.major_of(full_version)

    def copy_bundled(self, major: str) -> Path:
        """Install the bundled fallback as ``major`` and return its binary.

        Raises:
            BundledBinaryNotFound: If a bundled file is missing.
        """
        source = self.paths.bundled_kind_dir(self.kind)
        if self.kind.layout == "tree":
            if not self._bundled_binary().is_file():
                raise BundledBinaryNotFound(self._bundled_binary())
            install_dir = self.paths.install_dir(self.kind, major)
            _remove_path(install_dir)
            shutil.copytree(source, install_dir, symlinks=True)
            self._link_tree_binary(major)
        else:
            bin_dir = self.paths.bin_dir
            bin_dir.mkdir(parents=True, exist_ok=True)
            for member, suffix in self.kind.archive_files.items():
                src = source / member
                if not src.is_file():
                    raise BundledBinaryNotFound(src)
                dest = bin_dir / self.kind.binary_name(major, suffix)
                _remove_path(dest)
                shutil.copy2(src, dest)
                dest.chmod(_EXECUTABLE)
        logger.info("Copied bundled %s %s", self.kind.display_name, major)
        return self.binary_path(major)

    # ── Config directory ────────────────────────────────────────

    def create_config_directory(self, major: str) -> Path:
        config_dir = self.paths.config_dir(self.kind, major)
        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir

    def delete_config_directory(self, major: str) -> None:
        if _remove_path(self.paths.config_dir(self.kind, major)):
            logger.info("Deleted %s %s config directory", self.kind.display_name, major)

    def ensure_config_files(self, major: str) -> list[Path]:
        """Write missing default config files for ``major``.

        Existing files are left untouched.

        Returns:
            The files that were created.
        """
        if not self.kind.config_files:
            return []

        config_dir = self.create_config_directory(major)
        created: list[Path] = []
        for file_name in self.kind.config_files:
            path = config_dir / file_name
            if path.exists():
                continue
            ca_bundle = None
            if file_name == self.kind.settings_file:
                ca_bundle = php_ini.ensure_ca_bundle(self.paths)
            path.write_text(
                artifacts.render_config(self.kind, file_name, major, self.paths, ca_bundle),
                encoding="utf-8",
            )
            created.append(path)
        if created:
            logger.info("Created %d config file(s) for %s %s", len(created), self.kind.display_name, major)
        return created

    # ── Wrappers ────────────────────────────────────────────────

    def wrappers_present(self) -> bool:
        """True if every wrapper script exists."""
        return all((self.paths.bin_dir / tool).is_file() for tool in self.kind.wrappers)

    def install_wrappers(self) -> list[Path]:
        """Write missing wrapper scripts. Existing ones are left alone."""
        bin_dir = self.paths.bin_dir
        bin_dir.mkdir(parents=True, exist_ok=True)

        created: list[Path] = []
        for tool in self.kind.wrappers:
            path = bin_dir / tool
            if path.exists():
                continue
            path.write_text(artifacts.render_wrapper(self.kind, tool), encoding="utf-8")
            path.chmod(_EXECUTABLE)
            created.append(path)
        if created:
            logger.info("Installed %s wrappers: %s", self.kind.display_name, ", ".join(p.name for p in created))
        return created

    def remove_wrappers(self) -> list[Path]:
        """Delete wrapper scripts and default pointers."""
        bin_dir = self.paths.bin_dir
        removed = [
            bin_dir / tool for tool in self.kind.wrappers if _remove_path(bin_dir / tool)
        ]
        for suffix in self.kind.binary_suffixes:
            _remove_path(bin_dir / f"{self.kind.name}{suffix}.default")
        if removed:
            logger.info("Removed %s wrappers", self.kind.display_name)
        return removed
