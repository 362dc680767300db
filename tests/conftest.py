"""
Shared test fixtures and configuration.

Runtime binaries are faked with tiny ``/bin/sh`` scripts that print a
version banner; release archives are real tarballs built on the fly.
The network is replaced by a fake catalog client and an archive
service whose ``download`` copies from a local releases directory.
"""

from __future__ import annotations

import hashlib
import io
import shutil
import tarfile
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from runtimectl.core.config.paths import RuntimePaths
from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.kind import RuntimeKind
from runtimectl.core.persistence.audit import AuditWriter
from runtimectl.core.persistence.version_store import VersionStore
from runtimectl.core.reliability.circuit_breaker import CircuitBreakerRegistry
from runtimectl.core.services.event_bus import EventBus
from runtimectl.core.services.runtime import php_ini
from runtimectl.core.services.runtime.archive import ArchiveService
from runtimectl.core.services.runtime.errors import MetadataUnavailable
from runtimectl.core.services.runtime.kinds import NODE, PHP
from runtimectl.core.services.runtime.manager import RuntimeManager
from runtimectl.core.services.runtime.probe import FilesystemProbe
from runtimectl.core.services.runtime.registry import RuntimeRegistry


def _script(banner: str, exit_code: int = 0) -> str:
    return f"#!/bin/sh\necho '{banner}'\nexit {exit_code}\n"


def _banner(kind: RuntimeKind, version: str) -> str:
    if kind.name == "php":
        return f"PHP {version} (cli) (built: Jan  1 2025 00:00:00) (NTS)"
    return f"v{version}"


def write_binary(path: Path, banner: str, exit_code: int = 0) -> Path:
    """Write an executable shell script printing ``banner``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_script(banner, exit_code))
    path.chmod(0o755)
    return path


def _add_file(tar: tarfile.TarFile, name: str, content: str, mode: int = 0o755) -> None:
    data = content.encode()
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


def build_release(kind: RuntimeKind, version: str, dest: Path) -> Path:
    """Build a release tarball shaped like the real ones."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        if kind.layout == "tree":
            top = f"node-v{version}-linux-x64"
            _add_file(tar, f"{top}/bin/node", _script(_banner(kind, version)))
            _add_file(tar, f"{top}/bin/npm", _script("10.9.0"))
            _add_file(tar, f"{top}/README.md", "node\n", mode=0o644)
        else:
            for member in kind.archive_files:
                _add_file(tar, member, _script(_banner(kind, version)))
    return dest


class FakeCatalogClient:
    """Catalog client serving in-memory entries."""

    def __init__(self) -> None:
        self.entries: dict[str, dict[str, RemoteMetadataEntry]] = {}
        self.fail = False
        self.calls = 0

    def fetch(self, kind: RuntimeKind) -> dict[str, RemoteMetadataEntry]:
        self.calls += 1
        if self.fail:
            raise MetadataUnavailable(kind.display_name, "offline")
        return dict(self.entries.get(kind.name, {}))


class LocalArchiveService(ArchiveService):
    """ArchiveService whose download copies from a local directory.

    ``gate`` (when set) blocks the download until released, and
    ``started`` is set as soon as a download begins.
    """

    def __init__(self, releases_dir: Path, cache_dir: Path) -> None:
        super().__init__("http://releases.invalid", cache_dir)
        self.releases_dir = releases_dir
        self.gate: threading.Event | None = None
        self.started = threading.Event()
        self.downloads: list[str] = []

    def download(self, identifier, entry, progress=None):  # type: ignore[no-untyped-def]
        self.started.set()
        self.downloads.append(entry.filename)
        if self.gate is not None:
            self.gate.wait(timeout=10)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        dest = self._cache_dir / entry.filename
        shutil.copy2(self.releases_dir / entry.filename, dest)
        if progress:
            progress(0.5)
            progress(1.0)
        return dest


class Releases:
    """Publishes fake releases to the catalog and the local archive dir."""

    def __init__(self, catalog: FakeCatalogClient, releases_dir: Path) -> None:
        self._catalog = catalog
        self._dir = releases_dir

    def publish(self, kind: RuntimeKind, version: str, *, is_lts: bool = False) -> RemoteMetadataEntry:
        major = kind.major_of(version)
        filename = f"{kind.name}-{version}.tar.gz"
        archive = build_release(kind, version, self._dir / filename)
        entry = RemoteMetadataEntry(
            latest=version,
            filename=filename,
            sha256=hashlib.sha256(archive.read_bytes()).hexdigest(),
            is_lts=is_lts,
        )
        self._catalog.entries.setdefault(kind.name, {})[major] = entry
        return entry


@pytest.fixture(autouse=True)
def no_system_ca_bundle(monkeypatch: pytest.MonkeyPatch) -> None:
    """Only a bundled cacert.pem counts; the host bundle is ignored."""
    monkeypatch.setattr(php_ini, "_system_ca_bundle", lambda: None)


@pytest.fixture
def make_binary() -> Callable[..., Path]:
    """``make_binary(path, banner, exit_code=0)`` writes a fake binary."""
    return write_binary


@pytest.fixture
def make_release() -> Callable[[RuntimeKind, str, Path], Path]:
    """``make_release(kind, version, dest)`` builds a release tarball."""
    return build_release


@pytest.fixture
def paths(tmp_path: Path) -> RuntimePaths:
    """Data and bundled directories under tmp_path."""
    return RuntimePaths(data_dir=tmp_path / "data", bundled_dir=tmp_path / "bundled")


@pytest.fixture
def store(paths: RuntimePaths) -> VersionStore:
    return VersionStore(paths.state_file)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def catalog() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def archives(tmp_path: Path, paths: RuntimePaths) -> LocalArchiveService:
    return LocalArchiveService(tmp_path / "releases", paths.cache_dir)


@pytest.fixture
def releases(catalog: FakeCatalogClient, archives: LocalArchiveService) -> Releases:
    return Releases(catalog, archives.releases_dir)


@pytest.fixture
def php_probe(paths: RuntimePaths) -> FilesystemProbe:
    return FilesystemProbe(PHP, paths)


@pytest.fixture
def node_probe(paths: RuntimePaths) -> FilesystemProbe:
    return FilesystemProbe(NODE, paths)


@pytest.fixture
def make_manager(
    paths: RuntimePaths,
    store: VersionStore,
    catalog: FakeCatalogClient,
    archives: LocalArchiveService,
    events: EventBus,
) -> Callable[[RuntimeKind], RuntimeManager]:
    """Factory building a manager wired to the fakes."""

    def _make(kind: RuntimeKind) -> RuntimeManager:
        return RuntimeManager(
            FilesystemProbe(kind, paths),
            store,
            catalog,  # type: ignore[arg-type]
            archives,
            events=events,
            audit=AuditWriter(paths.audit_file),
        )

    return _make


@pytest.fixture
def php_manager(make_manager) -> RuntimeManager:  # type: ignore[no-untyped-def]
    return make_manager(PHP)


@pytest.fixture
def node_manager(make_manager) -> RuntimeManager:  # type: ignore[no-untyped-def]
    return make_manager(NODE)


@pytest.fixture
def install_on_disk(paths: RuntimePaths):  # type: ignore[no-untyped-def]
    """Put a working binary for a version straight into bin/."""

    def _install(kind: RuntimeKind, version: str) -> Path:
        major = kind.major_of(version)
        if kind.layout == "tree":
            target = write_binary(paths.install_dir(kind, major) / kind.tree_binary, _banner(kind, version))
            link = paths.bin_dir / kind.binary_name(major)
            link.parent.mkdir(parents=True, exist_ok=True)
            link.symlink_to(target)
            return link
        for suffix in kind.binary_suffixes:
            write_binary(paths.bin_dir / kind.binary_name(major, suffix), _banner(kind, version))
        return paths.bin_dir / kind.binary_name(major)

    return _install


@pytest.fixture
def bundle(paths: RuntimePaths):  # type: ignore[no-untyped-def]
    """Provide a bundled fallback copy for a version."""

    def _bundle(kind: RuntimeKind, version: str) -> Path:
        source = paths.bundled_kind_dir(kind)
        if kind.layout == "tree":
            write_binary(source / kind.tree_binary, _banner(kind, version))
        else:
            for member in kind.archive_files:
                write_binary(source / member, _banner(kind, version))
        return source

    return _bundle


@pytest.fixture
def registry(
    paths: RuntimePaths,
    store: VersionStore,
    php_manager: RuntimeManager,
    node_manager: RuntimeManager,
) -> RuntimeRegistry:
    """PHP and Node.js managers behind the registry interface."""
    return RuntimeRegistry(
        {"php": php_manager, "node": node_manager},
        paths=paths,
        store=store,
        breakers=CircuitBreakerRegistry(),
        audit=AuditWriter(paths.audit_file),
    )
