"""
Tests for the archive service — checksummed download and extraction.
"""

import hashlib
import io
import tarfile
import urllib.error
import urllib.request

import pytest

from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.services.runtime.archive import ArchiveService
from runtimectl.core.services.runtime.errors import (
    ChecksumMismatch,
    DownloadFailed,
    ExtractionFailed,
)
from runtimectl.core.services.runtime.kinds import NODE, PHP


class _FakeResponse(io.BytesIO):
    def __init__(self, payload: bytes):
        super().__init__(payload)
        self.headers = {"Content-Length": str(len(payload))}


@pytest.fixture
def serve(monkeypatch):
    """Serve a payload for every urlopen call, recording requested URLs."""
    requested = []

    def _serve(payload: bytes):
        def fake_urlopen(req, timeout=None):
            requested.append(req.full_url)
            return _FakeResponse(payload)

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        return requested

    return _serve


def _entry(payload: bytes, filename: str = "php-8.4.1.tar.gz", prefix: str = "") -> RemoteMetadataEntry:
    return RemoteMetadataEntry(
        latest="8.4.1",
        filename=filename,
        sha256=prefix + hashlib.sha256(payload).hexdigest(),
    )


# ── Download ─────────────────────────────────────────────────────────


class TestDownload:
    def test_verified_download(self, tmp_path, serve):
        payload = b"x" * 200_000
        requested = serve(payload)
        service = ArchiveService("https://binaries.example/", tmp_path / "cache")
        seen = []

        path = service.download("PHP 8.4", _entry(payload), progress=seen.append)

        assert requested == ["https://binaries.example/php-8.4.1.tar.gz"]
        assert path.read_bytes() == payload
        assert seen[-1] == 1.0
        assert seen == sorted(seen)
        assert not path.with_name(path.name + ".part").exists()

    def test_prefixed_checksum(self, tmp_path, serve):
        payload = b"archive"
        serve(payload)
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        assert service.download("PHP 8.4", _entry(payload, prefix="sha256:")).is_file()

    def test_checksum_mismatch_removes_file(self, tmp_path, serve):
        serve(b"tampered")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(ChecksumMismatch):
            service.download("PHP 8.4", _entry(b"original"))
        assert list((tmp_path / "cache").iterdir()) == []

    def test_network_error(self, tmp_path, monkeypatch):
        def fail(req, timeout=None):
            raise urllib.error.URLError("connection refused")

        monkeypatch.setattr(urllib.request, "urlopen", fail)
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(DownloadFailed, match="PHP 8.4"):
            service.download("PHP 8.4", _entry(b"x"))

    def test_unknown_algorithm(self, tmp_path, serve):
        serve(b"x")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(DownloadFailed, match="unsupported"):
            service.download("PHP 8.4", _entry(b"x", prefix="nope:"))


# ── Extraction ───────────────────────────────────────────────────────


class TestExtract:
    def test_rename_members(self, tmp_path, make_release):
        archive = make_release(PHP, "8.4.1", tmp_path / "cache" / "php.tar.gz")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        bin_dir = tmp_path / "bin"

        service.extract(archive, bin_dir, rename={"php-cli": "php84", "php-fpm": "php84-fpm"})

        assert sorted(p.name for p in bin_dir.iterdir()) == ["php84", "php84-fpm"]
        assert not archive.exists()

    def test_rename_overwrites_previous(self, tmp_path, make_release):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        (bin_dir / "php84").write_text("old")
        archive = make_release(PHP, "8.4.2", tmp_path / "cache" / "php.tar.gz")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")

        service.extract(archive, bin_dir, rename={"php-cli": "php84", "php-fpm": "php84-fpm"})
        assert "8.4.2" in (bin_dir / "php84").read_text()

    def test_strip_components(self, tmp_path, make_release):
        archive = make_release(NODE, "22.21.0", tmp_path / "cache" / "node.tar.gz")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        dest = tmp_path / "runtimes" / "node" / "22"

        service.extract(archive, dest, strip_components=1)

        assert (dest / "bin" / "node").is_file()
        assert (dest / "README.md").is_file()
        assert list((tmp_path / "cache").iterdir()) == []

    def test_replaces_destination(self, tmp_path, make_release):
        dest = tmp_path / "runtimes" / "node" / "22"
        dest.mkdir(parents=True)
        (dest / "stale.txt").write_text("old")
        archive = make_release(NODE, "22.21.0", tmp_path / "cache" / "node.tar.gz")

        ArchiveService("https://binaries.example", tmp_path / "cache").extract(
            archive, dest, strip_components=1,
        )
        assert not (dest / "stale.txt").exists()

    def test_missing_member(self, tmp_path, make_release):
        archive = make_release(PHP, "8.4.1", tmp_path / "cache" / "php.tar.gz")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(ExtractionFailed, match="php-cgi"):
            service.extract(archive, tmp_path / "bin", rename={"php-cgi": "php84"})
        assert not archive.exists()

    def test_rejects_path_traversal(self, tmp_path):
        archive = tmp_path / "cache" / "evil.tar.gz"
        archive.parent.mkdir()
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("../escape")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))

        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(ExtractionFailed, match="unsafe"):
            service.extract(archive, tmp_path / "out")
        assert not (tmp_path / "escape").exists()

    def test_rejects_symlink_escaping_workdir(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        archive = tmp_path / "cache" / "evil-link.tar.gz"
        archive.parent.mkdir()
        with tarfile.open(archive, "w:gz") as tar:
            link = tarfile.TarInfo("pkg/esc")
            link.type = tarfile.SYMTYPE
            link.linkname = str(outside)
            tar.addfile(link)
            info = tarfile.TarInfo("pkg/esc/owned.txt")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))

        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(ExtractionFailed, match="unsafe link"):
            service.extract(archive, tmp_path / "out", strip_components=1)
        assert list(outside.iterdir()) == []
        assert not (tmp_path / "out").exists()

    def test_keeps_relative_symlink_inside(self, tmp_path):
        archive = tmp_path / "cache" / "linked.tar.gz"
        archive.parent.mkdir()
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("pkg/lib/cli.js")
            info.size = 2
            tar.addfile(info, io.BytesIO(b"js"))
            link = tarfile.TarInfo("pkg/bin/npm")
            link.type = tarfile.SYMTYPE
            link.linkname = "../lib/cli.js"
            tar.addfile(link)

        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        service.extract(archive, tmp_path / "out", strip_components=1)
        assert (tmp_path / "out" / "bin" / "npm").read_text() == "js"

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "cache" / "broken.tar.gz"
        archive.parent.mkdir()
        archive.write_bytes(b"not a tarball")
        service = ArchiveService("https://binaries.example", tmp_path / "cache")
        with pytest.raises(ExtractionFailed):
            service.extract(archive, tmp_path / "out")
