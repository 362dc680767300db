"""
Archive service — download release archives and unpack them.

Downloads stream into ``<data>/cache`` while the SHA-256 is computed
on the fly; a checksum mismatch deletes the partial file.  Extraction
handles path stripping (Node tarballs wrap everything in one top-level
directory) and renaming (PHP ships ``php-cli`` / ``php-fpm``).
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from runtimectl import __version__
from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.services.runtime.errors import (
    ChecksumMismatch,
    DownloadFailed,
    ExtractionFailed,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[float], None]


def _split_checksum(expected: str) -> tuple[str, str]:
    """``"sha256:ab…"`` or bare hex → ``(algo, hex)``."""
    if ":" in expected:
        algo, digest = expected.split(":", 1)
        return algo.lower(), digest.lower()
    return "sha256", expected.lower()


class ArchiveService:
    """Fetch and unpack release archives.

    Args:
        base_url: Host serving the archives (``<base_url>/<filename>``).
        cache_dir: Where downloads land before extraction.
        timeout: Socket timeout in seconds.
    """

    def __init__(self, base_url: str, cache_dir: Path, timeout: float = 30) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache_dir = cache_dir
        self._timeout = timeout

    # ── Download ────────────────────────────────────────────────

    def download(
        self,
        identifier: str,
        entry: RemoteMetadataEntry,
        progress: ProgressCallback | None = None,
    ) -> Path:
        """Download ``entry.filename`` and verify its checksum.

        Args:
            identifier: Human label for log lines and errors (``PHP 8.3``).
            entry: Catalog entry naming the file and its digest.
            progress: Called with a fraction in ``[0, 1]`` as bytes arrive.

        Returns:
            Path of the verified archive in the cache directory.

        Raises:
            DownloadFailed: Network or filesystem error.
            ChecksumMismatch: Digest differs from ``entry.sha256``.
        """
        url = f"{self._base_url}/{entry.filename}"
        dest = self._cache_dir / PurePosixPath(entry.filename).name
        partial = dest.with_name(dest.name + ".part")
        algo, expected = _split_checksum(entry.sha256)

        try:
            digest = hashlib.new(algo)
        except ValueError as e:
            raise DownloadFailed(identifier, f"unsupported checksum algorithm {algo!r}") from e

        logger.info("Downloading %s from %s", identifier, url)
        req = urllib.request.Request(
            url,
            headers={"User-Agent": f"runtimectl/{__version__}", "Cache-Control": "no-cache"},
        )
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            with urllib.request.urlopen(req, timeout=self._timeout) as resp, partial.open("wb") as out:
                total = int(resp.headers.get("Content-Length") or 0)
                received = 0
                for chunk in iter(lambda: resp.read(_CHUNK_SIZE), b""):
                    out.write(chunk)
                    digest.update(chunk)
                    received += len(chunk)
                    if progress and total:
                        progress(min(received / total, 1.0))
        except (urllib.error.URLError, OSError, ValueError) as e:
            partial.unlink(missing_ok=True)
            raise DownloadFailed(identifier, str(e)) from e

        actual = digest.hexdigest()
        if actual != expected:
            partial.unlink(missing_ok=True)
            logger.error("Checksum mismatch for %s", identifier)
            raise ChecksumMismatch(expected, actual)

        partial.replace(dest)
        if progress:
            progress(1.0)
        logger.info("Downloaded %s (%d bytes, checksum ok)", identifier, received)
        return dest

    # ── Extraction ──────────────────────────────────────────────

    def extract(
        self,
        archive: Path,
        destination: Path,
        *,
        strip_components: int = 0,
        rename: dict[str, str] | None = None,
    ) -> None:
        """Unpack ``archive`` into ``destination`` and delete the archive.

        Without ``rename`` the destination directory is replaced
        wholesale.  With ``rename`` only the named members are moved
        into ``destination`` under their new names, overwriting any
        previous file.

        Raises:
            ExtractionFailed: Corrupt archive, unsafe member path, or a
                member named in ``rename`` is missing.
        """
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix=".extract_", dir=self._cache_dir))
        try:
            self._unpack(archive, workdir, strip_components)

            if rename:
                destination.mkdir(parents=True, exist_ok=True)
                for member, new_name in rename.items():
                    source = workdir / member
                    if not source.is_file():
                        raise ExtractionFailed(f"{member} not found in {archive.name}")
                    target = destination / new_name
                    if target.is_symlink() or target.exists():
                        target.unlink()
                    shutil.move(str(source), target)
            else:
                if destination.is_symlink() or destination.is_file():
                    destination.unlink()
                elif destination.exists():
                    shutil.rmtree(destination)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(workdir), destination)
        except OSError as e:
            raise ExtractionFailed(str(e)) from e
        finally:
            shutil.rmtree(workdir, ignore_errors=True)
            archive.unlink(missing_ok=True)

        logger.info("Extracted %s into %s", archive.name, destination)

    def _unpack(self, archive: Path, workdir: Path, strip_components: int) -> None:
        root = workdir.resolve()
        try:
            with tarfile.open(archive, "r:*") as tar:
                for member in tar.getmembers():
                    parts = PurePosixPath(member.name).parts
                    if member.name.startswith("/") or ".." in parts:
                        raise ExtractionFailed(f"unsafe path in archive: {member.name}")
                    parts = parts[strip_components:]
                    if not parts:
                        continue
                    target = workdir.joinpath(*parts)
                    # Earlier symlink members must not redirect later writes
                    if not target.resolve().is_relative_to(root):
                        raise ExtractionFailed(f"unsafe path in archive: {member.name}")

                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                    elif member.issym():
                        if not (target.parent / member.linkname).resolve().is_relative_to(root):
                            raise ExtractionFailed(
                                f"unsafe link in archive: {member.name} -> {member.linkname}"
                            )
                        target.parent.mkdir(parents=True, exist_ok=True)
                        target.symlink_to(member.linkname)
                    elif member.isfile():
                        target.parent.mkdir(parents=True, exist_ok=True)
                        source = tar.extractfile(member)
                        if source is None:
                            continue
                        with source, target.open("wb") as out:
                            shutil.copyfileobj(source, out)
                        target.chmod(member.mode & 0o777)
        except tarfile.TarError as e:
            raise ExtractionFailed(f"{archive.name}: {e}") from e
