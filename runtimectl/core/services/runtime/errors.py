"""
Runtime manager errors.

Three families hang off ``RuntimeCtlError``:

    IntegrityError     a binary on disk is unusable (reconciliation
                       deletes it and tries to recover)
    InstallError       network, checksum, or archive failures
    PreconditionError  the requested operation is not allowed right now

plus ``NoRuntimeAvailable`` (fatal bootstrap), ``ScanFailed`` and
``ConfigFileError``.
Messages are user-facing: the CLI prints them as-is.
"""

from __future__ import annotations

from pathlib import Path


class RuntimeCtlError(Exception):
    """Base class for runtime manager errors."""


# ── Integrity ───────────────────────────────────────────────────


class IntegrityError(RuntimeCtlError):
    """A binary exists but cannot be used."""


class BinaryNotExecutable(IntegrityError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Binary is not executable: {path}")


class VersionExtractionFailed(IntegrityError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to run {path.name} --version: {reason}")


class VersionParsingFailed(IntegrityError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Could not parse version output of {path.name}")


class BundledBinaryNotFound(IntegrityError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Bundled binary not found: {path}")


# ── Install / network ───────────────────────────────────────────


class InstallError(RuntimeCtlError):
    """Fetching or unpacking a release failed."""


class MetadataUnavailable(InstallError):
    def __init__(self, kind: str, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(f"Unable to fetch {kind} metadata: {reason}")


class ChecksumMismatch(InstallError):
    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}")


class ExtractionFailed(InstallError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Extraction failed: {reason}")


class DownloadFailed(InstallError):
    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Failed to download {identifier}: {reason}")


# ── Preconditions ───────────────────────────────────────────────


class PreconditionError(RuntimeCtlError):
    """The operation is not allowed in the current state."""


class AlreadyInstalled(PreconditionError):
    def __init__(self, label: str, version: str) -> None:
        super().__init__(f"{label} {version} is already installed")


class VersionNotAvailable(PreconditionError):
    def __init__(self, label: str, major: str) -> None:
        super().__init__(f"{label} {major} is not available for download")


class VersionNotInstalled(PreconditionError):
    def __init__(self, label: str, major: str) -> None:
        super().__init__(f"{label} {major} is not installed")


class CannotRemoveLastVersion(PreconditionError):
    def __init__(self, label: str) -> None:
        super().__init__(
            f"Cannot remove the last installed {label} version. "
            "Install another version first."
        )


class CannotRemoveDefaultVersion(PreconditionError):
    def __init__(self, label: str) -> None:
        super().__init__(
            f"Cannot remove the default {label} version. "
            "Please select another version as default first."
        )


class AnotherOperationInProgress(PreconditionError):
    def __init__(self, label: str) -> None:
        super().__init__(
            f"Another {label} operation is in progress. "
            "Please wait for it to complete."
        )


class NoUpdateAvailable(PreconditionError):
    def __init__(self, label: str, major: str) -> None:
        super().__init__(f"{label} {major}: already using the latest version")


class ConfigNotSupported(PreconditionError):
    def __init__(self, label: str) -> None:
        super().__init__(f"{label} has no editable settings")


class InvalidSetting(PreconditionError):
    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        super().__init__(f"Invalid {name}: {reason}")


# ── Fatal ───────────────────────────────────────────────────────


class NoRuntimeAvailable(RuntimeCtlError):
    def __init__(self, label: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"No {label} installation available and no bundled copy to install{detail}")


class ScanFailed(RuntimeCtlError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot scan {path}: {reason}")


class ConfigFileError(RuntimeCtlError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot access {path}: {reason}")
