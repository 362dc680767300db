"""
Filesystem layout under the data directory.

    <data>/bin/                      versioned binaries, pointers, wrappers
    <data>/runtimes/<kind>/<major>/  unpacked trees (tree layout)
    <data>/config/<kind>/<digits>/   per-major config files
    <data>/config/cacert.pem         CA bundle shared by every PHP major
    <data>/state/                    versions.json, audit.ndjson
    <data>/cache/                    downloads in flight
    <data>/run/, <data>/logs/        sockets, pid files, logs
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from runtimectl.core.models.kind import RuntimeKind


@dataclass(frozen=True)
class RuntimePaths:
    """Resolved directories for one data root."""

    data_dir: Path
    bundled_dir: Path

    @property
    def bin_dir(self) -> Path:
        return self.data_dir / "bin"

    @property
    def state_dir(self) -> Path:
        return self.data_dir / "state"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "versions.json"

    @property
    def audit_file(self) -> Path:
        return self.state_dir / "audit.ndjson"

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"

    @property
    def run_dir(self) -> Path:
        return self.data_dir / "run"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    def runtimes_dir(self, kind: RuntimeKind) -> Path:
        return self.data_dir / "runtimes" / kind.name

    def install_dir(self, kind: RuntimeKind, major: str) -> Path:
        return self.runtimes_dir(kind) / major

    def config_dir(self, kind: RuntimeKind, major: str) -> Path:
        return self.data_dir / "config" / kind.name / kind.digits(major)

    @property
    def ca_bundle(self) -> Path:
        return self.data_dir / "config" / "cacert.pem"

    @property
    def bundled_ca_bundle(self) -> Path:
        return self.bundled_dir / "cacert.pem"

    def bundled_kind_dir(self, kind: RuntimeKind) -> Path:
        return self.bundled_dir / kind.name
