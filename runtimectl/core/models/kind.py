"""
RuntimeKind — static description of a managed runtime.

A kind knows how its binaries are named on disk, how to read a version
out of ``--version`` output, and how a release archive is laid out.
The built-in kinds (PHP, Node.js) live in
``runtimectl.core.services.runtime.kinds``.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RuntimeKind(BaseModel):
    """Naming, parsing, and layout rules for one runtime."""

    model_config = ConfigDict(frozen=True)

    name: str                          # php, node
    display_name: str                  # PHP, Node.js
    major_parts: int = 1               # "8.3" → 2, "22" → 1
    version_pattern: str               # regex, group 1 = full version

    # ── Archive layout ───────────────────────────────────────────
    # files: archive members are renamed into bin/ (member → suffix)
    # tree:  archive is unpacked into runtimes/<kind>/<major>/
    layout: Literal["files", "tree"] = "files"
    archive_files: dict[str, str] = Field(default_factory=dict)
    tree_binary: str = ""
    strip_components: int = 0

    # ── Dependent artifacts ──────────────────────────────────────
    config_files: list[str] = Field(default_factory=list)
    # Config file whose managed directives `runtimes config` edits
    settings_file: str = ""
    wrappers: list[str] = Field(default_factory=list)

    # Bootstrap fails hard when a required kind has nothing to install
    required: bool = False

    @property
    def pointer_name(self) -> str:
        """File name of the default-version symlink (e.g. ``php.default``)."""
        return f"{self.name}.default"

    @property
    def binary_suffixes(self) -> list[str]:
        """Suffixes of every binary one major installs into bin/.

        The main binary has suffix ``""``; PHP adds ``"-fpm"``.
        """
        if self.layout == "files" and self.archive_files:
            return sorted(set(self.archive_files.values()))
        return [""]

    def digits(self, major: str) -> str:
        """Compact form of a major used in file names (``8.3`` → ``83``)."""
        return major.replace(".", "")

    def binary_name(self, major: str, suffix: str = "") -> str:
        """Versioned binary name (``php83``, ``php83-fpm``, ``node22``)."""
        return f"{self.name}{self.digits(major)}{suffix}"

    def parse_binary_name(self, file_name: str) -> str | None:
        """Return the major encoded in a versioned binary name, or None."""
        if self.major_parts > 1:
            pattern = rf"^{re.escape(self.name)}" + r"(\d)" * self.major_parts + "$"
            match = re.match(pattern, file_name)
            if not match:
                return None
            return ".".join(match.groups())

        match = re.match(rf"^{re.escape(self.name)}(\d+)$", file_name)
        if not match:
            return None
        return str(int(match.group(1)))

    def is_valid_major(self, major: str) -> bool:
        """True if ``major`` is well-formed for this kind."""
        return self.parse_binary_name(self.binary_name(major)) == major

    def major_of(self, full_version: str) -> str:
        """Major of a full version (``8.3.12`` → ``8.3``, ``22.21.0`` → ``22``)."""
        return ".".join(full_version.split(".")[: self.major_parts])

    def parse_version_output(self, output: str) -> str | None:
        """Extract the full version from ``--version`` output."""
        match = re.search(self.version_pattern, output)
        return match.group(1) if match else None
