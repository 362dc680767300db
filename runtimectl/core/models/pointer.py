"""
DefaultPointer — the value behind ``bin/{kind}.default``.

The pointer is a symlink whose relative target is a versioned binary
name.  Parsing is strict: a target name is accepted only if formatting
the parsed value gives back exactly the same name, so ``node022`` or
``php8`` never resolve to a major.
"""

from __future__ import annotations

from dataclasses import dataclass

from runtimectl.core.models.kind import RuntimeKind


@dataclass(frozen=True)
class DefaultPointer:
    """Default major of one runtime kind."""

    kind: RuntimeKind
    major: str

    @classmethod
    def parse(cls, kind: RuntimeKind, target_name: str) -> DefaultPointer | None:
        """Parse a symlink target name. Returns None when malformed."""
        major = kind.parse_binary_name(target_name)
        if major is None:
            return None
        pointer = cls(kind=kind, major=major)
        if pointer.format() != target_name:
            return None
        return pointer

    def format(self, suffix: str = "") -> str:
        """Symlink target for this pointer (``php83``, ``php83-fpm``)."""
        return self.kind.binary_name(self.major, suffix)

    def links(self) -> list[tuple[str, str]]:
        """``(link name, target)`` pairs written into the bin directory.

        One pair per installed binary: PHP gets ``php.default`` and
        ``php-fpm.default``, Node gets ``node.default``.
        """
        return [
            (f"{self.kind.name}{suffix}.default", self.format(suffix))
            for suffix in self.kind.binary_suffixes
        ]
