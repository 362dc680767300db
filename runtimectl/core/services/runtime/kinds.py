"""
Built-in runtime kinds.

PHP ships two static binaries per major (``php-cli``, ``php-fpm``) that
are renamed into the bin directory.  Node.js ships a full tree that is
unpacked per major and exposed through a versioned symlink.
"""

from __future__ import annotations

from runtimectl.core.models.kind import RuntimeKind

PHP = RuntimeKind(
    name="php",
    display_name="PHP",
    major_parts=2,
    version_pattern=r"PHP (\d+\.\d+\.\d+)",
    layout="files",
    archive_files={"php-cli": "", "php-fpm": "-fpm"},
    config_files=["php.ini", "php-fpm.conf"],
    settings_file="php.ini",
    wrappers=["php"],
    required=True,
)

NODE = RuntimeKind(
    name="node",
    display_name="Node.js",
    major_parts=1,
    version_pattern=r"v(\d+\.\d+\.\d+)",
    layout="tree",
    tree_binary="bin/node",
    strip_components=1,
    wrappers=["node", "npm", "npx"],
    required=True,
)

BUILTIN_KINDS: dict[str, RuntimeKind] = {kind.name: kind for kind in (PHP, NODE)}


def get_kind(name: str) -> RuntimeKind:
    """Look up a built-in kind by name.

    Raises:
        KeyError: If no such kind exists.
    """
    try:
        return BUILTIN_KINDS[name]
    except KeyError:
        raise KeyError(f"Unknown runtime kind: {name!r} (known: {', '.join(BUILTIN_KINDS)})") from None
