"""
php.ini settings — read and edit the directives runtimectl manages.

Managed directives::

    memory_limit          PHPSettings.memory_limit
    upload_max_filesize   PHPSettings.upload_max_filesize
    post_max_size         mirrors upload_max_filesize
    curl.cainfo           shared CA bundle
    openssl.cafile        shared CA bundle

Edits happen line by line: managed directives are rewritten where they
stand, missing ones are appended, and every other line (comments,
sections, user directives) is written back untouched.
"""

from __future__ import annotations

import logging
import re
import shutil
import ssl
import tempfile
from pathlib import Path

from runtimectl.core.config.paths import RuntimePaths
from runtimectl.core.models.php_config import PHPSettings

logger = logging.getLogger(__name__)

CA_DIRECTIVES = ("curl.cainfo", "openssl.cafile")

_SIZE = re.compile(r"^(-?\d+)\s*([KMG]?)$")


def parse_size(value: str) -> int | None:
    """Size in MB (``512M`` → 512, ``1G`` → 1024, ``-1`` → -1).

    Bare numbers count as MB. Returns None when unparseable.
    """
    match = _SIZE.match(value.strip().strip("\"'").upper())
    if not match:
        return None
    number, unit = int(match.group(1)), match.group(2)
    if number < 0:
        return -1
    if unit == "G":
        return number * 1024
    if unit == "K":
        return max(1, number // 1024)
    return number


def format_size(size: int) -> str:
    return "-1" if size < 0 else f"{size}M"


def _usable(value: str) -> int | None:
    # 0 is a valid php.ini value but not a settable size
    size = parse_size(value)
    return size if size else None


def _directive(line: str) -> tuple[str, str] | None:
    stripped = line.strip()
    if not stripped or stripped[0] in ";#[":
        return None
    name, sep, value = stripped.partition("=")
    if not sep:
        return None
    return name.strip(), value.split(";", 1)[0].strip()


def read_settings(path: Path) -> PHPSettings:
    """Managed values of one php.ini.

    The last occurrence of a directive wins, as in PHP. Absent or
    unparseable sizes fall back to the model defaults, and
    ``upload_max_filesize`` falls back to ``post_max_size``.

    Raises:
        OSError: If the file cannot be read.
    """
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        directive = _directive(line)
        if directive is not None:
            values[directive[0]] = directive[1]

    defaults = PHPSettings()
    memory = _usable(values.get("memory_limit", ""))
    upload = _usable(values.get("upload_max_filesize", ""))
    if upload is None:
        upload = _usable(values.get("post_max_size", ""))
    ca = next((values[name] for name in CA_DIRECTIVES if values.get(name)), None)

    return PHPSettings(
        memory_limit=memory if memory is not None else defaults.memory_limit,
        upload_max_filesize=upload if upload is not None else defaults.upload_max_filesize,
        ca_bundle=Path(ca.strip("\"'")) if ca else None,
    )


def write_settings(path: Path, settings: PHPSettings) -> list[str]:
    """Rewrite the managed directives of ``path`` to match ``settings``.

    CA directives are only written when ``settings.ca_bundle`` is set.
    The file is replaced atomically, and only when something changed.

    Returns:
        Names of the directives that were rewritten or appended, in
        the order memory, upload, post, CA.

    Raises:
        OSError: If the file cannot be read or replaced.
    """
    wanted = {
        "memory_limit": format_size(settings.memory_limit),
        "upload_max_filesize": format_size(settings.upload_max_filesize),
        "post_max_size": format_size(settings.upload_max_filesize),
    }
    if settings.ca_bundle is not None:
        for name in CA_DIRECTIVES:
            wanted[name] = f'"{settings.ca_bundle}"'

    lines: list[str] = []
    seen: set[str] = set()
    changed: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        directive = _directive(line)
        if directive is None or directive[0] not in wanted:
            lines.append(line)
            continue
        name, value = directive
        seen.add(name)
        if value == wanted[name]:
            lines.append(line)
            continue
        lines.append(f"{name} = {wanted[name]}")
        if name not in changed:
            changed.append(name)

    for name, value in wanted.items():
        if name not in seen:
            lines.append(f"{name} = {value}")
            changed.append(name)

    changed = [name for name in wanted if name in changed]
    if changed:
        _replace(path, "\n".join(lines) + "\n")
        logger.info("Updated %s: %s", path, ", ".join(changed))
    return changed


def _replace(path: Path, content: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        shutil.copymode(path, tmp)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


# ── CA bundle ───────────────────────────────────────────────────────


def _system_ca_bundle() -> Path | None:
    cafile = ssl.get_default_verify_paths().cafile
    return Path(cafile) if cafile else None


def ensure_ca_bundle(paths: RuntimePaths) -> Path | None:
    """Shared CA bundle for PHP's curl and openssl extensions.

    Copied once into ``<data>/config/cacert.pem`` from the bundled
    directory, or from the system OpenSSL bundle when nothing is
    bundled. An existing copy is never replaced.

    Returns:
        The bundle path, or None when no source exists.
    """
    dest = paths.ca_bundle
    if dest.is_file():
        return dest

    for source in (paths.bundled_ca_bundle, _system_ca_bundle()):
        if source is not None and source.is_file():
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, dest)
            logger.info("Copied CA bundle from %s", source)
            return dest

    logger.warning("No CA bundle found, curl.cainfo and openssl.cafile stay unset")
    return None
