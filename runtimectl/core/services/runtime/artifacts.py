"""
Dependent artifacts — default config files and global wrapper scripts.

Config files are written once per major and never overwritten, so user
edits survive reinstalls and reconciliation.  Wrappers are shell
scripts in the bin directory that exec whatever ``{kind}.default``
points at, unless ``RUNTIMECTL_<KIND>_VERSION`` selects a major.
"""

from __future__ import annotations

from pathlib import Path

from runtimectl.core.config.paths import RuntimePaths
from runtimectl.core.models.kind import RuntimeKind

_PHP_INI = """\
; Default php.ini for PHP {major}, generated by runtimectl.
; Generated once. `runtimectl runtimes config` only edits the limit and
; certificate lines; everything else is yours.
{ca_block}
; Stability
pcre.jit = 0

; Performance
output_buffering = 4096

; Development
display_errors = On
error_reporting = E_ALL

; Timezone
date.timezone = UTC

; Limits
upload_max_filesize = 64M
post_max_size = 64M
memory_limit = 256M
"""

_CA_BLOCK = """
; SSL certificates (shared by every PHP version)
curl.cainfo = "{ca_bundle}"
openssl.cafile = "{ca_bundle}"
"""

_PHP_FPM_CONF = """\
; Default php-fpm.conf for PHP {major}, generated by runtimectl.

[global]
pid = {run_dir}/php{digits}-fpm.pid
error_log = {log_dir}/php{digits}-fpm.log
daemonize = no

[www]
listen = {run_dir}/php{digits}-fpm.sock
pm = dynamic
pm.max_children = 10
pm.start_servers = 2
pm.min_spare_servers = 1
pm.max_spare_servers = 3
"""

_CONFIG_TEMPLATES = {
    ("php", "php.ini"): _PHP_INI,
    ("php", "php-fpm.conf"): _PHP_FPM_CONF,
}

_WRAPPER_HEADER = """\
#!/bin/sh
# {tool} wrapper generated by runtimectl.
# Runs the default {label}, or the major named in {env_var}.
BIN_DIR="$(cd "$(dirname "$0")" && pwd)"
TARGET="$BIN_DIR/{pointer}"
if [ -n "${env_var}" ]; then
    PINNED="$BIN_DIR/{kind}$(printf '%s' "${env_var}" | tr -d .)"
    if [ -e "$PINNED" ]; then
        TARGET="$PINNED"
    fi
fi
"""

_WRAPPER_EXEC_MAIN = 'exec "$TARGET" "$@"\n'
_WRAPPER_EXEC_SIBLING = 'exec "$(dirname "$(readlink -f "$TARGET")")/{tool}" "$@"\n'


def version_env_var(kind: RuntimeKind) -> str:
    """Environment variable that overrides the default major."""
    return f"RUNTIMECTL_{kind.name.upper()}_VERSION"


def render_config(
    kind: RuntimeKind,
    file_name: str,
    major: str,
    paths: RuntimePaths,
    ca_bundle: Path | None = None,
) -> str:
    """Default content of one config file.

    php.ini points curl and openssl at ``ca_bundle`` when one is given.

    Raises:
        KeyError: If the kind has no template for ``file_name``.
    """
    template = _CONFIG_TEMPLATES[(kind.name, file_name)]
    return template.format(
        major=major,
        digits=kind.digits(major),
        run_dir=paths.run_dir,
        log_dir=paths.log_dir,
        ca_block=_CA_BLOCK.format(ca_bundle=ca_bundle) if ca_bundle else "",
    )


def render_wrapper(kind: RuntimeKind, tool: str) -> str:
    """Shell wrapper for one tool.

    The kind's own tool execs the pointer directly; auxiliary tools
    (``npm``, ``npx``) exec the sibling of the resolved binary.
    """
    header = _WRAPPER_HEADER.format(
        tool=tool,
        label=kind.display_name,
        env_var=version_env_var(kind),
        pointer=kind.pointer_name,
        kind=kind.name,
    )
    if tool == kind.name:
        return header + _WRAPPER_EXEC_MAIN
    return header + _WRAPPER_EXEC_SIBLING.format(tool=tool)
