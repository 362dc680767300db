"""
Logging setup for the CLI and the web server.

Console level: ``--debug`` > ``--verbose`` > ``--quiet`` >
``RUNTIMECTL_LOG_LEVEL`` > WARNING.  A log file is added when
``RUNTIMECTL_LOG_FILE`` is set, at ``RUNTIMECTL_LOG_FILE_LEVEL``
(default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "RUNTIMECTL_LOG_LEVEL"
ENV_LOG_FILE = "RUNTIMECTL_LOG_FILE"
ENV_LOG_FILE_LEVEL = "RUNTIMECTL_LOG_FILE_LEVEL"

# Console output stays bare at WARNING and above
_FMT_PLAIN = "%(message)s"
_FMT_DETAILED = "%(asctime)s %(levelname)-5s %(name)s — %(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"

# Flask's request log
_SERVER_LOGGER = "werkzeug"


def resolve_level(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root handlers. Unknown level names mean WARNING.

    With ``quiet_third_party``, the werkzeug request log stays at
    WARNING unless the console is at DEBUG.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    if console_level < logging.WARNING:
        console.setFormatter(logging.Formatter(_FMT_DETAILED, datefmt="%H:%M:%S"))
    else:
        console.setFormatter(logging.Formatter(_FMT_PLAIN))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        logging.getLogger(_SERVER_LOGGER).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
