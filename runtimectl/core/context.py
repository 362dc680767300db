"""
Process context — the data root runtimectl is working against.

The root is set ONCE at startup by whichever entry point launches:

    - Web server:   server.py → context.set_data_dir(settings.data_dir)
    - CLI:          runtimes.py → context.set_data_dir(settings.data_dir)
    - Tests:        conftest → context.set_data_dir(tmp_path)

get_data_dir() returns None when unset.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


_data_dir: Optional[Path] = None


def set_data_dir(root: Path) -> None:
    """Register the data directory for the current process."""
    global _data_dir
    _data_dir = root


def get_data_dir() -> Optional[Path]:
    """Return the current data directory, or None if not yet set."""
    return _data_dir
