"""
State file persistence — atomic read/write for StoreState.

State is stored as JSON in <data>/state/versions.json. Writes are atomic
(write to temp file, then rename) so a crash mid-write never leaves a
truncated record set behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from runtimectl.core.models.state import StoreState

logger = logging.getLogger(__name__)


def load_state(path: Path) -> StoreState:
    """Load the record set from a JSON file.

    Args:
        path: Path to the state JSON file.

    Returns:
        StoreState model. A missing or corrupt file yields a fresh state;
        reconciliation rebuilds records from disk.
    """
    if not path.is_file():
        logger.info("No state file at %s — starting fresh", path)
        return StoreState()

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
        state = StoreState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s — starting fresh", path, e)
        return StoreState()
    except (OSError, ValidationError) as e:
        logger.warning("Cannot load state from %s: %s — starting fresh", path, e)
        return StoreState()


def save_state(state: StoreState, path: Path) -> None:
    """Save the record set to a JSON file (atomic write).

    Args:
        state: The state to save.
        path: Target path for the state file.
    """
    state.touch()

    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".versions_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("State saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
