"""
Configuration loader — reads runtimectl.yml into a Settings model.

Resolution order:
    --config flag  >  RUNTIMECTL_CONFIG env var  >  runtimectl.yml found
    walking up from the cwd  >  built-in defaults

``RUNTIMECTL_DATA_DIR`` always overrides ``data_dir``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "runtimectl.yml"

DEFAULT_BASE_URL = "https://binaries.fadogen.app"
DEFAULT_KINDS = ["php", "node"]


class ConfigError(Exception):
    """Raised when runtimectl configuration is invalid or missing."""


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "runtimectl"


class Settings(BaseModel):
    """Validated runtimectl settings."""

    data_dir: Path = Field(default_factory=_default_data_dir)
    bundled_dir: Path | None = None
    metadata_base_url: str = DEFAULT_BASE_URL
    binaries_base_url: str = DEFAULT_BASE_URL
    http_timeout: float = 30.0
    version_timeout: float = 10.0
    kinds: list[str] = Field(default_factory=lambda: list(DEFAULT_KINDS))

    # Where the settings came from (None = built-in defaults)
    source: Path | None = None

    @field_validator("data_dir", "bundled_dir", mode="before")
    @classmethod
    def _expand_user(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value).expanduser()
        if isinstance(value, Path):
            return value.expanduser()
        return value

    @field_validator("http_timeout", "version_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @property
    def resolved_bundled_dir(self) -> Path:
        """Bundled fallback directory (defaults to ``<data>/bundled``)."""
        return self.bundled_dir or self.data_dir / "bundled"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for runtimectl.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to runtimectl.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate runtimectl settings.

    Args:
        path: Explicit path to a config file. If None, falls back to
            ``RUNTIMECTL_CONFIG``, then an upward search, then defaults.

    Returns:
        Validated Settings model.

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        env_path = os.environ.get("RUNTIMECTL_CONFIG")
        if env_path:
            path = Path(env_path).expanduser()
            explicit = True
        else:
            path = find_config_file()

    data: dict = {}
    source: Path | None = None
    if path is not None:
        if path.is_file():
            data = _read_yaml(path)
            source = path
        elif explicit:
            raise ConfigError(f"Config file not found: {path}")

    data_dir_env = os.environ.get("RUNTIMECTL_DATA_DIR")
    if data_dir_env:
        data["data_dir"] = data_dir_env

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path or 'defaults'}: {e}") from e

    settings.source = source
    logger.debug(
        "Settings loaded from %s (data_dir=%s)",
        settings.source or "defaults", settings.data_dir,
    )
    return settings


def _read_yaml(path: Path) -> dict:
    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data
