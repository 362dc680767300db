"""
PHP runtime settings managed through php.ini.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, field_validator


class PHPSettings(BaseModel):
    """Managed php.ini directives. Sizes are in MB, ``-1`` is unlimited.

    ``post_max_size`` is not modelled: it always follows
    ``upload_max_filesize``.
    """

    memory_limit: int = 256
    upload_max_filesize: int = 64
    ca_bundle: Path | None = None

    @field_validator("memory_limit", "upload_max_filesize")
    @classmethod
    def _size(cls, value: int) -> int:
        if value == 0 or value < -1:
            raise ValueError("must be a positive size in MB, or -1 for unlimited")
        return value
