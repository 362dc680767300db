"""
Remote metadata — what the binaries host says is available.

Wire format (``metadata-<kind>.json``)::

    {
        "8.3": {"latest": "8.3.14", "filename": "php-8.3.14.tar.gz",
                "sha256": "…", "isEol": false},
        "8.4": {...}
    }

Node entries carry ``isLts`` too.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RemoteMetadataEntry(BaseModel):
    """Latest release of one major, as published by the catalog."""

    model_config = ConfigDict(populate_by_name=True)

    latest: str
    filename: str
    sha256: str
    is_lts: bool = Field(default=False, alias="isLts")
    is_eol: bool = Field(default=False, alias="isEol")
