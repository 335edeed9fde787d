"""Cache persistence configuration model."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from vidpeek.shared.constants import CacheFile


class CacheSettings(BaseModel):
    """Persisted cache configuration."""

    enabled: bool = Field(default=True, description="Persist the preview cache to disk")
    path: Path = Field(
        default=CacheFile.DEFAULT_PATH,
        description="JSON file holding the persisted cache",
    )


__all__ = ["CacheSettings"]
