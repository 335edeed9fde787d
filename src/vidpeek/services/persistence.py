"""Cache persistence for preview metadata.

``JSONCachePersistence`` keeps the whole cache in a single JSON file so
previews survive restarts. Writes go through a temporary file followed by
an atomic replace, and a corrupted file is moved aside and treated as an
empty cache.

File layout::

    {"version": 1, "saved_at": 1700000000.0,
     "entries": [{"key": "...", "value": {...}, "stored_at": 1700000000.0}]}
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import orjson
from pydantic import BaseModel, Field, ValidationError

from vidpeek.services.cache_store import CacheEntry
from vidpeek.shared.cache_utils import CacheKey
from vidpeek.shared.constants import CacheFile
from vidpeek.shared.errors import (
    ErrorCode,
    ErrorContext,
    InfrastructureError,
)
from vidpeek.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)


@runtime_checkable
class CachePersistence(Protocol):
    """Storage backend for the scheduler's cache."""

    def load_cache(self) -> list[CacheEntry]:
        """Return every persisted entry."""
        ...

    def save_cache(self, entries: Iterable[CacheEntry]) -> None:
        """Replace the persisted cache with ``entries``."""
        ...


class PersistedEntry(BaseModel):
    """One entry as stored on disk."""

    key: str = Field(min_length=1)
    value: dict[str, Any]
    stored_at: float


class PersistedCache(BaseModel):
    """Persisted cache file."""

    version: int = CacheFile.SCHEMA_VERSION
    saved_at: float
    entries: list[PersistedEntry] = Field(default_factory=list)


class JSONCachePersistence:
    """Single-file JSON cache persistence.

    Args:
        path: Cache file location, parent directories are created on save
    """

    def __init__(self, path: Path | str = CacheFile.DEFAULT_PATH) -> None:
        self.path = Path(path).expanduser()

    def load_cache(self) -> list[CacheEntry]:
        """Read the cache file.

        Returns:
            Persisted entries, empty when the file is missing, corrupted or
            written by an incompatible version

        Raises:
            InfrastructureError: If the file exists but cannot be read
        """
        if not self.path.exists():
            return []

        context = ErrorContext(operation="load_cache", file_path=str(self.path))
        start_time = time.time()
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise InfrastructureError(
                code=ErrorCode.FILE_READ_ERROR,
                message=f"Failed to read cache file: {e!s}",
                context=context,
                original_error=e,
            ) from e

        try:
            document = PersistedCache.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            self._handle_corrupted_file(e)
            return []

        if document.version != CacheFile.SCHEMA_VERSION:
            logger.warning(
                "Ignoring cache file %s with unsupported version %s",
                self.path,
                document.version,
            )
            return []

        entries = [
            CacheEntry(
                key=CacheKey(item.key),
                value=item.value,
                stored_at=item.stored_at,
            )
            for item in document.entries
        ]
        log_operation_success(
            logger,
            "load_cache",
            (time.time() - start_time) * 1000,
            {"entries": len(entries)},
            context,
        )
        return entries

    def save_cache(self, entries: Iterable[CacheEntry]) -> None:
        """Write ``entries`` to the cache file atomically.

        Raises:
            InfrastructureError: If serialization or the write fails
        """
        context = ErrorContext(operation="save_cache", file_path=str(self.path))
        start_time = time.time()

        try:
            document = PersistedCache(
                saved_at=time.time(),
                entries=[
                    PersistedEntry(
                        key=entry.key.value,
                        value=dict(entry.value),
                        stored_at=entry.stored_at,
                    )
                    for entry in entries
                ],
            )
            payload = orjson.dumps(document.model_dump(mode="json"))
        except (ValidationError, TypeError, ValueError) as e:
            raise InfrastructureError(
                code=ErrorCode.CACHE_SERIALIZATION_ERROR,
                message=f"Failed to serialize cache: {e!s}",
                context=context,
                original_error=e,
            ) from e

        temp_path = self.path.with_name(self.path.name + CacheFile.TEMP_SUFFIX)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise InfrastructureError(
                code=ErrorCode.FILE_WRITE_ERROR,
                message=f"Failed to write cache file: {e!s}",
                context=context,
                original_error=e,
            ) from e

        log_operation_success(
            logger,
            "save_cache",
            (time.time() - start_time) * 1000,
            {"entries": len(document.entries), "bytes": len(payload)},
            context,
        )

    def delete(self) -> bool:
        """Remove the cache file if it exists."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _handle_corrupted_file(self, error: Exception) -> None:
        """Move a corrupted cache file aside and log the event."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = self.path.with_suffix(f".corrupted.{timestamp}.json")
        try:
            self.path.rename(backup_path)
        except OSError:
            logger.exception("Failed to back up corrupted cache file %s", self.path)
            backup_path = self.path

        corrupted = InfrastructureError(
            code=ErrorCode.CACHE_CORRUPTED,
            message=f"Cache file corrupted, starting empty: {error!s}",
            context=ErrorContext(
                operation="load_cache",
                file_path=str(self.path),
                additional_data={"backup_path": str(backup_path)},
            ),
            original_error=error,
        )
        log_operation_error(logger, corrupted)
