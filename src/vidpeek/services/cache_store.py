"""In-memory TTL cache for preview metadata.

Entries expire ``ttl`` seconds after they were stored and are dropped
lazily on lookup or in bulk by ``evict_expired``. When an insertion would
exceed ``max_entries`` the least-recently-inserted entries go first.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from vidpeek.shared.cache_utils import CacheKey
from vidpeek.shared.errors import ApplicationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

# Opaque payload produced by the fetcher
Metadata = Mapping[str, Any]


@dataclass(frozen=True)
class CacheEntry:
    """One cached preview.

    Attributes:
        key: Cache key the value was stored under
        value: Metadata returned by the fetcher
        stored_at: Clock reading when the entry was stored
    """

    key: CacheKey
    value: Metadata
    stored_at: float

    def is_expired(self, now: float, ttl: float) -> bool:
        """Return True once ``now - stored_at`` reaches ``ttl``."""
        return now - self.stored_at >= ttl


class CacheStore:
    """Thread-safe TTL cache with an insertion-order size cap.

    Args:
        ttl: Entry lifetime in seconds
        max_entries: Maximum number of entries kept
        clock: Time source in seconds, wall clock by default so that
            persisted timestamps stay meaningful across restarts
    """

    def __init__(
        self,
        ttl: float,
        max_entries: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        context = ErrorContext(
            operation="cache_store_init",
            additional_data={"ttl": ttl, "max_entries": max_entries},
        )
        if ttl <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"TTL must be positive, got: {ttl}",
                context=context,
            )
        if max_entries <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"max_entries must be positive, got: {max_entries}",
                context=context,
            )

        self.ttl = float(ttl)
        self.max_entries = int(max_entries)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()

    def get(self, key: CacheKey) -> Metadata | None:
        """Return the cached value, or None when absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now, self.ttl):
                del self._entries[key]
                logger.debug("Cache entry expired for key %s", key.digest[:12])
                return None
            return entry.value

    def put(self, key: CacheKey, value: Metadata) -> CacheEntry:
        """Install or replace the entry for ``key`` stamped with the current time."""
        entry = CacheEntry(key=key, value=value, stored_at=self._clock())
        with self._lock:
            self.evict_expired()
            # Re-inserting moves the key to the newest position
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted oldest cache entry %s", evicted.digest[:12])
            self._entries[key] = entry
        return entry

    def evict_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of removed entries
        """
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if entry.is_expired(now, self.ttl)
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, expired ones not yet evicted included."""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CacheKey) and self.get(key) is not None

    def entries(self) -> list[CacheEntry]:
        """Snapshot of the live entries, oldest first."""
        now = self._clock()
        with self._lock:
            return [
                entry for entry in self._entries.values() if not entry.is_expired(now, self.ttl)
            ]

    def load(self, entries: Iterable[CacheEntry]) -> int:
        """Install previously persisted entries.

        Original timestamps are kept, expired entries are skipped and when
        there are more entries than ``max_entries`` the most recently
        stored ones win.

        Returns:
            Number of entries installed
        """
        now = self._clock()
        live = sorted(
            (entry for entry in entries if not entry.is_expired(now, self.ttl)),
            key=lambda entry: entry.stored_at,
        )
        live = live[-self.max_entries :]
        with self._lock:
            for entry in live:
                self._entries.pop(entry.key, None)
                self._entries[entry.key] = entry
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return len(live)
