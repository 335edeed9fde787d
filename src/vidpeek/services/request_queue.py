"""
RequestQueue - FIFO of cache keys awaiting dispatch.

Each key appears at most once. The queue is only touched from the
scheduler's event loop, so no locking is done here.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass

from vidpeek.shared.cache_utils import CacheKey


@dataclass
class QueueStats:
    """Statistics for queue operations."""

    size: int
    total_added: int
    total_removed: int
    max_size_reached: int


class RequestQueue:
    """Ordered set of keys waiting for a concurrency slot."""

    def __init__(self) -> None:
        self._queue: deque[CacheKey] = deque()
        self._members: set[CacheKey] = set()

        # Statistics
        self._total_added = 0
        self._total_removed = 0
        self._max_size_reached = 0

    def push(self, key: CacheKey) -> bool:
        """Append ``key`` unless it is already queued.

        Returns:
            True if the key was added
        """
        if key in self._members:
            return False
        self._queue.append(key)
        self._members.add(key)
        self._total_added += 1
        self._max_size_reached = max(self._max_size_reached, len(self._queue))
        return True

    def pop(self) -> CacheKey | None:
        """Remove and return the front key, or None when empty."""
        if not self._queue:
            return None
        key = self._queue.popleft()
        self._members.discard(key)
        self._total_removed += 1
        return key

    def drain(self) -> list[CacheKey]:
        """Remove and return every queued key in order."""
        keys = list(self._queue)
        self._queue.clear()
        self._members.clear()
        self._total_removed += len(keys)
        return keys

    def get_stats(self) -> QueueStats:
        return QueueStats(
            size=len(self._queue),
            total_added=self._total_added,
            total_removed=self._total_removed,
            max_size_reached=self._max_size_reached,
        )

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(list(self._queue))
