"""Services module for vidpeek.

This module contains the preview scheduler and its collaborators: the
TTL cache, request bookkeeping, the yt-dlp fetcher, cache persistence
and retry coordination.
"""

from .cache_store import CacheEntry, CacheStore
from .fetcher import MetadataFetcher, YtDlpFetcher
from .metadata import build_preview
from .persistence import CachePersistence, JSONCachePersistence
from .retry import ErrorCategory, RetryCoordinator
from .scheduler import PreviewScheduler, SchedulerStats

__all__ = [
    "CacheEntry",
    "CachePersistence",
    "CacheStore",
    "ErrorCategory",
    "JSONCachePersistence",
    "MetadataFetcher",
    "PreviewScheduler",
    "RetryCoordinator",
    "SchedulerStats",
    "YtDlpFetcher",
    "build_preview",
]
