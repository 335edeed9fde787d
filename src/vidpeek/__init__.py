"""
vidpeek - media preview scheduling and caching

Fetches pre-download metadata previews through a deduplicating,
concurrency-bounded scheduler backed by a TTL cache.
"""

__version__ = "0.1.0"

from .services import PreviewScheduler, YtDlpFetcher

__all__ = [
    "PreviewScheduler",
    "YtDlpFetcher",
    "__version__",
]
