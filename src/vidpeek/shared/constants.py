"""
vidpeek Constants Module

Centralized defaults and magic values. Settings models read their
defaults from here so there is a single source of truth.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

# Base time units
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND
BASE_HOUR = 60 * BASE_MINUTE
BASE_DAY = 24 * BASE_HOUR


class Application:
    """Application identity."""

    NAME = "vidpeek"
    VERSION = "0.1.0"
    DESCRIPTION = "Pre-download media metadata previews with a deduplicating cache"
    HOME_DIR = ".vidpeek"


class SchedulerDefaults:
    """Defaults for the preview scheduler and its cache."""

    TTL = BASE_DAY  # 24 hours
    MAX_CONCURRENT = 3
    MAX_ENTRIES = 500
    DRAIN_INTERVAL = 1.0 * BASE_SECOND


class FetcherDefaults:
    """Defaults for the yt-dlp backed fetcher."""

    TIMEOUT = 60 * BASE_SECOND
    SOCKET_TIMEOUT = 30 * BASE_SECOND
    QUICK_OPTION = "quick"
    QUALITY_OPTION = "quality"
    FORMAT_OPTION = "format"


class RetryDefaults:
    """Defaults for the retry coordinator."""

    MAX_ATTEMPTS = 3
    BASE_DELAY = 1.0 * BASE_SECOND
    HISTORY_SIZE = 100


class CacheFile:
    """Persisted cache file layout."""

    FILE_NAME = "preview_cache.json"
    DEFAULT_PATH = Path.home() / Application.HOME_DIR / FILE_NAME
    SCHEMA_VERSION = 1
    TEMP_SUFFIX = ".tmp"


class LoggingDefaults:
    """Logging defaults."""

    LEVEL = "INFO"
    FILE_PATH = ""


class PreviewConstants:
    """Values used when building the preview payload."""

    UNKNOWN_TITLE = "Unknown Title"
    UNKNOWN_CHANNEL = "Unknown Channel"
    PREFERRED_HEIGHT = 1080

    THUMBNAIL_PRIORITIES: ClassVar[tuple[str, ...]] = (
        "maxresdefault",
        "hqdefault",
        "mqdefault",
        "sddefault",
        "default",
    )
    DEFAULT_THUMBNAIL: ClassVar[dict[str, object]] = {
        "url": "assets/default-video-thumbnail.jpg",
        "width": 320,
        "height": 180,
        "type": "default",
    }

    # (minimum height, label), tallest first
    QUALITY_BUCKETS: ClassVar[tuple[tuple[int, str], ...]] = (
        (2160, "4K (2160p)"),
        (1440, "2K (1440p)"),
        (1080, "Full HD (1080p)"),
        (720, "HD (720p)"),
        (480, "SD (480p)"),
        (360, "SD (360p)"),
        (240, "Low (240p)"),
        (0, "Very Low (144p)"),
    )

    # Bytes per second
    CONNECTION_SPEEDS: ClassVar[dict[str, int]] = {
        "slow": 1 * 1024 * 1024,
        "medium": 10 * 1024 * 1024,
        "fast": 50 * 1024 * 1024,
        "veryfast": 100 * 1024 * 1024,
    }

    SIZE_UNITS: ClassVar[tuple[str, ...]] = ("B", "KB", "MB", "GB")


class CLIDefaults:
    """CLI defaults and exit codes."""

    EXIT_SUCCESS = 0
    EXIT_INTERRUPTED = 130
    DEFAULT_RETRIES = 0
