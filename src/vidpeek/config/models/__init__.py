"""Configuration models for vidpeek.

Each configuration domain lives in its own module; ``Settings`` ties them
together.
"""

from __future__ import annotations

from vidpeek.config.models.app_settings import AppSettings, LoggingSettings
from vidpeek.config.models.cache_settings import CacheSettings
from vidpeek.config.models.retry_settings import RetrySettings
from vidpeek.config.models.scheduler_settings import (
    FetcherSettings,
    SchedulerSettings,
)
from vidpeek.config.models.settings import Settings

__all__ = [
    "AppSettings",
    "CacheSettings",
    "FetcherSettings",
    "LoggingSettings",
    "RetrySettings",
    "SchedulerSettings",
    "Settings",
]
