"""vidpeek configuration package.

Usage:
    from vidpeek.config import get_config

    settings = get_config()
    settings.scheduler.max_concurrent
"""

from __future__ import annotations

from vidpeek.config.loader import (
    SettingsLoader,
    get_config,
    load_settings,
    reload_config,
    reset_config,
)
from vidpeek.config.models import (
    AppSettings,
    CacheSettings,
    FetcherSettings,
    LoggingSettings,
    RetrySettings,
    SchedulerSettings,
    Settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "FetcherSettings",
    "LoggingSettings",
    "RetrySettings",
    "SchedulerSettings",
    "Settings",
    "SettingsLoader",
    "get_config",
    "load_settings",
    "reload_config",
    "reset_config",
]
