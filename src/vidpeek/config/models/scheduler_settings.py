"""Scheduler and fetcher configuration models.

This module contains the settings that bound load on the metadata
provider: cache lifetime and size, the concurrency cap, the periodic
drain interval and the fetcher timeouts.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from vidpeek.shared.constants import FetcherDefaults, SchedulerDefaults


class SchedulerSettings(BaseModel):
    """Preview scheduler configuration.

    All durations are in seconds.
    """

    ttl: float = Field(
        default=SchedulerDefaults.TTL,
        gt=0,
        description="Cache entry lifetime in seconds",
    )
    max_concurrent: int = Field(
        default=SchedulerDefaults.MAX_CONCURRENT,
        gt=0,
        description="Maximum number of in-flight fetcher calls",
    )
    max_entries: int = Field(
        default=SchedulerDefaults.MAX_ENTRIES,
        gt=0,
        description="Maximum number of cached previews",
    )
    drain_interval: float = Field(
        default=SchedulerDefaults.DRAIN_INTERVAL,
        gt=0,
        description="How often the queue is re-checked without a completion event",
    )


class FetcherSettings(BaseModel):
    """yt-dlp fetcher configuration."""

    timeout: float = Field(
        default=FetcherDefaults.TIMEOUT,
        gt=0,
        description="Upper bound for one metadata extraction in seconds",
    )
    socket_timeout: float = Field(
        default=FetcherDefaults.SOCKET_TIMEOUT,
        gt=0,
        description="Socket timeout handed to yt-dlp in seconds",
    )


__all__ = [
    "FetcherSettings",
    "SchedulerSettings",
]
