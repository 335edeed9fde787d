"""Retry coordinator configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from vidpeek.shared.constants import RetryDefaults


class RetrySettings(BaseModel):
    """Retry behavior for failed operations reported to the coordinator.

    The delay before attempt ``n`` (0-based) is ``base_delay * 2 ** n``.
    """

    max_attempts: int = Field(
        default=RetryDefaults.MAX_ATTEMPTS,
        ge=0,
        description="Maximum number of retries per operation",
    )
    base_delay: float = Field(
        default=RetryDefaults.BASE_DELAY,
        ge=0,
        description="Base backoff delay in seconds",
    )
    history_size: int = Field(
        default=RetryDefaults.HISTORY_SIZE,
        gt=0,
        description="Number of error records kept in history",
    )


__all__ = ["RetrySettings"]
