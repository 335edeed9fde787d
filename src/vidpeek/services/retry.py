"""Failure classification and retry scheduling.

The scheduler never retries on its own. ``RetryCoordinator`` is the
collaborator that decides whether a failed operation is worth another
attempt: it classifies the error, keeps a bounded history of failures
and re-runs registered callbacks with exponential backoff
(``base_delay * 2 ** attempt``) until ``max_attempts`` is reached.

Example:
    >>> coordinator = RetryCoordinator(max_attempts=2, base_delay=0.5)
    >>> preview = await coordinator.run(
    ...     "preview:abc123",
    ...     lambda: scheduler.fetch("abc123"),
    ... )
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections import deque
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, TypeVar

from vidpeek.shared.constants import RetryDefaults
from vidpeek.shared.errors import (
    ApplicationError,
    ErrorCode,
    ErrorContext,
    VidPeekError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(str, Enum):
    """Broad failure categories."""

    NETWORK = "network"
    YOUTUBE = "youtube"
    DOWNLOAD = "download"
    DATABASE = "database"
    FILESYSTEM = "filesystem"
    STORAGE = "storage"
    CONVERSION = "conversion"
    PERMISSION = "permission"
    VALIDATION = "validation"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorType:
    """Classification result for a failure."""

    name: str
    title: str
    category: ErrorCategory
    retryable: bool
    severity: str = "error"


ERROR_TYPES: dict[str, ErrorType] = {
    error_type.name: error_type
    for error_type in (
        ErrorType("NETWORK_ERROR", "Network Connection Error", ErrorCategory.NETWORK, True),
        ErrorType("YOUTUBE_API_ERROR", "YouTube Service Error", ErrorCategory.YOUTUBE, True),
        ErrorType("DOWNLOAD_ERROR", "Download Failed", ErrorCategory.DOWNLOAD, True),
        ErrorType("DATABASE_ERROR", "Database Error", ErrorCategory.DATABASE, True),
        ErrorType("FILE_SYSTEM_ERROR", "File System Error", ErrorCategory.FILESYSTEM, False),
        ErrorType(
            "VALIDATION_ERROR",
            "Invalid Input",
            ErrorCategory.VALIDATION,
            False,
            severity="warning",
        ),
        ErrorType("FFMPEG_ERROR", "Video Conversion Error", ErrorCategory.CONVERSION, True),
        ErrorType("PERMISSION_ERROR", "Permission Denied", ErrorCategory.PERMISSION, False),
        ErrorType("STORAGE_ERROR", "Storage Error", ErrorCategory.STORAGE, False),
        ErrorType(
            "CANCELLED_ERROR",
            "Operation Cancelled",
            ErrorCategory.CANCELLED,
            False,
            severity="warning",
        ),
        ErrorType("UNKNOWN_ERROR", "Unexpected Error", ErrorCategory.UNKNOWN, True),
    )
}

# First match wins
ERROR_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"network|connection|timeout|timed out|ENOTFOUND|ECONNREFUSED", re.I), "NETWORK_ERROR"),
    (
        re.compile(r"youtube|yt-dlp|403|404|video.*unavailable|private.*video", re.I),
        "YOUTUBE_API_ERROR",
    ),
    (re.compile(r"download.*failed|unable.*download|ERROR.*downloading", re.I), "DOWNLOAD_ERROR"),
    (re.compile(r"database|sqlite|SQLITE_", re.I), "DATABASE_ERROR"),
    (
        re.compile(r"ENOENT|EACCES|file.*not.*found|permission.*denied", re.I),
        "FILE_SYSTEM_ERROR",
    ),
    (re.compile(r"ENOSPC|disk.*full|no.*space", re.I), "STORAGE_ERROR"),
    (re.compile(r"ffmpeg|conversion.*failed|codec.*error", re.I), "FFMPEG_ERROR"),
    (re.compile(r"validation|invalid.*input|required.*field", re.I), "VALIDATION_ERROR"),
)

# Error codes that decide the classification without looking at the message
CODE_TYPES: dict[ErrorCode, str] = {
    ErrorCode.FETCH_TIMEOUT: "NETWORK_ERROR",
    ErrorCode.INVALID_IDENTIFIER: "VALIDATION_ERROR",
    ErrorCode.VALIDATION_ERROR: "VALIDATION_ERROR",
    ErrorCode.CONFIG_INVALID: "VALIDATION_ERROR",
    ErrorCode.CLI_INVALID_ARGUMENTS: "VALIDATION_ERROR",
    ErrorCode.FILE_READ_ERROR: "FILE_SYSTEM_ERROR",
    ErrorCode.FILE_WRITE_ERROR: "FILE_SYSTEM_ERROR",
    ErrorCode.OPERATION_CANCELLED: "CANCELLED_ERROR",
    ErrorCode.RESOURCE_UNAVAILABLE: "CANCELLED_ERROR",
}


class ErrorClassifier:
    """Map exceptions to an ``ErrorType``."""

    def classify(self, error: BaseException) -> ErrorType:
        if isinstance(error, VidPeekError):
            type_name = CODE_TYPES.get(error.code)
            if type_name is not None:
                return ERROR_TYPES[type_name]

        for text in self._texts(error):
            for pattern, type_name in ERROR_PATTERNS:
                if pattern.search(text):
                    return ERROR_TYPES[type_name]
        return ERROR_TYPES["UNKNOWN_ERROR"]

    @staticmethod
    def _texts(error: BaseException) -> list[str]:
        texts = [str(error), type(error).__name__]
        original = getattr(error, "original_error", None)
        if original is not None:
            texts.extend([str(original), type(original).__name__])
        return texts


@dataclass
class ErrorRecord:
    """One reported failure."""

    error_type: ErrorType
    message: str
    operation_id: str | None = None
    retry_attempt: int = 0
    code: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )

    @property
    def retryable(self) -> bool:
        return self.error_type.retryable

    @property
    def category(self) -> ErrorCategory:
        return self.error_type.category

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.error_type.name,
            "category": self.category.value,
            "retryable": self.retryable,
            "message": self.message,
            "code": self.code,
            "operation_id": self.operation_id,
            "retry_attempt": self.retry_attempt,
            "timestamp": self.timestamp,
            "context": self.context,
        }


RetryCallback = Callable[[ErrorRecord], Awaitable[Any]]


class RetryCoordinator:
    """Classify failures and retry operations with exponential backoff.

    Args:
        max_attempts: Retries allowed per operation id
        base_delay: Delay in seconds before the first retry
        history_size: Number of error records kept
        classifier: Error classifier, the default one when omitted
        sleep: Awaitable sleep used between attempts
    """

    def __init__(
        self,
        max_attempts: int = RetryDefaults.MAX_ATTEMPTS,
        base_delay: float = RetryDefaults.BASE_DELAY,
        history_size: int = RetryDefaults.HISTORY_SIZE,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 0 or base_delay < 0 or history_size <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message="Invalid retry configuration",
                context=ErrorContext(
                    operation="retry_coordinator_init",
                    additional_data={
                        "max_attempts": max_attempts,
                        "base_delay": base_delay,
                        "history_size": history_size,
                    },
                ),
            )

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._classifier = classifier or ErrorClassifier()
        self._sleep = sleep
        self._history: deque[ErrorRecord] = deque(maxlen=history_size)
        self._attempts: dict[str, int] = {}
        self._callbacks: dict[str, RetryCallback] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Any) -> RetryCoordinator:
        """Build a coordinator from the ``retry`` section of Settings."""
        return cls(
            max_attempts=settings.retry.max_attempts,
            base_delay=settings.retry.base_delay,
            history_size=settings.retry.history_size,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before retry number ``attempt`` (0-based)."""
        return self.base_delay * 2**attempt

    def get_attempts(self, operation_id: str) -> int:
        return self._attempts.get(operation_id, 0)

    def reset(self, operation_id: str) -> None:
        self._attempts.pop(operation_id, None)

    def register_retry(self, operation_id: str, callback: RetryCallback) -> None:
        """Register the callback re-run when ``operation_id`` fails."""
        self._callbacks[operation_id] = callback

    def unregister_retry(self, operation_id: str) -> None:
        self._callbacks.pop(operation_id, None)
        self._attempts.pop(operation_id, None)

    def classify(self, error: BaseException) -> ErrorType:
        return self._classifier.classify(error)

    def report_failure(
        self,
        error: BaseException,
        operation_id: str | None = None,
    ) -> ErrorRecord:
        """Record a failure and schedule a retry when one applies.

        A retry is scheduled on the running loop when the error is
        retryable, a callback is registered for ``operation_id`` and the
        attempt budget is not used up.

        Returns:
            The recorded failure
        """
        record = self._record(error, operation_id)
        if not record.retryable or operation_id is None:
            return record
        if operation_id not in self._callbacks:
            return record

        if self.get_attempts(operation_id) >= self.max_attempts:
            logger.warning(
                "Maximum retry attempts (%d) reached for %s",
                self.max_attempts,
                operation_id,
            )
            return record

        task = asyncio.get_running_loop().create_task(
            self._retry(operation_id, record),
            name=f"vidpeek-retry-{operation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return record

    async def _retry(self, operation_id: str, record: ErrorRecord) -> None:
        attempt = self.get_attempts(operation_id)
        self._attempts[operation_id] = attempt + 1
        delay = self.delay_for(attempt)
        logger.info(
            "Retrying %s in %.1fs (attempt %d/%d)",
            operation_id,
            delay,
            attempt + 1,
            self.max_attempts,
        )
        await self._sleep(delay)

        callback = self._callbacks.get(operation_id)
        if callback is None:
            return
        try:
            await callback(record)
        except Exception as e:  # noqa: BLE001
            self.report_failure(e, operation_id)
        else:
            self.reset(operation_id)

    async def run(
        self,
        operation_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Await ``operation`` retrying retryable failures inline.

        Raises:
            Exception: The operation's error when it is not retryable
            ApplicationError: RETRY_EXHAUSTED once ``max_attempts`` retries failed
        """
        attempt = 0
        while True:
            try:
                result = await operation()
            except Exception as e:
                record = self._record(e, operation_id, attempt)
                if not record.retryable:
                    raise
                if attempt >= self.max_attempts:
                    if self.max_attempts == 0:
                        raise
                    raise ApplicationError(
                        code=ErrorCode.RETRY_EXHAUSTED,
                        message=f"Giving up after {attempt + 1} attempts: {e!s}",
                        context=ErrorContext(
                            operation="retry_run",
                            additional_data={"operation_id": operation_id, "attempts": attempt + 1},
                        ),
                        original_error=e,
                    ) from e
                delay = self.delay_for(attempt)
                attempt += 1
                self._attempts[operation_id] = attempt
                logger.info(
                    "Retrying %s in %.1fs (attempt %d/%d)",
                    operation_id,
                    delay,
                    attempt,
                    self.max_attempts,
                )
                await self._sleep(delay)
            else:
                self.reset(operation_id)
                return result

    def get_history(self, category: ErrorCategory | None = None) -> list[ErrorRecord]:
        """Recorded failures, newest first."""
        if category is None:
            return list(self._history)
        return [record for record in self._history if record.category == category]

    def clear_history(self) -> None:
        self._history.clear()

    def get_stats(self) -> dict[str, Any]:
        by_category: dict[str, int] = {}
        for record in self._history:
            by_category[record.category.value] = by_category.get(record.category.value, 0) + 1
        return {
            "total": len(self._history),
            "retryable": sum(1 for record in self._history if record.retryable),
            "by_category": by_category,
            "pending_retries": len(self._tasks),
        }

    async def aclose(self) -> None:
        """Cancel retries that have not run yet."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    def _record(
        self,
        error: BaseException,
        operation_id: str | None,
        attempt: int | None = None,
    ) -> ErrorRecord:
        error_type = self.classify(error)
        record = ErrorRecord(
            error_type=error_type,
            message=getattr(error, "message", None) or str(error),
            operation_id=operation_id,
            retry_attempt=attempt if attempt is not None else self.get_attempts(operation_id or ""),
            code=error.code.value if isinstance(error, VidPeekError) else None,
            context=error.context.safe_dict() if isinstance(error, VidPeekError) else {},
        )
        self._history.appendleft(record)
        logger.debug(
            "Recorded %s failure for %s: %s",
            error_type.name,
            operation_id,
            record.message,
        )
        return record
