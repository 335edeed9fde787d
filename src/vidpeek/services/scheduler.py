"""Deduplicating preview scheduler.

``PreviewScheduler`` answers preview requests from the TTL cache when it
can, joins callers onto an identical in-flight request when one exists,
and otherwise queues a new fetch that starts once a concurrency slot is
free. All state lives on one asyncio event loop. Admission is a plain
synchronous method, so the slot check and the task registration that
follows it cannot interleave with another admission.

Example:
    >>> async with PreviewScheduler(YtDlpFetcher()) as scheduler:
    ...     preview = await scheduler.fetch("https://youtu.be/dQw4w9WgXcQ")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Callable

from vidpeek.services.cache_store import CacheStore, Metadata
from vidpeek.services.fetcher import MetadataFetcher
from vidpeek.services.pending import (
    Failure,
    Outcome,
    PendingRequest,
    PendingRequestTable,
    Success,
)
from vidpeek.services.persistence import CachePersistence
from vidpeek.services.request_queue import RequestQueue
from vidpeek.shared.cache_utils import CacheKey, canonical_options, derive_cache_key
from vidpeek.shared.constants import FetcherDefaults, SchedulerDefaults
from vidpeek.shared.errors import (
    ApplicationError,
    ErrorCode,
    ErrorContext,
    FetchError,
    InfrastructureError,
    VidPeekError,
    create_cancelled_error,
    create_fetch_error,
)
from vidpeek.shared.identifiers import parse_item_reference
from vidpeek.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStats:
    """Point-in-time scheduler counters."""

    cache_size: int
    queued: int
    peak_queued: int
    pending: int
    active: int
    peak_active: int
    hits: int
    misses: int
    joins: int
    fetches_started: int
    failures: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class PreviewScheduler:
    """Cache-first, deduplicating, concurrency-bounded preview fetching.

    Args:
        fetcher: Metadata provider
        ttl: Cache entry lifetime in seconds
        max_concurrent: Maximum number of fetches in flight
        max_entries: Cache size cap
        drain_interval: Seconds between periodic admission passes
        persistence: Optional cache storage loaded on start and written
            after every successful fetch
        clock: Time source for cache timestamps
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        *,
        ttl: float = SchedulerDefaults.TTL,
        max_concurrent: int = SchedulerDefaults.MAX_CONCURRENT,
        max_entries: int = SchedulerDefaults.MAX_ENTRIES,
        drain_interval: float = SchedulerDefaults.DRAIN_INTERVAL,
        persistence: CachePersistence | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        context = ErrorContext(
            operation="scheduler_init",
            additional_data={
                "max_concurrent": max_concurrent,
                "drain_interval": drain_interval,
            },
        )
        if max_concurrent <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"max_concurrent must be positive, got: {max_concurrent}",
                context=context,
            )
        if drain_interval <= 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"drain_interval must be positive, got: {drain_interval}",
                context=context,
            )

        self._fetcher = fetcher
        self._cache = CacheStore(ttl=ttl, max_entries=max_entries, clock=clock)
        self._persistence = persistence
        self.max_concurrent = max_concurrent
        self.drain_interval = drain_interval

        self._queue = RequestQueue()
        self._pending = PendingRequestTable()
        self._active: dict[CacheKey, asyncio.Task[None]] = {}
        self._drain_task: asyncio.Task[None] | None = None
        self._started = False
        self._closing = False
        self._closed = False

        # Statistics
        self._peak_active = 0
        self._hits = 0
        self._misses = 0
        self._joins = 0
        self._fetches_started = 0
        self._failures = 0

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        fetcher: MetadataFetcher,
        persistence: CachePersistence | None = None,
    ) -> PreviewScheduler:
        """Build a scheduler from the ``scheduler`` section of Settings."""
        section = settings.scheduler
        return cls(
            fetcher,
            ttl=section.ttl,
            max_concurrent=section.max_concurrent,
            max_entries=section.max_entries,
            drain_interval=section.drain_interval,
            persistence=persistence,
        )

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def fetch(
        self,
        item: str,
        options: Mapping[str, Any] | None = None,
    ) -> Metadata:
        """Return preview metadata for ``item``.

        Callers must treat the returned mapping as read-only, it is the
        cached object shared with every other caller.

        Raises:
            InvalidIdentifierError: If ``item`` is not a valid reference
            DomainError: If ``options`` cannot be canonicalized
            FetchError: If the fetcher failed for this request
            RequestCancelledError: If the scheduler shut down before the
                request completed
            ApplicationError: If the scheduler was already shut down
        """
        self._ensure_open()

        reference = parse_item_reference(item)
        normalized = canonical_options(options)
        key = derive_cache_key(reference.item_id, normalized)

        cached = self._cache.get(key)
        if cached is not None:
            self._hits += 1
            logger.debug("Cache hit for %s", reference.item_id)
            return cached

        request = self._pending.get(key)
        if request is not None:
            self._joins += 1
            waiter = request.add_waiter()
            logger.debug(
                "Joined pending request for %s (%d waiters)",
                reference.item_id,
                len(request.waiters),
            )
        else:
            self._misses += 1
            request = PendingRequest(
                key=key,
                item=reference,
                options=normalized,
                enqueued_at=asyncio.get_running_loop().time(),
            )
            self._pending.add(request)
            self._queue.push(key)
            waiter = request.add_waiter()
            self._admit()

        outcome = await waiter
        return outcome.unwrap()

    async def fetch_quick(
        self,
        item: str,
        options: Mapping[str, Any] | None = None,
    ) -> Metadata:
        """Fetch a lightweight preview kept in its own cache slot."""
        quick_options = {
            name: value
            for name, value in (options or {}).items()
            if not (isinstance(name, str) and name.lower() == FetcherDefaults.QUICK_OPTION)
        }
        quick_options[FetcherDefaults.QUICK_OPTION] = True
        return await self.fetch(item, quick_options)

    async def start(self) -> None:
        """Load persisted entries and start the periodic admission task."""
        self._ensure_open()
        if self._started:
            return
        self._started = True

        if self._persistence is not None:
            try:
                loaded = self._cache.load(self._persistence.load_cache())
            except VidPeekError as e:
                log_operation_error(logger, e, operation="scheduler_start")
            else:
                logger.info("Loaded %d cached previews", loaded)

        self._drain_task = asyncio.create_task(
            self._drain_loop(),
            name="vidpeek-scheduler-drain",
        )

    async def shutdown(self, *, drain: bool = True) -> None:
        """Stop the scheduler.

        Queued requests are rejected with ``RequestCancelledError``.
        In-flight fetches are awaited when ``drain`` is True, otherwise
        cancelled and their waiters rejected. The cache is saved once at
        the end.
        """
        if self._closed or self._closing:
            return
        self._closing = True
        start_time = time.time()

        if self._drain_task is not None:
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
            self._drain_task = None

        rejected = 0
        for key in self._queue.drain():
            request = self._pending.pop(key)
            if request is not None:
                request.resolve(
                    Failure(create_cancelled_error(key.digest[:12], "scheduler shut down")),
                )
                rejected += 1

        in_flight = list(self._active.values())
        if not drain:
            for task in in_flight:
                task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        # Tasks cancelled before their first step never reach _complete
        for request in self._pending.values():
            self._pending.pop(request.key)
            self._active.pop(request.key, None)
            if not request.resolved:
                request.resolve(
                    Failure(create_cancelled_error(request.key.digest[:12], "fetch cancelled")),
                )

        self._closed = True
        self._save_cache()
        log_operation_success(
            logger,
            "scheduler_shutdown",
            (time.time() - start_time) * 1000,
            {"rejected": rejected, "in_flight": len(in_flight), "drain": drain},
        )

    async def __aenter__(self) -> PreviewScheduler:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def get_stats(self) -> SchedulerStats:
        queue_stats = self._queue.get_stats()
        return SchedulerStats(
            cache_size=self._cache.size(),
            queued=queue_stats.size,
            peak_queued=queue_stats.max_size_reached,
            pending=len(self._pending),
            active=len(self._active),
            peak_active=self._peak_active,
            hits=self._hits,
            misses=self._misses,
            joins=self._joins,
            fetches_started=self._fetches_started,
            failures=self._failures,
        )

    def clear_cache(self) -> None:
        """Drop every cached preview and persist the empty cache."""
        self._cache.clear()
        self._save_cache()
        logger.info("Preview cache cleared")

    def _ensure_open(self) -> None:
        if self._closed or self._closing:
            raise ApplicationError(
                code=ErrorCode.RESOURCE_UNAVAILABLE,
                message="Scheduler has been shut down",
                context=ErrorContext(operation="scheduler_fetch"),
            )

    def _admit(self) -> int:
        """Start queued requests while slots are free.

        Runs on enqueue, after every completion and on the periodic drain
        tick. Contains no await.

        Returns:
            Number of fetches started
        """
        if self._closing:
            return 0

        admitted = 0
        loop = asyncio.get_running_loop()
        while len(self._active) < self.max_concurrent and self._queue:
            key = self._queue.pop()
            request = self._pending.get(key) if key is not None else None
            if request is None:
                continue

            request.started_at = loop.time()
            task = asyncio.create_task(
                self._run_fetch(request),
                name=f"vidpeek-fetch-{key.digest[:12]}",
            )
            request.task = task
            self._active[key] = task
            self._fetches_started += 1
            self._peak_active = max(self._peak_active, len(self._active))
            admitted += 1
            logger.debug(
                "Admitted %s (%d/%d active, %d queued)",
                request.item.item_id,
                len(self._active),
                self.max_concurrent,
                len(self._queue),
            )
        return admitted

    async def _run_fetch(self, request: PendingRequest) -> None:
        reference = request.item.reference
        outcome: Outcome | None = None
        try:
            value = await self._fetcher.fetch_metadata(reference, request.options)
            if value is None:
                raise create_fetch_error(
                    "Fetcher returned no metadata",
                    reference=reference,
                    code=ErrorCode.FETCH_EMPTY_RESULT,
                )
        except asyncio.CancelledError:
            outcome = Failure(create_cancelled_error(request.key.digest[:12], "fetch cancelled"))
            raise
        except FetchError as e:
            outcome = Failure(e)
        except Exception as e:  # noqa: BLE001
            wrapped = create_fetch_error(
                f"Fetcher failed: {e!s}",
                reference=reference,
                original_error=e,
            )
            wrapped.__cause__ = e
            outcome = Failure(wrapped)
        else:
            outcome = Success(value)
            self._cache.put(request.key, value)
            self._save_cache()
        finally:
            if outcome is None:
                outcome = Failure(
                    create_fetch_error("Fetch ended without a result", reference=reference),
                )
            self._complete(request, outcome)

    def _complete(self, request: PendingRequest, outcome: Outcome) -> None:
        """Remove ``request`` from the tables, then notify its waiters."""
        self._active.pop(request.key, None)
        self._pending.pop(request.key)

        try:
            started_at = request.started_at or request.enqueued_at
            duration_ms = (asyncio.get_running_loop().time() - started_at) * 1000
            if isinstance(outcome, Failure):
                self._failures += 1
                log_operation_error(
                    logger,
                    outcome.error,
                    operation="scheduler_fetch",
                    additional_context={"item_id": request.item.item_id},
                )
            else:
                log_operation_success(
                    logger,
                    "scheduler_fetch",
                    duration_ms,
                    {"item_id": request.item.item_id, "waiters": request.live_waiters()},
                )
        finally:
            request.resolve(outcome)
            self._admit()

    async def _drain_loop(self) -> None:
        while True:
            await asyncio.sleep(self.drain_interval)
            self._admit()

    def _save_cache(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save_cache(self._cache.entries())
        except VidPeekError as e:
            log_operation_error(logger, e, operation="save_cache")
        except Exception as e:  # noqa: BLE001
            log_operation_error(
                logger,
                InfrastructureError(
                    code=ErrorCode.CACHE_ERROR,
                    message=f"Cache persistence failed: {e!s}",
                    context=ErrorContext(operation="save_cache"),
                    original_error=e,
                ),
                operation="save_cache",
            )
