"""Pending request bookkeeping for the preview scheduler.

A ``PendingRequest`` exists for every key that is queued or in flight.
Callers asking for the same key while it is pending attach a waiter
future instead of starting another fetch. When the request resolves every
waiter receives the same ``Outcome``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from vidpeek.services.cache_store import Metadata
from vidpeek.shared.cache_utils import CacheKey
from vidpeek.shared.errors import ApplicationError, ErrorCode, ErrorContext, VidPeekError
from vidpeek.shared.identifiers import ItemReference


@dataclass(frozen=True)
class Success:
    """Successful fetch result."""

    value: Metadata

    def unwrap(self) -> Metadata:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Failed fetch result carrying the error delivered to waiters."""

    error: VidPeekError

    def unwrap(self) -> Metadata:
        raise self.error


Outcome = Union[Success, Failure]


@dataclass
class PendingRequest:
    """A deduplicated request shared by all of its waiters.

    Attributes:
        key: Cache key of the request
        item: Parsed item reference handed to the fetcher
        options: Canonical request options
        enqueued_at: Loop time at creation
        started_at: Loop time at admission, None while queued
        waiters: One future per suspended caller
        task: Fetch task once admitted
    """

    key: CacheKey
    item: ItemReference
    options: Mapping[str, Any]
    enqueued_at: float
    started_at: float | None = None
    waiters: list[asyncio.Future[Outcome]] = field(default_factory=list)
    task: asyncio.Task[None] | None = None
    resolved: bool = False

    @property
    def started(self) -> bool:
        return self.started_at is not None

    def add_waiter(self) -> asyncio.Future[Outcome]:
        """Attach a new waiter future on the running loop."""
        waiter: asyncio.Future[Outcome] = asyncio.get_running_loop().create_future()
        self.waiters.append(waiter)
        return waiter

    def live_waiters(self) -> int:
        """Number of waiters whose callers are still awaiting."""
        return sum(1 for waiter in self.waiters if not waiter.done())

    def resolve(self, outcome: Outcome) -> int:
        """Deliver ``outcome`` to every waiter still awaiting.

        Waiters whose callers gave up (cancelled futures) are skipped.

        Returns:
            Number of waiters notified

        Raises:
            ApplicationError: If the request was already resolved
        """
        if self.resolved:
            raise ApplicationError(
                code=ErrorCode.CONCURRENCY_ERROR,
                message="Pending request resolved twice",
                context=ErrorContext(
                    operation="resolve_pending_request",
                    additional_data={"key": self.key.digest[:12]},
                ),
            )
        self.resolved = True

        notified = 0
        for waiter in self.waiters:
            if not waiter.done():
                waiter.set_result(outcome)
                notified += 1
        self.waiters.clear()
        return notified


class PendingRequestTable:
    """At most one PendingRequest per key."""

    def __init__(self) -> None:
        self._requests: dict[CacheKey, PendingRequest] = {}

    def get(self, key: CacheKey) -> PendingRequest | None:
        return self._requests.get(key)

    def add(self, request: PendingRequest) -> None:
        """Register ``request``.

        Raises:
            ApplicationError: If a request for the same key is already pending
        """
        if request.key in self._requests:
            raise ApplicationError(
                code=ErrorCode.CONCURRENCY_ERROR,
                message="A request for this key is already pending",
                context=ErrorContext(
                    operation="add_pending_request",
                    additional_data={"key": request.key.digest[:12]},
                ),
            )
        self._requests[request.key] = request

    def pop(self, key: CacheKey) -> PendingRequest | None:
        return self._requests.pop(key, None)

    def values(self) -> list[PendingRequest]:
        return list(self._requests.values())

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, key: object) -> bool:
        return key in self._requests

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(list(self._requests))
