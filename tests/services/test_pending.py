"""Tests for pending request bookkeeping and outcome fan-out."""

from __future__ import annotations

import asyncio

import pytest

from vidpeek.services.pending import Failure, PendingRequest, PendingRequestTable, Success
from vidpeek.shared.cache_utils import derive_cache_key
from vidpeek.shared.errors import ApplicationError, ErrorCode, create_fetch_error
from vidpeek.shared.identifiers import ItemReference


def make_request(name: str = "abc123") -> PendingRequest:
    return PendingRequest(
        key=derive_cache_key(name),
        item=ItemReference(item_id=name, reference=name),
        options={},
        enqueued_at=0.0,
    )


class TestOutcome:
    def test_success_unwrap_returns_value(self):
        assert Success({"id": "x"}).unwrap() == {"id": "x"}

    def test_failure_unwrap_raises_error(self):
        error = create_fetch_error("boom")
        with pytest.raises(type(error)) as exc_info:
            Failure(error).unwrap()
        assert exc_info.value is error


class TestPendingRequest:
    @pytest.mark.asyncio
    async def test_all_waiters_receive_same_outcome(self):
        request = make_request()
        waiters = [request.add_waiter() for _ in range(3)]
        outcome = Success({"id": "abc123"})

        assert request.resolve(outcome) == 3
        results = await asyncio.gather(*waiters)
        assert all(result is outcome for result in results)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_skipped(self):
        request = make_request()
        kept = request.add_waiter()
        dropped = request.add_waiter()
        dropped.cancel()

        assert request.live_waiters() == 1
        assert request.resolve(Success({})) == 1
        assert (await kept).unwrap() == {}

    @pytest.mark.asyncio
    async def test_resolving_twice_is_rejected(self):
        request = make_request()
        request.add_waiter()
        request.resolve(Success({}))

        with pytest.raises(ApplicationError) as exc_info:
            request.resolve(Success({}))
        assert exc_info.value.code == ErrorCode.CONCURRENCY_ERROR

    def test_started_flag(self):
        request = make_request()
        assert not request.started
        request.started_at = 1.0
        assert request.started


class TestPendingRequestTable:
    def test_one_request_per_key(self):
        table = PendingRequestTable()
        table.add(make_request())

        with pytest.raises(ApplicationError):
            table.add(make_request())
        assert len(table) == 1

    def test_pop(self):
        table = PendingRequestTable()
        request = make_request()
        table.add(request)

        assert request.key in table
        assert table.pop(request.key) is request
        assert table.pop(request.key) is None
        assert table.get(request.key) is None
