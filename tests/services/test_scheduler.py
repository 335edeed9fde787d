"""Tests for the deduplicating preview scheduler."""

from __future__ import annotations

import asyncio

import pytest

from vidpeek.services.cache_store import CacheEntry
from vidpeek.services.persistence import JSONCachePersistence
from vidpeek.services.scheduler import PreviewScheduler
from vidpeek.shared.cache_utils import derive_cache_key
from vidpeek.shared.errors import (
    ApplicationError,
    DomainError,
    ErrorCode,
    FetchError,
    InfrastructureError,
    InvalidIdentifierError,
    RequestCancelledError,
)


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_scheduler(clock):
    def factory(fetcher, **kwargs) -> PreviewScheduler:
        kwargs.setdefault("clock", clock)
        return PreviewScheduler(fetcher, **kwargs)

    return factory


class TestConstruction:
    def test_rejects_non_positive_concurrency(self, fetcher):
        with pytest.raises(ApplicationError) as exc_info:
            PreviewScheduler(fetcher, max_concurrent=0)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_rejects_non_positive_drain_interval(self, fetcher):
        with pytest.raises(ApplicationError):
            PreviewScheduler(fetcher, drain_interval=0)

    def test_rejects_invalid_cache_settings(self, fetcher):
        with pytest.raises(ApplicationError):
            PreviewScheduler(fetcher, ttl=0)

    def test_from_settings(self, fetcher):
        from vidpeek.config import Settings

        settings = Settings(scheduler={"ttl": 30, "max_concurrent": 5, "max_entries": 7})
        scheduler = PreviewScheduler.from_settings(settings, fetcher)

        assert scheduler.max_concurrent == 5
        assert scheduler.cache.ttl == 30
        assert scheduler.cache.max_entries == 7


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher)
        tasks = [asyncio.create_task(scheduler.fetch("abc123")) for _ in range(5)]
        await settle()

        stats = scheduler.get_stats()
        assert stats.pending == 1
        assert stats.active == 1
        assert stats.misses == 1
        assert stats.joins == 4

        gated_fetcher.release()
        results = await asyncio.gather(*tasks)

        assert gated_fetcher.call_count() == 1
        assert all(result is results[0] for result in results)
        assert scheduler.get_stats().pending == 0

    @pytest.mark.asyncio
    async def test_url_spellings_of_same_video_are_deduplicated(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        await asyncio.gather(
            scheduler.fetch("https://www.youtube.com/watch?v=dQw4w9WgXcQ"),
            scheduler.fetch("https://youtu.be/dQw4w9WgXcQ"),
        )

        assert fetcher.call_count() == 1

    @pytest.mark.asyncio
    async def test_option_order_does_not_matter(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        await asyncio.gather(
            scheduler.fetch("abc123", {"quality": "1080p", "lang": "en"}),
            scheduler.fetch("abc123", {"lang": "en", "Quality": "1080p"}),
        )

        assert fetcher.call_count() == 1

    @pytest.mark.asyncio
    async def test_distinct_options_are_not_deduplicated(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        first, second = await asyncio.gather(
            scheduler.fetch("abc123", {"quality": "720p"}),
            scheduler.fetch("abc123", {"quality": "1080p"}),
        )

        assert fetcher.call_count() == 2
        assert first["options"] == {"quality": "720p"}
        assert second["options"] == {"quality": "1080p"}

    @pytest.mark.asyncio
    async def test_cancelled_caller_only_drops_its_own_waiter(
        self,
        gated_fetcher,
        make_scheduler,
    ):
        scheduler = make_scheduler(gated_fetcher)
        leaving = asyncio.create_task(scheduler.fetch("abc123"))
        staying = asyncio.create_task(scheduler.fetch("abc123"))
        await settle()

        leaving.cancel()
        gated_fetcher.release()

        result = await staying
        assert result["id"] == "abc123"
        with pytest.raises(asyncio.CancelledError):
            await leaving
        assert gated_fetcher.call_count() == 1


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_call_within_ttl_is_a_hit(self, fetcher, make_scheduler, clock):
        scheduler = make_scheduler(fetcher, ttl=60)

        first = await scheduler.fetch("abc123")
        clock.advance(59)
        second = await scheduler.fetch("abc123")

        assert fetcher.call_count() == 1
        assert second is first
        assert scheduler.get_stats().hits == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, fetcher, make_scheduler, clock):
        scheduler = make_scheduler(fetcher, ttl=60)

        first = await scheduler.fetch("abc123")
        clock.advance(60)
        second = await scheduler.fetch("abc123")

        assert fetcher.call_count() == 2
        assert first["call"] == 1
        assert second["call"] == 2

    @pytest.mark.asyncio
    async def test_cache_cap_evicts_oldest_inserted(self, fetcher, make_scheduler, clock):
        scheduler = make_scheduler(fetcher, max_entries=2)

        for name in ("aaa", "bbb", "ccc"):
            await scheduler.fetch(name)
            clock.advance(1)
        await scheduler.fetch("bbb")
        await scheduler.fetch("aaa")

        assert scheduler.get_stats().cache_size == 2
        assert fetcher.call_count("bbb") == 1
        assert fetcher.call_count("aaa") == 2

    @pytest.mark.asyncio
    async def test_quick_preview_has_its_own_slot(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        full = await scheduler.fetch("abc123")
        quick = await scheduler.fetch_quick("abc123")
        quick_again = await scheduler.fetch_quick("abc123")

        assert fetcher.call_count() == 2
        assert fetcher.calls[1][1] == {"quick": True}
        assert quick is quick_again
        assert quick is not full

    @pytest.mark.asyncio
    async def test_quick_overrides_caller_quick_option(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        await scheduler.fetch_quick("abc123", {"Quick": False, "quality": "720p"})

        assert fetcher.calls[0][1] == {"quick": True, "quality": "720p"}

    @pytest.mark.asyncio
    async def test_case_colliding_options_rejected(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)

        with pytest.raises(DomainError):
            await scheduler.fetch("abc123", {"Quality": "1080p", "quality": "720p"})

        assert fetcher.call_count() == 0
        assert scheduler.get_stats().pending == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)
        await scheduler.fetch("abc123")

        scheduler.clear_cache()
        await scheduler.fetch("abc123")

        assert fetcher.call_count() == 2


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_delivered_to_all_waiters_and_not_cached(
        self,
        fetcher,
        make_scheduler,
    ):
        fetcher.failures["abc123"] = 1
        scheduler = make_scheduler(fetcher)

        results = await asyncio.gather(
            *(scheduler.fetch("abc123") for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(result, FetchError) for result in results)
        assert len({id(result) for result in results}) == 1
        assert scheduler.get_stats().cache_size == 0
        assert scheduler.get_stats().failures == 1

        retried = await scheduler.fetch("abc123")
        assert retried["id"] == "abc123"
        assert fetcher.call_count() == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, fetcher, make_scheduler):
        original = RuntimeError("kaput")
        fetcher.exceptions["abc123"] = original
        scheduler = make_scheduler(fetcher)

        with pytest.raises(FetchError) as exc_info:
            await scheduler.fetch("abc123")

        assert exc_info.value.code == ErrorCode.FETCH_FAILED
        assert exc_info.value.original_error is original
        assert exc_info.value.__cause__ is original

    @pytest.mark.asyncio
    async def test_none_result_counts_as_failure(self, fetcher, make_scheduler):
        fetcher.none_for.add("abc123")
        scheduler = make_scheduler(fetcher)

        with pytest.raises(FetchError) as exc_info:
            await scheduler.fetch("abc123")

        assert exc_info.value.code == ErrorCode.FETCH_EMPTY_RESULT
        assert scheduler.get_stats().cache_size == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("item", ["", "   ", "not a url", "ftp://example.com/x", 42])
    async def test_invalid_identifier_raised_before_queueing(
        self,
        fetcher,
        make_scheduler,
        item,
    ):
        scheduler = make_scheduler(fetcher)

        with pytest.raises(InvalidIdentifierError):
            await scheduler.fetch(item)

        stats = scheduler.get_stats()
        assert stats.misses == 0
        assert stats.queued == 0
        assert fetcher.call_count() == 0

    @pytest.mark.asyncio
    async def test_failed_key_does_not_block_others(self, fetcher, make_scheduler):
        fetcher.failures["bad"] = -1
        scheduler = make_scheduler(fetcher, max_concurrent=1)

        results = await asyncio.gather(
            scheduler.fetch("bad"),
            scheduler.fetch("good"),
            return_exceptions=True,
        )

        assert isinstance(results[0], FetchError)
        assert results[1]["id"] == "good"


class TestConcurrencyBound:
    @pytest.mark.asyncio
    async def test_fifty_keys_never_exceed_three_in_flight(self, fetcher, make_scheduler):
        fetcher.delay = 0.001
        scheduler = make_scheduler(fetcher, max_concurrent=3)

        results = await asyncio.gather(*(scheduler.fetch(f"item{n}") for n in range(50)))

        assert [result["id"] for result in results] == [f"item{n}" for n in range(50)]
        assert fetcher.peak_active == 3
        stats = scheduler.get_stats()
        assert stats.peak_active == 3
        assert stats.fetches_started == 50
        assert stats.active == 0
        assert stats.queued == 0

    @pytest.mark.asyncio
    async def test_requests_beyond_limit_wait_in_queue(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher, max_concurrent=2)
        tasks = [asyncio.create_task(scheduler.fetch(f"item{n}")) for n in range(5)]
        await settle()

        stats = scheduler.get_stats()
        assert stats.active == 2
        assert stats.queued == 3
        assert stats.peak_queued == 3
        assert stats.pending == 5

        gated_fetcher.release()
        await asyncio.gather(*tasks)
        assert gated_fetcher.peak_active == 2

    @pytest.mark.asyncio
    async def test_queued_requests_start_in_arrival_order(self, gated_fetcher, make_scheduler):
        """With one slot, fetches start in the order fetch() was called."""
        scheduler = make_scheduler(gated_fetcher, max_concurrent=1)
        references = ["first1", "second2", "third3", "fourth4"]
        tasks = []
        for reference in references:
            tasks.append(asyncio.create_task(scheduler.fetch(reference)))
            await settle()

        assert gated_fetcher.call_count() == 1
        assert scheduler.get_stats().queued == 3

        gated_fetcher.release()
        await asyncio.gather(*tasks)

        assert [reference for reference, _ in gated_fetcher.calls] == references
        assert gated_fetcher.peak_active == 1

    @pytest.mark.asyncio
    async def test_admission_is_idempotent(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher, max_concurrent=1)
        tasks = [asyncio.create_task(scheduler.fetch(f"item{n}")) for n in range(3)]
        await settle()

        assert scheduler._admit() == 0
        assert scheduler._admit() == 0
        assert scheduler.get_stats().active == 1

        gated_fetcher.release()
        await asyncio.gather(*tasks)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self, fetcher, clock):
        async with PreviewScheduler(fetcher, clock=clock, drain_interval=0.01) as scheduler:
            assert scheduler._drain_task is not None
            await scheduler.fetch("abc123")

        assert scheduler.is_closed
        assert scheduler._drain_task is None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)
        await scheduler.start()
        task = scheduler._drain_task
        await scheduler.start()

        assert scheduler._drain_task is task
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_fetch_after_shutdown_is_rejected(self, fetcher, make_scheduler):
        scheduler = make_scheduler(fetcher)
        await scheduler.shutdown()

        with pytest.raises(ApplicationError) as exc_info:
            await scheduler.fetch("abc123")
        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_shutdown_without_drain_rejects_everyone(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher, max_concurrent=1)
        tasks = [asyncio.create_task(scheduler.fetch(f"item{n}")) for n in range(3)]
        tasks.append(asyncio.create_task(scheduler.fetch("item0")))
        await settle()

        await scheduler.shutdown(drain=False)
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, RequestCancelledError) for result in results)
        assert all(result.code == ErrorCode.OPERATION_CANCELLED for result in results)
        stats = scheduler.get_stats()
        assert stats.pending == 0
        assert stats.active == 0
        assert stats.queued == 0

    @pytest.mark.asyncio
    async def test_shutdown_with_drain_finishes_in_flight(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher, max_concurrent=1)
        in_flight = asyncio.create_task(scheduler.fetch("item0"))
        queued = asyncio.create_task(scheduler.fetch("item1"))
        await settle()

        shutdown = asyncio.create_task(scheduler.shutdown(drain=True))
        await settle()
        gated_fetcher.release()
        await shutdown

        assert (await in_flight)["id"] == "item0"
        with pytest.raises(RequestCancelledError):
            await queued
        assert gated_fetcher.call_count("item1") == 0

    @pytest.mark.asyncio
    async def test_drain_loop_admits_periodically(self, gated_fetcher, make_scheduler):
        scheduler = make_scheduler(gated_fetcher, max_concurrent=1, drain_interval=0.01)
        await scheduler.start()
        first = asyncio.create_task(scheduler.fetch("item0"))
        second = asyncio.create_task(scheduler.fetch("item1"))
        await settle()
        assert scheduler.get_stats().queued == 1

        # A slot that frees up without a completion event
        scheduler.max_concurrent = 2
        await asyncio.sleep(0.05)

        assert scheduler.get_stats().active == 2
        gated_fetcher.release()
        await asyncio.gather(first, second)
        await scheduler.shutdown()


class TestPersistence:
    @pytest.mark.asyncio
    async def test_successful_fetch_is_saved(self, fetcher, make_scheduler, mocker):
        persistence = mocker.Mock()
        persistence.load_cache.return_value = []
        scheduler = make_scheduler(fetcher, persistence=persistence)
        await scheduler.start()

        await scheduler.fetch("abc123")

        persistence.load_cache.assert_called_once_with()
        saved = persistence.save_cache.call_args.args[0]
        assert [entry.value["id"] for entry in saved] == ["abc123"]
        await scheduler.shutdown()
        assert persistence.save_cache.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_saved(self, fetcher, make_scheduler, mocker):
        fetcher.failures["abc123"] = 1
        persistence = mocker.Mock()
        scheduler = make_scheduler(fetcher, persistence=persistence)

        with pytest.raises(FetchError):
            await scheduler.fetch("abc123")

        persistence.save_cache.assert_not_called()

    @pytest.mark.asyncio
    async def test_persistence_errors_do_not_fail_fetch(self, fetcher, make_scheduler, mocker):
        persistence = mocker.Mock()
        persistence.load_cache.side_effect = InfrastructureError(
            ErrorCode.FILE_READ_ERROR,
            "disk gone",
        )
        persistence.save_cache.side_effect = InfrastructureError(
            ErrorCode.FILE_WRITE_ERROR,
            "disk gone",
        )
        scheduler = make_scheduler(fetcher, persistence=persistence)
        await scheduler.start()

        result = await scheduler.fetch("abc123")

        assert result["id"] == "abc123"
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_save_errors_release_waiters_and_slot(
        self,
        fetcher,
        make_scheduler,
        mocker,
        caplog,
    ):
        """A save raising a plain OSError still completes the request."""
        persistence = mocker.Mock()
        persistence.save_cache.side_effect = PermissionError("read-only file system")
        scheduler = make_scheduler(fetcher, persistence=persistence, max_concurrent=1)

        first = await asyncio.wait_for(scheduler.fetch("abc123"), 1.0)
        second = await asyncio.wait_for(scheduler.fetch("def456"), 1.0)

        assert first["id"] == "abc123"
        assert second["id"] == "def456"
        stats = scheduler.get_stats()
        assert stats.pending == 0
        assert stats.active == 0
        assert stats.cache_size == 2
        assert any(
            getattr(record, "error_code", None) == ErrorCode.CACHE_ERROR.value
            for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_unpersistable_metadata_is_still_delivered(self, make_scheduler, temp_dir):
        """Metadata the JSON file cannot hold is served and kept in memory."""

        class NonStringKeyFetcher:
            async def fetch_metadata(self, reference, options):
                return {1: "x", "title": "t"}

        scheduler = make_scheduler(
            NonStringKeyFetcher(),
            persistence=JSONCachePersistence(temp_dir / "cache.json"),
            max_concurrent=1,
        )

        results = await asyncio.wait_for(
            asyncio.gather(scheduler.fetch("abc123"), scheduler.fetch("abc123")),
            1.0,
        )

        assert results[0] == {1: "x", "title": "t"}
        assert results[1] is results[0]
        assert scheduler.get_stats().active == 0
        await asyncio.wait_for(scheduler.fetch("def456"), 1.0)
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_loaded_entries_are_served(self, fetcher, make_scheduler, mocker, clock):
        key = derive_cache_key("abc123")
        persistence = mocker.Mock()
        persistence.load_cache.return_value = [
            CacheEntry(key=key, value={"id": "abc123", "title": "stored"}, stored_at=clock.now),
        ]
        scheduler = make_scheduler(fetcher, persistence=persistence)
        await scheduler.start()

        result = await scheduler.fetch("abc123")

        assert result["title"] == "stored"
        assert fetcher.call_count() == 0
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_entries_survive_restart(self, fetcher, clock, temp_dir):
        path = temp_dir / "cache.json"

        async with PreviewScheduler(
            fetcher,
            clock=clock,
            persistence=JSONCachePersistence(path),
        ) as scheduler:
            await scheduler.fetch("abc123", {"quality": "1080p"})

        clock.advance(10)
        async with PreviewScheduler(
            fetcher,
            clock=clock,
            persistence=JSONCachePersistence(path),
        ) as restarted:
            result = await restarted.fetch("abc123", {"quality": "1080p"})

        assert result["id"] == "abc123"
        assert fetcher.call_count() == 1
