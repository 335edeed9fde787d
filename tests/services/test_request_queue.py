"""Tests for the dispatch queue."""

from __future__ import annotations

from vidpeek.services.request_queue import RequestQueue
from vidpeek.shared.cache_utils import derive_cache_key


def key(name: str):
    return derive_cache_key(name)


def test_fifo_order():
    queue = RequestQueue()
    for name in ("a", "b", "c"):
        queue.push(key(name))

    assert [queue.pop(), queue.pop(), queue.pop()] == [key("a"), key("b"), key("c")]
    assert queue.pop() is None


def test_key_appears_at_most_once():
    queue = RequestQueue()

    assert queue.push(key("a")) is True
    assert queue.push(key("a")) is False
    assert len(queue) == 1


def test_key_can_be_requeued_after_pop():
    queue = RequestQueue()
    queue.push(key("a"))
    queue.pop()

    assert queue.push(key("a")) is True
    assert key("a") in queue


def test_drain_empties_in_order():
    queue = RequestQueue()
    for name in ("a", "b", "c"):
        queue.push(key(name))

    assert queue.drain() == [key("a"), key("b"), key("c")]
    assert not queue
    assert len(queue) == 0


def test_stats():
    queue = RequestQueue()
    queue.push(key("a"))
    queue.push(key("b"))
    queue.pop()

    stats = queue.get_stats()
    assert stats.size == 1
    assert stats.total_added == 2
    assert stats.total_removed == 1
    assert stats.max_size_reached == 2
