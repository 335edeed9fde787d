"""
Pytest configuration and shared fixtures for vidpeek tests.

This module provides common fixtures used across the test modules: a
controllable clock, a scriptable metadata fetcher and an isolated
settings environment.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

from vidpeek.config import loader, reset_config
from vidpeek.shared.errors import create_fetch_error


class FakeClock:
    """Manually advanced time source in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Scriptable MetadataFetcher.

    Every call is recorded. When ``gated`` is True calls block until
    ``release()`` is called, which makes in-flight requests observable.
    ``failures`` maps references to the number of times they fail before
    succeeding (-1 fails forever).
    """

    def __init__(self, *, gated: bool = False, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.active = 0
        self.peak_active = 0
        self.delay = delay
        self.failures: dict[str, int] = {}
        self.exceptions: dict[str, BaseException] = {}
        self.none_for: set[str] = set()
        self._gate = asyncio.Event()
        if not gated:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    def call_count(self, reference: str | None = None) -> int:
        if reference is None:
            return len(self.calls)
        return sum(1 for ref, _ in self.calls if ref == reference)

    async def fetch_metadata(self, reference: str, options: Mapping[str, Any]) -> Any:
        self.calls.append((reference, dict(options)))
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            await self._gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)

            if reference in self.exceptions:
                raise self.exceptions[reference]
            remaining = self.failures.get(reference, 0)
            if remaining:
                if remaining > 0:
                    self.failures[reference] = remaining - 1
                raise create_fetch_error("connection reset by peer", reference=reference)
            if reference in self.none_for:
                return None
            return {
                "id": reference,
                "title": f"Title of {reference}",
                "options": dict(options),
                "call": self.call_count(reference),
            }
        finally:
            self.active -= 1


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_path:
        yield Path(temp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def gated_fetcher() -> FakeFetcher:
    return FakeFetcher(gated=True)


@pytest.fixture(autouse=True)
def isolated_settings(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[None, None, None]:
    """Keep tests away from the user's config, .env and cache file.

    The package logger is reset afterwards since CLI runs configure it.
    """
    for name in list(os.environ):
        if name.startswith("VIDPEEK_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        loader,
        "DEFAULT_CONFIG_PATHS",
        (Path("config/config.toml"), Path("config.toml")),
    )
    monkeypatch.setenv("VIDPEEK_CACHE__PATH", str(tmp_path / "preview_cache.json"))
    reset_config()
    yield
    reset_config()

    package_logger = logging.getLogger("vidpeek")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
