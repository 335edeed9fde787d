"""Metadata fetchers.

``MetadataFetcher`` is the contract the scheduler depends on.
``YtDlpFetcher`` implements it with yt-dlp: info extraction without
downloading, run in a worker thread and bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from vidpeek.services.metadata import build_preview
from vidpeek.shared.constants import FetcherDefaults
from vidpeek.shared.errors import ErrorCode, create_fetch_error
from vidpeek.shared.logging import log_operation_start, log_operation_success

logger = logging.getLogger(__name__)

_QUALITY_PATTERN = re.compile(r"^(\d{3,4})p?$")


@runtime_checkable
class MetadataFetcher(Protocol):
    """Provider of preview metadata for an item reference."""

    async def fetch_metadata(
        self,
        reference: str,
        options: Mapping[str, Any],
    ) -> Mapping[str, Any]:
        """Return metadata for ``reference``.

        Raises:
            FetchError: If the provider cannot produce metadata
        """
        ...


class YtDlpFetcher:
    """yt-dlp backed fetcher producing preview payloads.

    Recognized options:
        quick: Skip DASH/HLS manifests and leave the format analysis out
        quality: Height cap such as ``"1080p"``
        format: Raw yt-dlp format selector, wins over ``quality``

    Args:
        timeout: Seconds allowed for one extraction
        socket_timeout: Network timeout handed to yt-dlp
        extra_options: Additional YoutubeDL options (cookies, proxy...)
    """

    def __init__(
        self,
        timeout: float = FetcherDefaults.TIMEOUT,
        socket_timeout: float = FetcherDefaults.SOCKET_TIMEOUT,
        extra_options: Mapping[str, Any] | None = None,
    ) -> None:
        self.timeout = timeout
        self.socket_timeout = socket_timeout
        self.extra_options = dict(extra_options or {})

    @classmethod
    def from_settings(cls, settings: Any) -> YtDlpFetcher:
        """Build a fetcher from the ``fetcher`` section of Settings."""
        return cls(
            timeout=settings.fetcher.timeout,
            socket_timeout=settings.fetcher.socket_timeout,
        )

    def build_options(self, options: Mapping[str, Any]) -> dict[str, Any]:
        """Translate request options into YoutubeDL parameters."""
        ydl_opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.socket_timeout,
        }
        ydl_opts.update(self.extra_options)

        if options.get(FetcherDefaults.QUICK_OPTION):
            ydl_opts["extractor_args"] = {"youtube": {"skip": ["dash", "hls"]}}

        selector = options.get(FetcherDefaults.FORMAT_OPTION)
        if not selector:
            selector = self._quality_selector(options.get(FetcherDefaults.QUALITY_OPTION))
        if selector:
            ydl_opts["format"] = selector

        return ydl_opts

    @staticmethod
    def _quality_selector(quality: Any) -> str | None:
        if quality is None:
            return None
        match = _QUALITY_PATTERN.match(str(quality).strip().lower())
        if not match:
            return None
        height = int(match.group(1))
        return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"

    async def fetch_metadata(
        self,
        reference: str,
        options: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Extract info for ``reference`` and build the preview payload.

        Raises:
            FetchError: On extraction errors, timeouts and empty results
        """
        quick = bool(options.get(FetcherDefaults.QUICK_OPTION))
        ydl_opts = self.build_options(options)
        log_operation_start(logger, "fetch_metadata", {"reference": reference, "quick": quick})
        start_time = time.time()

        try:
            info = await asyncio.wait_for(
                asyncio.to_thread(self._extract, reference, ydl_opts),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            # The worker thread keeps running until yt-dlp returns
            raise create_fetch_error(
                f"Metadata extraction timed out after {self.timeout}s",
                reference=reference,
                code=ErrorCode.FETCH_TIMEOUT,
                original_error=e,
            ) from e
        except (DownloadError, ExtractorError) as e:
            raise create_fetch_error(
                f"Metadata extraction failed: {e!s}",
                reference=reference,
                original_error=e,
            ) from e

        if not info:
            raise create_fetch_error(
                "Extractor returned no information",
                reference=reference,
                code=ErrorCode.FETCH_EMPTY_RESULT,
            )

        preview = build_preview(info, include_formats=not quick)
        log_operation_success(
            logger,
            "fetch_metadata",
            (time.time() - start_time) * 1000,
            {"id": preview.get("id"), "formats": len(preview.get("formats", []))},
        )
        return preview

    @staticmethod
    def _extract(reference: str, ydl_opts: dict[str, Any]) -> dict[str, Any] | None:
        with YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(reference, download=False)
            if info is None:
                return None
            return ydl.sanitize_info(info)
