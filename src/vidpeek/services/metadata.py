"""Preview payload models and builders.

``build_preview`` turns the raw info dictionary produced by yt-dlp into
the preview payload cached by the scheduler: basic video facts, sorted
thumbnails, the format list with quality labels, audio-only formats and
a ``preview`` block with the best thumbnail, the recommended format and
size/download-time estimates.

The payload is a plain JSON-compatible dict so it can be persisted as is.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vidpeek.shared.constants import PreviewConstants


class PreviewModel(BaseModel):
    """Base model for preview payload parts.

    Unknown fields from yt-dlp are ignored.
    """

    model_config = ConfigDict(extra="ignore")


class ThumbnailInfo(PreviewModel):
    """One thumbnail candidate."""

    id: str | None = None
    url: str
    width: int = 0
    height: int = 0
    resolution: str | None = None
    preference: int = 0


class FormatInfo(PreviewModel):
    """A downloadable format as reported by the extractor.

    Attributes:
        format_id: Extractor specific format identifier
        height: Video height in pixels, None for audio-only formats
        filesize: Exact size in bytes when known
        filesize_approx: Estimated size in bytes
        tbr: Total bitrate (kbit/s)
    """

    format_id: str | None = None
    ext: str | None = None
    height: int | None = None
    width: int | None = None
    fps: float | None = None
    vcodec: str | None = None
    acodec: str | None = None
    filesize: int | None = None
    filesize_approx: float | None = None
    tbr: float | None = None
    vbr: float | None = None
    abr: float | None = None
    format: str | None = None
    format_note: str | None = None
    protocol: str | None = None
    container: str | None = None


class AudioFormatInfo(PreviewModel):
    """An audio-only format."""

    format_id: str | None = None
    ext: str | None = None
    abr: float | None = None
    acodec: str | None = None
    filesize: int | None = None
    format: str | None = None


class SizeEstimate(PreviewModel):
    bytes: int
    formatted: str


class PreviewSummary(PreviewModel):
    """Derived data used to present a preview before download."""

    best_thumbnail: dict[str, Any]
    recommended_format: FormatInfo | None = None
    estimated_sizes: dict[str, SizeEstimate] = Field(default_factory=dict)
    download_times: dict[str, dict[str, str]] = Field(default_factory=dict)


class VideoPreview(PreviewModel):
    """Normalized preview payload for one video.

    Example:
        >>> preview = VideoPreview(id="abc123", title="Clip")
        >>> preview.uploader
        'Unknown Channel'
    """

    id: str | None = None
    title: str = PreviewConstants.UNKNOWN_TITLE
    description: str = ""
    uploader: str = PreviewConstants.UNKNOWN_CHANNEL
    uploader_url: str | None = None
    upload_date: str | None = None
    duration: float | None = None
    duration_string: str = "Unknown"
    view_count: int = 0
    like_count: int = 0
    subscriber_count: int = 0
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    language: str | None = None
    webpage_url: str | None = None
    original_url: str | None = None
    extractor: str | None = None
    extractor_key: str | None = None
    thumbnails: list[ThumbnailInfo] = Field(default_factory=list)
    formats: list[FormatInfo] = Field(default_factory=list)
    qualities: list[str] = Field(default_factory=list)
    audio_formats: list[AudioFormatInfo] = Field(default_factory=list)
    preview: PreviewSummary | None = None
    quick: bool = False
    processed_at: float = Field(default_factory=time.time)


def format_file_size(size: float | None) -> str:
    """Format a byte count for display.

    Example:
        >>> format_file_size(12_900_000)
        '12.3 MB'
        >>> format_file_size(None)
        'Unknown'
    """
    if not size:
        return "Unknown"

    value = float(size)
    units = PreviewConstants.SIZE_UNITS
    unit_index = 0
    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.1f} {units[unit_index]}"


def format_duration(seconds: float | None) -> str:
    """Format seconds as ``m:ss`` or ``h:mm:ss``.

    Example:
        >>> format_duration(75)
        '1:15'
        >>> format_duration(3725)
        '1:02:05'
    """
    if not seconds:
        return "Unknown"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_count(value: int | None) -> str:
    """Abbreviate large counts (``1.2K``, ``3.4M``, ``1.0B``)."""
    if not value:
        return "0"
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if value >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return str(value)


def quality_label(height: int) -> str:
    """Map a video height to its quality bucket label."""
    for min_height, label in PreviewConstants.QUALITY_BUCKETS:
        if height >= min_height:
            return label
    return PreviewConstants.QUALITY_BUCKETS[-1][1]


def _thumbnails(raw: Sequence[Mapping[str, Any]]) -> list[ThumbnailInfo]:
    thumbnails = [
        ThumbnailInfo(
            id=str(thumb["id"]) if thumb.get("id") is not None else None,
            url=thumb["url"],
            width=thumb.get("width") or 0,
            height=thumb.get("height") or 0,
            resolution=thumb.get("resolution"),
            preference=thumb.get("preference") or 0,
        )
        for thumb in raw
        if thumb.get("url")
    ]
    # sorted() is stable, equal preferences keep extractor order
    return sorted(thumbnails, key=lambda thumb: thumb.preference, reverse=True)


def best_thumbnail(thumbnails: Sequence[ThumbnailInfo]) -> dict[str, Any]:
    """Pick the thumbnail to show for a preview.

    Named YouTube thumbnails win in priority order, then the largest
    area, then a placeholder.
    """
    if not thumbnails:
        return dict(PreviewConstants.DEFAULT_THUMBNAIL)

    by_id = {thumb.id: thumb for thumb in reversed(thumbnails) if thumb.id}
    for priority in PreviewConstants.THUMBNAIL_PRIORITIES:
        if priority in by_id:
            return by_id[priority].model_dump()

    best = thumbnails[0]
    for thumb in thumbnails[1:]:
        if thumb.width * thumb.height > best.width * best.height:
            best = thumb
    return best.model_dump()


def extract_qualities(formats: Sequence[FormatInfo]) -> list[str]:
    """Unique quality labels, highest first."""
    seen = {quality_label(fmt.height) for fmt in formats if fmt.height}
    return [label for _, label in PreviewConstants.QUALITY_BUCKETS if label in seen]


def audio_formats(formats: Sequence[FormatInfo]) -> list[AudioFormatInfo]:
    """Audio-only formats sorted by bitrate, highest first."""
    audio = [
        AudioFormatInfo.model_validate(fmt.model_dump())
        for fmt in formats
        if fmt.vcodec == "none" and fmt.acodec != "none"
    ]
    return sorted(audio, key=lambda fmt: fmt.abr or 0, reverse=True)


def recommended_format(formats: Sequence[FormatInfo]) -> FormatInfo | None:
    """1080p when available, otherwise the tallest video format."""
    video = [fmt for fmt in formats if fmt.height and fmt.vcodec != "none"]
    if not video:
        return None

    for fmt in video:
        if fmt.height == PreviewConstants.PREFERRED_HEIGHT:
            return fmt

    best = video[0]
    for fmt in video[1:]:
        if (fmt.height or 0) > (best.height or 0):
            best = fmt
    return best


def estimate_sizes(formats: Sequence[FormatInfo]) -> dict[str, SizeEstimate]:
    """Largest known file size per video height."""
    estimates: dict[str, SizeEstimate] = {}
    for fmt in formats:
        if not fmt.height or not fmt.filesize:
            continue
        quality = f"{fmt.height}p"
        current = estimates.get(quality)
        if current is None or fmt.filesize > current.bytes:
            estimates[quality] = SizeEstimate(
                bytes=fmt.filesize,
                formatted=format_file_size(fmt.filesize),
            )
    return estimates


def estimate_download_times(
    sizes: Mapping[str, SizeEstimate],
) -> dict[str, dict[str, str]]:
    """Download time per quality for each reference connection speed."""
    return {
        quality: {
            speed: format_duration(estimate.bytes / bytes_per_second)
            for speed, bytes_per_second in PreviewConstants.CONNECTION_SPEEDS.items()
        }
        for quality, estimate in sizes.items()
    }


def build_preview(info: Mapping[str, Any], include_formats: bool = True) -> dict[str, Any]:
    """Normalize a yt-dlp info dictionary into the preview payload.

    Args:
        info: Raw ``extract_info`` result
        include_formats: When False the format list, audio formats and the
            size/time estimates are left out (quick previews)

    Returns:
        JSON-compatible preview payload
    """
    thumbnails = _thumbnails(info.get("thumbnails") or [])
    formats = [
        FormatInfo.model_validate(fmt) for fmt in info.get("formats") or [] if isinstance(fmt, Mapping)
    ]

    summary = PreviewSummary(best_thumbnail=best_thumbnail(thumbnails))
    if include_formats:
        sizes = estimate_sizes(formats)
        summary.recommended_format = recommended_format(formats)
        summary.estimated_sizes = sizes
        summary.download_times = estimate_download_times(sizes)

    preview = VideoPreview(
        id=info.get("id"),
        title=info.get("title") or PreviewConstants.UNKNOWN_TITLE,
        description=info.get("description") or "",
        uploader=info.get("uploader") or info.get("channel") or PreviewConstants.UNKNOWN_CHANNEL,
        uploader_url=info.get("uploader_url") or info.get("channel_url"),
        upload_date=info.get("upload_date"),
        duration=info.get("duration"),
        duration_string=format_duration(info.get("duration")),
        view_count=info.get("view_count") or 0,
        like_count=info.get("like_count") or 0,
        subscriber_count=info.get("channel_follower_count") or info.get("subscriber_count") or 0,
        tags=info.get("tags") or [],
        categories=info.get("categories") or [],
        language=info.get("language"),
        webpage_url=info.get("webpage_url"),
        original_url=info.get("original_url") or info.get("webpage_url"),
        extractor=info.get("extractor"),
        extractor_key=info.get("extractor_key"),
        thumbnails=thumbnails,
        formats=formats if include_formats else [],
        qualities=extract_qualities(formats),
        audio_formats=audio_formats(formats) if include_formats else [],
        preview=summary,
        quick=not include_formats,
    )
    return preview.model_dump(mode="json")
