"""Item reference parsing.

Turns the string a caller hands to the scheduler (a watch URL, a short
link, any media page URL or a bare video id) into an ``ItemReference``.
The ``item_id`` is the identity used in cache keys, so different URL
spellings of the same YouTube video share one cache slot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from vidpeek.shared.errors import create_invalid_identifier_error

_YOUTUBE_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]+)",
)
_BARE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_SUPPORTED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class ItemReference:
    """A validated media item reference.

    Attributes:
        item_id: Canonical identity used for cache keys
        reference: What the fetcher receives (the stripped caller input)
    """

    item_id: str
    reference: str


def extract_video_id(url: str) -> str | None:
    """Return the YouTube video id embedded in ``url``, if any.

    Example:
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=42")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://example.com/clip") is None
        True
    """
    match = _YOUTUBE_PATTERN.search(url)
    if match:
        return match.group(1)
    return None


def _normalize_url(reference: str) -> str | None:
    parts = urlsplit(reference)
    if parts.scheme.lower() not in _SUPPORTED_SCHEMES or not parts.netloc:
        return None
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path or "/",
            parts.query,
            "",
        ),
    )


def parse_item_reference(raw: Any) -> ItemReference:
    """Validate a caller supplied item reference.

    Accepted forms:
        - YouTube watch/short/embed URLs, identity is the video id
        - any other http(s) URL, identity is the URL without fragment
          and with scheme and host lower-cased
        - a bare id made of letters, digits, ``-`` and ``_``

    Raises:
        InvalidIdentifierError: If the reference is not a non-empty string
            in one of the accepted forms
    """
    if not isinstance(raw, str):
        raise create_invalid_identifier_error(raw, "reference must be a string")

    reference = raw.strip()
    if not reference:
        raise create_invalid_identifier_error(raw, "reference is empty")

    if _BARE_ID_PATTERN.match(reference):
        return ItemReference(item_id=reference, reference=reference)

    if "://" not in reference:
        raise create_invalid_identifier_error(raw, "not a URL or bare id")

    video_id = extract_video_id(reference)
    if video_id:
        return ItemReference(item_id=video_id, reference=reference)

    normalized = _normalize_url(reference)
    if normalized is None:
        raise create_invalid_identifier_error(raw, "unsupported URL")
    return ItemReference(item_id=normalized, reference=reference)
