"""Cache key derivation for preview requests.

Identical requests must produce identical keys regardless of option
ordering or key case, and different option sets for the same item must
produce different keys.

Key Features:
    - Option normalization (lowercase keys, None/empty removal)
    - Sorted-key serialization with orjson, nested mappings included
    - SHA-256 digest for logging and storage

Example:
    >>> key = derive_cache_key("abc123", {"Quality": "1080p", "lang": None})
    >>> str(key)
    '["abc123",{"quality":"1080p"}]'
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import orjson

from vidpeek.shared.errors import create_validation_error


@dataclass(frozen=True)
class CacheKey:
    """Canonical identity of a preview request.

    Equality and hashing use the derived ``value`` only.
    """

    value: str

    def __str__(self) -> str:
        return self.value

    @cached_property
    def digest(self) -> str:
        """SHA-256 hex digest of the key."""
        return hashlib.sha256(self.value.encode("utf-8")).hexdigest()


def canonical_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    """Normalize request options for key derivation.

    Normalization rules:
        1. Remove None and empty string values
        2. Convert keys to lowercase, names equal after that are rejected
        3. Keys are sorted at serialization time

    Example:
        >>> canonical_options({"Quality": "1080p", "audio": None, "lang": ""})
        {'quality': '1080p'}
        >>> canonical_options(None)
        {}

    Raises:
        DomainError: If options is not a mapping, has non-string keys or
            has names that differ only in case
    """
    if not options:
        return {}

    if not isinstance(options, Mapping):
        raise create_validation_error(
            f"Options must be a mapping, got {type(options).__name__}",
            field="options",
            operation="canonical_options",
        )

    normalized: dict[str, Any] = {}
    seen: dict[str, str] = {}
    for key, value in options.items():
        if not isinstance(key, str):
            raise create_validation_error(
                f"Option names must be strings, got {type(key).__name__}",
                field="options",
                operation="canonical_options",
            )
        name = key.lower()
        if name in seen:
            raise create_validation_error(
                f"Option names {seen[name]!r} and {key!r} differ only in case",
                field="options",
                operation="canonical_options",
            )
        seen[name] = key
        if value is None or value == "":
            continue
        normalized[name] = value

    return normalized


def derive_cache_key(
    item_id: str,
    options: Mapping[str, Any] | None = None,
) -> CacheKey:
    """Derive the cache key for an item and its request options.

    The key is the sorted-key JSON encoding of ``[item_id, options]``,
    which keeps item ids containing separators unambiguous.

    Raises:
        DomainError: If item_id is empty or options are not JSON serializable
    """
    if not item_id:
        raise create_validation_error(
            "item_id must be non-empty",
            field="item_id",
            operation="derive_cache_key",
        )

    normalized = canonical_options(options)
    try:
        encoded = orjson.dumps([item_id, normalized], option=orjson.OPT_SORT_KEYS)
    except TypeError as e:
        raise create_validation_error(
            f"Options are not serializable: {e!s}",
            field="options",
            operation="derive_cache_key",
            original_error=e,
        ) from e

    return CacheKey(encoded.decode("utf-8"))
