"""vidpeek Shared Module.

This package contains the error hierarchy, logging helpers, constants and
cache key utilities used across vidpeek.
"""

__all__ = ["cache_utils", "constants", "errors", "identifiers", "logging"]
