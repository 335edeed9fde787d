"""
JSON envelope for ``--json`` output.

Every command writes one object to stdout::

    {"command": ..., "data": ..., "errors": [...], "success": ...,
     "timestamp": ..., "warnings": [...]}
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Any

import orjson

_DUMP_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2


def format_json_output(
    success: bool,
    command: str,
    data: Any | None = None,
    errors: list[str] | None = None,
    warnings: list[str] | None = None,
) -> bytes:
    """Encode a command result as the JSON envelope.

    ``success`` is forced to False when ``errors`` is non-empty. Values
    orjson cannot encode natively (paths, enums) are written as strings.

    Example:
        >>> output = format_json_output(success=True, command="cache", data={"entries": 3})
        >>> orjson.loads(output)["data"]
        {'entries': 3}
    """
    envelope = {
        "success": success and not errors,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "command": command,
        "data": data,
        "errors": list(errors or ()),
        "warnings": list(warnings or ()),
    }
    return orjson.dumps(envelope, option=_DUMP_OPTIONS, default=str)


def write_json_output(output: bytes) -> None:
    sys.stdout.buffer.write(output + b"\n")
    sys.stdout.buffer.flush()
