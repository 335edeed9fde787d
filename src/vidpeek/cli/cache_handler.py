"""Cache command handler for vidpeek CLI.

Inspects and maintains the persisted preview cache file:

- ``stats``: entry counts and file information
- ``clear``: delete the cache file
- ``purge``: drop expired entries and rewrite the file
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from vidpeek.cli.common.context import get_cli_context
from vidpeek.cli.common.error_handler import CACHE_COMMAND, handle_cli_error
from vidpeek.cli.json_formatter import format_json_output, write_json_output
from vidpeek.config import Settings, get_config
from vidpeek.services.cache_store import CacheStore
from vidpeek.services.metadata import format_file_size
from vidpeek.services.persistence import JSONCachePersistence
from vidpeek.shared.constants import CLIDefaults

logger = logging.getLogger(__name__)

COMMAND_NAME = CACHE_COMMAND


class CacheAction(str, Enum):
    """Cache maintenance actions."""

    STATS = "stats"
    CLEAR = "clear"
    PURGE = "purge"


def _open_store(settings: Settings, persistence: JSONCachePersistence) -> tuple[CacheStore, int]:
    """Load the persisted entries into a store using the configured TTL and cap."""
    store = CacheStore(
        ttl=settings.scheduler.ttl,
        max_entries=settings.scheduler.max_entries,
    )
    entries = persistence.load_cache()
    store.load(entries)
    return store, len(entries)


def collect_cache_stats(settings: Settings, persistence: JSONCachePersistence) -> dict[str, Any]:
    store, stored = _open_store(settings, persistence)
    path = persistence.path
    size = path.stat().st_size if path.exists() else 0
    return {
        "path": str(path),
        "exists": path.exists(),
        "file_size": size,
        "file_size_formatted": format_file_size(size) if size else "0 B",
        "stored_entries": stored,
        "live_entries": store.size(),
        "stale_entries": stored - store.size(),
        "ttl_seconds": store.ttl,
        "max_entries": store.max_entries,
    }


def clear_cache_file(settings: Settings, persistence: JSONCachePersistence) -> dict[str, Any]:
    _, stored = _open_store(settings, persistence)
    removed_file = persistence.delete()
    logger.info("Cleared preview cache at %s", persistence.path)
    return {"path": str(persistence.path), "removed_entries": stored, "file_removed": removed_file}


def purge_cache_file(settings: Settings, persistence: JSONCachePersistence) -> dict[str, Any]:
    store, stored = _open_store(settings, persistence)
    if persistence.path.exists():
        persistence.save_cache(store.entries())
    removed = stored - store.size()
    logger.info("Purged %d stale cache entries", removed)
    return {
        "path": str(persistence.path),
        "removed_entries": removed,
        "remaining_entries": store.size(),
    }


def print_cache_result(action: CacheAction, data: dict[str, Any], console: Console) -> None:
    if action is CacheAction.STATS:
        table = Table(title="Preview cache", show_header=False)
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Value")
        table.add_row("File", data["path"] if data["exists"] else f"{data['path']} (missing)")
        table.add_row("Size", data["file_size_formatted"])
        table.add_row("Live entries", str(data["live_entries"]))
        table.add_row("Stale entries", str(data["stale_entries"]))
        table.add_row("TTL", f"{data['ttl_seconds']:.0f}s")
        table.add_row("Max entries", str(data["max_entries"]))
        console.print(table)
    elif action is CacheAction.CLEAR:
        console.print(f"[green]Cleared {data['removed_entries']} cached previews[/green]")
    else:
        console.print(
            f"[green]Removed {data['removed_entries']} stale entries, "
            f"{data['remaining_entries']} remaining[/green]",
        )


def cache_command(
    action: CacheAction,
    cache_file: Path | None = None,
    *,
    json_output: bool = False,
) -> int:
    """Run a cache maintenance action.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    json_output = json_output or get_cli_context().is_json_output_enabled()
    handlers = {
        CacheAction.STATS: collect_cache_stats,
        CacheAction.CLEAR: clear_cache_file,
        CacheAction.PURGE: purge_cache_file,
    }
    try:
        settings = get_config()
        persistence = JSONCachePersistence(cache_file or settings.cache.path)
        data = handlers[action](settings, persistence)
    except Exception as e:  # noqa: BLE001
        return handle_cli_error(e, f"{COMMAND_NAME} {action.value}", json_output=json_output)

    if json_output:
        write_json_output(
            format_json_output(
                success=True,
                command=f"{COMMAND_NAME} {action.value}",
                data=data,
            ),
        )
    else:
        print_cache_result(action, data, Console())
    return CLIDefaults.EXIT_SUCCESS
