"""Preview command handler for vidpeek CLI.

Fetches one preview through a ``PreviewScheduler`` backed by the
configured cache file, optionally retrying transient failures, and prints
it as rich tables or as a JSON envelope.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from vidpeek.cli.common.context import get_cli_context
from vidpeek.cli.common.error_handler import EXIT_USAGE, handle_cli_error
from vidpeek.cli.json_formatter import format_json_output, write_json_output
from vidpeek.config import Settings, get_config
from vidpeek.services.fetcher import YtDlpFetcher
from vidpeek.services.metadata import format_count
from vidpeek.services.persistence import JSONCachePersistence
from vidpeek.services.retry import RetryCoordinator
from vidpeek.services.scheduler import PreviewScheduler, SchedulerStats
from vidpeek.shared.constants import CLIDefaults
from vidpeek.shared.errors import ErrorCode, create_cli_error

logger = logging.getLogger(__name__)

COMMAND_NAME = "preview"


def parse_option_pairs(pairs: list[str] | None) -> dict[str, Any]:
    """Parse ``key=value`` strings into request options.

    ``true``/``false`` become booleans and integers are converted, every
    other value stays a string.

    Example:
        >>> parse_option_pairs(["quality=1080p", "audio=false"])
        {'quality': '1080p', 'audio': False}

    Raises:
        CliError: If a pair has no ``=`` or an empty key
    """
    options: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise create_cli_error(
                f"Invalid option {pair!r}, expected key=value",
                command=COMMAND_NAME,
                code=ErrorCode.CLI_INVALID_ARGUMENTS,
                exit_code=EXIT_USAGE,
            )
        value = value.strip()
        if value.lower() in ("true", "false"):
            options[key] = value.lower() == "true"
        elif value.isdigit():
            options[key] = int(value)
        else:
            options[key] = value
    return options


async def run_preview(
    url: str,
    options: dict[str, Any],
    settings: Settings,
    *,
    quick: bool = False,
    retries: int = CLIDefaults.DEFAULT_RETRIES,
    cache_file: Path | None = None,
    use_cache: bool = True,
) -> tuple[dict[str, Any], SchedulerStats]:
    """Fetch a single preview and return it with the scheduler counters."""
    persistence = None
    if use_cache and settings.cache.enabled:
        persistence = JSONCachePersistence(cache_file or settings.cache.path)

    fetcher = YtDlpFetcher.from_settings(settings)
    coordinator = RetryCoordinator(
        max_attempts=retries,
        base_delay=settings.retry.base_delay,
        history_size=settings.retry.history_size,
    )

    async with PreviewScheduler.from_settings(settings, fetcher, persistence) as scheduler:
        fetch = scheduler.fetch_quick if quick else scheduler.fetch
        preview = await coordinator.run(
            f"{COMMAND_NAME}:{url}",
            lambda: fetch(url, options),
        )
        return dict(preview), scheduler.get_stats()


def print_preview(preview: dict[str, Any], stats: SchedulerStats, console: Console) -> None:
    """Render a preview as rich tables."""
    table = Table(title=preview.get("title"), show_header=False, title_style="bold")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")

    summary = preview.get("preview") or {}
    recommended = summary.get("recommended_format") or {}
    table.add_row("ID", str(preview.get("id") or "-"))
    table.add_row("Channel", preview.get("uploader") or "-")
    table.add_row("Duration", preview.get("duration_string") or "Unknown")
    table.add_row("Views", format_count(preview.get("view_count")))
    table.add_row("Likes", format_count(preview.get("like_count")))
    table.add_row("Uploaded", preview.get("upload_date") or "-")
    table.add_row("Qualities", ", ".join(preview.get("qualities") or []) or "-")
    if recommended:
        table.add_row(
            "Recommended",
            f"{recommended.get('height')}p {recommended.get('ext') or ''}".strip(),
        )
    thumbnail = summary.get("best_thumbnail") or {}
    table.add_row("Thumbnail", str(thumbnail.get("url") or "-"))
    table.add_row("Source", "cache" if stats.hits else "fetched")
    console.print(table)

    sizes = summary.get("estimated_sizes") or {}
    if not sizes:
        return

    times = summary.get("download_times") or {}
    estimates = Table(title="Size and download time estimates")
    estimates.add_column("Quality", style="cyan")
    estimates.add_column("Size", justify="right")
    speeds = sorted({speed for per_quality in times.values() for speed in per_quality})
    for speed in speeds:
        estimates.add_column(speed, justify="right")

    def _height(quality: str) -> int:
        return int(quality.rstrip("p") or 0)

    for quality in sorted(sizes, key=_height, reverse=True):
        row = [quality, sizes[quality]["formatted"]]
        row.extend(times.get(quality, {}).get(speed, "-") for speed in speeds)
        estimates.add_row(*row)
    console.print(estimates)


def preview_command(
    url: str,
    option_pairs: list[str] | None = None,
    *,
    quick: bool = False,
    retries: int = CLIDefaults.DEFAULT_RETRIES,
    json_output: bool = False,
    cache_file: Path | None = None,
    use_cache: bool = True,
) -> int:
    """Run the preview command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    json_output = json_output or get_cli_context().is_json_output_enabled()
    try:
        options = parse_option_pairs(option_pairs)
        settings = get_config()
        preview, stats = asyncio.run(
            run_preview(
                url,
                options,
                settings,
                quick=quick,
                retries=retries,
                cache_file=cache_file,
                use_cache=use_cache,
            ),
        )
    except Exception as e:  # noqa: BLE001
        return handle_cli_error(e, COMMAND_NAME, json_output=json_output)

    warnings = []
    if not (use_cache and settings.cache.enabled):
        warnings.append("Persistent cache disabled, preview was not stored")

    if json_output:
        write_json_output(
            format_json_output(
                success=True,
                command=COMMAND_NAME,
                data={"preview": preview, "stats": stats.to_dict()},
                warnings=warnings,
            ),
        )
    else:
        console = Console()
        print_preview(preview, stats, console)
        for warning in warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")

    logger.info("Preview completed for %s", url)
    return CLIDefaults.EXIT_SUCCESS
