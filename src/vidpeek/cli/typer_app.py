"""
vidpeek Typer CLI Application

Entry point for the ``vidpeek`` command: global options are handled in
the main callback, which also loads the configuration and sets up
logging, then ``preview`` and ``cache`` do the work.
"""

from __future__ import annotations

from typing import Annotated, List, Optional

import typer

from vidpeek.cli.cache_handler import CacheAction, cache_command
from vidpeek.cli.common.context import CliContext, set_cli_context
from vidpeek.cli.common.error_handler import handle_cli_error
from vidpeek.cli.common.options import (
    CacheFileOption,
    ConfigFileOption,
    JsonOutputOption,
    LogLevelOption,
    VerboseOption,
    VersionOption,
)
from vidpeek.cli.preview_handler import preview_command
from vidpeek.config import reload_config
from vidpeek.shared.constants import Application, CLIDefaults
from vidpeek.shared.logging import setup_structured_logger

__version__ = Application.VERSION


app = typer.Typer(
    name=Application.NAME,
    help=Application.DESCRIPTION,
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: VerboseOption = 0,
    log_level: LogLevelOption = None,
    json_output: JsonOutputOption = False,
    config_file: ConfigFileOption = None,
    version: VersionOption = False,  # noqa: ARG001
) -> None:
    """Pre-download media previews with a deduplicating cache."""
    context = CliContext(
        verbose=verbose,
        log_level=log_level,
        json_output=json_output,
        config_file=config_file,
    )
    set_cli_context(context)

    try:
        settings = reload_config(config_file)
        setup_structured_logger(
            level=context.get_effective_log_level(settings.logging.level),
            log_file=settings.logging.file or None,
            use_rich_console=settings.logging.console_output,
        )
    except Exception as e:  # noqa: BLE001
        exit_code = handle_cli_error(e, "main-callback", json_output=json_output)
        raise typer.Exit(exit_code) from e


@app.command("preview")
def preview_command_typer(
    url: str = typer.Argument(..., help="Video URL or bare video id"),
    option: Annotated[
        Optional[List[str]],
        typer.Option(
            "--option",
            "-o",
            help="Request option as key=value, repeatable (e.g. quality=1080p).",
        ),
    ] = None,
    quick: bool = typer.Option(
        False,
        "--quick",
        help="Lightweight preview without format analysis, cached separately.",
    ),
    retries: int = typer.Option(
        CLIDefaults.DEFAULT_RETRIES,
        "--retries",
        min=0,
        help="Retry transient failures up to N times with exponential backoff.",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Do not read or write the persisted cache.",
    ),
    cache_file: CacheFileOption = None,
    json_output: JsonOutputOption = False,
) -> None:
    """
    Show metadata for a video before downloading it.

    Examples:
        # Full preview with format analysis
        vidpeek preview https://youtu.be/dQw4w9WgXcQ

        # Quick preview, capped at 1080p, as JSON
        vidpeek preview dQw4w9WgXcQ --quick -o quality=1080p --json
    """
    exit_code = preview_command(
        url,
        option,
        quick=quick,
        retries=retries,
        json_output=json_output,
        cache_file=cache_file,
        use_cache=not no_cache,
    )
    if exit_code != CLIDefaults.EXIT_SUCCESS:
        raise typer.Exit(exit_code)


@app.command("cache")
def cache_command_typer(
    action: CacheAction = typer.Argument(..., help="stats, clear or purge"),
    cache_file: CacheFileOption = None,
    json_output: JsonOutputOption = False,
) -> None:
    """
    Inspect or maintain the persisted preview cache.

    Examples:
        vidpeek cache stats
        vidpeek cache purge --cache-file ./previews.json
    """
    exit_code = cache_command(action, cache_file, json_output=json_output)
    if exit_code != CLIDefaults.EXIT_SUCCESS:
        raise typer.Exit(exit_code)


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
