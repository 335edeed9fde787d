"""
Reusable Typer Options Module

Option definitions shared by the main callback and the commands, so
flags are spelled and documented the same way everywhere.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer

from vidpeek.cli.common.context import LogLevel
from vidpeek.shared.constants import Application


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"{Application.NAME} {Application.VERSION}")
        raise typer.Exit


# Count-based, -vv is accepted
VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Enable verbose output (equivalent to --log-level DEBUG).",
    ),
]

LogLevelOption = Annotated[
    Optional[LogLevel],
    typer.Option(
        "--log-level",
        case_sensitive=False,
        help="Set the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
    ),
]

JsonOutputOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Enable machine-readable JSON output instead of human-readable format.",
    ),
]

VersionOption = Annotated[
    bool,
    typer.Option(
        "--version",
        "-V",
        help="Show version information and exit.",
        callback=version_callback,
        is_eager=True,
    ),
]

CacheFileOption = Annotated[
    Optional[Path],
    typer.Option(
        "--cache-file",
        help="Persisted cache file (defaults to the configured cache path).",
        dir_okay=False,
    ),
]

ConfigFileOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        help="TOML configuration file.",
        exists=True,
        dir_okay=False,
    ),
]
