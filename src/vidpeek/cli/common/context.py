"""
Global CLI state.

The main callback validates the global flags into a ``CliContext`` and
stores it in a ContextVar; ``preview`` and ``cache`` read it back with
``get_cli_context()``.
"""

from __future__ import annotations

import contextvars
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CliContext(BaseModel):
    """Options given before the command name.

    Attributes:
        verbose: Count of ``-v`` flags, any value above 0 means DEBUG
        log_level: Explicit ``--log-level``, None defers to the settings
        json_output: Emit the JSON envelope instead of rich tables
        config_file: Config file passed with ``--config``, if any
    """

    verbose: int = Field(default=0, ge=0)
    log_level: LogLevel | None = None
    json_output: bool = False
    config_file: Path | None = Field(
        default=None,
        description="Explicit configuration file, None for discovery",
    )

    def is_verbose(self) -> bool:
        return self.verbose > 0

    def is_json_output_enabled(self) -> bool:
        return self.json_output

    def get_effective_log_level(self, configured: str = LogLevel.INFO.value) -> str:
        """Resolve the level used for logging setup.

        ``-v`` beats ``--log-level``, which beats ``configured`` (the
        ``logging.level`` setting).
        """
        if self.is_verbose():
            return LogLevel.DEBUG.value
        if self.log_level is not None:
            return self.log_level.value
        return configured.upper()


_cli_context: contextvars.ContextVar[CliContext | None] = contextvars.ContextVar(
    "vidpeek_cli_context",
    default=None,
)


def get_cli_context() -> CliContext:
    """Return the active context, or defaults when no callback has run."""
    context = _cli_context.get()
    return context if context is not None else CliContext()


def set_cli_context(context: CliContext) -> None:
    _cli_context.set(context)


def clear_cli_context() -> None:
    _cli_context.set(None)
