"""
CLI Error Handling Utilities

Consistent mapping of exceptions to CLI errors, exit codes and output
(plain stderr message or JSON envelope on stdout).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from vidpeek.cli.json_formatter import format_json_output, write_json_output
from vidpeek.shared.constants import CLIDefaults
from vidpeek.shared.errors import (
    CliError,
    DomainError,
    ErrorCode,
    FetchError,
    InfrastructureError,
    VidPeekError,
    create_cli_error,
)

logger = logging.getLogger(__name__)

EXIT_USAGE = 2
CACHE_COMMAND = "cache"


def handle_cli_error(
    error: BaseException,
    command: str,
    *,
    json_output: bool = False,
) -> int:
    """Handle CLI errors with consistent formatting and logging.

    Args:
        error: The exception that occurred
        command: The CLI command being executed
        json_output: Whether to output JSON format

    Returns:
        Exit code for the CLI command
    """
    error_context: dict[str, Any] = {
        "command": command,
        "error_type": type(error).__name__,
        "json_output": json_output,
    }
    cli_error = _map_error_to_cli_error(error, command, error_context)
    _log_error(error, command, cli_error, error_context)
    _output_error(cli_error, error, command, error_context, json_output=json_output)

    return cli_error.exit_code


def _map_error_to_cli_error(
    error: BaseException,
    command: str,
    error_context: dict[str, Any],
) -> CliError:
    """Map specific exception types to CLI errors."""
    if isinstance(error, CliError):
        error_context["error_code"] = error.code.value
        return error

    if isinstance(error, DomainError):
        error_context["error_code"] = error.code.value
        return create_cli_error(
            message=error.message,
            command=command,
            code=ErrorCode.CLI_INVALID_ARGUMENTS,
            original_error=error,
            exit_code=EXIT_USAGE,
        )

    if isinstance(error, FetchError):
        error_context["error_code"] = error.code.value
        return create_cli_error(
            message=f"Preview failed: {error.message}",
            command=command,
            code=ErrorCode.CLI_PREVIEW_COMMAND_FAILED,
            original_error=error,
        )

    if isinstance(error, InfrastructureError) and command.partition(" ")[0] == CACHE_COMMAND:
        error_context["error_code"] = error.code.value
        return create_cli_error(
            message=f"Cache command failed: {error.message}",
            command=command,
            code=ErrorCode.CLI_CACHE_COMMAND_FAILED,
            original_error=error,
        )

    if isinstance(error, VidPeekError):
        error_context["error_code"] = error.code.value
        return create_cli_error(
            message=error.message,
            command=command,
            original_error=error,
        )

    if isinstance(error, KeyboardInterrupt):
        error_context["interrupt_type"] = "user_interrupt"
        return create_cli_error(
            message="Command interrupted by user",
            command=command,
            original_error=error,
            exit_code=CLIDefaults.EXIT_INTERRUPTED,
        )

    if isinstance(error, OSError):
        error_context["error_category"] = "file_system"
        return create_cli_error(
            message=f"File system error: {error}",
            command=command,
            original_error=error,
        )

    error_context["error_category"] = "unexpected"
    return create_cli_error(
        message=f"Unexpected error: {error}",
        command=command,
        original_error=error,
    )


def _log_error(
    error: BaseException,
    command: str,
    cli_error: CliError,
    error_context: dict[str, Any],
) -> None:
    if isinstance(error, KeyboardInterrupt):
        logger.warning(
            "Command interrupted: %s",
            cli_error.message,
            extra={"context": error_context},
        )
    elif isinstance(error, VidPeekError):
        # Expected failures, the message is shown to the user already
        logger.debug(
            "CLI error in %s: %s",
            command,
            cli_error.message,
            extra={"context": error_context},
        )
    else:
        logger.error(
            "CLI error in %s: %s",
            command,
            cli_error.message,
            extra={"context": error_context},
            exc_info=error,
        )


def _output_error(
    cli_error: CliError,
    error: BaseException,
    command: str,
    error_context: dict[str, Any],
    *,
    json_output: bool,
) -> None:
    if json_output:
        write_json_output(
            format_json_output(
                success=False,
                command=command,
                errors=[cli_error.message],
                data={
                    "error_code": error_context.get("error_code", cli_error.code.value),
                    "error_type": type(error).__name__,
                    "exit_code": cli_error.exit_code,
                },
            ),
        )
    else:
        sys.stderr.write(f"Error: {cli_error.message}\n")
