"""vidpeek Error Handling Module

This module defines the error handling system for vidpeek, providing
structured error classes with context information and user-friendly messages.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- Proper Exception Chaining: Original exceptions are preserved
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]


class ErrorCode(str, Enum):
    """Error codes for vidpeek.

    This enum serves as the single source of truth for all error codes
    used throughout the application.
    """

    # Item reference errors
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"

    # Fetcher errors
    FETCH_FAILED = "FETCH_FAILED"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    FETCH_EMPTY_RESULT = "FETCH_EMPTY_RESULT"

    # File System Errors
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Cache Errors
    CACHE_ERROR = "CACHE_ERROR"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    CACHE_SERIALIZATION_ERROR = "CACHE_SERIALIZATION_ERROR"

    # Configuration Errors
    CONFIG_ERROR = "CONFIG_ERROR"
    CONFIG_INVALID = "CONFIG_INVALID"

    # Application Errors
    APPLICATION_ERROR = "APPLICATION_ERROR"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"

    # Concurrency Errors
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"

    # Retry Errors
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"

    # CLI Errors
    CLI_INVALID_ARGUMENTS = "CLI_INVALID_ARGUMENTS"
    CLI_PREVIEW_COMMAND_FAILED = "CLI_PREVIEW_COMMAND_FAILED"
    CLI_CACHE_COMMAND_FAILED = "CLI_CACHE_COMMAND_FAILED"
    CLI_UNEXPECTED_ERROR = "CLI_UNEXPECTED_ERROR"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path, Enum, Decimal to primitive types.

    Args:
        value: Input dictionary or None

    Returns:
        Dictionary with primitive values only, or None

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        elif isinstance(val, Decimal):
            coerced[key] = float(val)
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum, Decimal are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContextModel:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data to keep log records serializable.

    Attributes:
        file_path: Optional file path associated with the error
        operation: Optional operation name that caused the error
        additional_data: Optional dict with primitive values only
    """

    file_path: str | None = None
    operation: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        """Post-initialization coercion of additional_data."""
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            # Frozen dataclass: internal field update goes through object.__setattr__
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self) -> dict[str, Any]:
        """Export context as dict for logging.

        additional_data is always present (never None) for consumers.

        Example:
            >>> ErrorContextModel(operation="fetch").safe_dict()
            {'operation': 'fetch', 'additional_data': {}}
        """
        data: dict[str, Any] = {}
        if self.file_path is not None:
            data["file_path"] = self.file_path
        if self.operation is not None:
            data["operation"] = self.operation
        data["additional_data"] = dict(self.additional_data or {})
        return data


ErrorContext = ErrorContextModel


class VidPeekError(Exception):
    """Base exception class for all vidpeek errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialize VidPeekError.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error

        super().__init__(f"{code.value}: {message}")

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging and JSON output."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(VidPeekError):
    """Domain-specific errors.

    Raised when a request violates the rules of the preview domain,
    such as a malformed item reference or unserializable options.
    """


class InfrastructureError(VidPeekError):
    """Infrastructure-related errors.

    Raised when interacting with external systems: the metadata
    provider, the file system, the persisted cache.
    """


class ApplicationError(VidPeekError):
    """Application-level errors.

    Configuration problems, invalid component arguments and lifecycle
    misuse (for example fetching from a scheduler that was shut down).
    """


class InvalidIdentifierError(DomainError):
    """Malformed item reference, raised before any queue interaction."""


class FetchError(InfrastructureError):
    """The metadata fetcher rejected a request.

    Network, provider and format errors all surface as FetchError with the
    provider's exception kept in ``original_error``.
    """


class RequestCancelledError(ApplicationError):
    """A pending request was evicted before the fetcher produced a result."""


class CliError(ApplicationError):
    """CLI-specific error with an exit code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: ErrorContext | None = None,
        original_error: BaseException | None = None,
        command: str | None = None,
        exit_code: int = 1,
    ):
        super().__init__(code, message, context, original_error)
        self.command = command
        self.exit_code = exit_code


# Convenience functions for common error scenarios
def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
    original_error: BaseException | None = None,
) -> DomainError:
    """Create a validation error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"field": field} if field else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return DomainError(
        ErrorCode.VALIDATION_ERROR,
        message,
        context,
        original_error,
    )


def create_invalid_identifier_error(
    reference: Any,
    reason: str,
    operation: str | None = None,
) -> InvalidIdentifierError:
    """Create an invalid identifier error for a rejected item reference."""
    shown = reference if isinstance(reference, str) else type(reference).__name__
    context = ErrorContext(
        operation=operation or "parse_item_reference",
        additional_data={"reference": str(shown)[:200], "reason": reason},
    )
    return InvalidIdentifierError(
        ErrorCode.INVALID_IDENTIFIER,
        f"Invalid item reference {shown!r}: {reason}",
        context,
    )


def create_fetch_error(
    message: str,
    reference: str | None = None,
    code: ErrorCode = ErrorCode.FETCH_FAILED,
    original_error: BaseException | None = None,
) -> FetchError:
    """Create a fetch error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"reference": reference} if reference else None
    )
    context = ErrorContext(
        operation="fetch_metadata",
        additional_data=additional_data,
    )
    return FetchError(code, message, context, original_error)


def create_cancelled_error(
    key: str,
    reason: str,
) -> RequestCancelledError:
    """Create the error delivered to waiters of an evicted request."""
    context = ErrorContext(
        operation="scheduler_shutdown",
        additional_data={"key": key, "reason": reason},
    )
    return RequestCancelledError(
        ErrorCode.OPERATION_CANCELLED,
        f"Request cancelled: {reason}",
        context,
    )


def create_config_error(
    message: str,
    config_key: str | None = None,
    operation: str | None = None,
    original_error: BaseException | None = None,
) -> ApplicationError:
    """Create a configuration error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"config_key": config_key} if config_key else None
    )
    context = ErrorContext(
        operation=operation,
        additional_data=additional_data,
    )
    return ApplicationError(
        ErrorCode.CONFIG_ERROR,
        message,
        context,
        original_error,
    )


def create_cli_error(
    message: str,
    command: str | None = None,
    code: ErrorCode = ErrorCode.CLI_UNEXPECTED_ERROR,
    original_error: BaseException | None = None,
    exit_code: int = 1,
) -> CliError:
    """Create a CLI error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"command": command} if command else None
    )
    context = ErrorContext(
        operation="cli",
        additional_data=additional_data,
    )
    return CliError(
        code,
        message,
        context,
        original_error,
        command,
        exit_code,
    )
