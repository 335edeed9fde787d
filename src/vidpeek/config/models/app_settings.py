"""Application and logging configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from vidpeek.shared.constants import Application, LoggingDefaults


class AppSettings(BaseModel):
    """Application configuration."""

    name: str = Field(default=Application.NAME, description="Application name")
    version: str = Field(default=Application.VERSION, description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")


class LoggingSettings(BaseModel):
    """Logging configuration.

    ``file`` is optional; when set, records are also written there as
    JSON lines.
    """

    level: str = Field(default=LoggingDefaults.LEVEL, description="Logging level")
    file: str = Field(default=LoggingDefaults.FILE_PATH, description="Log file path")
    console_output: bool = Field(default=True, description="Enable rich console logging")


__all__ = [
    "AppSettings",
    "LoggingSettings",
]
