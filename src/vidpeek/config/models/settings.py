"""vidpeek Settings Configuration Model.

Main Settings class that consolidates all configuration domains.
"""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vidpeek.config.models.app_settings import AppSettings, LoggingSettings
from vidpeek.config.models.cache_settings import CacheSettings
from vidpeek.config.models.retry_settings import RetrySettings
from vidpeek.config.models.scheduler_settings import (
    FetcherSettings,
    SchedulerSettings,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Unified configuration access.

    Environment variables override defaults, e.g.
    ``VIDPEEK_SCHEDULER__MAX_CONCURRENT=5``.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDPEEK_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @classmethod
    def from_toml_file(cls, file_path: str | Path) -> Settings:
        """Load settings from a TOML file.

        Values from the file take precedence over environment variables,
        which still fill in everything the file leaves out.
        """
        file_path = Path(file_path)
        if not file_path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        raw_config = toml.load(file_path)
        logger.debug("Loaded configuration from %s", file_path)
        return cls(**raw_config)

    def to_toml_file(self, file_path: str | Path) -> None:
        """Save settings to TOML file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(mode="json", exclude_none=True)

        with open(file_path, "w", encoding="utf-8") as f:
            toml.dump(config_dict, f)
