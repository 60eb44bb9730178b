"""Root BackupSettings model."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from webhook_backup.config._loader import YamlSettingsSource
from webhook_backup.config._sections import (
    ConnectionSettings,
    EmbedSettings,
    LoggingSettings,
    TimingSettings,
)

DEFAULT_SIZE_LIMIT = 8 * 1024 * 1024


class BackupSettings(BaseSettings):
    model_config = {"env_nested_delimiter": "__", "case_sensitive": False, "extra": "ignore"}

    webhook_url: str = ""
    interval_minutes: int = Field(default=30, ge=1)
    size_limit: int = Field(default=DEFAULT_SIZE_LIMIT, gt=0)
    compression_level: int = Field(default=9, ge=0, le=9)
    work_dir: str = "."
    dump_basename: str = "dump"
    mysqldump_path: str = "mysqldump"
    health_port: int = 8080

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    embed: EmbedSettings = Field(default_factory=EmbedSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            env_settings,
            YamlSettingsSource(settings_cls),
            init_settings,
        )
