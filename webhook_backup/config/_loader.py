"""Locating and reading ``backup.yaml``.

The file is optional: every setting can come from the environment instead.
When ``WEBHOOK_BACKUP_CONFIG`` names a file, only that file is considered.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from webhook_backup.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "WEBHOOK_BACKUP_CONFIG"
CONFIG_NAMES = ("backup.yaml", "backup.yml")


def config_search_paths() -> list[Path]:
    """Candidate config files, highest priority first."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return [Path(explicit).expanduser()]
    return [Path.cwd() / name for name in CONFIG_NAMES] + [Path.home() / ".webhook_backup" / CONFIG_NAMES[0]]


def find_config_file() -> Path | None:
    """Return the first existing candidate from :func:`config_search_paths`."""
    paths = config_search_paths()
    for candidate in paths:
        if candidate.is_file():
            return candidate
    if os.environ.get(CONFIG_ENV_VAR):
        logger.warning(f"{CONFIG_ENV_VAR} points at {paths[0]}, which does not exist")
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a mapping.

    Raises:
        ConfigError: If the file can't be read or parsed, or its top level
            is not a mapping. An empty file yields ``{}``.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by ``backup.yaml``. Remembers which file it read."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path | None = None) -> None:
        super().__init__(settings_cls)
        self.config_path = path or find_config_file()
        self._data: dict[str, Any] = {}
        if self.config_path is not None:
            self._data = load_config_file(self.config_path)
            logger.debug(f"Loaded settings from {self.config_path}")

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        val = self._data.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in self._data.items() if k in self.settings_cls.model_fields}
