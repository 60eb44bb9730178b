"""Configuration for the backup service.

Usage:
    from webhook_backup.config import get_settings

    s = get_settings()
    s.webhook_url          # "https://discord.com/api/webhooks/..."
    s.connection.database  # "shop"

Submodules:
- config.job: Immutable per-process BackupJobConfig built from settings
- config.logging: Console logging setup
"""

from __future__ import annotations

from webhook_backup.config._settings import BackupSettings

_settings: BackupSettings | None = None


def get_settings() -> BackupSettings:
    """Return the singleton BackupSettings instance (created on first call)."""
    global _settings
    if _settings is None:
        _settings = BackupSettings()
    return _settings


def reset_settings() -> None:
    """Force re-creation of the settings singleton (useful for tests)."""
    global _settings
    _settings = None
