"""Periodic MySQL backups delivered to a Discord webhook."""

__version__ = "1.0.0"
