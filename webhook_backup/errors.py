"""Exception types raised by the backup pipeline.

Everything is caught at the run boundary in the orchestrator; these exist so
each step can say precisely what went wrong.
"""

from __future__ import annotations

from typing import Any


class BackupError(Exception):
    """Base class for backup failures."""


class ConfigError(BackupError):
    """Configuration is missing or malformed."""


class DumpFailure(BackupError):
    """The database dump could not be produced (connectivity, credentials, binary missing)."""

    def __init__(self, message: str, handle: Any | None = None) -> None:
        super().__init__(message)
        self.handle = handle


class CompressionFailure(BackupError):
    """Reading the dump or writing the gzip stream failed."""


class SizeLimitExceeded(BackupError):
    """An artifact is too large for the transport."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"{size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class TransportFailure(BackupError):
    """The notification transport rejected or dropped a send."""

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
