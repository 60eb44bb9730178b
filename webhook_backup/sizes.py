"""File size probing and human-readable formatting."""

from __future__ import annotations

import logging
import math
import os

logger = logging.getLogger(__name__)

_UNITS = ("Bytes", "KB", "MB", "GB")


def size_of(path: str | os.PathLike) -> int:
    """Return the size of ``path`` in bytes, or 0 if it can't be stat'ed."""
    try:
        return os.stat(path).st_size
    except OSError as e:
        logger.warning(f"Could not get file size for {path}: {e}")
        return 0


def format_size(num_bytes: int) -> str:
    """Human-readable size using base 1024, e.g. ``1536 -> "1.5 KB"``."""
    if num_bytes <= 0:
        return "0 Bytes"

    index = min(int(math.floor(math.log(num_bytes, 1024))), len(_UNITS) - 1)
    # log() can land a hair under an exact power of 1024
    if index + 1 < len(_UNITS) and num_bytes >= 1024 ** (index + 1):
        index += 1

    value = round(num_bytes / 1024**index, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[index]}"
