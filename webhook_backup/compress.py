"""Gzip compression of dump files."""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import shutil
import zlib

from webhook_backup.errors import CompressionFailure

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def _compress_sync(input_path: str | os.PathLike, output_path: str | os.PathLike, level: int) -> None:
    with open(input_path, "rb") as src, gzip.open(output_path, "wb", compresslevel=level) as dst:
        shutil.copyfileobj(src, dst, CHUNK_SIZE)


async def compress(
    input_path: str | os.PathLike,
    output_path: str | os.PathLike,
    level: int = 9,
) -> None:
    """Stream ``input_path`` through gzip into ``output_path``.

    Runs in a worker thread so the event loop stays responsive for large dumps.
    Completes once the output file is flushed and closed. A partially written
    output file is left in place on failure; deleting it is up to the caller.

    Raises:
        CompressionFailure: If either file can't be read/written.
    """
    try:
        await asyncio.to_thread(_compress_sync, input_path, output_path, level)
    except (OSError, zlib.error) as e:
        raise CompressionFailure(f"Compression of {input_path} failed: {e}") from e

    logger.debug(f"Compressed {input_path} -> {output_path} (level {level})")
