"""Database dump provider backed by the ``mysqldump`` binary."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from webhook_backup.errors import DumpFailure

if TYPE_CHECKING:
    from webhook_backup.config.job import ConnectionDescriptor

logger = logging.getLogger(__name__)


class DumpHandle(Protocol):
    """Connection handle a provider may hand back alongside the dump.

    Providers that can tell when the dump file is fully released may also
    implement ``async wait_released()``; the orchestrator prefers that over a
    fixed settle delay.
    """

    async def close(self) -> None: ...


@dataclass
class DumpResult:
    """Where the dump landed and the handle (if any) still attached to it."""

    path: Path
    handle: Any | None = None


class DumpProvider(Protocol):
    async def dump(self, connection: ConnectionDescriptor, destination: Path) -> DumpResult: ...


def build_dump_command(binary: str, connection: ConnectionDescriptor, destination: Path) -> list[str]:
    """Build the mysqldump argv. The password is passed via MYSQL_PWD, never argv."""
    return [
        binary,
        "-h",
        connection.host,
        "-P",
        str(connection.port),
        "-u",
        connection.user,
        "--single-transaction",
        "--routines",
        "--triggers",
        f"--result-file={destination}",
        connection.database,
    ]


class MysqldumpProvider:
    """Dumps a MySQL database to a file by running ``mysqldump``.

    The subprocess has exited by the time ``dump`` returns, so there is no
    handle to release and ``DumpResult.handle`` is always None.
    """

    def __init__(self, binary: str = "mysqldump", timeout: float = 600.0) -> None:
        self.binary = binary
        self.timeout = timeout

    async def dump(self, connection: ConnectionDescriptor, destination: Path) -> DumpResult:
        db_name = connection.database
        logger.info(f"[{db_name}] Starting dump of {db_name}@{connection.host}")

        env = os.environ.copy()
        if connection.password:
            env["MYSQL_PWD"] = connection.password

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DumpFailure(f"Cannot create dump directory {destination.parent}: {e}") from e
        cmd = build_dump_command(self.binary, connection, destination)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as e:
            raise DumpFailure(f"{self.binary} not found - install mysql-client") from e
        except OSError as e:
            raise DumpFailure(f"Cannot run {self.binary}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise DumpFailure(f"{self.binary} timed out after {self.timeout:.0f}s") from e

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[:500]
            raise DumpFailure(f"{self.binary} exited with {proc.returncode}: {detail}")

        logger.info(f"[{db_name}] Dump complete: {destination}")
        return DumpResult(path=destination)
