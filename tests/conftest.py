"""Pytest configuration and fixtures for webhook_backup tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import MB, TIMINGS, SleepRecorder

from webhook_backup.config import reset_settings
from webhook_backup.config.job import BackupJobConfig, ConnectionDescriptor
from webhook_backup.errors import DumpFailure
from webhook_backup.health import reset_state


@pytest.fixture
def work_dir(tmp_path) -> Path:
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def job_config(work_dir) -> BackupJobConfig:
    return BackupJobConfig(
        connection=ConnectionDescriptor(host="db.local", user="backup", password="s3cret", database="shop"),
        webhook_id=123456789,
        webhook_token="tok-en",
        size_limit=8 * MB,
        work_dir=work_dir,
        health_port=0,
        timings=TIMINGS,
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset settings singleton and health state between tests."""
    reset_settings()
    reset_state()
    yield
    reset_settings()
    reset_state()


@pytest.fixture
def dump_error() -> DumpFailure:
    return DumpFailure("Access denied for user 'backup'@'db.local'")
