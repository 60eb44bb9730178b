"""Tests for best-effort file deletion."""

import os
import stat
from pathlib import Path

import pytest
from fakes import SleepRecorder

from webhook_backup.reaper import DeleteResult, FileReaper


@pytest.fixture
def reaper(sleeper):
    return FileReaper(attempts=3, retry_delay=0.5, sleep=sleeper)


class TestDelete:
    @pytest.mark.asyncio
    async def test_missing_path_is_success(self, reaper, tmp_path):
        result = await reaper.delete(tmp_path / "gone.sql")
        assert result.ok is True
        assert result.attempts == 0

    @pytest.mark.asyncio
    async def test_deletes_file(self, reaper, tmp_path):
        path = tmp_path / "dump.sql"
        path.write_text("data")

        result = await reaper.delete(path)

        assert result
        assert result.attempts == 1
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_deletes_read_only_file(self, reaper, tmp_path):
        path = tmp_path / "dump.sql"
        path.write_text("data")
        os.chmod(path, stat.S_IREAD)

        result = await reaper.delete(path)

        assert result.ok
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, reaper, sleeper, tmp_path, monkeypatch):
        path = tmp_path / "dump.sql"
        path.write_text("data")
        real_unlink = Path.unlink
        calls = []

        def flaky_unlink(self, *args, **kwargs):
            calls.append(self)
            if len(calls) == 1:
                raise PermissionError("file is in use")
            return real_unlink(self, *args, **kwargs)

        monkeypatch.setattr(Path, "unlink", flaky_unlink)

        result = await reaper.delete(path)

        assert result.ok
        assert result.attempts == 2
        assert sleeper.delays == [0.5]
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_gives_up_without_raising(self, reaper, sleeper, tmp_path, monkeypatch):
        path = tmp_path / "dump.sql"
        path.write_text("data")

        def locked(self, *args, **kwargs):
            raise PermissionError("file is in use")

        monkeypatch.setattr(Path, "unlink", locked)

        result = await reaper.delete(path)

        assert not result
        assert result.attempts == 3
        assert "in use" in result.error
        assert sleeper.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_at_least_one_attempt(self, tmp_path):
        reaper = FileReaper(attempts=0, sleep=SleepRecorder())
        path = tmp_path / "dump.sql"
        path.write_text("data")

        assert await reaper.delete(path)


class TestBulk:
    @pytest.mark.asyncio
    async def test_cleanup_known_paths(self, reaper, tmp_path):
        a = tmp_path / "dump.sql"
        b = tmp_path / "dump.sql.gz"
        a.write_text("a")

        results = await reaper.cleanup_known_paths([a, b])

        assert [r.ok for r in results] == [True, True]
        assert results[1] == DeleteResult(path=str(b), ok=True)
        assert not a.exists()

    @pytest.mark.asyncio
    async def test_collect_stale_matches_pattern_only(self, reaper, tmp_path):
        for name in ("dump_a.sql", "dump_b.sql", "keep.sql"):
            (tmp_path / name).write_text("x")

        results = await reaper.collect_stale(tmp_path, "dump_*.sql")

        assert len(results) == 2
        assert sorted(p.name for p in tmp_path.iterdir()) == ["keep.sql"]

    @pytest.mark.asyncio
    async def test_collect_stale_missing_directory(self, reaper, tmp_path):
        assert await reaper.collect_stale(tmp_path / "missing", "*.sql") == []
