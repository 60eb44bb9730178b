"""Tests for the backup orchestrator state machine."""

import asyncio
from dataclasses import replace
from pathlib import Path

import pytest
from fakes import MB, FakeCompressor, FakeHandle, FakeProvider, FakeTransport, write_file

from webhook_backup.database import MysqldumpProvider
from webhook_backup.errors import DumpFailure, TransportFailure
from webhook_backup.notify import NotificationSender
from webhook_backup.orchestrator import BackupOrchestrator, RunOutcome, RunState


def make_orchestrator(config, sleeper, provider, transport, compressor=None):
    return BackupOrchestrator(
        config=config,
        provider=provider,
        sender=NotificationSender(transport, retry_backoff=config.timings.retry_backoff, sleep=sleeper),
        compressor=compressor or FakeCompressor(size=3 * MB),
        sleep=sleeper,
    )


def leftover_files(work_dir: Path) -> list[str]:
    return sorted(p.name for p in work_dir.iterdir())


class TestScenarios:
    """End-to-end runs against fake collaborators."""

    @pytest.mark.asyncio
    async def test_small_dump_sent_uncompressed(self, job_config, sleeper, work_dir):
        """5 MB dump under an 8 MB limit is sent as-is and deleted afterward."""
        provider = FakeProvider(size=5 * MB)
        compressor = FakeCompressor(size=1 * MB)
        transport = FakeTransport()
        orch = make_orchestrator(job_config, sleeper, provider, transport, compressor)

        report = await orch.run("r1")

        assert report.outcome == RunOutcome.SUCCEEDED
        assert RunState.COMPRESSING not in report.states
        assert compressor.calls == []
        assert len(transport.payloads) == 1
        payload = transport.payloads[0]
        assert payload.compressed is False
        assert payload.attachment_path.name == "dump_r1.sql"
        assert transport.attachment_existed == [True]
        assert report.original_size == 5 * MB
        assert report.final_size == 5 * MB
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_large_dump_compressed_and_sent(self, job_config, sleeper, work_dir):
        """12 MB dump that compresses to 3 MB is sent compressed; both files removed."""
        provider = FakeProvider(size=12 * MB)
        compressor = FakeCompressor(size=3 * MB)
        transport = FakeTransport()
        orch = make_orchestrator(job_config, sleeper, provider, transport, compressor)

        report = await orch.run("r2")

        assert report.outcome == RunOutcome.SUCCEEDED
        assert report.compressed is True
        assert report.final_size == 3 * MB
        assert len(compressor.calls) == 1
        _, output, level = compressor.calls[0]
        assert output.name == "dump_r2.sql.gz"
        assert level == 9

        payload = transport.payloads[0]
        assert payload.compressed is True
        assert payload.attachment_path.name == "dump_r2.sql.gz"
        assert "Compressed (.gz)" in payload.description
        assert "3 MB" in payload.description
        assert leftover_files(work_dir) == []
        assert {Path(r.path).name for r in report.cleanup} == {"dump_r2.sql", "dump_r2.sql.gz"}

    @pytest.mark.asyncio
    async def test_still_too_large_after_compression(self, job_config, sleeper, work_dir):
        """12 MB dump that only compresses to 9 MB is never sent."""
        provider = FakeProvider(size=12 * MB)
        transport = FakeTransport()
        orch = make_orchestrator(job_config, sleeper, provider, transport, FakeCompressor(size=9 * MB))

        report = await orch.run("r3")

        assert report.outcome == RunOutcome.FAILED_TOO_LARGE
        assert transport.payloads == []
        assert RunState.UPLOADING not in report.states
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_timeout_then_success_on_retry(self, job_config, sleeper, work_dir):
        """A timeout on the first send is retried once after the backoff."""
        provider = FakeProvider(size=2 * MB)
        transport = FakeTransport(asyncio.TimeoutError("Request timed out"))
        orch = make_orchestrator(job_config, sleeper, provider, transport)

        report = await orch.run("r4")

        assert report.outcome == RunOutcome.SUCCEEDED_ON_RETRY
        assert report.attempts == 2
        assert len(transport.payloads) == 2
        assert transport.attachment_existed == [True, True]
        assert RunState.RETRYING in report.states
        assert job_config.timings.retry_backoff in sleeper.delays
        assert leftover_files(work_dir) == []


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self, job_config, sleeper, work_dir):
        transport = FakeTransport(TransportFailure("403 Forbidden: Invalid Webhook Token"))
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), transport)

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_TRANSPORT
        assert len(transport.payloads) == 1
        assert RunState.RETRYING not in report.states
        assert job_config.timings.retry_backoff not in sleeper.delays
        assert "Invalid Webhook Token" in report.error
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_transient_failure_retried_exactly_once(self, job_config, sleeper, work_dir):
        transport = FakeTransport(
            TransportFailure("request aborted", transient=True),
            TransportFailure("request aborted", transient=True),
        )
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), transport)

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_TRANSPORT
        assert len(transport.payloads) == 2
        assert report.states.count(RunState.RETRYING) == 1
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_retry_aborts_when_file_grew_past_limit(self, job_config, sleeper, work_dir):
        """The retry re-checks the candidate and gives up without resending."""

        def grow(payload):
            write_file(payload.attachment_path, 10 * MB)

        transport = FakeTransport(asyncio.TimeoutError(), on_send=grow)
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), transport)

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_TOO_LARGE
        assert len(transport.payloads) == 1
        assert RunState.RETRYING in report.states
        assert leftover_files(work_dir) == []


class TestFailureBranches:
    @pytest.mark.asyncio
    async def test_dump_failure(self, job_config, sleeper, work_dir):
        handle = FakeHandle()
        error = DumpFailure("Access denied", handle=handle)
        provider = FakeProvider(error=error, partial=4096)
        transport = FakeTransport()
        orch = make_orchestrator(job_config, sleeper, provider, transport)

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_DUMP
        assert report.error == "Access denied"
        assert handle.closed is True
        assert transport.payloads == []
        assert RunState.SIZING not in report.states
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_unusable_work_dir_is_a_dump_failure(self, job_config, sleeper, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        config = replace(job_config, work_dir=blocker / "sub")
        transport = FakeTransport()
        orch = BackupOrchestrator(
            config=config,
            provider=MysqldumpProvider(binary="/bin/true"),
            sender=NotificationSender(transport, sleep=sleeper),
            sleep=sleeper,
        )

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_DUMP
        assert "Cannot create dump directory" in report.error
        assert transport.payloads == []

    @pytest.mark.asyncio
    async def test_compression_failure(self, job_config, sleeper, work_dir):
        transport = FakeTransport()
        orch = make_orchestrator(
            job_config, sleeper, FakeProvider(size=12 * MB), transport, FakeCompressor(fail=True)
        )

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_COMPRESSION
        assert transport.payloads == []
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_still_cleans_up(self, job_config, sleeper, work_dir):
        # RuntimeError from inside the provider is not a DumpFailure
        provider = FakeProvider(error=RuntimeError("driver bug"), partial=10)
        orch = make_orchestrator(job_config, sleeper, provider, FakeTransport())

        report = await orch.run()

        assert report.outcome == RunOutcome.FAILED_UNEXPECTED
        assert report.states[-2:] == [RunState.CLEANUP, RunState.IDLE]
        assert leftover_files(work_dir) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "provider, compressor, transport, expected",
        [
            (FakeProvider(size=MB), FakeCompressor(), FakeTransport(), RunOutcome.SUCCEEDED),
            (
                FakeProvider(size=MB),
                FakeCompressor(),
                FakeTransport(asyncio.TimeoutError()),
                RunOutcome.SUCCEEDED_ON_RETRY,
            ),
            (FakeProvider(size=12 * MB), FakeCompressor(size=9 * MB), FakeTransport(), RunOutcome.FAILED_TOO_LARGE),
            (
                FakeProvider(error=DumpFailure("no route to host"), partial=100),
                FakeCompressor(),
                FakeTransport(),
                RunOutcome.FAILED_DUMP,
            ),
            (
                FakeProvider(size=MB),
                FakeCompressor(),
                FakeTransport(ValueError("400 Bad Request")),
                RunOutcome.FAILED_TRANSPORT,
            ),
            (FakeProvider(size=12 * MB), FakeCompressor(fail=True), FakeTransport(), RunOutcome.FAILED_COMPRESSION),
        ],
        ids=["succeeded", "retry", "too-large", "dump", "transport", "compression"],
    )
    async def test_every_outcome_leaves_no_artifacts(
        self, job_config, sleeper, work_dir, provider, compressor, transport, expected
    ):
        orch = make_orchestrator(job_config, sleeper, provider, transport, compressor)

        report = await orch.run()

        assert report.outcome == expected
        assert report.states[-2:] == [RunState.CLEANUP, RunState.IDLE]
        assert all(r.ok for r in report.cleanup)
        assert leftover_files(work_dir) == []
        assert orch.state == RunState.IDLE


class TestSizing:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 1, 5 * MB, 8 * MB])
    async def test_sizes_within_limit_never_compress(self, job_config, sleeper, size):
        compressor = FakeCompressor(size=1)
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=size), FakeTransport(), compressor)

        report = await orch.run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert compressor.calls == []
        assert RunState.COMPRESSING not in report.states

    @pytest.mark.asyncio
    async def test_one_byte_over_limit_compresses(self, job_config, sleeper):
        compressor = FakeCompressor(size=MB)
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=8 * MB + 1), FakeTransport(), compressor)

        report = await orch.run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert report.compressed is True
        assert len(compressor.calls) == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_state_sequence_for_plain_success(self, job_config, sleeper):
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), FakeTransport())

        report = await orch.run()

        assert report.states == [
            RunState.PRE_CLEANUP,
            RunState.DUMPING,
            RunState.SIZING,
            RunState.AWAITING_UPLOAD,
            RunState.UPLOADING,
            RunState.CLEANUP,
            RunState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_settle_delays_in_order(self, job_config, sleeper):
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), FakeTransport())

        await orch.run()

        t = job_config.timings
        assert sleeper.delays == [t.pre_cleanup_settle, t.upload_settle, t.post_send_delay]

    @pytest.mark.asyncio
    async def test_release_acknowledgment_replaces_upload_settle(self, job_config, sleeper):
        handle = FakeHandle(acknowledges=True)
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB, handle=handle), FakeTransport())

        report = await orch.run()

        t = job_config.timings
        assert report.outcome == RunOutcome.SUCCEEDED
        assert handle.released is True
        assert handle.closed is True
        assert sleeper.delays == [t.pre_cleanup_settle, t.post_send_delay]

    @pytest.mark.asyncio
    async def test_pre_cleanup_removes_stale_artifacts(self, job_config, sleeper, work_dir):
        write_file(work_dir / "dump_0123456789ab.sql", 100)
        write_file(work_dir / "dump_0123456789ab.sql.gz", 50)
        write_file(work_dir / "notes.txt", 10)
        provider = FakeProvider(size=MB)
        orch = make_orchestrator(job_config, sleeper, provider, FakeTransport())

        report = await orch.run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert leftover_files(work_dir) == ["notes.txt"]

    @pytest.mark.asyncio
    async def test_pre_cleanup_keeps_files_it_did_not_create(self, job_config, sleeper, work_dir):
        for name in ("dump_production_2024.sql", "dump_foo.sql", "dump_foo.sql.gz", "dump_0123456789abc.sql"):
            write_file(work_dir / name, 10)
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=MB), FakeTransport())

        report = await orch.run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert leftover_files(work_dir) == [
            "dump_0123456789abc.sql",
            "dump_foo.sql",
            "dump_foo.sql.gz",
            "dump_production_2024.sql",
        ]

    @pytest.mark.asyncio
    async def test_payload_describes_database(self, job_config, sleeper):
        transport = FakeTransport()
        orch = make_orchestrator(job_config, sleeper, FakeProvider(size=1536), transport)

        await orch.run()

        payload = transport.payloads[0]
        assert payload.title == "SQL BACKUP | shop"
        assert "**File Size:** 1.5 KB" in payload.description
        assert "**Status:** Original" in payload.description
        assert payload.color == "GREEN"

    @pytest.mark.asyncio
    async def test_dump_uses_configured_connection(self, job_config, sleeper):
        provider = FakeProvider(size=MB)
        orch = make_orchestrator(job_config, sleeper, provider, FakeTransport())

        await orch.run("abc")

        connection, destination = provider.calls[0]
        assert connection.database == "shop"
        assert destination == job_config.work_dir / "dump_abc.sql"
