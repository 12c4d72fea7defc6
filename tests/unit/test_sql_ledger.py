"""
Unit tests for the SQL status ledger.
"""

import asyncio

import pytest

from parallelizer.constants import ProvisionOutcome, TaskStatus
from parallelizer.ledger.connection import create_engine
from parallelizer.ledger.repository import SqlStatusLedger
from parallelizer.types.job import Task

TASK = Task(id="task-1", display_name="Task 1")


class TestSqlStatusLedger:
    """Tests for SqlStatusLedger."""

    @pytest.mark.asyncio
    async def test_ensure_table_outcomes(self, tmp_path):
        """Test the first call creates the table and the second finds it."""
        ledger = SqlStatusLedger(create_engine(f"sqlite+aiosqlite:///{tmp_path / 'new.db'}"))
        try:
            assert await ledger.ensure_table() == ProvisionOutcome.CREATED
            assert await ledger.ensure_table() == ProvisionOutcome.ALREADY_EXISTS
        finally:
            await ledger.close()

    @pytest.mark.asyncio
    async def test_absent_record_is_pending(self, ledger):
        """Test a task without a record reads as PENDING."""
        assert await ledger.get_record("run-1", "task-1") is None
        assert await ledger.get_status("run-1", "task-1") == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_start_task(self, ledger):
        """Test starting a task records RUNNING with attempt 1."""
        record = await ledger.start_task("run-1", TASK, "worker-a")

        assert record.status == TaskStatus.RUNNING
        assert record.attempt_count == 1
        assert record.worker_id == "worker-a"
        assert record.task_display_name == "Task 1"
        assert record.started_at is not None
        assert record.started_at.tzinfo is not None
        assert record.finished_at is None

    @pytest.mark.asyncio
    async def test_complete_task(self, ledger):
        """Test completing keeps the attempt count and stamps finished_at."""
        started = await ledger.start_task("run-1", TASK, "worker-a")

        record = await ledger.complete_task("run-1", TASK, "worker-a")

        assert record.status == TaskStatus.COMPLETED
        assert record.attempt_count == 1
        assert record.started_at == started.started_at
        assert record.finished_at >= record.started_at
        assert record.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_attempt_count_grows_and_finished_at_is_cleared(self, ledger):
        """Test a restart after failure increments the attempt and clears finished_at."""
        await ledger.start_task("run-1", TASK, "worker-a")
        failed = await ledger.fail_task("run-1", TASK, "worker-a")
        assert failed.status == TaskStatus.FAILED
        assert failed.finished_at is not None

        restarted = await ledger.start_task("run-1", TASK, "worker-b")

        assert restarted.status == TaskStatus.RUNNING
        assert restarted.attempt_count == 2
        assert restarted.worker_id == "worker-b"
        assert restarted.finished_at is None

    @pytest.mark.asyncio
    async def test_terminal_write_without_start(self, ledger):
        """Test a terminal write on a fresh key leaves the attempt count at zero."""
        record = await ledger.fail_task("run-1", TASK, "worker-a")

        assert record.status == TaskStatus.FAILED
        assert record.attempt_count == 0
        assert record.started_at is None

    @pytest.mark.asyncio
    async def test_concurrent_starts_never_lose_an_increment(self, ledger):
        """Test concurrent RUNNING writers each bump the counter."""
        await asyncio.gather(*(ledger.start_task("run-1", TASK, f"w{i}") for i in range(5)))

        record = await ledger.get_record("run-1", "task-1")
        assert record.attempt_count == 5

    @pytest.mark.asyncio
    async def test_query_is_scoped_to_list(self, ledger):
        """Test records of other task lists are not returned."""
        other = Task(id="task-2", display_name="Task 2")
        await ledger.start_task("run-1", TASK, "w")
        await ledger.complete_task("run-1", TASK, "w")
        await ledger.start_task("run-1", other, "w")
        await ledger.start_task("run-2", TASK, "w")

        records = await ledger.query_records("run-1")

        assert [r.task_id for r in records] == ["task-1", "task-2"]
        assert records[0].status == TaskStatus.COMPLETED
        assert [r.task_id for r in await ledger.query_records("run-2")] == ["task-1"]
        assert await ledger.query_records("run-3") == []
