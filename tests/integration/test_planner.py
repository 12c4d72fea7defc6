"""
Integration tests for the enqueue planner.
"""

import pytest

from parallelizer.constants import ProvisionOutcome, TaskStatus
from parallelizer.exceptions import ArchiveError, EnqueueError, QueueError
from parallelizer.planner.enqueue import EnqueuePlanner, chunk
from parallelizer.types.job import Task

PREFIX = "parallelizer_"


class FakeArchive:
    """Archive double recording uploaded documents."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.documents: dict[str, bytes] = {}

    async def put(self, task_list_id: str, document: bytes) -> str:
        if self.fail:
            raise ArchiveError("access denied")
        self.documents[task_list_id] = document
        return f"s3://jobs/{task_list_id}.json"


class TestChunk:
    """Tests for batch splitting."""

    def test_chunk_sizes(self):
        """Test 25 tasks split into batches of 10, 10 and 5."""
        tasks = [Task(id=f"t{i}", display_name=str(i)) for i in range(25)]

        batches = chunk(tasks, 10)

        assert [len(b) for b in batches] == [10, 10, 5]
        assert [t.id for b in batches for t in b] == [t.id for t in tasks]

    def test_chunk_empty(self):
        """Test an empty task list produces no batches."""
        assert chunk([], 10) == []


class TestEnqueuePlanner:
    """Tests for prepare."""

    @pytest.mark.asyncio
    async def test_fresh_task_list_enqueues_everything(self, memory_queue, ledger, make_task_list):
        """Test a first run enqueues every task."""
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX)

        result = await planner.prepare(make_task_list(3))

        assert result.queue_url == "memory://parallelizer_run-1"
        assert result.queue_outcome == ProvisionOutcome.CREATED
        assert result.table_outcome == ProvisionOutcome.ALREADY_EXISTS
        assert result.total_tasks == 3
        assert result.previously_run == 0
        assert result.already_completed == 0
        assert result.enqueued == 3
        assert result.batches == 1
        assert memory_queue.task_ids(result.queue_url) == ["task-1", "task-2", "task-3"]

    @pytest.mark.asyncio
    async def test_completed_tasks_are_not_enqueued(self, memory_queue, ledger, make_task_list):
        """Test resuming only enqueues tasks not already COMPLETED."""
        task_list = make_task_list(3)
        task_1, task_2, _ = task_list.tasks
        await ledger.start_task("run-1", task_1, "w1")
        await ledger.complete_task("run-1", task_1, "w1")
        await ledger.start_task("run-1", task_2, "w1")
        await ledger.fail_task("run-1", task_2, "w1")

        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX)
        result = await planner.prepare(task_list)

        assert result.previously_run == 2
        assert result.already_completed == 1
        assert result.enqueued == 2
        assert memory_queue.task_ids(result.queue_url) == ["task-2", "task-3"]

    @pytest.mark.asyncio
    async def test_running_tasks_are_enqueued_again(self, memory_queue, ledger, make_task_list):
        """Test a task left RUNNING by a dead worker is enqueued on resume."""
        task_list = make_task_list(2)
        await ledger.start_task("run-1", task_list.tasks[0], "w1")

        result = await EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX).prepare(task_list)

        assert result.enqueued == 2

    @pytest.mark.asyncio
    async def test_fully_completed_list_enqueues_nothing(
        self, memory_queue, ledger, make_task_list
    ):
        """Test prepare on a finished list sends no batch."""
        task_list = make_task_list(2)
        for task in task_list.tasks:
            await ledger.start_task("run-1", task, "w1")
            await ledger.complete_task("run-1", task, "w1")

        result = await EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX).prepare(task_list)

        assert result.enqueued == 0
        assert result.batches == 0
        assert memory_queue.send_calls == 0

    @pytest.mark.asyncio
    async def test_second_prepare_reuses_queue(self, memory_queue, ledger, make_task_list):
        """Test provisioning twice reports the queue as already existing."""
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX)
        await planner.prepare(make_task_list(1))

        result = await planner.prepare(make_task_list(1))

        assert result.queue_outcome == ProvisionOutcome.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_batches_respect_concurrency(self, memory_queue, ledger, make_task_list):
        """Test 25 tasks go out in three batches with at most two in flight."""
        memory_queue.send_delay = 0.02
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX, concurrency=2)

        result = await planner.prepare(make_task_list(25))

        assert result.batches == 3
        assert result.enqueued == 25
        assert memory_queue.send_calls == 3
        assert memory_queue.max_in_flight == 2
        assert sorted(memory_queue.task_ids(result.queue_url)) == sorted(
            f"task-{i}" for i in range(1, 26)
        )

    @pytest.mark.asyncio
    async def test_batch_failure_stops_new_batches(self, memory_queue, ledger, make_task_list):
        """Test a failing batch lets the in-flight one finish and starts no more."""
        memory_queue.send_delay = 0.02
        memory_queue.fail_send_calls = {0}
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX, concurrency=2)

        with pytest.raises(EnqueueError) as exc_info:
            await planner.prepare(make_task_list(25))

        assert isinstance(exc_info.value.__cause__, QueueError)
        assert exc_info.value.failed_task_ids == [f"task-{i}" for i in range(1, 11)]
        assert memory_queue.send_calls == 2
        assert memory_queue.task_ids("memory://parallelizer_run-1") == [
            f"task-{i}" for i in range(11, 21)
        ]

    @pytest.mark.asyncio
    async def test_unexpected_batch_error_waits_for_in_flight(
        self, memory_queue, ledger, make_task_list
    ):
        """Test an error outside the domain hierarchy still lets the in-flight batch finish."""
        memory_queue.send_delay = 0.02
        memory_queue.fail_send_calls = {0}
        memory_queue.send_error = RuntimeError
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX, concurrency=2)

        with pytest.raises(EnqueueError) as exc_info:
            await planner.prepare(make_task_list(25))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.failed_task_ids == [f"task-{i}" for i in range(1, 11)]
        assert memory_queue.send_calls == 2
        assert memory_queue.in_flight == 0
        assert memory_queue.task_ids("memory://parallelizer_run-1") == [
            f"task-{i}" for i in range(11, 21)
        ]

    @pytest.mark.asyncio
    async def test_rejected_entries_fail_prepare(self, memory_queue, ledger, make_task_list):
        """Test per-entry rejections surface as an enqueue error."""
        memory_queue.reject_task_ids = {"task-2"}
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX)

        with pytest.raises(EnqueueError) as exc_info:
            await planner.prepare(make_task_list(3))

        assert exc_info.value.failed_task_ids == ["task-2"]
        assert "InvalidMessageContents" in str(exc_info.value)
        assert memory_queue.task_ids("memory://parallelizer_run-1") == ["task-1", "task-3"]

    @pytest.mark.asyncio
    async def test_rerun_after_failure_enqueues_again(self, memory_queue, ledger, make_task_list):
        """Test prepare can be repeated after a failed attempt."""
        memory_queue.fail_send_calls = {0}
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX)
        with pytest.raises(EnqueueError):
            await planner.prepare(make_task_list(3))

        result = await planner.prepare(make_task_list(3))

        assert result.enqueued == 3
        assert memory_queue.task_ids(result.queue_url) == ["task-1", "task-2", "task-3"]

    @pytest.mark.asyncio
    async def test_archive_document(self, memory_queue, ledger, make_task_list):
        """Test the raw job document is archived when an archive is configured."""
        archive = FakeArchive()
        planner = EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX, archive=archive)

        result = await planner.prepare(make_task_list(1), b'{"id": "run-1"}')

        assert result.archive_url == "s3://jobs/run-1.json"
        assert archive.documents == {"run-1": b'{"id": "run-1"}'}

    @pytest.mark.asyncio
    async def test_archive_failure_is_best_effort(self, memory_queue, ledger, make_task_list):
        """Test an archive error does not prevent enqueueing."""
        planner = EnqueuePlanner(
            memory_queue, ledger, queue_prefix=PREFIX, archive=FakeArchive(fail=True)
        )

        result = await planner.prepare(make_task_list(2), b"{}")

        assert result.archive_url is None
        assert result.enqueued == 2

    @pytest.mark.asyncio
    async def test_prepare_does_not_touch_ledger_records(
        self, memory_queue, ledger, make_task_list
    ):
        """Test enqueueing writes no status records."""
        await EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX).prepare(make_task_list(3))

        assert await ledger.query_records("run-1") == []
        assert await ledger.get_status("run-1", "task-1") == TaskStatus.PENDING

    @pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"batch_size": 11}, {"concurrency": 0}])
    def test_rejects_invalid_limits(self, memory_queue, ledger, kwargs):
        """Test batch size and concurrency are validated."""
        with pytest.raises(ValueError):
            EnqueuePlanner(memory_queue, ledger, queue_prefix=PREFIX, **kwargs)
