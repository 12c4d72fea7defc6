"""
Pytest configuration and shared fixtures.
"""

import asyncio
import itertools
import os
import time
from collections.abc import AsyncGenerator, Callable, Sequence
from dataclasses import dataclass, field

import pytest
import pytest_asyncio

from parallelizer.config import Settings, get_settings
from parallelizer.constants import ProvisionOutcome
from parallelizer.exceptions import QueueError, QueueNotFoundError
from parallelizer.ledger.connection import create_engine
from parallelizer.ledger.repository import SqlStatusLedger
from parallelizer.queue.base import QueueClient, ReceivedMessage
from parallelizer.types.job import BatchSendResult, ExecutionResult, Task, TaskList
from parallelizer.worker.executor import TaskExecutor


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float = 0.0
    receipt_handle: str | None = None
    receive_count: int = 0


class InMemoryQueue(QueueClient):
    """
    Queue double with SQS-like leases, for driving the planner and worker.

    approximate_depth counts visible messages only, like
    ApproximateNumberOfMessages. Scripted answers can be pushed onto
    depth_answers to simulate a stale counter.
    """

    def __init__(self):
        self.queues: dict[str, list[_StoredMessage]] = {}
        self.send_calls = 0
        self.receive_calls = 0
        self.extend_calls: list[tuple[str, float]] = []
        self.deleted: list[str] = []
        self.depth_answers: list[int | None] = []
        self.send_delay = 0.0
        self.fail_send_calls: set[int] = set()
        self.send_error: type[Exception] = QueueError
        self.reject_task_ids: set[str] = set()
        self.fail_extend = False
        self.fail_delete = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._ids = itertools.count(1)

    @staticmethod
    def url_for(name: str) -> str:
        return f"memory://{name}"

    def _messages(self, queue_url: str) -> list[_StoredMessage]:
        if queue_url not in self.queues:
            raise QueueNotFoundError(queue_url)
        return self.queues[queue_url]

    def task_ids(self, queue_url: str) -> list[str]:
        """Ids of the tasks currently stored in a queue, in send order."""
        return [Task.model_validate_json(m.body).id for m in self._messages(queue_url)]

    def put_raw(self, queue_url: str, body: str) -> None:
        self._messages(queue_url).append(_StoredMessage(str(next(self._ids)), body))

    async def ensure_queue(self, name: str) -> tuple[str, ProvisionOutcome]:
        url = self.url_for(name)
        if url in self.queues:
            return url, ProvisionOutcome.ALREADY_EXISTS
        self.queues[url] = []
        return url, ProvisionOutcome.CREATED

    async def get_queue_url(self, name: str) -> str:
        url = self.url_for(name)
        if url not in self.queues:
            raise QueueNotFoundError(f"queue {name} does not exist")
        return url

    async def send_batch(self, queue_url: str, tasks: Sequence[Task]) -> BatchSendResult:
        call = self.send_calls
        self.send_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.send_delay)
            if call in self.fail_send_calls:
                raise self.send_error(f"send call {call} failed")
            result = BatchSendResult()
            for task in tasks:
                if task.id in self.reject_task_ids:
                    result.failed[task.id] = "InvalidMessageContents"
                    continue
                self.put_raw(queue_url, task.model_dump_json(by_alias=True))
                result.sent_task_ids.append(task.id)
            return result
        finally:
            self.in_flight -= 1

    async def receive(
        self,
        queue_url: str,
        max_messages: int = 1,
        visibility_timeout: float | None = None,
    ) -> list[ReceivedMessage]:
        self.receive_calls += 1
        now = time.monotonic()
        received = []
        for message in self._messages(queue_url):
            if len(received) == max_messages:
                break
            if message.visible_at > now:
                continue
            message.receipt_handle = f"receipt-{next(self._ids)}"
            message.visible_at = now + (visibility_timeout or 30)
            message.receive_count += 1
            received.append(
                ReceivedMessage(message.message_id, message.receipt_handle, message.body)
            )
        return received

    async def extend_lease(self, queue_url: str, receipt_handle: str, duration: float) -> None:
        self.extend_calls.append((receipt_handle, duration))
        if self.fail_extend:
            raise QueueError("ChangeMessageVisibility failed")
        for message in self._messages(queue_url):
            if message.receipt_handle == receipt_handle:
                message.visible_at = time.monotonic() + duration

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        if self.fail_delete:
            raise QueueError("DeleteMessage failed")
        messages = self._messages(queue_url)
        for message in list(messages):
            if message.receipt_handle == receipt_handle:
                messages.remove(message)
                self.deleted.append(message.message_id)

    async def approximate_depth(self, queue_url: str) -> int | None:
        if self.depth_answers:
            return self.depth_answers.pop(0)
        now = time.monotonic()
        return sum(1 for m in self._messages(queue_url) if m.visible_at <= now)


@dataclass
class RecordingExecutor(TaskExecutor):
    """Executor double: succeeds unless the task id is in failures."""

    failures: set[str] = field(default_factory=set)
    delay: float = 0.0
    calls: list[str] = field(default_factory=list)

    async def run(self, task: Task, task_list_id: str) -> ExecutionResult:
        self.calls.append(task.id)
        await asyncio.sleep(self.delay)
        if task.id in self.failures:
            return ExecutionResult(success=False, exit_code=2, error="command exited with code 2")
        return ExecutionResult(success=True, exit_code=0, duration_seconds=self.delay)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep PARALLELIZER_* variables and any .env file out of the tests."""
    for name in list(os.environ):
        if name.startswith("PARALLELIZER_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        worker_id="test-worker",
        ledger_backend="sql",
        database_url="sqlite+aiosqlite://",
        log_level="DEBUG",
        log_format="console",
        visibility_timeout_seconds=2,
        poll_interval_seconds=0.01,
    )


@pytest_asyncio.fixture
async def ledger(tmp_path) -> AsyncGenerator[SqlStatusLedger]:
    """A SQL ledger on a fresh SQLite file, table already created."""
    ledger = SqlStatusLedger(create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"))
    await ledger.ensure_table()
    yield ledger
    await ledger.close()


@pytest.fixture
def memory_queue() -> InMemoryQueue:
    return InMemoryQueue()


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def make_task_list() -> Callable[..., TaskList]:
    """Factory for task lists with ids task-1 .. task-N."""

    def factory(count: int = 3, list_id: str = "run-1") -> TaskList:
        return TaskList(
            id=list_id,
            display_name="Test Job",
            tasks=[
                Task(id=f"task-{i}", display_name=f"Task {i}", spec={"index": i})
                for i in range(1, count + 1)
            ],
        )

    return factory
