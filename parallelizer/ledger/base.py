"""
Status ledger interface.

The ledger is the single source of truth for "is this task done". It is
observational only: it never locks a task, the queue lease does that.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from parallelizer.constants import ProvisionOutcome, TaskStatus
from parallelizer.types.job import StatusRecord, Task

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class StatusLedger(ABC):
    """
    Typed wrapper around a key-value store keyed by (list_id, task_id).

    Implementations provide the four store primitives; the transition
    helpers below are shared. Service failures raise LedgerError.
    """

    @abstractmethod
    async def ensure_table(self) -> ProvisionOutcome:
        """Create the backing table if it does not exist."""

    @abstractmethod
    async def get_record(self, list_id: str, task_id: str) -> StatusRecord | None:
        """Point lookup. None means the task is still PENDING."""

    @abstractmethod
    async def query_records(self, list_id: str) -> list[StatusRecord]:
        """All records stored under a task list."""

    @abstractmethod
    async def upsert(
        self,
        list_id: str,
        task: Task,
        status: TaskStatus,
        *,
        worker_id: str,
        timestamp: datetime,
        increment_attempt: bool,
    ) -> StatusRecord:
        """
        Write a transition and return the stored record.

        When increment_attempt is set the store performs an atomic
        read-or-default-then-add on attempt_count, stamps started_at and
        clears finished_at; otherwise it stamps finished_at.
        """

    async def close(self) -> None:
        """Release connections held by the ledger."""

    async def get_status(self, list_id: str, task_id: str) -> TaskStatus:
        """Current status, PENDING when no record exists."""
        record = await self.get_record(list_id, task_id)
        return record.status if record else TaskStatus.PENDING

    async def start_task(self, list_id: str, task: Task, worker_id: str) -> StatusRecord:
        """Transition into RUNNING, incrementing the attempt count."""
        record = await self.upsert(
            list_id,
            task,
            TaskStatus.RUNNING,
            worker_id=worker_id,
            timestamp=utcnow(),
            increment_attempt=True,
        )
        logger.info(
            "Task started",
            extra={"task_id": task.id, "attempt": record.attempt_count},
        )
        return record

    async def complete_task(self, list_id: str, task: Task, worker_id: str) -> StatusRecord:
        """Transition into COMPLETED."""
        return await self.upsert(
            list_id,
            task,
            TaskStatus.COMPLETED,
            worker_id=worker_id,
            timestamp=utcnow(),
            increment_attempt=False,
        )

    async def fail_task(self, list_id: str, task: Task, worker_id: str) -> StatusRecord:
        """Transition into FAILED."""
        return await self.upsert(
            list_id,
            task,
            TaskStatus.FAILED,
            worker_id=worker_id,
            timestamp=utcnow(),
            increment_attempt=False,
        )
