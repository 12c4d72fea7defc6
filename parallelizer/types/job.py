"""
Task-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from parallelizer.constants import ProvisionOutcome, TaskStatus


class CamelModel(BaseModel):
    """Base for models that use camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(CamelModel):
    """
    A single unit of work.

    `spec` is an opaque bag handed to the executor untouched.
    """

    id: str = Field(min_length=1)
    display_name: str
    spec: dict[str, Any] = Field(default_factory=dict)

    @property
    def title(self) -> str:
        """Human-readable label used in logs."""
        return f"{self.display_name} ({self.id})"


class TaskList(CamelModel):
    """
    An ordered list of tasks sharing one queue and one ledger partition.

    The id can be reused when retrying a failed run: tasks already
    COMPLETED under this id are skipped.
    """

    id: str = Field(min_length=1)
    display_name: str = ""
    tasks: list[Task]

    @model_validator(mode="after")
    def _check_unique_task_ids(self) -> "TaskList":
        seen: set[str] = set()
        duplicates: list[str] = []
        for task in self.tasks:
            if task.id in seen:
                duplicates.append(task.id)
            seen.add(task.id)
        if duplicates:
            raise ValueError(f"duplicate task ids: {', '.join(sorted(set(duplicates)))}")
        return self


class StatusRecord(CamelModel):
    """
    Ledger entry for one task of one task list.

    attempt_count is incremented atomically by the store on every
    transition into RUNNING and never decreases.
    """

    list_id: str
    task_id: str
    status: TaskStatus
    worker_id: str | None = None
    attempt_count: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    task_display_name: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Seconds between start and finish, if both are known."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class ExecutionResult:
    """Outcome of running the task executable once."""

    success: bool
    exit_code: int | None = None
    error: str | None = None
    duration_seconds: float = 0.0


@dataclass
class BatchSendResult:
    """Per-entry outcome of a batched send."""

    sent_task_ids: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class EnqueueResult:
    """Summary of a prepare run."""

    task_list_id: str
    queue_url: str
    queue_outcome: ProvisionOutcome
    table_outcome: ProvisionOutcome
    total_tasks: int
    previously_run: int
    already_completed: int
    enqueued: int
    batches: int
    archive_url: str | None = None


@dataclass
class WorkerSummary:
    """Counters produced when a worker loop drains."""

    passed: int = 0
    failed: int = 0
    skipped: int = 0
    rejected: int = 0
    duration_seconds: float = 0.0

    @property
    def processed(self) -> int:
        """Tasks that reached a terminal state during this run."""
        return self.passed + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.rejected == 0
