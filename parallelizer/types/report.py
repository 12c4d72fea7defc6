"""
Status report type definitions.
"""

from parallelizer.types.job import CamelModel, StatusRecord, Task, TaskList


class TaskStatusEntry(CamelModel):
    """One task joined with its ledger record (None while pending)."""

    id: str
    display_name: str
    status: StatusRecord | None = None

    @classmethod
    def from_task(cls, task: Task, record: StatusRecord | None) -> "TaskStatusEntry":
        return cls(id=task.id, display_name=task.display_name, status=record)


class StatusReport(CamelModel):
    """Point-in-time view of a task list."""

    task_list_id: str
    entries: list[TaskStatusEntry]

    @classmethod
    def join(cls, task_list: TaskList, records: list[StatusRecord]) -> "StatusReport":
        by_task_id = {record.task_id: record for record in records}
        return cls(
            task_list_id=task_list.id,
            entries=[
                TaskStatusEntry.from_task(task, by_task_id.get(task.id))
                for task in task_list.tasks
            ],
        )

    def count_by_status(self) -> dict[str, int]:
        """Number of tasks per status, pending included."""
        counts: dict[str, int] = {}
        for entry in self.entries:
            key = entry.status.status.value if entry.status else "PENDING"
            counts[key] = counts.get(key, 0) + 1
        return counts
