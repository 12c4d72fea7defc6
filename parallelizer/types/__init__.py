"""
Type definitions for the parallelizer.
Contains input/output type definitions for all components, grouped by module.
"""

from parallelizer.types.job import (
    BatchSendResult,
    EnqueueResult,
    ExecutionResult,
    StatusRecord,
    Task,
    TaskList,
    WorkerSummary,
)
from parallelizer.types.report import (
    StatusReport,
    TaskStatusEntry,
)

__all__ = [
    # Job types
    "Task",
    "TaskList",
    "StatusRecord",
    "ExecutionResult",
    "BatchSendResult",
    "EnqueueResult",
    "WorkerSummary",
    # Report types
    "TaskStatusEntry",
    "StatusReport",
]
