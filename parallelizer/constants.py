"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle states as recorded in the status ledger.

    State transitions:
    - PENDING -> RUNNING (first claim; PENDING is the absence of a record)
    - RUNNING -> COMPLETED (executor exited with zero)
    - RUNNING -> FAILED (non-zero exit or launch error)
    - COMPLETED/FAILED/RUNNING -> RUNNING (redelivery or re-run of prepare)
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ProvisionOutcome(StrEnum):
    """Result of an idempotent create operation."""

    CREATED = "created"
    ALREADY_EXISTS = "already-exists"


# Default values
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 30
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
MAX_BATCH_SIZE = 10
DEFAULT_ENQUEUE_CONCURRENCY = 2

# Queue tags applied on creation
QUEUE_TAGS: dict[str, str] = {"ci-parallelizer": "true"}

# Environment variables passed to the task executable
ENV_TASK_ID = "PARALLELIZER_TASK_ID"
ENV_JOB_ID = "PARALLELIZER_JOB_ID"

# Metrics names
METRIC_TASKS_ENQUEUED = "parallelizer_tasks_enqueued_total"
METRIC_TASKS_FINISHED = "parallelizer_tasks_finished_total"
METRIC_TASK_DURATION = "parallelizer_task_duration_seconds"
METRIC_LEASE_RENEWALS = "parallelizer_lease_renewals_total"
METRIC_MESSAGES_SKIPPED = "parallelizer_messages_skipped_total"
METRIC_QUEUE_DEPTH = "parallelizer_queue_depth"

# Trace span names
SPAN_PREPARE = "prepare_task_list"
SPAN_ENQUEUE_BATCH = "enqueue_batch"
SPAN_EXECUTE_TASK = "execute_task"
SPAN_REPORT_STATUS = "report_status"


def queue_name_for(prefix: str, task_list_id: str) -> str:
    """Build the queue name for a task list."""
    return f"{prefix}{task_list_id}"
