"""
Exception hierarchy for the parallelizer.
"""


class ParallelizerError(Exception):
    """Base class for all parallelizer errors."""


class JobFileError(ParallelizerError):
    """The job file is missing, unreadable or does not match the schema."""


class QueueError(ParallelizerError):
    """A queue service call failed."""


class QueueNotFoundError(QueueError):
    """The queue for a task list does not exist (prepare has not run)."""


class LedgerError(ParallelizerError):
    """A status ledger call failed."""


class ArchiveError(ParallelizerError):
    """Archiving the job document to the blob store failed."""


class EnqueueError(ParallelizerError):
    """
    One or more batches could not be sent.

    Batches sent before the failure stay enqueued; re-running prepare is safe
    because resumption is driven by the ledger, not by queue contents.
    """

    def __init__(self, message: str, failed_task_ids: list[str] | None = None):
        super().__init__(message)
        self.failed_task_ids = failed_task_ids or []
