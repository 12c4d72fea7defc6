"""
Enqueue planner.

Turns a task list into queue messages. Only tasks that the ledger does not
already show as COMPLETED are sent, which makes re-running prepare for the
same task list id the way to resume a failed or partial run.
"""

import asyncio
import logging
from collections.abc import Sequence

from parallelizer.constants import (
    DEFAULT_ENQUEUE_CONCURRENCY,
    MAX_BATCH_SIZE,
    SPAN_ENQUEUE_BATCH,
    SPAN_PREPARE,
    TaskStatus,
    queue_name_for,
)
from parallelizer.exceptions import ArchiveError, EnqueueError
from parallelizer.ledger.base import StatusLedger
from parallelizer.observability.metrics import get_metrics
from parallelizer.observability.tracing import get_tracer
from parallelizer.queue.base import QueueClient
from parallelizer.storage import JobArchive
from parallelizer.types.job import EnqueueResult, Task, TaskList

logger = logging.getLogger(__name__)


def chunk(tasks: Sequence[Task], size: int) -> list[list[Task]]:
    """Split tasks into consecutive batches of at most size items."""
    return [list(tasks[i:i + size]) for i in range(0, len(tasks), size)]


class EnqueuePlanner:
    """
    Provisions the queue and ledger for a task list and enqueues pending tasks.

    Tasks that are RUNNING or FAILED in the ledger are enqueued again: the
    queue has no deduplication, so anything not confirmed complete is
    redelivered on resume.
    """

    def __init__(
        self,
        queue: QueueClient,
        ledger: StatusLedger,
        queue_prefix: str,
        archive: JobArchive | None = None,
        batch_size: int = MAX_BATCH_SIZE,
        concurrency: int = DEFAULT_ENQUEUE_CONCURRENCY,
    ):
        """
        Initialize the planner.

        Args:
            queue: Queue client.
            ledger: Status ledger.
            queue_prefix: Prefix combined with the task list id to name the queue.
            archive: Optional blob store for the raw job document.
            batch_size: Tasks per send call (at most 10).
            concurrency: Maximum number of batches in flight.
        """
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._queue = queue
        self._ledger = ledger
        self._queue_prefix = queue_prefix
        self._archive = archive
        self.batch_size = batch_size
        self.concurrency = concurrency
        self._metrics = get_metrics()

    async def prepare(self, task_list: TaskList, document: bytes | None = None) -> EnqueueResult:
        """
        Provision resources and enqueue every task not yet COMPLETED.

        Args:
            task_list: The validated task list.
            document: Raw job document to archive, if an archive is configured.

        Returns:
            EnqueueResult describing what was done.

        Raises:
            EnqueueError: If any batch failed. Batches sent before the
                failure remain enqueued.
            QueueError, LedgerError: On provisioning or lookup failures.
        """
        with get_tracer().start_as_current_span(SPAN_PREPARE) as span:
            span.set_attribute("task_list_id", task_list.id)
            span.set_attribute("task_count", len(task_list.tasks))

            table_outcome = await self._ledger.ensure_table()
            queue_url, queue_outcome = await self._queue.ensure_queue(
                queue_name_for(self._queue_prefix, task_list.id)
            )
            logger.info(
                "Resources ready",
                extra={
                    "task_list_id": task_list.id,
                    "table": table_outcome.value,
                    "queue": queue_outcome.value,
                    "queue_url": queue_url,
                },
            )

            records = await self._ledger.query_records(task_list.id)
            completed = {r.task_id for r in records if r.status == TaskStatus.COMPLETED}
            pending = [task for task in task_list.tasks if task.id not in completed]

            logger.info(
                "Computed tasks to enqueue",
                extra={
                    "task_list_id": task_list.id,
                    "total": len(task_list.tasks),
                    "previously_run": len(records),
                    "already_completed": len(completed),
                    "to_enqueue": len(pending),
                },
            )

            archive_url = None
            if self._archive is not None and document is not None:
                archive_url = await self._archive_document(task_list.id, document)

            batches = chunk(pending, self.batch_size)
            await self._send_batches(queue_url, task_list.id, batches)

            span.set_attribute("enqueued", len(pending))

        return EnqueueResult(
            task_list_id=task_list.id,
            queue_url=queue_url,
            queue_outcome=queue_outcome,
            table_outcome=table_outcome,
            total_tasks=len(task_list.tasks),
            previously_run=len(records),
            already_completed=len(completed),
            enqueued=len(pending),
            batches=len(batches),
            archive_url=archive_url,
        )

    async def _archive_document(self, task_list_id: str, document: bytes) -> str | None:
        # Best-effort: an archive failure never blocks enqueueing.
        try:
            url = await self._archive.put(task_list_id, document)
        except ArchiveError as e:
            logger.warning(
                "Failed to archive job file",
                extra={"task_list_id": task_list_id, "error": str(e)},
            )
            return None
        logger.info("Job file archived", extra={"task_list_id": task_list_id, "url": url})
        return url

    async def _send_batches(
        self,
        queue_url: str,
        task_list_id: str,
        batches: list[list[Task]],
    ) -> None:
        """
        Send batches with bounded concurrency.

        After the first failure no new batch is started; batches already
        in flight are allowed to finish before the error is raised.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        errors: list[Exception] = []
        failed_task_ids: list[str] = []

        async def send(index: int, batch: list[Task]) -> None:
            async with semaphore:
                if errors:
                    return
                try:
                    await self._send_batch(queue_url, task_list_id, batch)
                except Exception as e:
                    logger.error(
                        f"Error enqueuing batch {index + 1} of {len(batches)}",
                        extra={"task_list_id": task_list_id, "error": str(e)},
                    )
                    errors.append(e)
                    if isinstance(e, EnqueueError):
                        failed_task_ids.extend(e.failed_task_ids)
                    else:
                        failed_task_ids.extend(task.id for task in batch)
                    return
                logger.info(
                    f"Enqueued batch {index + 1} of {len(batches)}",
                    extra={"task_list_id": task_list_id, "size": len(batch)},
                )

        await asyncio.gather(*(send(i, batch) for i, batch in enumerate(batches)))

        if errors:
            raise EnqueueError(
                f"{len(errors)} batch(es) failed to enqueue: {errors[0]}",
                failed_task_ids=failed_task_ids,
            ) from errors[0]

    async def _send_batch(self, queue_url: str, task_list_id: str, batch: list[Task]) -> None:
        with get_tracer().start_as_current_span(SPAN_ENQUEUE_BATCH) as span:
            span.set_attribute("size", len(batch))
            result = await self._queue.send_batch(queue_url, batch)

        if result.sent_task_ids:
            self._metrics.record_tasks_enqueued(task_list_id, len(result.sent_task_ids))
        if not result.ok:
            details = ", ".join(f"{task_id} ({reason})" for task_id, reason in result.failed.items())
            raise EnqueueError(
                f"{len(result.failed)} task(s) rejected by the queue: {details}",
                failed_task_ids=list(result.failed),
            )
