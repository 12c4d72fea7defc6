"""
Worker loop for executing tasks.

The worker claims one message at a time, runs the task command, records
the outcome in the ledger and acknowledges the message. It stops once a
receive comes back empty and the queue reports no visible messages.
Parallelism comes from running more worker processes, not from running
tasks concurrently inside one.
"""

import asyncio
import contextlib
import logging
import time

from pydantic import ValidationError

from parallelizer.constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
    SPAN_EXECUTE_TASK,
    TaskStatus,
)
from parallelizer.exceptions import QueueError
from parallelizer.ledger.base import StatusLedger
from parallelizer.observability.annotations import CiAnnotations
from parallelizer.observability.logging import bind_context, clear_context
from parallelizer.observability.metrics import get_metrics
from parallelizer.observability.tracing import get_tracer
from parallelizer.queue.base import QueueClient, ReceivedMessage
from parallelizer.types.job import ExecutionResult, Task, WorkerSummary
from parallelizer.worker.executor import TaskExecutor

logger = logging.getLogger(__name__)


class Worker:
    """
    Single sequential consumer of a task list's queue.

    Features:
    - Skips (and acknowledges) deliveries of tasks already COMPLETED
    - Background lease renewal every visibility_timeout / 2 while a task runs
    - Failed tasks are recorded and acknowledged; the loop keeps going
    - Drain detection on an empty receive plus zero approximate depth
    """

    def __init__(
        self,
        *,
        worker_id: str,
        task_list_id: str,
        queue_url: str,
        queue: QueueClient,
        ledger: StatusLedger,
        executor: TaskExecutor,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        annotations: CiAnnotations | None = None,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Identity recorded in the ledger for every transition.
            task_list_id: Id of the task list being worked on.
            queue_url: Url of the task list's queue.
            queue: Queue client.
            ledger: Status ledger.
            executor: Runs a single task.
            visibility_timeout: Lease duration in seconds requested on
                receive and on every renewal.
            poll_interval: Seconds to wait after an empty receive while the
                queue still reports messages.
            annotations: CI log annotations, disabled by default.
        """
        if visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be positive")

        self.worker_id = worker_id
        self.task_list_id = task_list_id
        self.queue_url = queue_url
        self.visibility_timeout = visibility_timeout
        self.renewal_interval = visibility_timeout / 2
        self.poll_interval = poll_interval

        self._queue = queue
        self._ledger = ledger
        self._executor = executor
        self._annotations = annotations or CiAnnotations(enabled=False)
        self._metrics = get_metrics()
        self._sequence = 0
        self._summary = WorkerSummary()

    async def run(self) -> WorkerSummary:
        """
        Consume messages until the queue drains.

        Returns:
            WorkerSummary with the counters of this run.

        Raises:
            QueueError: If receiving or the depth query fails.
            LedgerError: If a ledger read or write fails. The message in
                hand is left unacknowledged so its lease expires and it is
                redelivered.
        """
        bind_context(worker_id=self.worker_id, task_list_id=self.task_list_id)
        logger.info(
            "Worker starting",
            extra={"queue_url": self.queue_url, "visibility_timeout": self.visibility_timeout},
        )
        start_time = time.monotonic()

        try:
            await self._consume()
            self._summary.duration_seconds = time.monotonic() - start_time
            logger.info(
                "Worker drained",
                extra={
                    "processed": self._summary.processed,
                    "passed": self._summary.passed,
                    "failed": self._summary.failed,
                    "skipped": self._summary.skipped,
                    "duration": f"{self._summary.duration_seconds:.2f}s",
                },
            )
        finally:
            clear_context()
        return self._summary

    async def _consume(self) -> None:
        while True:
            messages = await self._queue.receive(
                self.queue_url,
                max_messages=1,
                visibility_timeout=self.visibility_timeout,
            )
            if messages:
                await self._process_message(messages[0])
                continue

            if await self._is_drained():
                return
            await asyncio.sleep(self.poll_interval)

    async def _is_drained(self) -> bool:
        """
        Decide whether to stop after an empty receive.

        A non-zero depth with an empty receive means another worker holds
        the visible messages or the counter is stale, so keep polling.
        """
        depth = await self._queue.approximate_depth(self.queue_url)
        logger.info("Did not receive any message", extra={"queue_depth": depth})
        if depth is not None:
            self._metrics.update_queue_depth(self.task_list_id, depth)
        return not depth

    async def _process_message(self, message: ReceivedMessage) -> None:
        try:
            task = Task.model_validate_json(message.body)
        except ValidationError as e:
            # A body that cannot be parsed can never succeed; redelivering it
            # would keep the queue from ever draining.
            logger.error(
                "Rejecting malformed message",
                extra={"message_id": message.message_id, "error": str(e)},
            )
            self._summary.rejected += 1
            await self._acknowledge(message)
            return

        self._sequence += 1
        title = f"{self._sequence}. {task.title}"

        status = await self._ledger.get_status(self.task_list_id, task.id)
        if status == TaskStatus.COMPLETED:
            logger.info(f"{title} - already completed, skipping", extra={"task_id": task.id})
            self._summary.skipped += 1
            self._metrics.record_message_skipped(self.task_list_id)
            await self._acknowledge(message)
            return

        renewal = asyncio.create_task(self._renew_lease(message, task))
        try:
            await self._execute(task, title)
        finally:
            await self._stop_renewal(renewal)

        await self._acknowledge(message)

    async def _execute(self, task: Task, title: str) -> None:
        """Record RUNNING, run the task and record its terminal state."""
        record = await self._ledger.start_task(self.task_list_id, task, self.worker_id)

        self._annotations.start_group(title)
        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_TASK) as span:
                span.set_attribute("task_list_id", self.task_list_id)
                span.set_attribute("task_id", task.id)
                span.set_attribute("attempt", record.attempt_count)

                result = await self._executor.run(task, self.task_list_id)
                span.set_attribute("success", result.success)
        finally:
            self._annotations.end_group()

        await self._record_outcome(task, result)

    async def _record_outcome(self, task: Task, result: ExecutionResult) -> None:
        duration = f"{result.duration_seconds:.2f}s"

        if result.success:
            await self._ledger.complete_task(self.task_list_id, task, self.worker_id)
            self._summary.passed += 1
            logger.info(f"Task {task.id} completed in {duration}", extra={"task_id": task.id})
            self._metrics.record_task_finished(
                self.task_list_id, TaskStatus.COMPLETED.value, result.duration_seconds
            )
            return

        await self._ledger.fail_task(self.task_list_id, task, self.worker_id)
        self._summary.failed += 1
        logger.warning(
            f"Task {task.id} failed in {duration}",
            extra={"task_id": task.id, "exit_code": result.exit_code, "error": result.error},
        )
        self._annotations.error(f"{task.title} failed", result.error or "task failed")
        self._metrics.record_task_finished(
            self.task_list_id, TaskStatus.FAILED.value, result.duration_seconds
        )

    async def _renew_lease(self, message: ReceivedMessage, task: Task) -> None:
        """
        Extend the message lease every renewal_interval seconds until cancelled.

        Errors are logged and never interrupt the running task.
        """
        while True:
            await asyncio.sleep(self.renewal_interval)
            try:
                await self._queue.extend_lease(
                    self.queue_url, message.receipt_handle, self.visibility_timeout
                )
            except Exception as e:
                logger.warning(
                    "Error extending message lease",
                    extra={"task_id": task.id, "error": str(e)},
                )
                self._metrics.record_lease_renewal(self.worker_id, success=False)
            else:
                logger.debug("Extended lease", extra={"task_id": task.id})
                self._metrics.record_lease_renewal(self.worker_id, success=True)

    @staticmethod
    async def _stop_renewal(renewal: asyncio.Task) -> None:
        renewal.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await renewal

    async def _acknowledge(self, message: ReceivedMessage) -> None:
        # Non-fatal: if the delete is lost the lease expires and the
        # redelivery is skipped or re-run according to the ledger.
        try:
            await self._queue.delete(self.queue_url, message.receipt_handle)
        except QueueError as e:
            logger.error(
                "Failed to delete message",
                extra={"message_id": message.message_id, "error": str(e)},
            )
