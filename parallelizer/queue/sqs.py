"""
Amazon SQS implementation of the queue client.
"""

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from parallelizer.constants import MAX_BATCH_SIZE, QUEUE_TAGS, ProvisionOutcome
from parallelizer.exceptions import QueueError, QueueNotFoundError
from parallelizer.queue.base import QueueClient, ReceivedMessage
from parallelizer.types.job import BatchSendResult, Task

logger = logging.getLogger(__name__)

# Query and JSON protocol spellings of the same errors
_NOT_FOUND_CODES = {"AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"}
_ALREADY_EXISTS_CODES = {"QueueAlreadyExists", "QueueNameExists"}


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class SqsQueueClient(QueueClient):
    """
    Queue client backed by an SQS standard queue.

    boto3 is synchronous, so every call runs in a worker thread to keep
    the lease renewal task responsive while a call is in flight.
    """

    def __init__(self, client: Any):
        """
        Initialize the queue client.

        Args:
            client: A boto3 SQS client.
        """
        self._client = client

    async def _call(self, operation: Callable[..., dict], **kwargs: Any) -> dict:
        try:
            return await asyncio.to_thread(operation, **kwargs)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise QueueNotFoundError(str(e)) from e
            raise QueueError(str(e)) from e
        except BotoCoreError as e:
            raise QueueError(str(e)) from e

    async def ensure_queue(self, name: str) -> tuple[str, ProvisionOutcome]:
        """
        Create the queue unless it already exists.

        CreateQueue is itself idempotent for identical attributes, so the
        lookup first only serves to tell the two outcomes apart.
        """
        try:
            return await self.get_queue_url(name), ProvisionOutcome.ALREADY_EXISTS
        except QueueNotFoundError:
            pass

        try:
            response = await asyncio.to_thread(
                self._client.create_queue, QueueName=name, tags=QUEUE_TAGS
            )
        except ClientError as e:
            if _error_code(e) not in _ALREADY_EXISTS_CODES:
                raise QueueError(str(e)) from e
            logger.info("Queue created concurrently", extra={"queue_name": name})
            return await self.get_queue_url(name), ProvisionOutcome.ALREADY_EXISTS
        except BotoCoreError as e:
            raise QueueError(str(e)) from e

        logger.info("Created queue", extra={"queue_name": name})
        return response["QueueUrl"], ProvisionOutcome.CREATED

    async def get_queue_url(self, name: str) -> str:
        response = await self._call(self._client.get_queue_url, QueueName=name)
        return response["QueueUrl"]

    async def send_batch(self, queue_url: str, tasks: Sequence[Task]) -> BatchSendResult:
        """
        Send tasks with SendMessageBatch.

        Entry ids are positional because task ids are not restricted to
        the characters SQS accepts in an entry id.
        """
        if len(tasks) > MAX_BATCH_SIZE:
            raise ValueError(f"batch of {len(tasks)} exceeds the limit of {MAX_BATCH_SIZE}")

        entries = [
            {"Id": str(index), "MessageBody": task.model_dump_json(by_alias=True)}
            for index, task in enumerate(tasks)
        ]
        response = await self._call(
            self._client.send_message_batch, QueueUrl=queue_url, Entries=entries
        )

        result = BatchSendResult()
        for entry in response.get("Successful", []):
            result.sent_task_ids.append(tasks[int(entry["Id"])].id)
        for entry in response.get("Failed", []):
            task_id = tasks[int(entry["Id"])].id
            reason = entry.get("Code", "Unknown")
            if entry.get("Message"):
                reason = f"{reason}: {entry['Message']}"
            result.failed[task_id] = reason
        return result

    async def receive(
        self,
        queue_url: str,
        max_messages: int = 1,
        visibility_timeout: float | None = None,
    ) -> list[ReceivedMessage]:
        kwargs: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_messages,
        }
        if visibility_timeout is not None:
            kwargs["VisibilityTimeout"] = math.ceil(visibility_timeout)

        response = await self._call(self._client.receive_message, **kwargs)
        return [
            ReceivedMessage(
                message_id=message["MessageId"],
                receipt_handle=message["ReceiptHandle"],
                body=message["Body"],
            )
            for message in response.get("Messages", [])
        ]

    async def extend_lease(self, queue_url: str, receipt_handle: str, duration: float) -> None:
        await self._call(
            self._client.change_message_visibility,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
            VisibilityTimeout=math.ceil(duration),
        )

    async def delete(self, queue_url: str, receipt_handle: str) -> None:
        await self._call(
            self._client.delete_message,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
        )

    async def approximate_depth(self, queue_url: str) -> int | None:
        """
        Read ApproximateNumberOfMessages.

        The counter is eventually consistent and excludes in-flight
        messages; callers must not treat zero as proof that no other
        worker still holds a lease.
        """
        response = await self._call(
            self._client.get_queue_attributes,
            QueueUrl=queue_url,
            AttributeNames=["ApproximateNumberOfMessages"],
        )
        value = response.get("Attributes", {}).get("ApproximateNumberOfMessages")
        if value is None or value == "":
            return None
        return int(value)
