"""
Amazon DynamoDB implementation of the status ledger.

Table layout: TaskListId (HASH) / TaskId (RANGE), on-demand billing.
Items carry Status, WorkerId, AttemptCount, StartedAt, FinishedAt and
TaskDisplayName. Timestamps are ISO-8601 strings in UTC.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from parallelizer.constants import ProvisionOutcome, TaskStatus
from parallelizer.exceptions import LedgerError
from parallelizer.ledger.base import StatusLedger
from parallelizer.types.job import StatusRecord, Task

logger = logging.getLogger(__name__)

_ALREADY_EXISTS_CODES = {"ResourceInUseException", "TableAlreadyExistsException"}


def format_timestamp(value: datetime) -> str:
    """Millisecond ISO-8601 in UTC with a Z suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _string(item: dict[str, Any], name: str) -> str | None:
    attribute = item.get(name)
    return attribute.get("S") if attribute else None


def record_from_item(item: dict[str, Any]) -> StatusRecord:
    """Convert a low-level DynamoDB item into a StatusRecord."""
    attempt = item.get("AttemptCount")
    return StatusRecord(
        list_id=item["TaskListId"]["S"],
        task_id=item["TaskId"]["S"],
        status=TaskStatus(item["Status"]["S"]),
        worker_id=_string(item, "WorkerId"),
        attempt_count=int(attempt["N"]) if attempt else 0,
        started_at=parse_timestamp(_string(item, "StartedAt")),
        finished_at=parse_timestamp(_string(item, "FinishedAt")),
        task_display_name=_string(item, "TaskDisplayName"),
    )


class DynamoDBStatusLedger(StatusLedger):
    """
    Status ledger stored in a DynamoDB table.

    The attempt counter is incremented inside a single UpdateItem with
    if_not_exists(AttemptCount, 0) + 1, so concurrent RUNNING writers
    never lose an increment.
    """

    def __init__(self, client: Any, table_name: str):
        """
        Initialize the ledger.

        Args:
            client: A boto3 DynamoDB client.
            table_name: Name of the status table.
        """
        self._client = client
        self._table_name = table_name

    async def _call(self, operation: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(operation, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise LedgerError(str(e)) from e

    async def ensure_table(self) -> ProvisionOutcome:
        """
        Create the table and wait until it is usable.

        A table that already exists (or is being created by a concurrent
        prepare) is reported as ALREADY_EXISTS, not as an error.
        """
        try:
            await asyncio.to_thread(
                self._client.create_table,
                TableName=self._table_name,
                KeySchema=[
                    {"AttributeName": "TaskListId", "KeyType": "HASH"},
                    {"AttributeName": "TaskId", "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "TaskListId", "AttributeType": "S"},
                    {"AttributeName": "TaskId", "AttributeType": "S"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _ALREADY_EXISTS_CODES:
                return ProvisionOutcome.ALREADY_EXISTS
            raise LedgerError(str(e)) from e
        except BotoCoreError as e:
            raise LedgerError(str(e)) from e

        logger.info("Created status table", extra={"table": self._table_name})
        waiter = self._client.get_waiter("table_exists")
        await self._call(
            waiter.wait,
            TableName=self._table_name,
            WaiterConfig={"Delay": 2, "MaxAttempts": 60},
        )
        return ProvisionOutcome.CREATED

    async def get_record(self, list_id: str, task_id: str) -> StatusRecord | None:
        response = await self._call(
            self._client.get_item,
            TableName=self._table_name,
            Key={"TaskListId": {"S": list_id}, "TaskId": {"S": task_id}},
            ConsistentRead=True,
        )
        item = response.get("Item")
        return record_from_item(item) if item else None

    async def query_records(self, list_id: str) -> list[StatusRecord]:
        records: list[StatusRecord] = []
        last_evaluated_key = None

        while True:
            kwargs: dict[str, Any] = {
                "TableName": self._table_name,
                "KeyConditionExpression": "TaskListId = :taskListId",
                "ExpressionAttributeValues": {":taskListId": {"S": list_id}},
                "ConsistentRead": True,
            }
            if last_evaluated_key:
                kwargs["ExclusiveStartKey"] = last_evaluated_key
            response = await self._call(self._client.query, **kwargs)
            records.extend(record_from_item(item) for item in response.get("Items", []))
            last_evaluated_key = response.get("LastEvaluatedKey")
            if not last_evaluated_key:
                break

        return records

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
        update_expression = (
            "SET #status = :status, #taskDisplayName = :taskDisplayName, "
            "#timestamp = :timestamp, #workerId = :workerId"
        )
        names = {
            "#status": "Status",
            "#taskDisplayName": "TaskDisplayName",
            "#timestamp": "StartedAt" if increment_attempt else "FinishedAt",
            "#workerId": "WorkerId",
        }
        values: dict[str, Any] = {
            ":status": {"S": status.value},
            ":taskDisplayName": {"S": task.display_name},
            ":timestamp": {"S": format_timestamp(timestamp)},
            ":workerId": {"S": worker_id},
        }

        if increment_attempt:
            update_expression += (
                ", #attemptCount = if_not_exists(#attemptCount, :zero) + :inc"
                " REMOVE #finishedAt"
            )
            names["#attemptCount"] = "AttemptCount"
            names["#finishedAt"] = "FinishedAt"
            values[":zero"] = {"N": "0"}
            values[":inc"] = {"N": "1"}

        response = await self._call(
            self._client.update_item,
            TableName=self._table_name,
            Key={"TaskListId": {"S": list_id}, "TaskId": {"S": task.id}},
            UpdateExpression=update_expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return record_from_item(response["Attributes"])
