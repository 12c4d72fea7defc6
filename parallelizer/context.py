"""
Construction of the external collaborators from settings.
"""

import logging
from dataclasses import dataclass

from parallelizer.aws import create_client
from parallelizer.config import Settings
from parallelizer.ledger.base import StatusLedger
from parallelizer.ledger.connection import create_engine
from parallelizer.ledger.dynamodb import DynamoDBStatusLedger
from parallelizer.ledger.repository import SqlStatusLedger
from parallelizer.queue.base import QueueClient
from parallelizer.queue.sqs import SqsQueueClient
from parallelizer.storage import JobArchive

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """Clients shared by one CLI command."""

    settings: Settings
    queue: QueueClient
    ledger: StatusLedger
    archive: JobArchive | None = None

    async def close(self) -> None:
        await self.ledger.close()


def create_queue_client(settings: Settings) -> QueueClient:
    return SqsQueueClient(create_client("sqs", settings))


def create_ledger(settings: Settings) -> StatusLedger:
    if settings.ledger_backend == "sql":
        return SqlStatusLedger(
            create_engine(settings.database_url, echo=settings.log_level.upper() == "DEBUG")
        )
    return DynamoDBStatusLedger(create_client("dynamodb", settings), settings.dynamodb_table)


def create_archive(settings: Settings) -> JobArchive | None:
    if not settings.s3_bucket:
        return None
    return JobArchive(create_client("s3", settings), settings.s3_bucket, settings.s3_key_prefix)


def create_context(settings: Settings) -> Context:
    logger.debug(
        "Creating context",
        extra={"ledger_backend": settings.ledger_backend, "archive": bool(settings.s3_bucket)},
    )
    return Context(
        settings=settings,
        queue=create_queue_client(settings),
        ledger=create_ledger(settings),
        archive=create_archive(settings),
    )
