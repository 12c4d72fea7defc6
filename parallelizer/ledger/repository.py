"""
SQL implementation of the status ledger.

Useful for self-hosted runners and local runs where a relational database
is at hand and DynamoDB is not.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import inspect, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from parallelizer.constants import ProvisionOutcome, TaskStatus
from parallelizer.exceptions import LedgerError
from parallelizer.ledger.base import StatusLedger
from parallelizer.ledger.connection import create_session_factory, session_scope
from parallelizer.ledger.models import Base, TaskStatusRow
from parallelizer.types.job import StatusRecord, Task

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def record_from_row(row: Any) -> StatusRecord:
    """Convert an ORM instance or a result row into a StatusRecord."""
    return StatusRecord(
        list_id=row.list_id,
        task_id=row.task_id,
        status=TaskStatus(row.status),
        worker_id=row.worker_id,
        attempt_count=row.attempt_count,
        started_at=_aware(row.started_at),
        finished_at=_aware(row.finished_at),
        task_display_name=row.task_display_name,
    )


class SqlStatusLedger(StatusLedger):
    """
    Status ledger stored in a relational table.

    Transitions are single INSERT ... ON CONFLICT DO UPDATE statements;
    the attempt counter is bumped with attempt_count + 1 inside the
    statement so concurrent writers never lose an increment.
    """

    def __init__(self, engine: AsyncEngine):
        """
        Initialize the ledger.

        Args:
            engine: The async engine to use. The ledger takes ownership
                and disposes it on close().
        """
        dialect = engine.dialect.name
        if dialect not in _INSERTS:
            raise LedgerError(f"unsupported database dialect for the status ledger: {dialect}")
        self._engine = engine
        self._insert = _INSERTS[dialect]
        self._session_factory = create_session_factory(engine)

    async def ensure_table(self) -> ProvisionOutcome:
        try:
            async with self._engine.begin() as conn:
                exists = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(TaskStatusRow.__tablename__)
                )
                if exists:
                    return ProvisionOutcome.ALREADY_EXISTS
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise LedgerError(str(e)) from e

        logger.info("Created status table", extra={"table": TaskStatusRow.__tablename__})
        return ProvisionOutcome.CREATED

    async def get_record(self, list_id: str, task_id: str) -> StatusRecord | None:
        stmt = select(TaskStatusRow).where(
            TaskStatusRow.list_id == list_id,
            TaskStatusRow.task_id == task_id,
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(str(e)) from e
        return record_from_row(row) if row else None

    async def query_records(self, list_id: str) -> list[StatusRecord]:
        stmt = (
            select(TaskStatusRow)
            .where(TaskStatusRow.list_id == list_id)
            .order_by(TaskStatusRow.task_id)
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise LedgerError(str(e)) from e
        return [record_from_row(row) for row in rows]

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
        values: dict[str, Any] = {
            "list_id": list_id,
            "task_id": task.id,
            "status": status,
            "worker_id": worker_id,
            "task_display_name": task.display_name,
            "attempt_count": 1 if increment_attempt else 0,
        }
        if increment_attempt:
            values["started_at"] = timestamp
        else:
            values["finished_at"] = timestamp

        stmt = self._insert(TaskStatusRow).values(**values)

        update_set: dict[str, Any] = {
            "status": stmt.excluded.status,
            "worker_id": stmt.excluded.worker_id,
            "task_display_name": stmt.excluded.task_display_name,
            "updated_at": timestamp,
        }
        if increment_attempt:
            update_set["attempt_count"] = TaskStatusRow.attempt_count + 1
            update_set["started_at"] = stmt.excluded.started_at
            update_set["finished_at"] = None
        else:
            update_set["finished_at"] = stmt.excluded.finished_at

        stmt = stmt.on_conflict_do_update(
            index_elements=[TaskStatusRow.list_id, TaskStatusRow.task_id],
            set_=update_set,
        ).returning(*TaskStatusRow.__table__.columns)

        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                row = result.one()
        except SQLAlchemyError as e:
            raise LedgerError(str(e)) from e
        return record_from_row(row)

    async def close(self) -> None:
        await self._engine.dispose()
