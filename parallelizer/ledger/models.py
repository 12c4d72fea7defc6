"""
SQLAlchemy database models for the SQL status ledger.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from parallelizer.constants import TaskStatus


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TaskStatusRow(Base):
    """
    One row per (list_id, task_id).

    Rows are created on the first transition and updated in place on
    every later one; they are never deleted so that a task list id can
    be resumed across runs.
    """

    __tablename__ = "task_statuses"

    list_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    task_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    status: Mapped[TaskStatus] = mapped_column(
        Enum(
            TaskStatus,
            name="task_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    task_display_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"TaskStatusRow(list={self.list_id}, task={self.task_id}, "
            f"status={self.status}, attempts={self.attempt_count})"
        )
