"""
Status reporter.

Read-only, point-in-time view of a task list: every task joined with its
ledger record. Never writes to the ledger or the queue.
"""

import json
import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from parallelizer.constants import SPAN_REPORT_STATUS, TaskStatus
from parallelizer.ledger.base import StatusLedger
from parallelizer.observability.tracing import get_tracer
from parallelizer.types.job import StatusRecord, TaskList
from parallelizer.types.report import StatusReport

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "bold red",
    TaskStatus.RUNNING: "yellow",
}


def format_duration(record: StatusRecord | None) -> str:
    """Seconds between start and finish with two decimals, or "" if unknown."""
    if record is None or record.duration_seconds is None:
        return ""
    return f"{record.duration_seconds:.2f}s"


class StatusReporter:
    """Joins a task list against the ledger."""

    def __init__(self, ledger: StatusLedger):
        self._ledger = ledger

    async def report(self, task_list: TaskList) -> StatusReport:
        with get_tracer().start_as_current_span(SPAN_REPORT_STATUS) as span:
            span.set_attribute("task_list_id", task_list.id)
            records = await self._ledger.query_records(task_list.id)

        report = StatusReport.join(task_list, records)
        logger.info(
            "Status report built",
            extra={"task_list_id": task_list.id, "counts": report.count_by_status()},
        )
        return report


def render_status_table(report: StatusReport, console: Console | None = None) -> None:
    """Print the report as a table."""
    console = console or Console()

    table = Table(title=f"Task list {report.task_list_id}", header_style="bold magenta")
    table.add_column("id", style="dim")
    table.add_column("status")
    table.add_column("workerId")
    table.add_column("attempts", justify="right")
    table.add_column("duration", justify="right")

    for entry in report.entries:
        record = entry.status
        if record is None:
            table.add_row(entry.id, "", "", "", "")
            continue
        style = _STATUS_STYLES.get(record.status, "")
        table.add_row(
            entry.id,
            f"[{style}]{record.status.value}[/{style}]" if style else record.status.value,
            record.worker_id or "",
            str(record.attempt_count),
            format_duration(record),
        )

    console.print(table)


def write_status_report(report: StatusReport, path: str | Path) -> None:
    """
    Write the joined result set as JSON.

    The file holds a list of {id, displayName, status} objects, status
    being null for tasks that have not started.
    """
    payload = [entry.model_dump(mode="json", by_alias=True) for entry in report.entries]
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
