"""CLI entrypoint for the parallelizer."""

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from parallelizer import __version__
from parallelizer.config import Settings, get_settings
from parallelizer.constants import queue_name_for
from parallelizer.context import create_context
from parallelizer.exceptions import ParallelizerError, QueueNotFoundError
from parallelizer.jobfile import JobFile, load_job_file
from parallelizer.observability.annotations import CiAnnotations
from parallelizer.observability.logging import setup_logging
from parallelizer.observability.metrics import get_metrics
from parallelizer.observability.tracing import shutdown_tracing
from parallelizer.planner.enqueue import EnqueuePlanner
from parallelizer.reporter.status import StatusReporter, render_status_table, write_status_report
from parallelizer.types.job import EnqueueResult, WorkerSummary
from parallelizer.types.report import StatusReport
from parallelizer.worker.executor import SubprocessExecutor
from parallelizer.worker.main import Worker

T = TypeVar("T")

JOB_FILE_OPTION = click.option(
    "--job-file",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Path to the job file.",
)


def _run(coro: Coroutine[Any, Any, T], settings: Settings) -> T:
    """Run a command coroutine, mapping domain errors to a CLI error."""
    try:
        return asyncio.run(coro)
    except ParallelizerError as e:
        raise click.ClickException(str(e)) from e
    finally:
        if settings.metrics_textfile:
            get_metrics().write_textfile(settings.metrics_textfile)
        shutdown_tracing()


def _load(job_file: Path) -> JobFile:
    click.echo(f"Reading job file: {job_file}")
    try:
        job = load_job_file(job_file)
    except ParallelizerError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Job ID: {job.task_list.id}")
    click.echo(f"Number of tasks: {len(job.task_list.tasks)}")
    return job


@click.group()
@click.version_option(version=__version__, prog_name="parallelizer")
@click.option("--log-level", default=None, help="Override PARALLELIZER_LOG_LEVEL.")
def parallelizer(log_level: str | None) -> None:
    """Fan a task list out to any number of workers through a queue."""
    setup_logging(log_level)


async def _prepare(job: JobFile, settings: Settings) -> EnqueueResult:
    ctx = create_context(settings)
    try:
        planner = EnqueuePlanner(
            ctx.queue,
            ctx.ledger,
            queue_prefix=settings.sqs_prefix,
            archive=ctx.archive,
            batch_size=settings.enqueue_batch_size,
            concurrency=settings.enqueue_concurrency,
        )
        return await planner.prepare(job.task_list, job.raw)
    finally:
        await ctx.close()


@parallelizer.command()
@JOB_FILE_OPTION
def prepare(job_file: Path) -> None:
    """Enqueue every task of the job file that is not yet completed."""
    settings = get_settings()
    job = _load(job_file)
    result = _run(_prepare(job, settings), settings)

    click.echo(f"Number of tasks previously run: {result.previously_run}")
    click.echo(f"Number of tasks already completed: {result.already_completed}")
    click.echo(f"Number of tasks enqueued: {result.enqueued}")
    if result.archive_url:
        click.echo(f"Job file saved to: {result.archive_url}")


async def _work(job: JobFile, command: tuple[str, ...], settings: Settings) -> WorkerSummary:
    ctx = create_context(settings)
    task_list = job.task_list
    try:
        try:
            queue_url = await ctx.queue.get_queue_url(
                queue_name_for(settings.sqs_prefix, task_list.id)
            )
        except QueueNotFoundError as e:
            raise QueueNotFoundError(
                f"no queue for task list {task_list.id}; run prepare first"
            ) from e

        worker = Worker(
            worker_id=settings.worker_id,
            task_list_id=task_list.id,
            queue_url=queue_url,
            queue=ctx.queue,
            ledger=ctx.ledger,
            executor=SubprocessExecutor(command),
            visibility_timeout=settings.visibility_timeout_seconds,
            poll_interval=settings.poll_interval_seconds,
            annotations=CiAnnotations(enabled=settings.ci_annotations),
        )
        return await worker.run()
    finally:
        await ctx.close()


@parallelizer.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@JOB_FILE_OPTION
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def work(ctx: click.Context, job_file: Path, command: tuple[str, ...]) -> None:
    """
    Run COMMAND once per queued task until the queue drains.

    The task id is appended to COMMAND as its last argument and is also
    available as PARALLELIZER_TASK_ID. Exits with status 1 if any task failed.
    """
    settings = get_settings()
    job = _load(job_file)
    summary = _run(_work(job, command, settings), settings)

    click.echo()
    click.echo("--- Summary ---")
    click.echo(f"Total tasks processed: {summary.processed}")
    click.echo(f"Total duration: {summary.duration_seconds:.2f}s")
    click.echo(f"Number of tasks passed: {summary.passed}")
    click.echo(f"Number of tasks failed: {summary.failed}")
    if summary.skipped:
        click.echo(f"Number of tasks skipped (already completed): {summary.skipped}")
    if summary.rejected:
        click.echo(f"Number of malformed messages rejected: {summary.rejected}")

    if not summary.ok:
        ctx.exit(1)


async def _status(job: JobFile, settings: Settings) -> StatusReport:
    ctx = create_context(settings)
    try:
        return await StatusReporter(ctx.ledger).report(job.task_list)
    finally:
        await ctx.close()


@parallelizer.command()
@JOB_FILE_OPTION
@click.option(
    "--out-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to the output JSON file.",
)
def status(job_file: Path, out_file: Path | None) -> None:
    """Show the ledger status of every task in the job file."""
    settings = get_settings()
    job = _load(job_file)
    report = _run(_status(job, settings), settings)

    render_status_table(report)
    if out_file is not None:
        write_status_report(report, out_file)
        click.echo(f"Status written to: {out_file}")


def main() -> None:
    parallelizer()


if __name__ == "__main__":
    main()
