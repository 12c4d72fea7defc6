"""
Task execution.

A task is run by invoking an external command; whatever it does is opaque
to the parallelizer. Commands must tolerate being run more than once for
the same task, since delivery is at-least-once.
"""

import asyncio
import contextlib
import logging
import os
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from parallelizer.constants import ENV_JOB_ID, ENV_TASK_ID
from parallelizer.types.job import ExecutionResult, Task

logger = logging.getLogger(__name__)


class TaskExecutor(ABC):
    """Runs one task and reports success or failure. Never raises for task failures."""

    @abstractmethod
    async def run(self, task: Task, task_list_id: str) -> ExecutionResult:
        ...


class SubprocessExecutor(TaskExecutor):
    """
    Runs `command + [task.id]` with inherited stdin/stdout/stderr.

    The child also sees PARALLELIZER_TASK_ID and PARALLELIZER_JOB_ID in its
    environment, on top of the parent's environment.
    """

    def __init__(self, command: Sequence[str], env: Mapping[str, str] | None = None):
        """
        Initialize the executor.

        Args:
            command: Executable and leading arguments.
            env: Base environment. Defaults to the current process environment.
        """
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self._env = env

    def build_argv(self, task: Task) -> list[str]:
        return [*self.command, task.id]

    def build_env(self, task: Task, task_list_id: str) -> dict[str, str]:
        base = os.environ if self._env is None else self._env
        return {**base, ENV_TASK_ID: task.id, ENV_JOB_ID: task_list_id}

    async def run(self, task: Task, task_list_id: str) -> ExecutionResult:
        argv = self.build_argv(task)
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                env=self.build_env(task, task_list_id),
            )
        except (OSError, ValueError) as e:
            logger.error(
                "Failed to launch task command",
                extra={"task_id": task.id, "command": argv[0], "error": str(e)},
            )
            return ExecutionResult(
                success=False,
                error=f"failed to launch {argv[0]}: {e}",
                duration_seconds=time.monotonic() - start_time,
            )

        try:
            exit_code = await process.wait()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            raise
        duration = time.monotonic() - start_time

        if exit_code == 0:
            return ExecutionResult(success=True, exit_code=0, duration_seconds=duration)
        return ExecutionResult(
            success=False,
            exit_code=exit_code,
            error=f"command exited with code {exit_code}",
            duration_seconds=duration,
        )
