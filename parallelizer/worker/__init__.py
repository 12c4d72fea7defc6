"""
Worker module.
Contains the consume/execute/acknowledge loop and task executors.
"""

from parallelizer.worker.executor import SubprocessExecutor, TaskExecutor
from parallelizer.worker.main import Worker

__all__ = [
    "Worker",
    "TaskExecutor",
    "SubprocessExecutor",
]
