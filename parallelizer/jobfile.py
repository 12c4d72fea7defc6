"""
Job file loading.

The job file is validated once, here, before any queue or ledger call is
made; everything downstream works with the typed TaskList.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from parallelizer.exceptions import JobFileError
from parallelizer.types.job import TaskList


@dataclass(frozen=True)
class JobFile:
    """A parsed job file together with the bytes it was read from."""

    path: Path
    task_list: TaskList
    raw: bytes


def parse_task_list(document: bytes | str) -> TaskList:
    """
    Parse and validate a job document.

    Raises:
        JobFileError: If the document is not JSON or does not match the schema.
    """
    try:
        data = json.loads(document)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise JobFileError(f"job file is not valid JSON: {e}") from e

    try:
        return TaskList.model_validate(data)
    except ValidationError as e:
        raise JobFileError(f"job file does not match the schema:\n{e}") from e


def load_job_file(path: str | Path) -> JobFile:
    """
    Read and validate a job file from disk.

    Raises:
        JobFileError: If the file cannot be read or is invalid.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise JobFileError(f"cannot read job file {path}: {e}") from e
    return JobFile(path=path, task_list=parse_task_list(raw), raw=raw)
