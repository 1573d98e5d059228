"""Pydantic models for indexing job state."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field

_JOB_ID = re.compile(r"^(?P<prefix>[A-Za-z][\w]*)-(?P<timestamp>\d+)")


class JobStatus(str, Enum):
    """Lifecycle states of an indexing job."""

    START = "START"
    PROCESSING = "PROCESSING"
    END = "END"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.END, JobStatus.ERROR)


class JobState(BaseModel):
    """Persisted state of one job, written on every transition."""

    job_id: str = Field(..., min_length=1, description="Job ID: <prefix>-<unix millis>")
    status: JobStatus = Field(..., description="Current status")
    start_time: datetime = Field(..., description="When the job was created")
    end_time: Optional[datetime] = Field(default=None, description="Set on END or ERROR")
    error: Optional[str] = Field(default=None, description="Error message for ERROR jobs")

    @property
    def prefix(self) -> str:
        return parse_job_id(self.job_id)[0]

    @property
    def timestamp(self) -> int:
        return parse_job_id(self.job_id)[1]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id(prefix: str) -> str:
    """
    Create a job ID like ``cli-1718000000000``.

    Args:
        prefix: Invoking surface, e.g. "cli" or "mcp"

    Returns:
        Job ID with the current time in milliseconds
    """
    if not re.fullmatch(r"[A-Za-z]\w*", prefix):
        raise ValueError(f"Invalid job prefix: {prefix!r}")
    return f"{prefix}-{int(utc_now().timestamp() * 1000)}"


def parse_job_id(job_id: str) -> Tuple[str, int]:
    """
    Split a job ID into prefix and embedded timestamp.

    Args:
        job_id: Job ID

    Returns:
        Tuple of (prefix, unix millis); ("", 0) if the ID does not match
    """
    match = _JOB_ID.match(job_id)
    if not match:
        return "", 0
    return match.group("prefix"), int(match.group("timestamp"))
