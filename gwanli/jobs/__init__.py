"""Indexing job tracking module."""

from .models import JobState, JobStatus, new_job_id, parse_job_id
from .store import FileJobStore, JobStore, MemoryJobStore
from .tracker import InvalidTransitionError, JobTracker, get_by_id, list_recent

__all__ = [
    "JobState",
    "JobStatus",
    "JobStore",
    "FileJobStore",
    "MemoryJobStore",
    "JobTracker",
    "InvalidTransitionError",
    "new_job_id",
    "parse_job_id",
    "get_by_id",
    "list_recent",
]
