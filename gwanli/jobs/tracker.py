"""Lifecycle tracking for indexing jobs."""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from ..utils.logging import file_formatter
from .models import JobState, JobStatus, parse_job_id, utc_now
from .store import JobStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.START: {JobStatus.PROCESSING, JobStatus.ERROR},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.END, JobStatus.ERROR},
    JobStatus.END: set(),
    JobStatus.ERROR: set(),
}


class InvalidTransitionError(ValueError):
    """Raised when a job is moved out of a terminal state or backwards."""


class JobTracker:
    """Records the status of one indexing run in a JobStore."""

    def __init__(self, job_id: str, store: JobStore, state: JobState):
        self.job_id = job_id
        self.store = store
        self._state = state

    @classmethod
    def create(cls, job_id: str, store: JobStore) -> "JobTracker":
        """
        Create a tracker and write the START state immediately.

        Args:
            job_id: Job ID, usually from new_job_id()
            store: Store that persists the state

        Returns:
            JobTracker for the new job
        """
        state = JobState(job_id=job_id, status=JobStatus.START, start_time=utc_now())
        store.write(state)
        logger.debug(f"Created job {job_id}")
        return cls(job_id, store, state)

    @property
    def status(self) -> JobStatus:
        return self._state.status

    def update(self, status: JobStatus, error: Optional[str] = None) -> JobState:
        """
        Move the job to a new status and persist it.

        ``start_time`` is carried over; ``end_time`` is stamped on END and ERROR.

        Args:
            status: New status
            error: Error message, kept only for ERROR

        Returns:
            The written JobState

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        status = JobStatus(status)
        current = self._state.status
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Job {self.job_id} cannot move from {current.value} to {status.value}"
            )

        state = JobState(
            job_id=self.job_id,
            status=status,
            start_time=self._state.start_time,
            end_time=utc_now() if status.is_terminal else None,
            error=error if status == JobStatus.ERROR else None,
        )
        self.store.write(state)
        self._state = state
        logger.debug(f"Job {self.job_id} moved to {status.value}")
        return state

    def get(self) -> Optional[JobState]:
        """
        Read the persisted state of this job.

        Returns:
            JobState, or None if the status cannot be read
        """
        try:
            return self.store.read(self.job_id)
        except Exception as e:
            logger.warning(f"Could not read status of job {self.job_id}: {e}")
            return None

    @contextmanager
    def capture_log(self, target: logging.Logger) -> Iterator[None]:
        """
        Copy everything logged to ``target`` into the job's log file.

        Does nothing when the store keeps no logs.

        Args:
            target: Logger used by the job
        """
        path = self.store.log_path(self.job_id)
        if path is None:
            yield
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(file_formatter())
        target.addHandler(handler)
        try:
            yield
        finally:
            target.removeHandler(handler)
            handler.close()


def get_by_id(store: JobStore, job_id: str) -> Optional[JobState]:
    """
    Look up a job by ID.

    Args:
        store: Job store
        job_id: Job ID

    Returns:
        JobState or None if unknown or unreadable
    """
    try:
        return store.read(job_id)
    except Exception as e:
        logger.warning(f"Could not read status of job {job_id}: {e}")
        return None


def list_recent(store: JobStore, count: int = 5, prefix: Optional[str] = None) -> List[JobState]:
    """
    List the most recent jobs, newest first.

    Args:
        store: Job store
        count: Maximum number of jobs to return
        prefix: Only include jobs whose ID starts with this prefix, e.g. "cli"

    Returns:
        List of JobState sorted by the timestamp embedded in the job ID
    """
    job_ids = []
    for job_id in store.list():
        job_prefix, timestamp = parse_job_id(job_id)
        if not job_prefix:
            continue
        if prefix and job_prefix != prefix:
            continue
        job_ids.append((timestamp, job_id))

    job_ids.sort(reverse=True)

    jobs = []
    for _, job_id in job_ids:
        if len(jobs) >= count:
            break
        state = get_by_id(store, job_id)
        if state is not None:
            jobs.append(state)
    return jobs
