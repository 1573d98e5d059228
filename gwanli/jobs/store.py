"""Storage backends for job state."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .models import JobState

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Abstract base class for job state storage."""

    @abstractmethod
    def write(self, state: JobState) -> None:
        """
        Persist the full state of a job, replacing any previous state.

        Args:
            state: JobState to store
        """
        pass

    @abstractmethod
    def read(self, job_id: str) -> Optional[JobState]:
        """
        Read the state of a job.

        Args:
            job_id: Job ID

        Returns:
            JobState, or None if missing or unreadable
        """
        pass

    @abstractmethod
    def list(self) -> List[str]:
        """
        List the IDs of all stored jobs.

        Returns:
            Job IDs in no particular order
        """
        pass

    def log_path(self, job_id: str) -> Optional[Path]:
        """
        Path of the log file kept next to a job's status.

        Args:
            job_id: Job ID

        Returns:
            Log file path, or None if this store keeps no logs
        """
        return None


class FileJobStore(JobStore):
    """Stores each job as ``<root>/<job_id>.json``."""

    def __init__(self, root: str):
        """
        Initialize file store.

        Args:
            root: Directory holding the status files
        """
        self.root = Path(root).expanduser()

    def _path(self, job_id: str) -> Path:
        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith("."):
            raise ValueError(f"Invalid job ID: {job_id!r}")
        return self.root / f"{job_id}.json"

    def write(self, state: JobState) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(state.job_id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def read(self, job_id: str) -> Optional[JobState]:
        try:
            content = self._path(job_id).read_text(encoding="utf-8")
            return JobState.model_validate_json(content)
        except (OSError, ValueError, ValidationError) as e:
            logger.debug(f"No readable status for job {job_id}: {e}")
            return None

    def list(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return [path.stem for path in self.root.glob("*.json")]

    def log_path(self, job_id: str) -> Optional[Path]:
        return self._path(job_id).with_suffix(".log")


class MemoryJobStore(JobStore):
    """In-memory store, mainly for tests."""

    def __init__(self):
        self._states: Dict[str, str] = {}

    def write(self, state: JobState) -> None:
        self._states[state.job_id] = state.model_dump_json()

    def read(self, job_id: str) -> Optional[JobState]:
        content = self._states.get(job_id)
        if content is None:
            return None
        return JobState.model_validate_json(content)

    def list(self) -> List[str]:
        return list(self._states)
