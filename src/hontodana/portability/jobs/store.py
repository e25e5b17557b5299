"""Job stores and cancellation flags.

A job store hands out copies of jobs and applies changes atomically through
``update``, so readers polling a job never see a half-applied transition.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy import select

from ..store.models import ImportJobRow
from ..store.sqlite import Database
from .models import ImportJob

# Mutator applied under the store's lock; returns False to discard changes
JobMutator = Callable[[ImportJob], bool]


class JobStore(ABC):
    """Storage of import jobs."""

    @abstractmethod
    def create(self, job: ImportJob) -> None:
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[ImportJob]:
        """Get a copy of a job, or None if unknown."""
        pass

    @abstractmethod
    def update(self, job_id: str, mutate: JobMutator) -> bool:
        """Atomically apply a change to a job.

        Args:
            job_id: Job to change
            mutate: Called with a working copy; its changes are kept only
                    when it returns True

        Returns:
            True if the job exists and the change was applied
        """
        pass

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[ImportJob]:
        pass


class InMemoryJobStore(JobStore):
    """Lock-guarded in-process job store."""

    def __init__(self):
        self._jobs: dict[str, ImportJob] = {}
        self._lock = threading.Lock()

    def create(self, job: ImportJob) -> None:
        with self._lock:
            self._jobs[job.job_id] = job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[ImportJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def update(self, job_id: str, mutate: JobMutator) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            working = job.model_copy(deep=True)
            if not mutate(working):
                return False
            self._jobs[job_id] = working
            return True

    def list_for_user(self, user_id: str) -> list[ImportJob]:
        with self._lock:
            return [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if job.user_id == user_id
            ]


class SQLJobStore(JobStore):
    """Job store persisted in the SQLite database."""

    def __init__(self, db: Database):
        self.db = db
        self.db.create_tables()
        self._lock = threading.Lock()

    def create(self, job: ImportJob) -> None:
        with self.db.get_session() as session:
            session.add(
                ImportJobRow(
                    job_id=job.job_id,
                    user_id=job.user_id,
                    status=job.status.value,
                    payload=job.model_dump_json(),
                )
            )

    def get(self, job_id: str) -> Optional[ImportJob]:
        with self.db.get_session() as session:
            row = session.get(ImportJobRow, job_id)
            return ImportJob.model_validate_json(row.payload) if row else None

    def update(self, job_id: str, mutate: JobMutator) -> bool:
        with self._lock, self.db.get_session() as session:
            row = session.get(ImportJobRow, job_id)
            if row is None:
                return False
            job = ImportJob.model_validate_json(row.payload)
            if not mutate(job):
                return False
            row.status = job.status.value
            row.payload = job.model_dump_json()
            return True

    def list_for_user(self, user_id: str) -> list[ImportJob]:
        stmt = select(ImportJobRow).where(ImportJobRow.user_id == user_id)
        with self.db.get_session() as session:
            rows = session.execute(stmt).scalars().all()
            return [ImportJob.model_validate_json(row.payload) for row in rows]


class CancellationFlags(ABC):
    """Per-job cooperative cancellation requests."""

    @abstractmethod
    def request(self, job_id: str) -> None:
        pass

    @abstractmethod
    def is_requested(self, job_id: str) -> bool:
        pass

    @abstractmethod
    def clear(self, job_id: str) -> None:
        pass


class InMemoryCancellationFlags(CancellationFlags):
    """Cancellation flags held in process memory."""

    def __init__(self):
        self._flags: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def request(self, job_id: str) -> None:
        with self._lock:
            self._flags.setdefault(job_id, threading.Event()).set()

    def is_requested(self, job_id: str) -> bool:
        with self._lock:
            event = self._flags.get(job_id)
        return event is not None and event.is_set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._flags)

    def clear(self, job_id: str) -> None:
        with self._lock:
            self._flags.pop(job_id, None)
