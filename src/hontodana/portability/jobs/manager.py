"""Import job lifecycle management.

``ImportJobManager`` is the single owner of job state transitions. It is
constructed explicitly with its stores and passed to whatever needs it.
Each job is processed by one worker thread; everyone else only reads
snapshots.
"""

import threading
from typing import Callable, Optional, Union

import structlog

from ..errors import PortabilityError, system_error
from ..logs import get_logger
from .models import (
    ImportJob,
    ImportSummary,
    JobStatus,
    JobStatusSnapshot,
    utc_now,
)
from .store import CancellationFlags, InMemoryCancellationFlags, InMemoryJobStore, JobStore

logger = get_logger(__name__)


class ImportJobManager:
    """Creates jobs, applies transitions, and runs job workers."""

    def __init__(
        self,
        job_store: Optional[JobStore] = None,
        cancel_flags: Optional[CancellationFlags] = None,
    ):
        """Initialize manager.

        Args:
            job_store: Job storage (in-memory if not provided)
            cancel_flags: Cancellation flags (in-memory if not provided)
        """
        self.job_store = job_store or InMemoryJobStore()
        self.cancel_flags = cancel_flags or InMemoryCancellationFlags()
        self._threads: dict[str, threading.Thread] = {}

    # ========================================================================
    # Creation and queries
    # ========================================================================

    def create_job(self, user_id: str, rollback_id: Optional[str] = None) -> ImportJob:
        """Create a queued job with progress 0."""
        job = ImportJob(user_id=user_id, rollback_id=rollback_id)
        self.job_store.create(job)
        logger.info("job_created", job_id=job.job_id, user_id=user_id)
        return job

    def get_job(self, job_id: str) -> Optional[ImportJob]:
        return self.job_store.get(job_id)

    def get_status(self, job_id: str) -> Optional[JobStatusSnapshot]:
        """Snapshot of a job, or None if the job is unknown."""
        job = self.job_store.get(job_id)
        return job.snapshot() if job else None

    # ========================================================================
    # Transitions
    # ========================================================================

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        apply: Optional[Callable[[ImportJob], None]] = None,
    ) -> bool:
        previous: list[JobStatus] = []

        def mutate(job: ImportJob) -> bool:
            if not job.status.can_transition_to(target):
                previous.append(job.status)
                return False
            job.status = target
            if apply:
                apply(job)
            return True

        changed = self.job_store.update(job_id, mutate)
        if changed:
            logger.info("job_transition", job_id=job_id, status=target.value)
        elif previous:
            logger.debug(
                "job_transition_ignored",
                job_id=job_id,
                current=previous[0].value,
                requested=target.value,
            )
        return changed

    def mark_processing(self, job_id: str) -> bool:
        def apply(job: ImportJob) -> None:
            job.started_at = utc_now()

        return self._transition(job_id, JobStatus.PROCESSING, apply)

    def update_progress(self, job_id: str, processed: int, total: int) -> bool:
        """Report progress of a processing job.

        Progress never decreases and is ignored once the job has ended.
        The remaining time is extrapolated from the elapsed time.
        """
        if total <= 0:
            return False
        progress = min(100, int(processed * 100 / total))

        def mutate(job: ImportJob) -> bool:
            if job.status != JobStatus.PROCESSING or progress < job.progress:
                return False
            job.progress = progress
            if job.started_at and processed > 0:
                elapsed = (utc_now() - job.started_at).total_seconds()
                job.estimated_time_remaining = int(elapsed / processed * (total - processed))
            return True

        return self.job_store.update(job_id, mutate)

    def complete(self, job_id: str, summary: ImportSummary) -> bool:
        def apply(job: ImportJob) -> None:
            job.progress = 100
            job.completed_at = utc_now()
            job.estimated_time_remaining = None
            job.summary = summary

        return self._transition(job_id, JobStatus.COMPLETED, apply)

    def fail(
        self,
        job_id: str,
        error: Optional[Union[PortabilityError, list[PortabilityError]]] = None,
        summary: Optional[ImportSummary] = None,
    ) -> bool:
        """Mark a job failed. Progress is frozen where it stopped."""
        if error is None:
            errors = [system_error()]
        elif isinstance(error, PortabilityError):
            errors = [error]
        else:
            errors = list(error) or [system_error()]

        def apply(job: ImportJob) -> None:
            job.completed_at = utc_now()
            job.estimated_time_remaining = None
            job.errors.extend(errors)
            job.summary = summary

        changed = self._transition(job_id, JobStatus.FAILED, apply)
        if changed:
            logger.warning("job_failed", job_id=job_id, error=errors[0].message)
        return changed

    def request_cancel(self, job_id: str) -> bool:
        """Ask a job to stop. A queued job is cancelled immediately.

        Returns:
            False if the job is unknown or already ended
        """
        job = self.job_store.get(job_id)
        if job is None or job.status.is_terminal:
            return False

        self.cancel_flags.request(job_id)

        def cancel_queued(job: ImportJob) -> bool:
            if job.status != JobStatus.QUEUED:
                return False
            job.status = JobStatus.CANCELLED
            job.completed_at = utc_now()
            job.estimated_time_remaining = None
            return True

        if self.job_store.update(job_id, cancel_queued):
            logger.info("job_transition", job_id=job_id, status=JobStatus.CANCELLED.value)
            self.cancel_flags.clear(job_id)
            return True

        # No longer queued: a running worker keeps the flag until it stops
        current = self.job_store.get(job_id)
        if current is None or current.status.is_terminal:
            self.cancel_flags.clear(job_id)
            return False
        return True

    def is_cancel_requested(self, job_id: str) -> bool:
        return self.cancel_flags.is_requested(job_id)

    def mark_cancelled(self, job_id: str, summary: Optional[ImportSummary] = None) -> bool:
        def apply(job: ImportJob) -> None:
            job.completed_at = utc_now()
            job.estimated_time_remaining = None
            job.summary = summary

        changed = self._transition(job_id, JobStatus.CANCELLED, apply)
        if changed:
            self.cancel_flags.clear(job_id)
        return changed

    # ========================================================================
    # Workers
    # ========================================================================

    def start(self, job_id: str, work: Callable[[], None]) -> threading.Thread:
        """Run a job's work on its own daemon thread.

        The worker has ``job_id`` bound in the logging context. Anything the
        work lets escape fails the job. Once the worker exits, its thread
        and any leftover cancellation flag are forgotten.
        """

        def runner() -> None:
            structlog.contextvars.bind_contextvars(job_id=job_id)
            try:
                work()
            except Exception:
                logger.exception("job_worker_crashed")
                self.fail(job_id, system_error())
            finally:
                structlog.contextvars.unbind_contextvars("job_id")
                self.cancel_flags.clear(job_id)
                self._threads.pop(job_id, None)

        thread = threading.Thread(target=runner, name=f"import-{job_id}", daemon=True)
        self._threads[job_id] = thread
        thread.start()
        return thread

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobStatusSnapshot]:
        """Block until a started job's worker exits, then return its status.

        A worker that already exited has been forgotten; its status is
        returned directly.
        """
        thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)
        return self.get_status(job_id)

    def has_worker(self, job_id: str) -> bool:
        return job_id in self._threads
