"""Import job schemas.

Jobs move through ``queued -> processing -> completed | failed | cancelled``.
A queued job may also fail or be cancelled directly. Terminal states are
final.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import Field

from ..errors import PortabilityError
from ..records import RecordModel, generate_id


class JobStatus(str, Enum):
    """Import job lifecycle state."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in ALLOWED_TRANSITIONS.get(self, set())


TERMINAL_STATES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}

ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ImportSummary(RecordModel):
    """Counts of what an import did. Attached to a job once it ends."""

    books_added: int = 0
    books_updated: int = 0
    books_skipped: int = 0
    sessions_added: int = 0
    collections_added: int = 0
    collections_updated: int = 0
    wishlist_items_added: int = 0
    total_processed: int = 0
    errors: list[PortabilityError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ImportJob(RecordModel):
    """An asynchronous import."""

    job_id: str = Field(default_factory=generate_id)
    user_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0  # 0-100
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_time_remaining: Optional[int] = None  # seconds
    summary: Optional[ImportSummary] = None
    errors: list[PortabilityError] = Field(default_factory=list)
    rollback_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.job_id

    def snapshot(self) -> "JobStatusSnapshot":
        return JobStatusSnapshot(
            job_id=self.job_id,
            status=self.status,
            progress=self.progress,
            estimated_time_remaining=(
                None if self.status.is_terminal else self.estimated_time_remaining
            ),
            summary=self.summary,
            errors=list(self.errors) or None,
            rollback_id=self.rollback_id,
        )


class JobStatusSnapshot(RecordModel):
    """What a status poll returns."""

    job_id: str
    status: JobStatus
    progress: int
    estimated_time_remaining: Optional[int] = None
    summary: Optional[ImportSummary] = None
    errors: Optional[list[PortabilityError]] = None
    rollback_id: Optional[str] = None
