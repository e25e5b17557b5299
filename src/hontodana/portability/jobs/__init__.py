"""Import job tracking."""

from .manager import ImportJobManager
from .models import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    ImportJob,
    ImportSummary,
    JobStatus,
    JobStatusSnapshot,
)
from .store import (
    CancellationFlags,
    InMemoryCancellationFlags,
    InMemoryJobStore,
    JobStore,
    SQLJobStore,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATES",
    "CancellationFlags",
    "ImportJob",
    "ImportJobManager",
    "ImportSummary",
    "InMemoryCancellationFlags",
    "InMemoryJobStore",
    "JobStatus",
    "JobStatusSnapshot",
    "JobStore",
    "SQLJobStore",
]
