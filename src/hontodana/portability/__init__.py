"""Data portability for hontodana: import, export and reconcile reading data.

Formats are native JSON, generic CSV and Goodreads CSV.
"""

__version__ = "0.1.0"

from .errors import ErrorKind, PortabilityError, StoreUnavailable
from .export import ExportOptions, ExportResult, ExportService
from .imports import ImportOptions, ImportResponse, ImportResult, ImportService
from .jobs import ImportJobManager, JobStatus
from .merge import MergeStrategy
from .store import InMemoryRecordStore, RecordStore, SQLRecordStore

__all__ = [
    "ErrorKind",
    "ExportOptions",
    "ExportResult",
    "ExportService",
    "ImportJobManager",
    "ImportOptions",
    "ImportResponse",
    "ImportResult",
    "ImportService",
    "InMemoryRecordStore",
    "JobStatus",
    "MergeStrategy",
    "PortabilityError",
    "RecordStore",
    "SQLRecordStore",
    "StoreUnavailable",
    "__version__",
]
