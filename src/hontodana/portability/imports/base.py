"""Import request and result types."""

import math
from dataclasses import dataclass, field
from typing import Optional

from ..codec import ImportFormat
from ..dedupe import DuplicateMatch
from ..errors import PortabilityError
from ..jobs import ImportSummary
from ..merge import MergeStrategy
from ..records import ExportData

# Seconds of estimated processing per imported user book
SECONDS_PER_RECORD = 0.1
MIN_ESTIMATED_SECONDS = 30


def estimate_seconds(user_book_count: int) -> int:
    return max(MIN_ESTIMATED_SECONDS, math.floor(user_book_count * SECONDS_PER_RECORD))


@dataclass
class ImportOptions:
    """How to apply an import.

    ``strict_mode`` fails the job on the first error of any kind.
    ``skip_invalid_records=False`` fails the job, before any write, when
    any record is invalid; otherwise invalid records are left out.
    """

    strategy: MergeStrategy = MergeStrategy.MERGE
    merge_fields: Optional[list[str]] = None
    strict_mode: bool = False
    skip_invalid_records: bool = True
    batch_size: int = 50  # records between progress reports


@dataclass
class ImportPreview:
    """What an import would do, shown before anything is written."""

    format: ImportFormat
    bundle: ExportData
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    errors: list[PortabilityError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    invalid_records: int = 0

    @property
    def valid_records(self) -> int:
        return self.bundle.record_count()

    @property
    def total_records(self) -> int:
        return self.valid_records + self.invalid_records


@dataclass
class ImportResponse:
    """Reply to an import request. Nothing is committed until confirmed."""

    success: bool
    job_id: Optional[str] = None
    estimated_time_seconds: int = 0
    preview: Optional[ImportPreview] = None
    upload_id: Optional[str] = None
    error: Optional[PortabilityError] = None


@dataclass
class ImportResult:
    """Outcome of a finished import job."""

    success: bool
    job_id: str
    summary: Optional[ImportSummary] = None
    rollback_id: Optional[str] = None
    errors: list[PortabilityError] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return self.summary.warnings if self.summary else []
