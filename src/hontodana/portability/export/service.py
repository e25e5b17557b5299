"""Export a user's records as JSON, CSV or Goodreads CSV."""

import gzip
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional

from ..codec import ImportFormat, serialize
from ..errors import (
    PortabilityError,
    StoreUnavailable,
    database_connection_error,
    invalid_data_types,
    invalid_export_format,
    user_not_found,
    validation_error,
)
from ..limits import Operation, RateLimiter
from ..logs import get_logger
from ..records import DataType, ExportData, ExportMetadata, ReadingSessionRecord
from ..store import RecordStore

logger = get_logger(__name__)

CONTENT_TYPES = {
    ImportFormat.JSON: "application/json",
    ImportFormat.CSV: "text/csv; charset=utf-8",
    ImportFormat.GOODREADS: "text/csv; charset=utf-8",
}

GZIP_CONTENT_TYPE = "application/gzip"


@dataclass
class DateRange:
    """Inclusive bounds on reading session dates. Either end may be open."""

    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def contains(self, day: date) -> bool:
        if self.from_date and day < self.from_date:
            return False
        if self.to_date and day > self.to_date:
            return False
        return True


@dataclass
class ExportOptions:
    """What to export and how."""

    format: str = ImportFormat.JSON.value
    data_types: list[str] = field(
        default_factory=lambda: [DataType.USER_BOOKS.value]
    )
    date_range: Optional[DateRange] = None
    compress: bool = False


@dataclass
class ExportResult:
    """Result of an export operation."""

    success: bool
    payload: bytes = b""
    metadata: Optional[ExportMetadata] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None
    error: Optional[PortabilityError] = None

    @property
    def records_exported(self) -> int:
        return self.metadata.total_records if self.metadata else 0


def export_filename(fmt: ImportFormat, day: date) -> str:
    """File name for an export made on a given day.

    Goodreads exports carry Goodreads' own name so they are recognized on
    re-import.
    """
    if fmt == ImportFormat.GOODREADS:
        return f"goodreads_library_export_{day.isoformat()}.csv"
    extension = "json" if fmt == ImportFormat.JSON else "csv"
    return f"export_{day.isoformat()}.{extension}"


class ExportService:
    """Builds export payloads from a record store."""

    def __init__(
        self,
        store: RecordStore,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize exporter.

        Args:
            store: Record store to read from
            rate_limiter: Optional per-user rate limiter
            clock: Current time source, injectable for tests
        """
        self.store = store
        self.rate_limiter = rate_limiter
        self.clock = clock

    def export(self, user_id: str, options: Optional[ExportOptions] = None) -> ExportResult:
        """Export a user's records.

        Args:
            user_id: User whose records are exported
            options: Format, record types, session date range, compression

        Returns:
            ExportResult with the payload, or the error that prevented it
        """
        options = options or ExportOptions()

        fmt, data_types, error = self._check_options(options)
        if error:
            return ExportResult(success=False, error=error)

        if self.rate_limiter is not None:
            error = self.rate_limiter.check(user_id, Operation.EXPORT)
            if error:
                return ExportResult(success=False, error=error)

        try:
            if not self.store.user_exists(user_id):
                return ExportResult(success=False, error=user_not_found(user_id))
            bundle = self.collect(user_id, data_types, options.date_range)
        except StoreUnavailable as e:
            logger.error("export_store_unavailable", user_id=user_id, operation=e.operation)
            return ExportResult(
                success=False,
                error=database_connection_error("export", userId=user_id),
            )

        if fmt != ImportFormat.JSON:
            # Flat tables carry user books only
            bundle = ExportData(books=bundle.books, user_books=bundle.user_books)

        now = self.clock()
        metadata = ExportMetadata(
            export_date=now.isoformat(),
            user_id=user_id,
            data_types=[t.value for t in data_types],
            total_records=bundle.record_count(),
        )

        payload = serialize(bundle, metadata, fmt)
        filename = export_filename(fmt, now.date())
        content_type = CONTENT_TYPES[fmt]
        if options.compress:
            payload = gzip.compress(payload)
            filename += ".gz"
            content_type = GZIP_CONTENT_TYPE

        logger.info(
            "export_completed",
            user_id=user_id,
            format=fmt.value,
            records=metadata.total_records,
            size=len(payload),
        )

        return ExportResult(
            success=True,
            payload=payload,
            metadata=metadata,
            filename=filename,
            content_type=content_type,
            content_disposition=f'attachment; filename="{filename}"',
        )

    def _check_options(
        self, options: ExportOptions
    ) -> tuple[Optional[ImportFormat], list[DataType], Optional[PortabilityError]]:
        try:
            fmt = ImportFormat(options.format)
        except ValueError:
            return None, [], invalid_export_format(options.format)

        if not options.data_types:
            return fmt, [], invalid_data_types("At least one data type must be specified")

        data_types = []
        for value in options.data_types:
            try:
                data_type = DataType(value)
            except ValueError:
                return fmt, [], invalid_data_types(
                    f"Unknown data type: {value}",
                    dataType=value,
                    supportedTypes=[t.value for t in DataType],
                )
            if data_type not in data_types:
                data_types.append(data_type)

        date_range = options.date_range
        if (
            date_range is not None
            and date_range.from_date
            and date_range.to_date
            and date_range.from_date > date_range.to_date
        ):
            return fmt, [], validation_error(
                "dateRange",
                f"{date_range.from_date}..{date_range.to_date}",
                "Start date must not be after end date",
            )

        return fmt, data_types, None

    def collect(
        self,
        user_id: str,
        data_types: list[DataType],
        date_range: Optional[DateRange] = None,
    ) -> ExportData:
        """Gather the selected record groups of one user.

        Books referenced by exported user books and wishlist items are
        included alongside them.
        """
        bundle = ExportData()

        if DataType.USER_BOOKS in data_types:
            bundle.user_books = self.store.list_user_books(user_id)
        if DataType.SESSIONS in data_types:
            bundle.reading_sessions = self._sessions(user_id, date_range)
        if DataType.WISHLIST in data_types:
            bundle.wishlist_items = self.store.list_wishlist_items(user_id)
        if DataType.COLLECTIONS in data_types:
            bundle.collections = self.store.list_collections(user_id)
        if DataType.PROFILE in data_types:
            bundle.user_profile = self.store.get_user_profile(user_id)

        book_ids = [ub.book_id for ub in bundle.user_books if ub.book_id]
        book_ids += [item.book_id for item in bundle.wishlist_items]
        seen = set()
        for book_id in book_ids:
            if book_id in seen:
                continue
            seen.add(book_id)
            book = self.store.get_book(book_id)
            if book is not None:
                bundle.books.append(book)

        return bundle

    def _sessions(
        self, user_id: str, date_range: Optional[DateRange]
    ) -> list[ReadingSessionRecord]:
        sessions = self.store.list_reading_sessions(user_id)
        if date_range is None:
            return sessions
        return [s for s in sessions if date_range.contains(s.session_date)]
