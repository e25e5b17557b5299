"""Import orchestration.

An import runs in two phases:

1. ``prepare`` parses and validates the upload, scans it for duplicates and
   returns a preview together with a queued job. Nothing is written.
2. ``confirm`` starts the job on a worker thread, which applies the records
   one by one through the merge resolver (``run`` is the worker body).

Every write is journaled under the job's rollback id so a partial or
unwanted import can be undone with ``rollback``.
"""

import io
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import structlog

from ..codec import ImportFormat, Source, detect_format, parse
from ..codec.detect import SNIFF_BYTES
from ..config import Config, get_config
from ..dedupe import DuplicateDetector, DuplicateMatch
from ..errors import (
    PortabilityError,
    StoreUnavailable,
    database_connection_error,
    file_format_error,
    system_error,
    user_not_found,
    validation_error,
)
from ..jobs import ImportJobManager, ImportSummary, JobStatus
from ..limits import FileConstraints, Operation, RateLimiter
from ..logs import get_logger
from ..merge import MergeAction, MergeStrategy, resolve
from ..records import (
    BookRecord,
    CollectionRecord,
    ExportData,
    ReadingSessionRecord,
    RecordModel,
    UserBookRecord,
    WishlistItemRecord,
    generate_id,
    normalize_sort_order,
)
from ..store import RecordKind, RecordStore
from ..validation import validate, validate_bundle
from .base import (
    ImportOptions,
    ImportPreview,
    ImportResponse,
    ImportResult,
    estimate_seconds,
)

logger = get_logger(__name__)

# (kind, record id, record before the write or None if it was created)
JournalEntry = tuple[RecordKind, str, Optional[RecordModel]]


@dataclass
class _PendingImport:
    """A prepared import waiting for confirmation."""

    user_id: str
    format: ImportFormat
    options: ImportOptions
    bundle: ExportData
    errors: list[PortabilityError]
    rollback_id: str


@dataclass
class _RunState:
    """Working state of one import run."""

    job_id: str
    user_id: str
    options: ImportOptions
    summary: ImportSummary
    journal: list[JournalEntry]
    total: int
    processed: int = 0

    # Incoming id -> stored id
    book_ids: dict[str, str] = field(default_factory=dict)
    user_book_ids: dict[str, str] = field(default_factory=dict)

    # Incoming books with no catalog match, written only when referenced
    new_books: dict[str, BookRecord] = field(default_factory=dict)

    catalog: list[BookRecord] = field(default_factory=list)
    pairs: list[tuple[UserBookRecord, Optional[BookRecord]]] = field(default_factory=list)
    sessions: list[ReadingSessionRecord] = field(default_factory=list)
    wishlist: list[WishlistItemRecord] = field(default_factory=list)
    collections: list[CollectionRecord] = field(default_factory=list)


def _measure(data: Source) -> tuple[Source, int]:
    """Size of an upload in bytes, without consuming seekable streams."""
    if isinstance(data, str):
        return data, len(data.encode("utf-8"))
    if isinstance(data, (bytes, bytearray)):
        return data, len(data)
    if data.seekable():
        position = data.tell()
        data.seek(0, io.SEEK_END)
        size = data.tell() - position
        data.seek(position)
        return data, size
    raw = data.read()
    return raw, len(raw)


def _peek(data: Source) -> Union[bytes, str]:
    if isinstance(data, (str, bytes, bytearray)):
        return data[:SNIFF_BYTES]
    position = data.tell()
    head = data.read(SNIFF_BYTES)
    data.seek(position)
    return head


class ImportService:
    """Prepares, runs and rolls back imports for one record store."""

    def __init__(
        self,
        store: RecordStore,
        job_manager: ImportJobManager,
        detector: Optional[DuplicateDetector] = None,
        config: Optional[Config] = None,
        rate_limiter: Optional[RateLimiter] = None,
        constraints: Optional[FileConstraints] = None,
    ):
        """Initialize service.

        Args:
            store: Record store imports are applied to
            job_manager: Job manager tracking import jobs
            detector: Duplicate detector (built from config if not provided)
            config: Configuration (global config if not provided)
            rate_limiter: Optional per-user rate limiter
            constraints: Upload constraints (built from config if not provided)
        """
        self.store = store
        self.job_manager = job_manager
        self.config = config or get_config()
        self.detector = detector or DuplicateDetector.from_config(self.config)
        self.rate_limiter = rate_limiter
        self.constraints = constraints or FileConstraints.from_config(self.config)

        self._pending: dict[str, _PendingImport] = {}
        self._journals: dict[str, list[JournalEntry]] = {}
        self._lock = threading.Lock()

    # ========================================================================
    # Prepare
    # ========================================================================

    def prepare(
        self,
        data: Source,
        user_id: str,
        filename: Optional[str] = None,
        fmt: Optional[Union[ImportFormat, str]] = None,
        options: Optional[ImportOptions] = None,
        mime_type: Optional[str] = None,
    ) -> ImportResponse:
        """Parse, validate and preview an upload, and queue a job for it.

        Args:
            data: Upload content
            user_id: Importing user; owns every imported record
            filename: Upload file name, used for format discovery
            fmt: Declared format; discovered when omitted
            options: Import options
            mime_type: Declared content type

        Returns:
            ImportResponse with a preview and job id, or an error
        """
        options = options or ImportOptions()
        log = logger.bind(user_id=user_id)

        if self.rate_limiter is not None:
            error = self.rate_limiter.check(user_id, Operation.IMPORT)
            if error:
                return ImportResponse(success=False, error=error)

        data, size = _measure(data)
        error = self.constraints.check(filename, size, mime_type)
        if error:
            log.warning("import_rejected", reason=error.kind.value, size=size)
            return ImportResponse(success=False, error=error)

        if fmt is None:
            fmt, error = detect_format(filename, _peek(data))
            if error:
                log.warning("import_rejected", reason=error.kind.value, filename=filename)
                return ImportResponse(success=False, error=error)
        try:
            fmt = ImportFormat(fmt)
        except ValueError:
            return ImportResponse(
                success=False,
                error=file_format_error(filename or str(fmt), [f.value for f in ImportFormat]),
            )

        try:
            if not self.store.user_exists(user_id):
                return ImportResponse(success=False, error=user_not_found(user_id))

            parsed = parse(data, fmt, user_id)
            if not parsed.ok:
                log.warning("import_parse_failed", format=fmt.value, reason=parsed.fatal.message)
                return ImportResponse(success=False, error=parsed.fatal)

            bundle, errors, invalid = self._screen(parsed.bundle, parsed.errors, parsed.lines, user_id)
            duplicates = self._scan(bundle, user_id)
        except StoreUnavailable as e:
            log.error("import_store_unavailable", operation=e.operation)
            return ImportResponse(success=False, error=database_connection_error("import"))

        preview = ImportPreview(
            format=fmt,
            bundle=bundle,
            duplicates=duplicates,
            errors=errors,
            warnings=list(parsed.warnings),
            invalid_records=invalid,
        )

        job = self.job_manager.create_job(user_id, rollback_id=generate_id())
        with self._lock:
            self._pending[job.job_id] = _PendingImport(
                user_id=user_id,
                format=fmt,
                options=options,
                bundle=bundle,
                errors=errors,
                rollback_id=job.rollback_id,
            )

        log.info(
            "import_prepared",
            job_id=job.job_id,
            format=fmt.value,
            records=bundle.record_count(),
            duplicates=len(duplicates),
            errors=len(errors),
        )

        return ImportResponse(
            success=True,
            job_id=job.job_id,
            estimated_time_seconds=estimate_seconds(len(bundle.user_books)),
            preview=preview,
            upload_id=f"upload-{job.job_id}",
        )

    def _screen(
        self,
        bundle: ExportData,
        parse_errors: list[PortabilityError],
        lines: dict[str, int],
        user_id: str,
    ) -> tuple[ExportData, list[PortabilityError], int]:
        """Assign ownership, validate, and drop invalid records.

        Returns:
            Tuple of (valid records, all errors, number of invalid records)
        """
        errors = list(parse_errors)
        invalid = len(parse_errors)

        def keep_valid(records: list) -> list:
            nonlocal invalid
            kept = []
            for record in records:
                record_errors = validate(record, lines.get(record.id))
                if record_errors:
                    errors.extend(record_errors)
                    invalid += 1
                else:
                    kept.append(record)
            return kept

        def keep_linked(records: list, rejected_books: set[str]) -> list:
            nonlocal invalid
            kept = []
            for record in records:
                if record.book_id and record.book_id in rejected_books:
                    error = validation_error(
                        "bookId",
                        record.book_id,
                        "Referenced book is invalid",
                        lines.get(record.id),
                    )
                    error.details.update(recordType=type(record).__name__, recordId=record.id)
                    errors.append(error)
                    invalid += 1
                else:
                    kept.append(record)
            return kept

        owned = {"user_id": user_id}
        books = keep_valid(bundle.books)
        rejected_books = {b.id for b in bundle.books} - {b.id for b in books}

        user_books = keep_valid([ub.model_copy(update=owned) for ub in bundle.user_books])
        user_books = keep_linked(user_books, rejected_books)

        sessions = keep_valid(bundle.reading_sessions)
        known = ExportData(
            user_books=user_books + self.store.list_user_books(user_id),
            reading_sessions=sessions,
        )
        history_errors = validate_bundle(known, lines)
        rejected_sessions = {e.details.get("recordId") for e in history_errors}
        errors.extend(history_errors)
        invalid += len(rejected_sessions)
        sessions = [s for s in sessions if s.id not in rejected_sessions]

        wishlist = keep_valid([w.model_copy(update=owned) for w in bundle.wishlist_items])
        wishlist = keep_linked(wishlist, rejected_books)

        collections = keep_valid([c.model_copy(update=owned) for c in bundle.collections])

        valid = ExportData(
            metadata=bundle.metadata,
            user_profile=bundle.user_profile,
            books=books,
            user_books=user_books,
            reading_sessions=sessions,
            wishlist_items=wishlist,
            collections=collections,
        )
        return valid, errors, invalid

    def _scan(self, bundle: ExportData, user_id: str) -> list[DuplicateMatch]:
        """Best existing duplicate of each incoming user book."""
        pairs = [
            (ub, self.store.get_book(ub.book_id) if ub.book_id else None)
            for ub in self.store.list_user_books(user_id)
        ]
        if not pairs:
            return []

        books = bundle.book_index()
        duplicates = []
        for user_book in bundle.user_books:
            matches = self.detector.find_user_book_duplicates(
                user_book, books.get(user_book.book_id), pairs
            )
            if matches:
                duplicates.append(matches[0])
        return duplicates

    # ========================================================================
    # Confirm / run
    # ========================================================================

    def confirm(self, job_id: str) -> Optional[threading.Thread]:
        """Start a prepared job on its worker thread.

        Returns:
            The worker thread, or None if there is nothing to start
        """
        with self._lock:
            pending = self._pending.get(job_id)
        job = self.job_manager.get_job(job_id)
        if pending is None or job is None or job.status != JobStatus.QUEUED:
            return None
        return self.job_manager.start(job_id, lambda: self.run(job_id))

    def cancel(self, job_id: str) -> bool:
        """Request cancellation. A job that has not started is discarded."""
        requested = self.job_manager.request_cancel(job_id)
        job = self.job_manager.get_job(job_id)
        if job is not None and job.status == JobStatus.CANCELLED:
            with self._lock:
                self._pending.pop(job_id, None)
        return requested

    def run(self, job_id: str) -> ImportResult:
        """Apply a prepared import. The body of the job's worker.

        The job ends in exactly one terminal state: completed, failed (strict
        mode, rejected invalid records, or storage failure) or cancelled.
        Writes made before a failure or cancellation are kept and can be
        undone with ``rollback``.
        """
        with self._lock:
            pending = self._pending.pop(job_id, None)

        if pending is None:
            self.job_manager.fail(job_id, system_error("No prepared import for this job"))
            return self.result(job_id)

        with structlog.contextvars.bound_contextvars(job_id=job_id, user_id=pending.user_id):
            if not self.job_manager.mark_processing(job_id):
                return self.result(job_id)

            options = pending.options
            summary = ImportSummary(errors=list(pending.errors))

            if pending.errors and (options.strict_mode or not options.skip_invalid_records):
                logger.warning("import_rejected_invalid", errors=len(pending.errors))
                self.job_manager.fail(job_id, pending.errors, summary)
                return self.result(job_id)

            with self._lock:
                journal = self._journals.setdefault(pending.rollback_id, [])

            bundle = pending.bundle
            state = _RunState(
                job_id=job_id,
                user_id=pending.user_id,
                options=options,
                summary=summary,
                journal=journal,
                total=len(bundle.books) + bundle.record_count(),
            )

            try:
                status, error = self._apply(bundle, state)
            except StoreUnavailable as e:
                logger.error("import_store_unavailable", operation=e.operation, processed=state.processed)
                self.job_manager.fail(
                    job_id,
                    database_connection_error("import", processed=state.processed),
                    summary,
                )
                return self.result(job_id)
            finally:
                self._drop_if_empty(pending.rollback_id)

            if status == JobStatus.CANCELLED:
                logger.info("import_cancelled", processed=state.processed)
                self.job_manager.mark_cancelled(job_id, summary)
            elif status == JobStatus.FAILED:
                self.job_manager.fail(job_id, error, summary)
            else:
                self.job_manager.complete(job_id, summary)
                logger.info(
                    "import_completed",
                    added=summary.books_added,
                    updated=summary.books_updated,
                    skipped=summary.books_skipped,
                )

        return self.result(job_id)

    def result(self, job_id: str) -> Optional[ImportResult]:
        """Result view of a job, or None if the job is unknown."""
        job = self.job_manager.get_job(job_id)
        if job is None:
            return None
        return ImportResult(
            success=job.status == JobStatus.COMPLETED,
            job_id=job_id,
            summary=job.summary,
            rollback_id=job.rollback_id,
            errors=list(job.errors),
        )

    # ========================================================================
    # Apply
    # ========================================================================

    def _apply(
        self, bundle: ExportData, state: _RunState
    ) -> tuple[JobStatus, Optional[PortabilityError]]:
        """Apply every record in dependency order.

        Returns:
            Tuple of (final status, error that stopped the run)
        """
        state.catalog = self.store.list_books()
        state.pairs = [
            (ub, self._catalog_get(state, ub.book_id))
            for ub in self.store.list_user_books(state.user_id)
        ]
        state.sessions = self.store.list_reading_sessions(state.user_id)
        state.wishlist = self.store.list_wishlist_items(state.user_id)
        state.collections = self.store.list_collections(state.user_id)
        incoming_books = bundle.book_index()

        steps: list[tuple[list, Callable]] = [
            (bundle.books, self._apply_book),
            (bundle.user_books, lambda ub, s: self._apply_user_book(ub, incoming_books, s)),
            (bundle.reading_sessions, self._apply_session),
            (bundle.wishlist_items, self._apply_wishlist_item),
            (bundle.collections, self._apply_collection),
        ]

        for records, apply in steps:
            for record in records:
                if self.job_manager.is_cancel_requested(state.job_id):
                    return JobStatus.CANCELLED, None

                error = apply(record, state)
                state.processed += 1
                if not isinstance(record, BookRecord):
                    state.summary.total_processed += 1

                if error:
                    state.summary.errors.append(error)
                    logger.warning("import_record_failed", record_id=record.id, error=error.message)
                    if state.options.strict_mode:
                        return JobStatus.FAILED, error

                if state.processed % max(1, state.options.batch_size) == 0:
                    self.job_manager.update_progress(state.job_id, state.processed, state.total)

        if bundle.collections:
            self._normalize_collections(state)

        self.job_manager.update_progress(state.job_id, state.processed, max(1, state.total))
        return JobStatus.COMPLETED, None

    def _write(self, state: _RunState, record: RecordModel) -> None:
        """Store a record and journal what it replaced."""
        kind = RecordKind.of(record)
        previous = self.store.get(kind, record.id)
        self.store.save(record)
        state.journal.append((kind, record.id, previous))

    def _claim_id(self, record: RecordModel) -> RecordModel:
        """Give a record being inserted a fresh id when another user's record holds its id."""
        if self.store.get(RecordKind.of(record), record.id) is not None:
            return record.model_copy(update={"id": generate_id()})
        return record

    def _catalog_get(self, state: _RunState, book_id: Optional[str]) -> Optional[BookRecord]:
        if not book_id:
            return None
        for book in state.catalog:
            if book.id == book_id:
                return book
        return None

    def _catalog_match(self, state: _RunState, book: BookRecord) -> Optional[BookRecord]:
        """Existing catalog book with the same id or identity key."""
        same_id = self._catalog_get(state, book.id)
        if same_id is not None:
            return same_id
        for existing in state.catalog:
            if self.detector.exact_match(book, existing):
                return existing
        return None

    def _ensure_book(self, state: _RunState, book_id: Optional[str]) -> Optional[str]:
        """Stored id for an incoming book reference, writing the book on first use."""
        if not book_id:
            return None
        if book_id in state.book_ids:
            return state.book_ids[book_id]
        if book_id in state.new_books:
            book = state.new_books.pop(book_id)
            self._write(state, book)
            state.catalog.append(book)
            state.book_ids[book_id] = book.id
            return book.id
        if self._catalog_get(state, book_id) is not None:
            return book_id
        return None

    def _apply_book(self, book: BookRecord, state: _RunState) -> Optional[PortabilityError]:
        existing = self._catalog_match(state, book)
        if existing is None:
            state.new_books[book.id] = book
            return None

        state.book_ids[book.id] = existing.id
        if state.options.strategy in (MergeStrategy.MERGE, MergeStrategy.UPDATE):
            # Catalog books are shared; absent incoming values never erase them
            outcome = resolve(existing, book.model_copy(update={"id": existing.id}), MergeStrategy.MERGE)
            if outcome.error:
                return outcome.error
            if outcome.record != existing:
                self._write(state, outcome.record)
                state.catalog = [outcome.record if b.id == existing.id else b for b in state.catalog]
        return None

    def _apply_user_book(
        self,
        user_book: UserBookRecord,
        incoming_books: dict[str, BookRecord],
        state: _RunState,
    ) -> Optional[PortabilityError]:
        summary = state.summary
        book_id = user_book.book_id

        if book_id in state.book_ids:
            book = self._catalog_get(state, state.book_ids[book_id])
            user_book = user_book.model_copy(update={"book_id": book.id if book else book_id})
        else:
            book = (
                state.new_books.get(book_id)
                or incoming_books.get(book_id)
                or self._catalog_get(state, book_id)
            )

        matches = self.detector.find_user_book_duplicates(user_book, book, state.pairs)

        if not matches:
            incoming_id = user_book.id
            user_book = self._claim_id(self._link_new_book(state, user_book))
            self._write(state, user_book)
            state.pairs.append((user_book, self._catalog_get(state, user_book.book_id)))
            state.user_book_ids[incoming_id] = user_book.id
            summary.books_added += 1
            return None

        existing = matches[0].existing_user_book
        if user_book.book_id in state.new_books and existing.book_id:
            # Fuzzy duplicate: keep the book the user already has
            user_book = user_book.model_copy(update={"book_id": existing.book_id})

        outcome = resolve(existing, user_book, state.options.strategy, state.options.merge_fields)
        if outcome.error:
            summary.books_skipped += 1
            state.user_book_ids[user_book.id] = existing.id
            return outcome.error

        if outcome.action == MergeAction.SKIPPED:
            summary.books_skipped += 1
            state.user_book_ids[user_book.id] = existing.id
            return None

        record = self._link_new_book(state, outcome.record)
        self._write(state, record)
        pair = (record, self._catalog_get(state, record.book_id))

        if outcome.action == MergeAction.UPDATED:
            summary.books_updated += 1
            state.user_book_ids[user_book.id] = existing.id
            state.pairs = [pair if ub.id == existing.id else (ub, b) for ub, b in state.pairs]
        else:
            summary.books_added += 1
            state.user_book_ids[user_book.id] = record.id
            state.pairs.append(pair)
            if outcome.warning:
                summary.warnings.append(outcome.warning)
        return None

    def _link_new_book(self, state: _RunState, user_book: UserBookRecord) -> UserBookRecord:
        """Write the user book's incoming book if needed and point at its stored id."""
        stored_id = self._ensure_book(state, user_book.book_id)
        if stored_id and stored_id != user_book.book_id:
            return user_book.model_copy(update={"book_id": stored_id})
        return user_book

    def _owned_user_book(self, state: _RunState, user_book_id: str) -> Optional[UserBookRecord]:
        for user_book, _ in state.pairs:
            if user_book.id == user_book_id:
                return user_book
        return None

    def _apply_session(self, session: ReadingSessionRecord, state: _RunState) -> Optional[PortabilityError]:
        target_id = state.user_book_ids.get(session.user_book_id, session.user_book_id)
        user_book = self._owned_user_book(state, target_id)
        if user_book is None:
            state.summary.warnings.append(
                f"Skipped reading session {session.id}: its book was not imported"
            )
            return None

        session = session.model_copy(update={"user_book_id": target_id})
        if any(self._same_session(session, known) for known in state.sessions):
            # Sessions are immutable; already imported
            return None

        session = self._claim_id(session)
        self._write(state, session)
        state.sessions.append(session)
        state.summary.sessions_added += 1

        if session.end_page > user_book.current_page:
            advanced = user_book.model_copy(update={"current_page": session.end_page})
            self._write(state, advanced)
            state.pairs = [
                (advanced, b) if ub.id == advanced.id else (ub, b) for ub, b in state.pairs
            ]
        return None

    @staticmethod
    def _same_session(session: ReadingSessionRecord, known: ReadingSessionRecord) -> bool:
        if session.id == known.id:
            return True
        return (
            session.user_book_id == known.user_book_id
            and session.session_date == known.session_date
            and session.start_page == known.start_page
            and session.end_page == known.end_page
        )

    def _apply_wishlist_item(self, item: WishlistItemRecord, state: _RunState) -> Optional[PortabilityError]:
        book_id = self._ensure_book(state, item.book_id)
        if book_id is None:
            state.summary.warnings.append(f"Skipped wishlist item {item.id}: unknown book {item.book_id}")
            return None
        item = item.model_copy(update={"book_id": book_id})

        existing = next(
            (w for w in state.wishlist if w.id == item.id or w.book_id == item.book_id),
            None,
        )
        if existing is None:
            item = self._claim_id(item)
            self._write(state, item)
            state.wishlist.append(item)
            state.summary.wishlist_items_added += 1
            return None

        outcome = resolve(existing, item, state.options.strategy, state.options.merge_fields)
        if outcome.error:
            return outcome.error
        if outcome.action == MergeAction.SKIPPED:
            return None

        self._write(state, outcome.record)
        if outcome.action == MergeAction.ADDED:
            state.wishlist.append(outcome.record)
            state.summary.wishlist_items_added += 1
            if outcome.warning:
                state.summary.warnings.append(outcome.warning)
        else:
            state.wishlist = [outcome.record if w.id == existing.id else w for w in state.wishlist]
        return None

    def _apply_collection(self, collection: CollectionRecord, state: _RunState) -> Optional[PortabilityError]:
        members = []
        for member in collection.books:
            member = state.user_book_ids.get(member, member)
            if self._owned_user_book(state, member) is None:
                state.summary.warnings.append(
                    f"Dropped book {member} from collection '{collection.name}': not in library"
                )
            elif member not in members:
                members.append(member)
        collection = collection.model_copy(update={"books": members})

        name = collection.name.casefold()
        existing = next(
            (c for c in state.collections if c.id == collection.id or c.name.casefold() == name),
            None,
        )
        if existing is None:
            collection = self._claim_id(collection)
            self._write(state, collection)
            state.collections.append(collection)
            state.summary.collections_added += 1
            return None

        if state.options.strategy == MergeStrategy.MERGE:
            merged_members = existing.books + [m for m in members if m not in existing.books]
            collection = collection.model_copy(update={"books": merged_members})

        outcome = resolve(existing, collection, state.options.strategy, state.options.merge_fields)
        if outcome.error:
            return outcome.error
        if outcome.action == MergeAction.SKIPPED:
            return None

        self._write(state, outcome.record)
        if outcome.action == MergeAction.ADDED:
            state.collections.append(outcome.record)
            state.summary.collections_added += 1
            if outcome.warning:
                state.summary.warnings.append(outcome.warning)
        else:
            state.collections = [
                outcome.record if c.id == existing.id else c for c in state.collections
            ]
            state.summary.collections_updated += 1
        return None

    def _normalize_collections(self, state: _RunState) -> None:
        """Renumber the user's collections to a dense sort order."""
        current = self.store.list_collections(state.user_id)
        for before, after in zip(current, normalize_sort_order(current)):
            if before.sort_order != after.sort_order:
                self._write(state, after)

    # ========================================================================
    # Rollback
    # ========================================================================

    def rollback(self, rollback_id: str) -> int:
        """Undo every write journaled under a rollback id, newest first.

        Returns:
            Number of writes undone (0 for an unknown id)

        Raises:
            StoreUnavailable: If the store fails; the writes not yet undone
                stay journaled so the rollback can be retried
        """
        with self._lock:
            journal = self._journals.pop(rollback_id, [])

        undone = 0
        try:
            while journal:
                kind, record_id, previous = journal[-1]
                if previous is None:
                    self.store.delete(kind, record_id)
                else:
                    self.store.save(previous)
                journal.pop()
                undone += 1
        except StoreUnavailable:
            with self._lock:
                self._journals[rollback_id] = journal
            logger.error("import_rollback_interrupted", rollback_id=rollback_id, remaining=len(journal))
            raise

        logger.info("import_rolled_back", rollback_id=rollback_id, writes=undone)
        return undone

    def can_rollback(self, rollback_id: str) -> bool:
        with self._lock:
            return rollback_id in self._journals

    def forget(self, rollback_id: str) -> bool:
        """Release a journal once its import no longer needs undoing.

        Returns:
            True if a journal was held for the rollback id
        """
        with self._lock:
            journal = self._journals.pop(rollback_id, None)
        if journal is not None:
            logger.info("import_journal_released", rollback_id=rollback_id, writes=len(journal))
        return journal is not None

    def _drop_if_empty(self, rollback_id: str) -> None:
        with self._lock:
            journal = self._journals.get(rollback_id)
            if journal is not None and not journal:
                del self._journals[rollback_id]
