"""Record validation.

``validate`` checks one canonical record against structural and domain
constraints and returns every problem found; it never raises. Records that
fail are left out of the committed batch but their errors are kept for the
import summary.
"""

from collections import defaultdict
from typing import Any, Optional, Union

from pydantic import AnyHttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..errors import PortabilityError, validation_error
from ..records import (
    BookRecord,
    CollectionRecord,
    ExportData,
    ReadingSessionRecord,
    UserBookRecord,
    WishlistItemRecord,
)
from . import limits

Record = Union[
    BookRecord,
    UserBookRecord,
    ReadingSessionRecord,
    WishlistItemRecord,
    CollectionRecord,
]

_http_url = TypeAdapter(AnyHttpUrl)


def is_valid_url(url: Optional[str]) -> bool:
    """Check an optional http(s) URL."""
    if not url:
        return True
    try:
        _http_url.validate_python(url)
        return True
    except PydanticValidationError:
        return False


def validate(record: Record, line: Optional[int] = None) -> list[PortabilityError]:
    """Validate a single record.

    Args:
        record: Canonical record of any type
        line: Source line (or record index) for error attribution

    Returns:
        List of validation errors, empty when the record is valid
    """
    if isinstance(record, BookRecord):
        errors = _validate_book(record, line)
    elif isinstance(record, UserBookRecord):
        errors = _validate_user_book(record, line)
    elif isinstance(record, ReadingSessionRecord):
        errors = _validate_session(record, line)
    elif isinstance(record, WishlistItemRecord):
        errors = _validate_wishlist_item(record, line)
    elif isinstance(record, CollectionRecord):
        errors = _validate_collection(record, line)
    else:
        errors = [
            validation_error(
                "record", type(record).__name__, "Unsupported record type", line
            )
        ]

    for error in errors:
        error.details.setdefault("recordType", type(record).__name__)
        record_id = getattr(record, "id", None)
        if record_id:
            error.details.setdefault("recordId", record_id)
    return errors


def _validate_book(book: BookRecord, line: Optional[int]) -> list[PortabilityError]:
    errors = []

    if not book.title or not book.title.strip():
        errors.append(validation_error("title", book.title, "Title is required", line))
    elif len(book.title) > limits.TITLE_MAX_LENGTH:
        errors.append(
            validation_error(
                "title",
                book.title[:50],
                f"Title must be {limits.TITLE_MAX_LENGTH} characters or less",
                line,
                suggestion="Shorten the title",
            )
        )

    if len(book.authors) > limits.MAX_AUTHORS:
        errors.append(
            validation_error(
                "authors",
                len(book.authors),
                f"At most {limits.MAX_AUTHORS} authors are allowed",
                line,
            )
        )
    for author in book.authors:
        if len(author) > limits.AUTHOR_MAX_LENGTH:
            errors.append(
                validation_error(
                    "authors",
                    author[:50],
                    f"Each author must be {limits.AUTHOR_MAX_LENGTH} characters or less",
                    line,
                )
            )
            break

    if len(book.categories) > limits.MAX_CATEGORIES:
        errors.append(
            validation_error(
                "categories",
                len(book.categories),
                f"At most {limits.MAX_CATEGORIES} categories are allowed",
                line,
            )
        )

    if book.publisher and len(book.publisher) > limits.PUBLISHER_MAX_LENGTH:
        errors.append(
            validation_error(
                "publisher",
                book.publisher[:50],
                f"Publisher must be {limits.PUBLISHER_MAX_LENGTH} characters or less",
                line,
            )
        )

    if book.description and len(book.description) > limits.DESCRIPTION_MAX_LENGTH:
        errors.append(
            validation_error(
                "description",
                len(book.description),
                f"Description must be {limits.DESCRIPTION_MAX_LENGTH} characters or less",
                line,
            )
        )

    if book.isbn10 and not limits.ISBN_10.match(book.isbn10):
        errors.append(
            validation_error(
                "isbn10",
                book.isbn10,
                "Invalid ISBN-10 format",
                line,
                suggestion="ISBN-10 must be 10 digits (the last may be X)",
            )
        )

    if book.isbn13 and not limits.ISBN_13.match(book.isbn13):
        errors.append(
            validation_error(
                "isbn13",
                book.isbn13,
                "Invalid ISBN-13 format",
                line,
                suggestion="ISBN-13 must be 13 digits without hyphens",
            )
        )

    if book.page_count is not None and not (
        limits.MIN_PAGE_COUNT <= book.page_count <= limits.MAX_PAGE_COUNT
    ):
        errors.append(
            validation_error(
                "pageCount",
                book.page_count,
                f"Page count must be an integer between {limits.MIN_PAGE_COUNT} "
                f"and {limits.MAX_PAGE_COUNT}",
                line,
                suggestion="Page count must be a positive number",
            )
        )

    for field_name, url in (
        ("thumbnailUrl", book.thumbnail_url),
        ("previewLink", book.preview_link),
        ("infoLink", book.info_link),
    ):
        if not is_valid_url(url):
            errors.append(validation_error(field_name, url, "Invalid URL format", line))

    if not (
        limits.LANGUAGE_MIN_LENGTH
        <= len(book.language or "")
        <= limits.LANGUAGE_MAX_LENGTH
    ):
        errors.append(
            validation_error(
                "language",
                book.language,
                f"Language code must be between {limits.LANGUAGE_MIN_LENGTH} and "
                f"{limits.LANGUAGE_MAX_LENGTH} characters",
                line,
            )
        )

    if book.average_rating is not None and not (
        limits.MIN_AVERAGE_RATING <= book.average_rating <= limits.MAX_AVERAGE_RATING
    ):
        errors.append(
            validation_error(
                "averageRating",
                book.average_rating,
                f"Average rating must be between {limits.MIN_AVERAGE_RATING} and "
                f"{limits.MAX_AVERAGE_RATING}",
                line,
            )
        )

    if book.ratings_count < 0:
        errors.append(
            validation_error(
                "ratingsCount", book.ratings_count, "Ratings count must be non-negative", line
            )
        )

    return errors


def _validate_user_book(user_book: UserBookRecord, line: Optional[int]) -> list[PortabilityError]:
    errors = []

    if not user_book.user_id or not user_book.user_id.strip():
        errors.append(validation_error("userId", user_book.user_id, "User ID is required", line))

    if user_book.title is not None and len(user_book.title) > limits.TITLE_MAX_LENGTH:
        errors.append(
            validation_error(
                "title",
                user_book.title[:50],
                f"Title must be {limits.TITLE_MAX_LENGTH} characters or less",
                line,
            )
        )

    if user_book.rating is not None and not (
        limits.MIN_USER_RATING <= user_book.rating <= limits.MAX_USER_RATING
    ):
        errors.append(
            validation_error(
                "rating",
                user_book.rating,
                f"Rating must be between {limits.MIN_USER_RATING} and {limits.MAX_USER_RATING}",
                line,
                suggestion="Leave the rating empty if the book is unrated",
            )
        )

    if user_book.current_page < 0:
        errors.append(
            validation_error(
                "currentPage",
                user_book.current_page,
                "Current page must be non-negative",
                line,
            )
        )

    if (
        user_book.start_date
        and user_book.finish_date
        and user_book.finish_date < user_book.start_date
    ):
        errors.append(
            validation_error(
                "finishDate",
                user_book.finish_date.isoformat(),
                "Finish date must not be before start date",
                line,
            )
        )

    return errors


def _validate_session(session: ReadingSessionRecord, line: Optional[int]) -> list[PortabilityError]:
    errors = []

    if session.start_page < 0:
        errors.append(
            validation_error("startPage", session.start_page, "Start page must be non-negative", line)
        )

    if session.end_page < session.start_page:
        errors.append(
            validation_error(
                "endPage",
                session.end_page,
                "End page must not be before start page",
                line,
            )
        )

    if session.pages_read < 0:
        errors.append(
            validation_error("pagesRead", session.pages_read, "Pages read must be non-negative", line)
        )

    if session.duration_minutes is not None and session.duration_minutes < 0:
        errors.append(
            validation_error(
                "durationMinutes",
                session.duration_minutes,
                "Duration must be non-negative",
                line,
            )
        )

    return errors


def _validate_wishlist_item(item: WishlistItemRecord, line: Optional[int]) -> list[PortabilityError]:
    errors = []

    if not item.user_id or not item.user_id.strip():
        errors.append(validation_error("userId", item.user_id, "User ID is required", line))

    if item.price_alert is not None and item.price_alert < 0:
        errors.append(
            validation_error(
                "priceAlert", item.price_alert, "Price alert must be non-negative", line
            )
        )

    return errors


def _validate_collection(collection: CollectionRecord, line: Optional[int]) -> list[PortabilityError]:
    errors = []

    if not collection.name or not collection.name.strip():
        errors.append(validation_error("name", collection.name, "Name is required", line))
    elif len(collection.name) > limits.COLLECTION_NAME_MAX_LENGTH:
        errors.append(
            validation_error(
                "name",
                collection.name[:50],
                f"Name must be {limits.COLLECTION_NAME_MAX_LENGTH} characters or less",
                line,
            )
        )

    if collection.sort_order < 0:
        errors.append(
            validation_error("sortOrder", collection.sort_order, "Sort order must be non-negative", line)
        )

    return errors


def validate_bundle(
    bundle: ExportData,
    lines: Optional[dict[str, int]] = None,
) -> list[PortabilityError]:
    """Check cross-record rules of a parsed bundle.

    - every reading session belongs to a user book in the bundle
    - a user book's sessions, in date order, never move backwards

    Args:
        bundle: Parsed records
        lines: Record id to source line, for error attribution

    Returns:
        List of validation errors
    """
    lines = lines or {}
    errors = []
    user_book_ids = {user_book.id for user_book in bundle.user_books}

    sessions_by_book: dict[str, list[ReadingSessionRecord]] = defaultdict(list)
    for session in bundle.reading_sessions:
        if session.user_book_id not in user_book_ids:
            error = validation_error(
                "userBookId",
                session.user_book_id,
                "Reading session references an unknown user book",
                lines.get(session.id),
            )
            error.details.update(recordType="ReadingSessionRecord", recordId=session.id)
            errors.append(error)
            continue
        sessions_by_book[session.user_book_id].append(session)

    for user_book_id, sessions in sessions_by_book.items():
        ordered = sorted(sessions, key=lambda s: (s.session_date, s.start_page))
        furthest = 0
        for session in ordered:
            if session.end_page < furthest:
                error = validation_error(
                    "endPage",
                    session.end_page,
                    f"Reading progress moves backwards (already reached page {furthest})",
                    lines.get(session.id),
                )
                error.details.update(recordType="ReadingSessionRecord", recordId=session.id)
                errors.append(error)
                continue
            furthest = session.end_page

    return errors


def errors_from_pydantic(
    exc: PydanticValidationError,
    line: Optional[int] = None,
    record_type: Optional[str] = None,
) -> list[PortabilityError]:
    """Convert a pydantic validation failure into record-level errors."""
    errors = []
    for err in exc.errors():
        field_name = ".".join(str(part) for part in err.get("loc", ())) or "record"
        value: Any = err.get("input")
        if err.get("type") == "missing":
            reason = f"{field_name} is required"
            value = None
        else:
            reason = err.get("msg", "Invalid value")
        if isinstance(value, (dict, list)):
            value = None
        error = validation_error(field_name, value, reason, line)
        if record_type:
            error.details["recordType"] = record_type
        errors.append(error)
    return errors
