"""Goodreads CSV codec.

Reads Goodreads library exports and writes a Goodreads-compatible CSV that
re-imports through the same parser.
"""

from typing import Optional

from ..errors import PortabilityError, parse_error, validation_error
from ..records import (
    BookRecord,
    BookType,
    ExportData,
    ExportMetadata,
    ReadingStatus,
    UserBookRecord,
)
from .base import ImportFormat, RowResult, parse_date, parse_optional_int, split_multi, supplied
from .csv_codec import CSVCodec, clean_isbn
from .tokenizer import format_row

GOODREADS_COLUMNS = [
    "Book Id",
    "Title",
    "Author",
    "Additional Authors",
    "ISBN",
    "ISBN13",
    "My Rating",
    "Publisher",
    "Binding",
    "Number of Pages",
    "Date Read",
    "Date Added",
    "Bookshelves",
    "Exclusive Shelf",
    "My Review",
    "Private Notes",
    "Read Count",
]

REQUIRED_COLUMNS = {"Title", "Author"}

# Mapping from Goodreads exclusive shelf to reading status
SHELF_TO_STATUS = {
    "read": ReadingStatus.COMPLETED,
    "currently-reading": ReadingStatus.READING,
    "to-read": ReadingStatus.WANT_TO_READ,
    "on-hold": ReadingStatus.PAUSED,
    "did-not-finish": ReadingStatus.ABANDONED,
    "reference": ReadingStatus.REFERENCE,
}

STATUS_TO_SHELF = {
    ReadingStatus.COMPLETED: "read",
    ReadingStatus.READING: "currently-reading",
    ReadingStatus.WANT_TO_READ: "to-read",
    ReadingStatus.PAUSED: "on-hold",
    ReadingStatus.ABANDONED: "did-not-finish",
    ReadingStatus.REFERENCE: "reference",
}

# Shelves implied by the exclusive shelf; not carried as tags
STANDARD_SHELVES = set(SHELF_TO_STATUS)

BINDING_TO_TYPE = {
    "kindle edition": BookType.KINDLE,
    "kindle": BookType.KINDLE,
    "ebook": BookType.EPUB,
    "epub": BookType.EPUB,
    "audiobook": BookType.AUDIOBOOK,
    "audible audio": BookType.AUDIOBOOK,
    "audio cd": BookType.AUDIOBOOK,
}

TYPE_TO_BINDING = {
    BookType.KINDLE: "Kindle Edition",
    BookType.EPUB: "ebook",
    BookType.AUDIOBOOK: "Audiobook",
    BookType.PHYSICAL: "Paperback",
    BookType.OTHER: "",
}

DATE_FORMAT = "%Y/%m/%d"


def normalize_author(author: str) -> str:
    """Normalize an author name from Goodreads "Last, First" form to "First Last"."""
    if "," in author:
        last, first = author.split(",", 1)
        if first.strip():
            return f"{first.strip()} {last.strip()}"
        return last.strip()
    return author.strip()


def parse_status(read_count: Optional[int], shelf: Optional[str]) -> ReadingStatus:
    """Status from the read count, then the exclusive shelf, else reading."""
    if read_count and read_count >= 1:
        return ReadingStatus.COMPLETED
    if shelf:
        return SHELF_TO_STATUS.get(shelf.strip().lower(), ReadingStatus.READING)
    return ReadingStatus.READING


def parse_shelves(value: Optional[str]) -> list[str]:
    """Bookshelves become tags, except the standard shelves."""
    return [
        shelf
        for shelf in split_multi(value, separator=",")
        if shelf.lower() not in STANDARD_SHELVES
    ]


class GoodreadsCodec(CSVCodec):
    """Parses and writes Goodreads library exports."""

    format = ImportFormat.GOODREADS

    def __init__(self, user_id: str = ""):
        super().__init__(user_id=user_id)

    def _read_header(self, header: list[str]) -> Optional[PortabilityError]:
        missing = REQUIRED_COLUMNS - set(header)
        if missing:
            return parse_error(
                self.format.value,
                f"Missing required columns: {', '.join(sorted(missing))}",
                line=1,
            )
        return None

    def _parse_row(self, values: dict[str, str], line: int) -> RowResult:
        """Parse a single Goodreads row. Unknown columns are ignored."""

        def get(column: str) -> Optional[str]:
            value = values.get(column)
            if value is None:
                return None
            return value.strip() or None

        title = get("Title")
        if not title:
            return RowResult(
                line=line,
                error=validation_error("Title", "", "Title is required", line),
            )

        numbers = {}
        for column in ("My Rating", "Number of Pages", "Read Count"):
            try:
                numbers[column] = parse_optional_int(get(column))
            except ValueError:
                return RowResult(
                    line=line,
                    error=validation_error(column, get(column), "Must be a valid number", line),
                )

        authors = []
        if get("Author"):
            authors.append(normalize_author(get("Author")))
        for extra in split_multi(get("Additional Authors"), separator=","):
            authors.append(normalize_author(extra))

        book = BookRecord(
            title=title,
            **supplied(
                authors=authors,
                isbn10=clean_isbn(get("ISBN")),
                isbn13=clean_isbn(get("ISBN13")),
                publisher=get("Publisher"),
                page_count=numbers["Number of Pages"],
            ),
        )

        binding = (get("Binding") or "").lower()
        shelf = get("Exclusive Shelf")
        has_status = numbers["Read Count"] is not None or shelf is not None
        notes = get("Private Notes")

        user_book = UserBookRecord(
            user_id=self.user_id,
            book_id=book.id,
            title=title,
            **supplied(
                book_type=BINDING_TO_TYPE.get(binding, BookType.PHYSICAL) if binding else None,
                status=parse_status(numbers["Read Count"], shelf) if has_status else None,
                # 0 means not rated in Goodreads
                rating=numbers["My Rating"] or None,
                review=get("My Review"),
                notes=[notes] if notes else [],
                tags=parse_shelves(get("Bookshelves")),
                finish_date=parse_date(get("Date Read")),
                acquired_date=parse_date(get("Date Added")),
                authors=authors,
            ),
        )

        return RowResult(line=line, book=book, user_book=user_book)

    def serialize(self, bundle: ExportData, metadata: Optional[ExportMetadata] = None) -> bytes:
        """Write a Goodreads-compatible library export."""
        books = bundle.book_index()
        lines = [format_row(GOODREADS_COLUMNS)]

        for user_book in bundle.user_books:
            book = books.get(user_book.book_id)
            lines.append(format_row(self._goodreads_row(user_book, book)))

        return ("\n".join(lines) + "\n").encode("utf-8")

    def _goodreads_row(self, user_book: UserBookRecord, book: Optional[BookRecord]) -> list:
        title = book.title if book else user_book.title
        authors = list(book.authors if book else user_book.authors)
        isbn10 = book.isbn10 if book else None
        isbn13 = book.isbn13 if book else None

        return [
            (book.google_books_id if book else None) or "",
            title or "",
            authors[0] if authors else "",
            ", ".join(authors[1:]),
            f'="{isbn10}"' if isbn10 else "",
            f'="{isbn13}"' if isbn13 else "",
            user_book.rating or 0,
            (book.publisher if book else None) or "",
            TYPE_TO_BINDING.get(user_book.book_type, ""),
            (book.page_count if book else None) or "",
            user_book.finish_date.strftime(DATE_FORMAT) if user_book.finish_date else "",
            user_book.acquired_date.strftime(DATE_FORMAT) if user_book.acquired_date else "",
            ", ".join(user_book.tags),
            STATUS_TO_SHELF[user_book.status],
            user_book.review or "",
            "\n".join(user_book.notes),
            1 if user_book.status is ReadingStatus.COMPLETED else 0,
        ]
