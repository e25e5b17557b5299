"""Generic CSV codec with field mapping.

Reads any CSV file whose header names the usual book-tracking columns and
writes the fixed UserBook-oriented table. The CSV form is flat: one row per
user book, with the book's bibliographic fields denormalized into the row.
"""

import re
from dataclasses import dataclass, fields
from typing import ClassVar, Iterator, Optional

from thefuzz import fuzz, process

from ..errors import PortabilityError, parse_error, validation_error
from ..records import (
    BookRecord,
    ExportData,
    ExportMetadata,
    ReadingStatus,
    UserBookRecord,
)
from .base import (
    BaseCodec,
    ImportFormat,
    ParseResult,
    RowResult,
    Source,
    open_text,
    parse_date,
    parse_optional_int,
    split_multi,
    supplied,
)
from .tokenizer import UnterminatedQuoteError, format_row, iter_rows

NO_DATA_ROWS = "File must contain at least a header and one data row"

# Fixed column order of the generic CSV export
GENERIC_COLUMNS = [
    "Title",
    "Authors",
    "Status",
    "CurrentPage",
    "Rating",
    "Review",
    "ISBN13",
    "ISBN10",
    "Publisher",
    "PageCount",
    "Tags",
    "Favorite",
    "StartDate",
    "FinishDate",
    "AcquiredDate",
]

MULTI_VALUE_JOINER = "; "

# Status strings seen in other trackers' exports, keyed with hyphens and
# underscores folded to spaces
STATUS_SYNONYMS: dict[str, ReadingStatus] = {
    "read": ReadingStatus.COMPLETED,
    "completed": ReadingStatus.COMPLETED,
    "done": ReadingStatus.COMPLETED,
    "finished": ReadingStatus.COMPLETED,
    "reading": ReadingStatus.READING,
    "currently reading": ReadingStatus.READING,
    "in progress": ReadingStatus.READING,
    "to read": ReadingStatus.WANT_TO_READ,
    "want to read": ReadingStatus.WANT_TO_READ,
    "wishlist": ReadingStatus.WANT_TO_READ,
    "tbr": ReadingStatus.WANT_TO_READ,
    "on hold": ReadingStatus.PAUSED,
    "paused": ReadingStatus.PAUSED,
    "dnf": ReadingStatus.ABANDONED,
    "did not finish": ReadingStatus.ABANDONED,
    "abandoned": ReadingStatus.ABANDONED,
    "reference": ReadingStatus.REFERENCE,
}

TRUTHY = {"true", "yes", "y", "1", "x", "★"}


def parse_status(value: Optional[str]) -> ReadingStatus:
    """Map a status string to a reading status, defaulting to reading."""
    if not value:
        return ReadingStatus.READING
    key = re.sub(r"[\s_-]+", " ", value.strip().lower())
    return STATUS_SYNONYMS.get(key, ReadingStatus.READING)


def parse_bool(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in TRUTHY


def clean_isbn(value: Optional[str]) -> Optional[str]:
    """Strip the spreadsheet ``="..."`` wrapper, hyphens and spaces."""
    if not value:
        return None
    isbn = value.strip().strip('"').strip("'").lstrip("=").strip('"')
    isbn = re.sub(r"[\s-]", "", isbn).upper()
    return isbn or None


@dataclass
class FieldMapping:
    """Mapping of internal fields to CSV column names."""

    title: Optional[str] = None
    authors: Optional[str] = None
    status: Optional[str] = None
    current_page: Optional[str] = None
    rating: Optional[str] = None
    review: Optional[str] = None
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    publisher: Optional[str] = None
    page_count: Optional[str] = None
    tags: Optional[str] = None
    favorite: Optional[str] = None
    start_date: Optional[str] = None
    finish_date: Optional[str] = None
    acquired_date: Optional[str] = None

    # Common column name variations, exported names first
    FIELD_VARIATIONS: ClassVar[dict[str, list[str]]] = {
        "title": ["title", "book title", "name", "book name", "book"],
        "authors": ["authors", "author", "writer", "by", "book author"],
        "status": ["status", "shelf", "reading status", "state"],
        "current_page": ["currentpage", "current page", "page", "progress"],
        "rating": ["rating", "my rating", "stars", "score"],
        "review": ["review", "my review", "comments", "thoughts"],
        "isbn13": ["isbn13", "isbn-13", "ean"],
        "isbn10": ["isbn10", "isbn", "isbn-10"],
        "publisher": ["publisher", "publishing"],
        "page_count": ["pagecount", "page count", "pages", "number of pages", "length"],
        "tags": ["tags", "genres", "shelves", "categories", "bookshelves"],
        "favorite": ["favorite", "favourite", "is favorite", "starred"],
        "start_date": ["startdate", "start date", "date started", "started"],
        "finish_date": ["finishdate", "finish date", "date finished", "date read", "finished"],
        "acquired_date": ["acquireddate", "acquired date", "date added", "added"],
    }

    # Minimum thefuzz ratio for a near-miss header to be accepted
    FUZZY_CUTOFF: ClassVar[int] = 90

    @classmethod
    def auto_detect(cls, columns: list[str]) -> "FieldMapping":
        """Auto-detect field mappings from column names.

        Exact case-insensitive matches win; remaining fields fall back to the
        closest unused column name when it is nearly identical.

        Args:
            columns: List of CSV column names

        Returns:
            FieldMapping with detected mappings
        """
        mapping = cls()
        columns_lower = {c.strip().lower(): c for c in columns}
        used: set[str] = set()

        for field_name, variations in cls.FIELD_VARIATIONS.items():
            for variation in variations:
                if variation in columns_lower and columns_lower[variation] not in used:
                    setattr(mapping, field_name, columns_lower[variation])
                    used.add(columns_lower[variation])
                    break

        for field_name, variations in cls.FIELD_VARIATIONS.items():
            if getattr(mapping, field_name) is not None:
                continue
            remaining = [c for c in columns_lower if columns_lower[c] not in used]
            if not remaining:
                break
            match = process.extractOne(
                variations[0],
                remaining,
                scorer=fuzz.ratio,
                score_cutoff=cls.FUZZY_CUTOFF,
            )
            if match:
                column = columns_lower[match[0]]
                setattr(mapping, field_name, column)
                used.add(column)

        return mapping

    def mapped(self) -> dict[str, str]:
        """Internal field name to column name, for mapped fields only."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


class CSVCodec(BaseCodec):
    """Parses and writes the generic flat CSV format."""

    format = ImportFormat.CSV

    def __init__(self, user_id: str = "", mapping: Optional[FieldMapping] = None):
        """Initialize codec.

        Args:
            user_id: Owner assigned to parsed user books
            mapping: Column mapping; auto-detected from the header when omitted
        """
        self.user_id = user_id
        self.mapping = mapping

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def iter_records(self, data: Source) -> Iterator[RowResult]:
        """Yield one result per data row, streaming.

        A fatal result (parse error) is always the last one yielded.
        """
        header: Optional[list[str]] = None
        data_rows = 0

        try:
            for row in iter_rows(open_text(data)):
                if header is None:
                    if row.is_blank():
                        continue
                    header = [c.strip() for c in row.fields]
                    error = self._read_header(header)
                    if error:
                        yield RowResult(line=row.line, error=error)
                        return
                    continue

                if row.is_blank():
                    continue

                data_rows += 1
                values = dict(zip(header, row.fields))
                yield self._parse_row(values, row.line)
        except UnterminatedQuoteError as e:
            yield RowResult(
                line=e.line,
                error=parse_error(self.format.value, "Unterminated quoted field", line=e.line),
            )
            return
        except UnicodeDecodeError:
            yield RowResult(
                line=0,
                error=parse_error(self.format.value, "File is not valid UTF-8 text"),
            )
            return

        if data_rows == 0:
            yield RowResult(line=0, error=parse_error(self.format.value, NO_DATA_ROWS))

    def parse(self, data: Source) -> ParseResult:
        result = ParseResult(format=self.format)

        for row in self.iter_records(data):
            if row.is_fatal:
                return ParseResult(format=self.format, fatal=row.error)
            if row.error:
                result.errors.append(row.error)
                continue
            result.bundle.books.append(row.book)
            result.bundle.user_books.append(row.user_book)
            result.lines[row.book.id] = row.line
            result.lines[row.user_book.id] = row.line

        return result

    def _read_header(self, header: list[str]) -> Optional[PortabilityError]:
        """Resolve the column mapping; returns a fatal error when unusable."""
        if self.mapping is None:
            self.mapping = FieldMapping.auto_detect(header)
        if not self.mapping.title or self.mapping.title not in header:
            return parse_error(self.format.value, "Missing required column: Title", line=1)
        return None

    def _get(self, values: dict[str, str], field_name: str) -> Optional[str]:
        column = getattr(self.mapping, field_name)
        if not column:
            return None
        value = values.get(column)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def _get_int(self, values: dict[str, str], field_name: str, line: int):
        """Parse an integer cell; returns (value, error)."""
        raw = self._get(values, field_name)
        try:
            return parse_optional_int(raw), None
        except ValueError:
            column = getattr(self.mapping, field_name)
            return None, validation_error(
                column, raw, "Must be a valid number", line, suggestion="Use digits only"
            )

    def _parse_row(self, values: dict[str, str], line: int) -> RowResult:
        """Parse a single CSV row into a book and a user book."""
        title = self._get(values, "title")
        if not title:
            return RowResult(
                line=line,
                error=validation_error("title", "", "Title is required", line),
            )

        current_page, error = self._get_int(values, "current_page", line)
        if error:
            return RowResult(line=line, error=error)
        rating, error = self._get_int(values, "rating", line)
        if error:
            return RowResult(line=line, error=error)
        page_count, error = self._get_int(values, "page_count", line)
        if error:
            return RowResult(line=line, error=error)

        authors = split_multi(self._get(values, "authors"))
        status = self._get(values, "status")
        favorite = self._get(values, "favorite")

        # Only cells present in the row are set; absent columns keep model defaults
        book = BookRecord(
            title=title,
            **supplied(
                authors=authors,
                isbn13=clean_isbn(self._get(values, "isbn13")),
                isbn10=clean_isbn(self._get(values, "isbn10")),
                publisher=self._get(values, "publisher"),
                page_count=page_count,
            ),
        )

        user_book = UserBookRecord(
            user_id=self.user_id,
            book_id=book.id,
            title=title,
            **supplied(
                status=parse_status(status) if status else None,
                current_page=current_page,
                # 0 stars is "unrated"
                rating=rating or None,
                review=self._get(values, "review"),
                tags=split_multi(self._get(values, "tags")),
                is_favorite=parse_bool(favorite) if favorite else None,
                start_date=parse_date(self._get(values, "start_date")),
                finish_date=parse_date(self._get(values, "finish_date")),
                acquired_date=parse_date(self._get(values, "acquired_date")),
                authors=authors,
            ),
        )

        return RowResult(line=line, book=book, user_book=user_book)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self, bundle: ExportData, metadata: Optional[ExportMetadata] = None) -> bytes:
        """Write the flat user book table. Other record types are not included."""
        books = bundle.book_index()
        lines = [format_row(GENERIC_COLUMNS)]

        for user_book in bundle.user_books:
            lines.append(format_row(self._row_for(user_book, books.get(user_book.book_id))))

        return ("\n".join(lines) + "\n").encode("utf-8")

    def _row_for(self, user_book: UserBookRecord, book: Optional[BookRecord]) -> list:
        title = book.title if book else user_book.title
        authors = book.authors if book else user_book.authors
        return [
            title or "",
            MULTI_VALUE_JOINER.join(authors),
            user_book.status.value,
            user_book.current_page,
            user_book.rating if user_book.rating is not None else "",
            user_book.review or "",
            (book.isbn13 if book else None) or "",
            (book.isbn10 if book else None) or "",
            (book.publisher if book else None) or "",
            (book.page_count if book else None) or "",
            MULTI_VALUE_JOINER.join(user_book.tags),
            "true" if user_book.is_favorite else "false",
            _iso(user_book.start_date),
            _iso(user_book.finish_date),
            _iso(user_book.acquired_date),
        ]


def _iso(value) -> str:
    return value.isoformat() if value else ""
