"""Pydantic schemas for the canonical record model.

Every parser produces these records and every serializer consumes them.
Attribute names are snake_case; the JSON interchange format uses camelCase
aliases. Schemas only enforce structure (required fields, types); domain
constraints such as length ceilings and numeric ranges are checked by the
validator so they can be reported per record instead of failing a batch.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

EXPORT_VERSION = "1.0.0"
EXPORT_FORMAT = "hontodana-v1"


def generate_id() -> str:
    """Generate a UUID string for record identities."""
    return str(uuid4())


class ReadingStatus(str, Enum):
    """Reading status of a book on a user's shelf."""

    WANT_TO_READ = "want_to_read"
    READING = "reading"
    COMPLETED = "completed"
    PAUSED = "paused"
    ABANDONED = "abandoned"
    REFERENCE = "reference"


class BookType(str, Enum):
    """Physical or digital format of a user's copy."""

    PHYSICAL = "physical"
    KINDLE = "kindle"
    EPUB = "epub"
    AUDIOBOOK = "audiobook"
    OTHER = "other"


class WishlistPriority(str, Enum):
    """Wishlist priority, ordered low < medium < high < urgent."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    WishlistPriority.LOW: 0,
    WishlistPriority.MEDIUM: 1,
    WishlistPriority.HIGH: 2,
    WishlistPriority.URGENT: 3,
}


class DataType(str, Enum):
    """Record groups that can be selected for export."""

    USER_BOOKS = "userBooks"
    WISHLIST = "wishlist"
    COLLECTIONS = "collections"
    SESSIONS = "sessions"
    PROFILE = "profile"


class RecordModel(BaseModel):
    """Base for canonical records: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the JSON interchange shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Records
# ============================================================================


class BookRecord(RecordModel):
    """Bibliographic record. Immutable; merges return a new instance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    google_books_id: Optional[str] = Field(None, description="Provider identity key")
    title: str
    authors: list[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    page_count: Optional[int] = None
    language: str = "ja"
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    preview_link: Optional[str] = None
    info_link: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    average_rating: Optional[float] = None
    ratings_count: int = 0

    @property
    def primary_author(self) -> str:
        return self.authors[0] if self.authors else ""


class UserBookRecord(RecordModel):
    """A book on one user's shelf."""

    id: str = Field(default_factory=generate_id)
    user_id: str
    book_id: Optional[str] = None
    book_type: BookType = BookType.PHYSICAL
    status: ReadingStatus = ReadingStatus.READING
    current_page: int = 0
    start_date: Optional[date] = None
    finish_date: Optional[date] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    notes: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_favorite: bool = False
    acquired_date: Optional[date] = None
    location: Optional[str] = None

    # Denormalized book fields carried by flat (CSV) formats
    title: Optional[str] = None
    authors: list[str] = Field(default_factory=list)


class ReadingSessionRecord(RecordModel):
    """One reading session. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    user_book_id: str
    start_page: int
    end_page: int
    pages_read: int
    session_date: date
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def fill_pages_read(cls, data: Any) -> Any:
        """Derive pages read from the page span when not supplied."""
        if not isinstance(data, dict):
            return data
        if data.get("pagesRead") is None and data.get("pages_read") is None:
            start = data.get("startPage", data.get("start_page"))
            end = data.get("endPage", data.get("end_page"))
            if isinstance(start, int) and isinstance(end, int):
                data = dict(data)
                data["pages_read"] = max(0, end - start + 1)
        return data


class WishlistItemRecord(RecordModel):
    """A book the user wants to acquire or read."""

    id: str = Field(default_factory=generate_id)
    user_id: str
    book_id: str
    priority: WishlistPriority = WishlistPriority.MEDIUM
    reason: Optional[str] = None
    target_date: Optional[date] = None
    price_alert: Optional[float] = None


class CollectionRecord(RecordModel):
    """Named, ordered grouping of user books."""

    id: str = Field(default_factory=generate_id)
    user_id: str
    name: str
    description: Optional[str] = None
    color: str = "#3B82F6"
    icon: str = "📚"
    is_public: bool = False
    sort_order: int = 0
    books: list[str] = Field(default_factory=list, description="UserBook ids")


class UserProfileRecord(RecordModel):
    """Display preferences of the exporting user."""

    id: str
    name: str
    avatar_url: Optional[str] = None
    theme: str = "system"
    display_mode: str = "grid"
    books_per_page: int = 20
    default_book_type: BookType = BookType.PHYSICAL
    reading_goal: Optional[int] = None


class ExportMetadata(RecordModel):
    """Describes an export. Recomputed on every serialization."""

    version: str = EXPORT_VERSION
    export_date: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    user_id: str
    format: str = EXPORT_FORMAT
    data_types: list[str] = Field(default_factory=list)
    total_records: int = 0


class ExportData(RecordModel):
    """A complete bundle of a user's records, in interchange shape."""

    metadata: Optional[ExportMetadata] = None
    user_profile: Optional[UserProfileRecord] = None
    books: list[BookRecord] = Field(default_factory=list)
    user_books: list[UserBookRecord] = Field(default_factory=list)
    reading_sessions: list[ReadingSessionRecord] = Field(default_factory=list)
    wishlist_items: list[WishlistItemRecord] = Field(default_factory=list)
    collections: list[CollectionRecord] = Field(default_factory=list)

    def record_count(self) -> int:
        """Count user-owned records (books are reference data, not counted)."""
        return (
            len(self.user_books)
            + len(self.reading_sessions)
            + len(self.wishlist_items)
            + len(self.collections)
        )

    def book_index(self) -> dict[str, BookRecord]:
        return {book.id: book for book in self.books}

    def is_empty(self) -> bool:
        return self.record_count() == 0 and not self.books


def normalize_sort_order(collections: list[CollectionRecord]) -> list[CollectionRecord]:
    """Renumber collections to a dense 0..n-1 sequence, keeping relative order."""
    ordered = sorted(enumerate(collections), key=lambda pair: (pair[1].sort_order, pair[0]))
    return [
        collection.model_copy(update={"sort_order": position})
        for position, (_, collection) in enumerate(ordered)
    ]
