"""Abstract record store.

The engine reads and writes a user's records only through this interface.
Implementations provide five primitives (``get``, ``put``, ``list_kind``,
``delete``, ``user_exists``); the typed accessors are built on top of them.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from ..records import (
    BookRecord,
    CollectionRecord,
    ReadingSessionRecord,
    RecordModel,
    UserBookRecord,
    UserProfileRecord,
    WishlistItemRecord,
)


class RecordKind(str, Enum):
    """Kinds of stored record."""

    BOOK = "book"
    USER_BOOK = "user_book"
    READING_SESSION = "reading_session"
    WISHLIST_ITEM = "wishlist_item"
    COLLECTION = "collection"
    PROFILE = "profile"

    @property
    def model(self) -> type[RecordModel]:
        return _MODELS[self]

    @classmethod
    def of(cls, record: RecordModel) -> "RecordKind":
        for kind, model in _MODELS.items():
            if isinstance(record, model):
                return kind
        raise TypeError(f"Not a storable record: {type(record).__name__}")


_MODELS: dict[RecordKind, type[RecordModel]] = {
    RecordKind.BOOK: BookRecord,
    RecordKind.USER_BOOK: UserBookRecord,
    RecordKind.READING_SESSION: ReadingSessionRecord,
    RecordKind.WISHLIST_ITEM: WishlistItemRecord,
    RecordKind.COLLECTION: CollectionRecord,
    RecordKind.PROFILE: UserProfileRecord,
}


class RecordStore(ABC):
    """Storage of a user's book-tracking records.

    Books are shared reference data; every other record belongs to one
    user. Implementations raise ``StoreUnavailable`` when storage fails.
    """

    @abstractmethod
    def user_exists(self, user_id: str) -> bool:
        pass

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> Optional[RecordModel]:
        """Get one record by id, or None."""
        pass

    @abstractmethod
    def put(self, kind: RecordKind, record: RecordModel, owner_id: Optional[str]) -> None:
        """Insert or replace a record.

        Args:
            kind: Record kind
            record: Record to store
            owner_id: Owning user id (None for books)
        """
        pass

    @abstractmethod
    def list_kind(self, kind: RecordKind, owner_id: Optional[str] = None) -> list[RecordModel]:
        """List records of a kind, optionally restricted to one owner, in insertion order."""
        pass

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: str) -> bool:
        """Delete a record. Returns False when it did not exist."""
        pass

    # ========================================================================
    # Typed accessors
    # ========================================================================

    def get_book(self, book_id: str) -> Optional[BookRecord]:
        return self.get(RecordKind.BOOK, book_id)

    def list_books(self, user_id: Optional[str] = None) -> list[BookRecord]:
        """List books, or only those linked to a user's shelf and wishlist."""
        if user_id is None:
            return self.list_kind(RecordKind.BOOK)

        book_ids = [ub.book_id for ub in self.list_user_books(user_id) if ub.book_id]
        book_ids += [item.book_id for item in self.list_wishlist_items(user_id)]

        books = []
        seen = set()
        for book_id in book_ids:
            if book_id in seen:
                continue
            seen.add(book_id)
            book = self.get_book(book_id)
            if book is not None:
                books.append(book)
        return books

    def list_user_books(self, user_id: str) -> list[UserBookRecord]:
        return self.list_kind(RecordKind.USER_BOOK, user_id)

    def list_reading_sessions(self, user_id: str) -> list[ReadingSessionRecord]:
        return self.list_kind(RecordKind.READING_SESSION, user_id)

    def list_wishlist_items(self, user_id: str) -> list[WishlistItemRecord]:
        return self.list_kind(RecordKind.WISHLIST_ITEM, user_id)

    def list_collections(self, user_id: str) -> list[CollectionRecord]:
        return sorted(
            self.list_kind(RecordKind.COLLECTION, user_id),
            key=lambda c: c.sort_order,
        )

    def get_user_profile(self, user_id: str) -> Optional[UserProfileRecord]:
        return self.get(RecordKind.PROFILE, user_id)

    def save_user_profile(self, profile: UserProfileRecord) -> None:
        self.put(RecordKind.PROFILE, profile, profile.id)

    def upsert_book(self, book: BookRecord) -> None:
        self.put(RecordKind.BOOK, book, None)

    def upsert_user_book(self, user_book: UserBookRecord) -> None:
        self.put(RecordKind.USER_BOOK, user_book, user_book.user_id)

    def add_reading_session(self, session: ReadingSessionRecord) -> None:
        """Store a session under the owner of its user book."""
        user_book = self.get(RecordKind.USER_BOOK, session.user_book_id)
        owner_id = user_book.user_id if user_book is not None else None
        self.put(RecordKind.READING_SESSION, session, owner_id)

    def upsert_wishlist_item(self, item: WishlistItemRecord) -> None:
        self.put(RecordKind.WISHLIST_ITEM, item, item.user_id)

    def upsert_collection(self, collection: CollectionRecord) -> None:
        self.put(RecordKind.COLLECTION, collection, collection.user_id)

    def save(self, record: RecordModel) -> RecordKind:
        """Store any record, deriving its kind and owner."""
        kind = RecordKind.of(record)
        if kind == RecordKind.READING_SESSION:
            self.add_reading_session(record)
        elif kind == RecordKind.BOOK:
            self.upsert_book(record)
        elif kind == RecordKind.PROFILE:
            self.save_user_profile(record)
        else:
            self.put(kind, record, record.user_id)
        return kind
