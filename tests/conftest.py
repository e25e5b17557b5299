"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the portability engine, including
record stores, sample records, and ready-made import and export services.
"""

import os
from datetime import date
from pathlib import Path
from typing import Generator

import pytest

from hontodana.portability.config import Config, reset_config
from hontodana.portability.dedupe import DuplicateDetector
from hontodana.portability.export import ExportService
from hontodana.portability.imports import ImportService
from hontodana.portability.jobs import ImportJobManager
from hontodana.portability.records import (
    BookRecord,
    CollectionRecord,
    ReadingSessionRecord,
    ReadingStatus,
    UserBookRecord,
    UserProfileRecord,
    WishlistItemRecord,
)
from hontodana.portability.store import Database, InMemoryRecordStore, SQLRecordStore, reset_db

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Default configuration with the database under a temp directory."""
    return Config(
        db_path=tmp_path / "portability.db",
        max_upload_bytes=100 * 1024 * 1024,
        duplicate_threshold=0.8,
        title_weight=0.7,
        author_weight=0.3,
        exports_per_hour=10,
        exports_per_day=50,
        imports_per_hour=5,
        imports_per_day=20,
        log_level="WARNING",
        log_json=False,
    )


@pytest.fixture(autouse=True)
def clean_globals() -> Generator[None, None, None]:
    """Reset global config and database between tests."""
    reset_config()
    reset_db()
    yield
    reset_config()
    reset_db()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryRecordStore:
    """In-memory record store with two registered users."""
    return InMemoryRecordStore(users=[USER_ID, OTHER_USER_ID])


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    database = Database(str(tmp_path / "test.db"))
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def sql_store(db: Database) -> SQLRecordStore:
    """SQLite-backed record store with two registered users."""
    sql_store = SQLRecordStore(db)
    sql_store.add_user(USER_ID)
    sql_store.add_user(OTHER_USER_ID)
    return sql_store


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def manager() -> ImportJobManager:
    return ImportJobManager()


@pytest.fixture
def detector() -> DuplicateDetector:
    return DuplicateDetector(title_weight=0.7, author_weight=0.3, threshold=0.8)


@pytest.fixture
def import_service(store, manager, config) -> ImportService:
    return ImportService(store, manager, config=config)


@pytest.fixture
def export_service(store) -> ExportService:
    return ExportService(store)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_book() -> BookRecord:
    """A sample book with an ISBN-13."""
    return BookRecord(
        id="book-1",
        title="Project Hail Mary",
        authors=["Andy Weir"],
        isbn13="9780593135204",
        publisher="Ballantine Books",
        page_count=496,
    )


@pytest.fixture
def sample_user_book(sample_book: BookRecord) -> UserBookRecord:
    return UserBookRecord(
        id="userbook-1",
        user_id=USER_ID,
        book_id=sample_book.id,
        status=ReadingStatus.READING,
        current_page=100,
        start_date=date(2024, 1, 1),
        rating=4,
        review="Great book!",
        tags=["fiction", "space"],
    )


@pytest.fixture
def sample_session(sample_user_book: UserBookRecord) -> ReadingSessionRecord:
    return ReadingSessionRecord(
        id="session-1",
        user_book_id=sample_user_book.id,
        start_page=81,
        end_page=100,
        session_date=date(2024, 1, 15),
        duration_minutes=60,
    )


@pytest.fixture
def populated_store(
    store: InMemoryRecordStore,
    sample_book: BookRecord,
    sample_user_book: UserBookRecord,
    sample_session: ReadingSessionRecord,
) -> InMemoryRecordStore:
    """Store holding one shelf entry with a session, a wishlist item and a collection."""
    wish = BookRecord(id="book-2", title="The Martian", authors=["Andy Weir"])
    store.upsert_book(sample_book)
    store.upsert_book(wish)
    store.upsert_user_book(sample_user_book)
    store.add_reading_session(sample_session)
    store.upsert_wishlist_item(
        WishlistItemRecord(id="wishlist-1", user_id=USER_ID, book_id=wish.id, reason="Recommended")
    )
    store.upsert_collection(
        CollectionRecord(id="collection-1", user_id=USER_ID, name="Favorites", books=[sample_user_book.id])
    )
    store.save_user_profile(UserProfileRecord(id=USER_ID, name="Test User"))
    return store


@pytest.fixture
def goodreads_csv() -> str:
    """A small Goodreads library export."""
    return (
        "Book Id,Title,Author,Additional Authors,ISBN,ISBN13,My Rating,Publisher,"
        "Binding,Number of Pages,Date Read,Date Added,Bookshelves,Exclusive Shelf,"
        "My Review,Private Notes,Read Count\n"
        '1,"The Hobbit","Tolkien, J.R.R.",,="0547928211",="9780547928210",5,'
        "Mariner Books,Paperback,300,2024/01/10,2023/12/01,fantasy,read,,,1\n"
        '2,"Dune","Herbert, Frank",,,,0,Ace,Kindle Edition,612,,2024/02/01,'
        "\"to-read, sci-fi\",to-read,,,0\n"
    )


@pytest.fixture(autouse=True)
def no_env_leaks(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real HONTODANA_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("HONTODANA_"):
            monkeypatch.delenv(key, raising=False)
