"""Tests for the record stores."""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from hontodana.portability.errors import StoreUnavailable
from hontodana.portability.records import (
    BookRecord,
    CollectionRecord,
    ReadingSessionRecord,
    UserBookRecord,
    UserProfileRecord,
    WishlistItemRecord,
)
from hontodana.portability.store import (
    Database,
    InMemoryRecordStore,
    RecordKind,
    SQLRecordStore,
    get_db,
    reset_db,
)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, store, sql_store):
    return store if request.param == "memory" else sql_store


class TestRecordStores:
    """Behaviour shared by every record store."""

    def test_user_exists(self, any_store):
        assert any_store.user_exists("user-1")
        assert not any_store.user_exists("nobody")

    def test_book_round_trip(self, any_store, sample_book):
        any_store.upsert_book(sample_book)
        assert any_store.get_book("book-1") == sample_book

    def test_upsert_replaces(self, any_store, sample_user_book):
        any_store.upsert_user_book(sample_user_book)
        any_store.upsert_user_book(sample_user_book.model_copy(update={"current_page": 200}))

        user_books = any_store.list_user_books("user-1")
        assert len(user_books) == 1
        assert user_books[0].current_page == 200

    def test_records_are_scoped_to_owner(self, any_store, sample_user_book):
        any_store.upsert_user_book(sample_user_book)
        any_store.upsert_user_book(UserBookRecord(id="ub-2", user_id="user-2"))

        assert [ub.id for ub in any_store.list_user_books("user-1")] == ["userbook-1"]
        assert [ub.id for ub in any_store.list_user_books("user-2")] == ["ub-2"]

    def test_insertion_order(self, any_store):
        for title in ("C", "A", "B"):
            any_store.upsert_book(BookRecord(id=f"id-{title}", title=title))
        assert [b.title for b in any_store.list_books()] == ["C", "A", "B"]

    def test_session_owner_follows_user_book(self, any_store, sample_user_book, sample_session):
        any_store.upsert_user_book(sample_user_book)
        any_store.add_reading_session(sample_session)

        assert any_store.list_reading_sessions("user-1") == [sample_session]
        assert any_store.list_reading_sessions("user-2") == []

    def test_collections_sorted(self, any_store):
        any_store.upsert_collection(CollectionRecord(id="c1", user_id="user-1", name="B", sort_order=1))
        any_store.upsert_collection(CollectionRecord(id="c0", user_id="user-1", name="A", sort_order=0))
        assert [c.id for c in any_store.list_collections("user-1")] == ["c0", "c1"]

    def test_user_books_list_linked_books(self, any_store, sample_book, sample_user_book):
        any_store.upsert_book(sample_book)
        any_store.upsert_book(BookRecord(id="book-2", title="The Martian"))
        any_store.upsert_book(BookRecord(id="book-3", title="Unowned"))
        any_store.upsert_user_book(sample_user_book)
        any_store.upsert_wishlist_item(
            WishlistItemRecord(id="w1", user_id="user-1", book_id="book-2")
        )

        assert [b.id for b in any_store.list_books("user-1")] == ["book-1", "book-2"]

    def test_delete(self, any_store, sample_book):
        any_store.upsert_book(sample_book)

        assert any_store.delete(RecordKind.BOOK, "book-1")
        assert not any_store.delete(RecordKind.BOOK, "book-1")
        assert any_store.get_book("book-1") is None

    def test_profile_registers_user(self, any_store):
        any_store.save_user_profile(UserProfileRecord(id="user-3", name="New"))

        assert any_store.user_exists("user-3")
        assert any_store.get_user_profile("user-3").name == "New"

    def test_save_derives_kind(self, any_store):
        item = WishlistItemRecord(id="w1", user_id="user-1", book_id="b")

        assert any_store.save(item) == RecordKind.WISHLIST_ITEM
        assert any_store.list_wishlist_items("user-1") == [item]

    def test_save_rejects_unknown_records(self, any_store):
        with pytest.raises(TypeError):
            any_store.save(object())


class TestInMemoryStore:
    def test_returns_copies(self, store, sample_user_book):
        store.upsert_user_book(sample_user_book)
        fetched = store.get(RecordKind.USER_BOOK, "userbook-1")
        fetched.current_page = 999

        assert store.get(RecordKind.USER_BOOK, "userbook-1").current_page == 100

    def test_fail_after_writes(self):
        store = InMemoryRecordStore(users=["user-1"], fail_after_writes=2)
        store.upsert_book(BookRecord(title="A"))
        store.upsert_book(BookRecord(title="B"))

        with pytest.raises(StoreUnavailable):
            store.upsert_book(BookRecord(title="C"))
        assert store.count(RecordKind.BOOK) == 2

    def test_add_user_with_profile(self):
        store = InMemoryRecordStore()
        store.add_user("user-9", name="Reader")
        assert store.get_user_profile("user-9").name == "Reader"


class TestSQLStore:
    def test_persists_across_connections(self, tmp_path, sample_session, sample_user_book):
        path = tmp_path / "persist.db"
        first = SQLRecordStore(Database(path))
        first.add_user("user-1")
        first.upsert_user_book(sample_user_book)
        first.add_reading_session(sample_session)
        first.db.dispose()

        second = SQLRecordStore(Database(path))
        sessions = second.list_reading_sessions("user-1")
        assert sessions[0].session_date == date(2024, 1, 15)
        assert sessions[0].pages_read == 20
        second.db.dispose()

    def test_in_memory_database(self):
        store = SQLRecordStore(Database(":memory:"))
        store.add_user("user-1")
        store.upsert_collection(CollectionRecord(user_id="user-1", name="Shelf"))
        assert store.list_collections("user-1")[0].name == "Shelf"

    def test_operational_error_becomes_store_unavailable(self, sql_store, monkeypatch):
        def broken_session():
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(sql_store.db, "get_session", broken_session)

        with pytest.raises(StoreUnavailable) as exc_info:
            sql_store.user_exists("user-1")
        assert exc_info.value.operation == "user_exists"

    def test_add_user_is_idempotent(self, sql_store):
        sql_store.add_user("user-1")
        assert sql_store.user_exists("user-1")

    def test_global_db_uses_config_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HONTODANA_DB_PATH", str(tmp_path / "global.db"))

        db = get_db()
        assert get_db() is db
        assert db.db_path == tmp_path / "global.db"

        reset_db()
        assert get_db() is not db


def test_reading_session_pages_read(sample_session):
    assert sample_session.pages_read == 20
    assert ReadingSessionRecord(
        user_book_id="ub", start_page=1, end_page=1, session_date=date(2024, 1, 1)
    ).pages_read == 1
