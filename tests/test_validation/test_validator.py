"""Tests for record and bundle validation."""

from datetime import date

import pytest

from hontodana.portability.errors import ErrorKind
from hontodana.portability.records import (
    BookRecord,
    CollectionRecord,
    ExportData,
    ReadingSessionRecord,
    UserBookRecord,
    WishlistItemRecord,
)
from hontodana.portability.validation import is_valid_url, validate, validate_bundle


def fields_of(errors) -> list[str]:
    return [e.field for e in errors]


class TestBookValidation:
    """Tests for book records."""

    def test_valid_book(self, sample_book):
        assert validate(sample_book) == []

    def test_blank_title(self):
        errors = validate(BookRecord(title="   "), line=7)

        assert fields_of(errors) == ["title"]
        assert errors[0].kind == ErrorKind.VALIDATION_ERROR
        assert errors[0].line == 7
        assert errors[0].message == "Validation failed for field 'title': Title is required (line 7)"

    def test_title_too_long(self):
        errors = validate(BookRecord(title="x" * 501))
        assert fields_of(errors) == ["title"]

    def test_title_at_limit(self):
        assert validate(BookRecord(title="x" * 500)) == []

    def test_too_many_authors(self):
        errors = validate(BookRecord(title="T", authors=[f"A{i}" for i in range(11)]))
        assert fields_of(errors) == ["authors"]

    def test_author_too_long(self):
        errors = validate(BookRecord(title="T", authors=["a" * 501]))
        assert fields_of(errors) == ["authors"]

    def test_too_many_categories(self):
        errors = validate(BookRecord(title="T", categories=[str(i) for i in range(21)]))
        assert fields_of(errors) == ["categories"]

    def test_description_too_long(self):
        errors = validate(BookRecord(title="T", description="d" * 10001))
        assert fields_of(errors) == ["description"]

    @pytest.mark.parametrize("isbn", ["123456789X", "0547928211"])
    def test_valid_isbn10(self, isbn):
        assert validate(BookRecord(title="T", isbn10=isbn)) == []

    @pytest.mark.parametrize("isbn", ["12345", "12345678XX", "978-0547928"])
    def test_invalid_isbn10(self, isbn):
        assert fields_of(validate(BookRecord(title="T", isbn10=isbn))) == ["isbn10"]

    @pytest.mark.parametrize("isbn", ["978054792821", "978-0-547-92821-0", "97805479282100"])
    def test_invalid_isbn13(self, isbn):
        errors = validate(BookRecord(title="T", isbn13=isbn))
        assert fields_of(errors) == ["isbn13"]
        assert "suggestion" in errors[0].details

    @pytest.mark.parametrize("pages", [0, 10001, -5])
    def test_page_count_out_of_range(self, pages):
        assert fields_of(validate(BookRecord(title="T", page_count=pages))) == ["pageCount"]

    @pytest.mark.parametrize("pages", [1, 10000])
    def test_page_count_bounds(self, pages):
        assert validate(BookRecord(title="T", page_count=pages)) == []

    def test_invalid_urls(self):
        book = BookRecord(
            title="T",
            thumbnail_url="not a url",
            preview_link="ftp://example.com/x",
            info_link="https://example.com/info",
        )
        assert fields_of(validate(book)) == ["thumbnailUrl", "previewLink"]

    @pytest.mark.parametrize("language", ["j", "abcdefghijk", ""])
    def test_language_length(self, language):
        assert fields_of(validate(BookRecord(title="T", language=language))) == ["language"]

    def test_average_rating_range(self):
        assert fields_of(validate(BookRecord(title="T", average_rating=5.5))) == ["averageRating"]
        assert validate(BookRecord(title="T", average_rating=0)) == []

    def test_negative_ratings_count(self):
        assert fields_of(validate(BookRecord(title="T", ratings_count=-1))) == ["ratingsCount"]

    def test_reports_every_problem(self):
        book = BookRecord(title="", isbn13="bad", page_count=0)
        assert fields_of(validate(book)) == ["title", "isbn13", "pageCount"]

    def test_errors_name_the_record(self):
        errors = validate(BookRecord(id="b-9", title=""))
        assert errors[0].details["recordType"] == "BookRecord"
        assert errors[0].details["recordId"] == "b-9"


class TestOtherRecords:
    """Tests for user books, sessions, wishlist items and collections."""

    def test_user_book_rating_range(self):
        errors = validate(UserBookRecord(user_id="u", rating=6))
        assert fields_of(errors) == ["rating"]

    def test_user_book_requires_user(self):
        assert fields_of(validate(UserBookRecord(user_id=" "))) == ["userId"]

    def test_user_book_negative_page(self):
        assert fields_of(validate(UserBookRecord(user_id="u", current_page=-1))) == ["currentPage"]

    def test_user_book_finish_before_start(self):
        user_book = UserBookRecord(
            user_id="u", start_date=date(2024, 2, 1), finish_date=date(2024, 1, 1)
        )
        assert fields_of(validate(user_book)) == ["finishDate"]

    def test_session_pages_backwards(self):
        session = ReadingSessionRecord(
            user_book_id="ub", start_page=50, end_page=40, session_date=date(2024, 1, 1)
        )
        assert fields_of(validate(session)) == ["endPage"]

    def test_session_negative_duration(self):
        session = ReadingSessionRecord(
            user_book_id="ub",
            start_page=1,
            end_page=10,
            session_date=date(2024, 1, 1),
            duration_minutes=-1,
        )
        assert fields_of(validate(session)) == ["durationMinutes"]

    def test_wishlist_negative_price(self):
        item = WishlistItemRecord(user_id="u", book_id="b", price_alert=-1.0)
        assert fields_of(validate(item)) == ["priceAlert"]

    def test_collection_name(self):
        assert fields_of(validate(CollectionRecord(user_id="u", name=""))) == ["name"]
        assert fields_of(validate(CollectionRecord(user_id="u", name="n" * 101))) == ["name"]

    def test_collection_sort_order(self):
        errors = validate(CollectionRecord(user_id="u", name="Shelf", sort_order=-1))
        assert fields_of(errors) == ["sortOrder"]

    def test_unsupported_record(self):
        assert fields_of(validate("not a record")) == ["record"]


class TestBundleValidation:
    """Tests for cross-record rules."""

    def _session(self, session_id, user_book_id, day, start, end):
        return ReadingSessionRecord(
            id=session_id,
            user_book_id=user_book_id,
            start_page=start,
            end_page=end,
            session_date=date(2024, 1, day),
        )

    def test_valid_bundle(self):
        bundle = ExportData(
            user_books=[UserBookRecord(id="ub", user_id="u")],
            reading_sessions=[
                self._session("s1", "ub", 1, 1, 20),
                self._session("s2", "ub", 2, 21, 40),
            ],
        )
        assert validate_bundle(bundle) == []

    def test_session_for_unknown_user_book(self):
        bundle = ExportData(reading_sessions=[self._session("s1", "missing", 1, 1, 10)])
        errors = validate_bundle(bundle, {"s1": 4})

        assert fields_of(errors) == ["userBookId"]
        assert errors[0].line == 4
        assert errors[0].details["recordId"] == "s1"

    def test_progress_moving_backwards(self):
        """Sessions are ordered by date, not by position in the file."""
        bundle = ExportData(
            user_books=[UserBookRecord(id="ub", user_id="u")],
            reading_sessions=[
                self._session("late", "ub", 5, 10, 30),
                self._session("early", "ub", 1, 1, 50),
            ],
        )
        errors = validate_bundle(bundle)

        assert fields_of(errors) == ["endPage"]
        assert errors[0].details["recordId"] == "late"


class TestIsValidUrl:
    """Tests for the URL helper."""

    def test_empty_is_valid(self):
        assert is_valid_url(None)
        assert is_valid_url("")

    def test_http_and_https(self):
        assert is_valid_url("http://example.com")
        assert is_valid_url("https://books.google.com/books?id=abc")

    def test_garbage(self):
        assert not is_valid_url("example")
