"""Duplicate detection for incoming records.

Identifies duplicates using:
1. Exact identity keys (ISBN-13, provider id, record id)
2. Weighted fuzzy title + primary author similarity (fallback)
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from ..records import BookRecord, UserBookRecord
from .similarity import normalize, string_similarity

if TYPE_CHECKING:
    from ..config import Config


class MatchMethod(str, Enum):
    """How a duplicate was found."""

    EXACT_KEY = "exact_key"
    FUZZY = "fuzzy"


@dataclass
class DuplicateMatch:
    """A likely duplicate pair between an incoming and an existing record."""

    incoming: BookRecord
    existing: BookRecord
    score: float  # 0.0 - 1.0
    method: MatchMethod
    matched_field: str
    existing_user_book: Optional[UserBookRecord] = None

    def __repr__(self) -> str:
        return (
            f"DuplicateMatch({self.incoming.title!r} <-> {self.existing.title!r}, "
            f"method={self.method.value}, score={self.score:.2f})"
        )


def book_view(user_book: UserBookRecord, book: Optional[BookRecord]) -> BookRecord:
    """The book to compare for a user book; built from its own fields when unlinked."""
    if book is not None:
        return book
    return BookRecord(
        id=user_book.book_id or user_book.id,
        title=user_book.title or "",
        authors=list(user_book.authors),
    )


class DuplicateDetector:
    """Scores incoming records against a user's existing records."""

    def __init__(
        self,
        title_weight: float = 0.7,
        author_weight: float = 0.3,
        threshold: float = 0.8,
    ):
        """Initialize detector.

        Args:
            title_weight: Weight of title similarity in the fuzzy score
            author_weight: Weight of primary author similarity
            threshold: Minimum fuzzy score for a likely duplicate
        """
        self.title_weight = title_weight
        self.author_weight = author_weight
        self.threshold = threshold

    @classmethod
    def from_config(cls, config: "Config") -> "DuplicateDetector":
        return cls(
            title_weight=config.title_weight,
            author_weight=config.author_weight,
            threshold=config.duplicate_threshold,
        )

    def exact_match(self, incoming: BookRecord, existing: BookRecord) -> Optional[str]:
        """Return the matching identity key, if any."""
        if incoming.isbn13 and incoming.isbn13 == existing.isbn13:
            return f"isbn13={incoming.isbn13}"
        if incoming.google_books_id and incoming.google_books_id == existing.google_books_id:
            return f"google_books_id={incoming.google_books_id}"
        return None

    def similarity(self, incoming: BookRecord, existing: BookRecord) -> Optional[float]:
        """Weighted title/author similarity, or None when titles are missing.

        A missing primary author compares as an empty string: against a named
        author it scores 0, and two missing authors score 1.
        """
        if not normalize(incoming.title) or not normalize(existing.title):
            return None

        title_score = string_similarity(incoming.title, existing.title)
        author_score = string_similarity(incoming.primary_author, existing.primary_author)
        return self.title_weight * title_score + self.author_weight * author_score

    def match(self, incoming: BookRecord, existing: BookRecord) -> Optional[DuplicateMatch]:
        """Compare one pair. Exact keys short-circuit fuzzy scoring."""
        key = self.exact_match(incoming, existing)
        if key:
            return DuplicateMatch(
                incoming=incoming,
                existing=existing,
                score=1.0,
                method=MatchMethod.EXACT_KEY,
                matched_field=key,
            )

        score = self.similarity(incoming, existing)
        if score is None or score < self.threshold:
            return None

        return DuplicateMatch(
            incoming=incoming,
            existing=existing,
            score=score,
            method=MatchMethod.FUZZY,
            matched_field="title+author",
        )

    def find_duplicates(
        self,
        candidate: BookRecord,
        existing: Iterable[BookRecord],
    ) -> list[DuplicateMatch]:
        """Find likely duplicates of a candidate.

        Args:
            candidate: Incoming book
            existing: Books already owned by the user

        Returns:
            Matches sorted by descending score
        """
        matches = [m for m in (self.match(candidate, book) for book in existing) if m]
        return sorted(matches, key=lambda m: m.score, reverse=True)

    def best_match(
        self,
        candidate: BookRecord,
        existing: Iterable[BookRecord],
    ) -> Optional[DuplicateMatch]:
        matches = self.find_duplicates(candidate, existing)
        return matches[0] if matches else None

    def find_user_book_duplicates(
        self,
        user_book: UserBookRecord,
        book: Optional[BookRecord],
        existing_pairs: Iterable[tuple[UserBookRecord, Optional[BookRecord]]],
    ) -> list[DuplicateMatch]:
        """Find existing user books that duplicate an incoming one.

        Identical user book ids, or a shared book id, are exact matches;
        otherwise the linked books are compared.

        Args:
            user_book: Incoming user book
            book: Its incoming book, if any
            existing_pairs: The user's existing (user book, book) pairs

        Returns:
            Matches sorted by descending score
        """
        incoming_book = book_view(user_book, book)
        matches = []

        for existing_user_book, existing_book in existing_pairs:
            existing_view = book_view(existing_user_book, existing_book)

            if existing_user_book.id == user_book.id:
                match = DuplicateMatch(
                    incoming=incoming_book,
                    existing=existing_view,
                    score=1.0,
                    method=MatchMethod.EXACT_KEY,
                    matched_field=f"id={user_book.id}",
                )
            elif user_book.book_id and user_book.book_id == existing_user_book.book_id:
                match = DuplicateMatch(
                    incoming=incoming_book,
                    existing=existing_view,
                    score=1.0,
                    method=MatchMethod.EXACT_KEY,
                    matched_field=f"book_id={user_book.book_id}",
                )
            else:
                match = self.match(incoming_book, existing_view)

            if match:
                match.existing_user_book = existing_user_book
                matches.append(match)

        return sorted(matches, key=lambda m: m.score, reverse=True)
