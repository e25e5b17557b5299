"""Duplicate detection by exact keys and fuzzy similarity."""

from .detector import DuplicateDetector, DuplicateMatch, MatchMethod, book_view
from .similarity import levenshtein, normalize, string_similarity

__all__ = [
    "DuplicateDetector",
    "DuplicateMatch",
    "MatchMethod",
    "book_view",
    "levenshtein",
    "normalize",
    "string_similarity",
]
