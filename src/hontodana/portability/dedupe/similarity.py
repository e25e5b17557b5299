"""String similarity for duplicate detection."""

from rapidfuzz.distance import Levenshtein

# Floor applied when one normalized string contains the other
CONTAINMENT_SCORE = 0.8


def normalize(s: str) -> str:
    """Normalize string for comparison: case-fold and collapse whitespace."""
    if not s:
        return ""
    return " ".join(s.casefold().split())


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def string_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] based on normalized edit distance.

    Two empty strings are identical (1.0). When both are non-empty and one
    contains the other, the score is at least ``CONTAINMENT_SCORE``.
    """
    a, b = normalize(a), normalize(b)
    if a == b:
        return 1.0

    max_length = max(len(a), len(b))
    score = max(0.0, 1.0 - levenshtein(a, b) / max_length)

    if a and b and (a in b or b in a):
        score = max(score, CONTAINMENT_SCORE)

    return score
