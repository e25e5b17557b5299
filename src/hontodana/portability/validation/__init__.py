"""Per-record and cross-record validation."""

from .validator import errors_from_pydantic, is_valid_url, validate, validate_bundle

__all__ = [
    "errors_from_pydantic",
    "is_valid_url",
    "validate",
    "validate_bundle",
]
