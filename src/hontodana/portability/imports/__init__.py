"""Two-phase import: preview, then a confirmed background job."""

from .base import (
    ImportOptions,
    ImportPreview,
    ImportResponse,
    ImportResult,
    estimate_seconds,
)
from .service import ImportService

__all__ = [
    "ImportOptions",
    "ImportPreview",
    "ImportResponse",
    "ImportResult",
    "ImportService",
    "estimate_seconds",
]
