"""Canonical record model shared by every codec and service."""

from .schemas import (
    EXPORT_FORMAT,
    EXPORT_VERSION,
    BookRecord,
    BookType,
    CollectionRecord,
    DataType,
    ExportData,
    ExportMetadata,
    ReadingSessionRecord,
    ReadingStatus,
    RecordModel,
    UserBookRecord,
    UserProfileRecord,
    WishlistItemRecord,
    WishlistPriority,
    generate_id,
    normalize_sort_order,
)

__all__ = [
    "EXPORT_FORMAT",
    "EXPORT_VERSION",
    "BookRecord",
    "BookType",
    "CollectionRecord",
    "DataType",
    "ExportData",
    "ExportMetadata",
    "ReadingSessionRecord",
    "ReadingStatus",
    "RecordModel",
    "UserBookRecord",
    "UserProfileRecord",
    "WishlistItemRecord",
    "WishlistPriority",
    "generate_id",
    "normalize_sort_order",
]
