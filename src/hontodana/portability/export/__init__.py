"""Export of a user's records."""

from .service import DateRange, ExportOptions, ExportResult, ExportService, export_filename

__all__ = [
    "DateRange",
    "ExportOptions",
    "ExportResult",
    "ExportService",
    "export_filename",
]
