"""Base codec functionality.

Provides common infrastructure for all format codecs.
"""

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import IO, Optional, Union

from ..errors import ErrorKind, PortabilityError
from ..records import BookRecord, ExportData, ExportMetadata, UserBookRecord

# Raw input accepted by the codecs
Source = Union[bytes, str, IO[bytes]]


class ImportFormat(str, Enum):
    """Supported interchange formats."""

    JSON = "json"
    CSV = "csv"
    GOODREADS = "goodreads"


@dataclass
class ParseResult:
    """Result of parsing a byte stream into canonical records."""

    format: ImportFormat
    bundle: ExportData = field(default_factory=ExportData)
    errors: list[PortabilityError] = field(default_factory=list)
    fatal: Optional[PortabilityError] = None
    lines: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.fatal is None


@dataclass
class RowResult:
    """One CSV-family row: the records it produced, or the error it raised."""

    line: int
    book: Optional[BookRecord] = None
    user_book: Optional[UserBookRecord] = None
    error: Optional[PortabilityError] = None

    @property
    def is_fatal(self) -> bool:
        return self.error is not None and self.error.kind == ErrorKind.PARSE_ERROR


class BaseCodec(ABC):
    """Base class for all format codecs."""

    format: ImportFormat

    @abstractmethod
    def parse(self, data: Source) -> ParseResult:
        """Parse raw input into canonical records.

        Args:
            data: Bytes, text, or a binary file object

        Returns:
            ParseResult with records, record-level errors, and any fatal error
        """
        pass

    @abstractmethod
    def serialize(self, bundle: ExportData, metadata: Optional[ExportMetadata] = None) -> bytes:
        """Serialize canonical records.

        Args:
            bundle: Records to write
            metadata: Export metadata (recomputed before writing)

        Returns:
            Encoded payload
        """
        pass


def open_text(data: Source) -> IO[str]:
    """Wrap raw input as a text stream, dropping a UTF-8 BOM.

    Line endings are left untranslated so quoted CR/LF survive tokenizing.
    """
    if isinstance(data, str):
        return io.StringIO(data, newline="")
    if isinstance(data, (bytes, bytearray)):
        data = io.BytesIO(bytes(data))
    return io.TextIOWrapper(data, encoding="utf-8-sig", newline="")


def read_all(data: Source) -> str:
    """Read raw input fully as text."""
    if isinstance(data, str):
        return data.lstrip("\ufeff")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8-sig")
    return data.read().decode("utf-8-sig")


# Date formats seen in exports from other services
DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%Y-%m-%dT%H:%M:%S",
]


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a date in any common format, or None."""
    if not value:
        return None

    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_optional_int(value: Optional[str]) -> Optional[int]:
    """Parse integer value; ratings like "4.5" are truncated.

    Raises:
        ValueError: If the value is present but not numeric
    """
    if value is None or not value.strip():
        return None
    return int(float(value.strip()))


def split_multi(value: Optional[str], separator: str = ";") -> list[str]:
    """Split a multi-valued cell."""
    if not value:
        return []
    return [part.strip() for part in value.split(separator) if part.strip()]


def supplied(**values) -> dict:
    """Keep only values the input actually carried.

    Records built from these kwargs leave unmapped columns out of
    ``model_fields_set``, so a merge never mistakes a default for data.
    """
    return {
        name: value
        for name, value in values.items()
        if value is not None and value != "" and value != []
    }
