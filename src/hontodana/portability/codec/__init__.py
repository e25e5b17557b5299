"""Format codecs: JSON, generic CSV and Goodreads CSV."""

from typing import Iterator, Optional, Union

from ..records import ExportData, ExportMetadata
from .base import BaseCodec, ImportFormat, ParseResult, RowResult, Source
from .csv_codec import CSVCodec, FieldMapping
from .detect import detect_format
from .goodreads import GoodreadsCodec
from .json_codec import JSONCodec
from .tokenizer import escape_field, iter_rows, tokenize_row

CODECS: dict[ImportFormat, type[BaseCodec]] = {
    ImportFormat.JSON: JSONCodec,
    ImportFormat.CSV: CSVCodec,
    ImportFormat.GOODREADS: GoodreadsCodec,
}


def get_codec(fmt: Union[ImportFormat, str], user_id: str = "") -> BaseCodec:
    """Get the codec for a format.

    Raises:
        ValueError: If the format is not supported
    """
    fmt = ImportFormat(fmt)
    codec_class = CODECS[fmt]
    if codec_class is JSONCodec:
        return codec_class()
    return codec_class(user_id=user_id)


def parse(data: Source, fmt: Union[ImportFormat, str], user_id: Optional[str] = None) -> ParseResult:
    """Parse raw input into canonical records."""
    return get_codec(fmt, user_id or "").parse(data)


def serialize(
    bundle: ExportData,
    metadata: Optional[ExportMetadata],
    fmt: Union[ImportFormat, str],
) -> bytes:
    """Serialize canonical records into a format."""
    return get_codec(fmt).serialize(bundle, metadata)


def iter_csv_records(
    data: Source,
    fmt: Union[ImportFormat, str] = ImportFormat.CSV,
    user_id: str = "",
) -> Iterator[RowResult]:
    """Stream rows of a CSV-family file one at a time."""
    codec = get_codec(fmt, user_id)
    if not isinstance(codec, CSVCodec):
        raise ValueError(f"{fmt} is not a CSV-family format")
    return codec.iter_records(data)


__all__ = [
    "BaseCodec",
    "CSVCodec",
    "CODECS",
    "FieldMapping",
    "GoodreadsCodec",
    "ImportFormat",
    "JSONCodec",
    "ParseResult",
    "RowResult",
    "Source",
    "detect_format",
    "escape_field",
    "get_codec",
    "iter_csv_records",
    "iter_rows",
    "parse",
    "serialize",
    "tokenize_row",
]
