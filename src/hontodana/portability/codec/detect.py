"""Format discovery from filename and content."""

from pathlib import PurePath
from typing import Optional, Union

from ..errors import PortabilityError, file_format_error
from .base import ImportFormat

SUPPORTED_EXTENSIONS = [".json", ".csv"]

# Header columns only a Goodreads export carries
GOODREADS_MARKERS = ("Exclusive Shelf", "My Rating", "Bookshelves")

# Bytes inspected when sniffing content
SNIFF_BYTES = 4096


def _head(content: Union[bytes, str, None]) -> str:
    if content is None:
        return ""
    if isinstance(content, (bytes, bytearray)):
        return bytes(content[:SNIFF_BYTES]).decode("utf-8-sig", errors="ignore")
    return content[:SNIFF_BYTES].lstrip("\ufeff")


def looks_like_csv(text: str) -> bool:
    """CSV-family content has a comma and at least two lines."""
    return "," in text and len(text.strip().splitlines()) >= 2


def looks_like_goodreads(text: str) -> bool:
    first_line = text.split("\n", 1)[0]
    return any(marker in first_line for marker in GOODREADS_MARKERS)


def detect_format(
    filename: Optional[str],
    content: Union[bytes, str, None] = None,
) -> tuple[Optional[ImportFormat], Optional[PortabilityError]]:
    """Work out the import format.

    Args:
        filename: Uploaded file name, if known
        content: Leading bytes of the upload

    Returns:
        Tuple of (format, error); exactly one is None
    """
    text = _head(content)
    suffix = PurePath(filename).suffix.lower() if filename else ""

    if suffix == ".json":
        return ImportFormat.JSON, None

    if suffix == ".csv":
        if "goodreads" in PurePath(filename).name.lower() or looks_like_goodreads(text):
            return ImportFormat.GOODREADS, None
        return ImportFormat.CSV, None

    # No usable extension: sniff the content
    if text.lstrip().startswith("{"):
        return ImportFormat.JSON, None
    if looks_like_csv(text):
        if looks_like_goodreads(text):
            return ImportFormat.GOODREADS, None
        return ImportFormat.CSV, None

    return None, file_format_error(filename or "<upload>", SUPPORTED_EXTENSIONS)
