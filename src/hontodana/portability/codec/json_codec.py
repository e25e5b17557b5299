"""Native JSON codec.

The JSON interchange format is the full-fidelity one: every record type
round-trips. Each record is validated on its own so one malformed entry
becomes a record-level error rather than failing the whole file.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import parse_error
from ..records import (
    BookRecord,
    CollectionRecord,
    ExportData,
    ExportMetadata,
    ReadingSessionRecord,
    UserBookRecord,
    UserProfileRecord,
    WishlistItemRecord,
)
from ..validation import errors_from_pydantic
from .base import BaseCodec, ImportFormat, ParseResult, Source, read_all

# Wire key -> (bundle attribute, record model), in output order
SECTIONS: list[tuple[str, str, type[BaseModel]]] = [
    ("books", "books", BookRecord),
    ("userBooks", "user_books", UserBookRecord),
    ("readingSessions", "reading_sessions", ReadingSessionRecord),
    ("wishlistItems", "wishlist_items", WishlistItemRecord),
    ("collections", "collections", CollectionRecord),
]


class JSONCodec(BaseCodec):
    """Parses and writes the native JSON export format."""

    format = ImportFormat.JSON

    def parse(self, data: Source) -> ParseResult:
        """Parse a JSON export.

        Malformed JSON, a non-object document, or a section that is not a
        list is fatal. A record that fails schema validation is reported
        with its 1-based position in its section as the line.
        """
        result = ParseResult(format=self.format)

        try:
            document = json.loads(read_all(data))
        except json.JSONDecodeError as e:
            result.fatal = parse_error(self.format.value, e.msg, line=e.lineno, column=e.colno)
            return result
        except UnicodeDecodeError:
            result.fatal = parse_error(self.format.value, "File is not valid UTF-8 text")
            return result

        if not isinstance(document, dict):
            result.fatal = parse_error(self.format.value, "Top-level value must be an object")
            return result

        for key, attr, model in SECTIONS:
            entries = document.get(key)
            if entries is None:
                continue
            if not isinstance(entries, list):
                result.fatal = parse_error(self.format.value, f"'{key}' must be a list")
                result.bundle = ExportData()
                result.errors = []
                return result

            records = getattr(result.bundle, attr)
            for index, entry in enumerate(entries, start=1):
                try:
                    record = model.model_validate(entry)
                except PydanticValidationError as e:
                    result.errors.extend(errors_from_pydantic(e, line=index, record_type=model.__name__))
                    continue
                records.append(record)
                result.lines[record.id] = index

        result.bundle.metadata = self._parse_optional(
            document.get("metadata"), ExportMetadata, result
        )
        result.bundle.user_profile = self._parse_optional(
            document.get("userProfile"), UserProfileRecord, result
        )

        return result

    def _parse_optional(
        self, value: Any, model: type[BaseModel], result: ParseResult
    ) -> Optional[Any]:
        """Parse an informational section; failures only warn."""
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except PydanticValidationError:
            result.warnings.append(f"Ignored invalid {model.__name__} section")
            return None

    def serialize(self, bundle: ExportData, metadata: Optional[ExportMetadata] = None) -> bytes:
        """Write the bundle as pretty-printed UTF-8 JSON.

        ``totalRecords`` is always recomputed from the bundle.
        """
        metadata = metadata or bundle.metadata
        document: dict[str, Any] = {}

        if metadata is not None:
            metadata = metadata.model_copy(update={"total_records": bundle.record_count()})
            document["metadata"] = metadata.to_wire()
        if bundle.user_profile is not None:
            document["userProfile"] = bundle.user_profile.to_wire()

        for key, attr, _ in SECTIONS:
            document[key] = [record.to_wire() for record in getattr(bundle, attr)]

        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
