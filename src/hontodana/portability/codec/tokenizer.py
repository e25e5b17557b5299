"""Quote-aware CSV tokenizer.

A small finite state machine that splits CSV text into rows of fields:

- a quote at the start of a field opens a quoted field
- inside a quoted field, a doubled quote is a literal quote
- commas and line breaks inside quotes are data, not separators

Rows are produced one at a time from a text stream so a quoted field may
span physical lines while memory stays bounded to the current row.
"""

import io
from dataclasses import dataclass
from enum import Enum
from typing import IO, Iterable, Iterator, Union

QUOTE = '"'
SEPARATOR = ","


class _State(Enum):
    FIELD_START = "field_start"
    UNQUOTED = "unquoted"
    QUOTED = "quoted"
    QUOTE_IN_QUOTED = "quote_in_quoted"  # saw a quote inside a quoted field


class UnterminatedQuoteError(ValueError):
    """Input ended inside a quoted field."""

    def __init__(self, line: int):
        super().__init__(f"Unterminated quoted field starting on line {line}")
        self.line = line


@dataclass
class CsvRow:
    """A tokenized row and the 1-based physical line it starts on."""

    line: int
    fields: list[str]

    def is_blank(self) -> bool:
        return all(not field.strip() for field in self.fields)


def tokenize_row(text: str) -> list[str]:
    """Tokenize a single CSV row held in memory."""
    rows = list(iter_rows(io.StringIO(text)))
    if not rows:
        return [""]
    return rows[0].fields


def iter_rows(stream: Union[IO[str], Iterable[str]]) -> Iterator[CsvRow]:
    """Yield rows from a text stream, one record at a time.

    Args:
        stream: Text stream or iterable of lines (line endings preserved)

    Raises:
        UnterminatedQuoteError: If input ends inside a quoted field
    """
    state = _State.FIELD_START
    fields: list[str] = []
    current: list[str] = []
    line_no = 0
    row_start = 1

    for physical_line in stream:
        line_no += 1
        if state is _State.FIELD_START and not fields and not current:
            row_start = line_no

        for char in physical_line:
            if state is _State.QUOTED:
                if char == QUOTE:
                    state = _State.QUOTE_IN_QUOTED
                else:
                    current.append(char)
                continue

            if state is _State.QUOTE_IN_QUOTED:
                if char == QUOTE:
                    # Escaped literal quote
                    current.append(QUOTE)
                    state = _State.QUOTED
                    continue
                # Quote closed the field; fall through to handle char
                state = _State.UNQUOTED

            if char == SEPARATOR:
                fields.append("".join(current))
                current = []
                state = _State.FIELD_START
            elif char == "\n":
                fields.append("".join(current))
                yield CsvRow(line=row_start, fields=fields)
                fields, current = [], []
                state = _State.FIELD_START
                row_start = line_no + 1
            elif char == "\r":
                # Dropped outside quotes; "\r\n" ends the row on "\n"
                continue
            elif char == QUOTE and state is _State.FIELD_START:
                state = _State.QUOTED
            else:
                current.append(char)
                state = _State.UNQUOTED

    if state is _State.QUOTED:
        raise UnterminatedQuoteError(row_start)

    if fields or current or state is not _State.FIELD_START:
        fields.append("".join(current))
        yield CsvRow(line=row_start, fields=fields)


def escape_field(value: object) -> str:
    """Quote a field when it contains a separator, quote or line break."""
    if value is None:
        return ""
    text = str(value)
    if any(c in text for c in (SEPARATOR, QUOTE, "\n", "\r")):
        return QUOTE + text.replace(QUOTE, QUOTE + QUOTE) + QUOTE
    return text


def format_row(values: Iterable[object]) -> str:
    """Format one CSV row, without a line terminator."""
    return SEPARATOR.join(escape_field(v) for v in values)
