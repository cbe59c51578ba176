"""
CSV codec for the prompt file.

The persisted format has seven fixed columns (ID, Group, Subgroup, Title,
Prompt Content, Date Created, Date Modified). Fields are quoted only when they
contain a comma, a double quote or a line break, and quotes inside quoted
fields are doubled. Rows are written with CRLF; on read CRLF, LF and a bare CR
all terminate a row.

Decoding never raises: unusable rows are dropped and counted, and the header
is handed back so callers can decide whether the file needs reinitializing.
"""

from typing import Iterable, List, Sequence

from pydantic import BaseModel, Field

from .timing import timer
from .types import CsvRow, Record

CSV_HEADERS = ("ID", "Group", "Subgroup", "Title", "Prompt Content", "Date Created", "Date Modified")
ROW_SEPARATOR = "\r\n"

_NEEDS_QUOTING = (",", '"', "\r", "\n")


class ParseResult(BaseModel):
    """Raw positional rows plus whether the text ended inside a quoted field."""

    rows: List[List[str]] = Field(default_factory=list)
    unterminated: bool = False


class DecodeResult(BaseModel):
    """
    Result of decoding a whole file.

    Attributes:
        header: Fields of the first row (empty if the text was empty)
        rows: Typed data rows in file order
        skipped: Rows dropped as unusable (e.g. cut off by an unterminated quote)
    """

    header: List[str] = Field(default_factory=list)
    rows: List[CsvRow] = Field(default_factory=list)
    skipped: int = 0


def escape_field(value: object) -> str:
    """Quote a single field if it contains a separator, quote or line break."""
    text = "" if value is None else str(value)
    if any(ch in text for ch in _NEEDS_QUOTING):
        return '"' + text.replace('"', '""') + '"'
    return text


def header_line() -> str:
    return ",".join(CSV_HEADERS)


def encode_rows(rows: Iterable[Sequence[str]]) -> str:
    """Encode raw string rows, always starting with the header row."""
    lines = [header_line()]
    for row in rows:
        lines.append(",".join(escape_field(value) for value in row))
    return ROW_SEPARATOR.join(lines)


@timer
def encode(records: Iterable[Record]) -> str:
    """
    Encode records into CSV text.

    The header is written even for an empty record list. Rows are joined with
    CRLF and the text carries no trailing terminator.
    """
    return encode_rows(CsvRow.from_record(record).to_fields() for record in records)


def parse_rows(text: str) -> ParseResult:
    """
    Split CSV text into positional rows with a single left-to-right scan.

    Handles doubled quotes and separators or line breaks inside quoted fields,
    and keeps a final row that has no line terminator. A row consisting of a
    single empty field (a trailing line break) is not emitted.
    """
    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    i = 0
    length = len(text)

    while i < length:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < length and text[i + 1] == '"':
                    field.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                field.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            row.append("".join(field))
            field = []
        elif ch == "\r" or ch == "\n":
            if ch == "\r" and i + 1 < length and text[i + 1] == "\n":
                i += 1
            row.append("".join(field))
            field = []
            rows.append(row)
            row = []
        else:
            field.append(ch)
        i += 1

    row.append("".join(field))
    if len(row) > 1 or row[0] != "":
        rows.append(row)

    return ParseResult(rows=rows, unterminated=in_quotes)


def _is_blank(fields: List[str]) -> bool:
    return all(not value.strip() for value in fields)


@timer
def decode(text: str) -> DecodeResult:
    """
    Decode CSV text into a header and typed data rows.

    Short rows are padded with empty trailing fields, blank rows are dropped
    silently, and a final row cut off by an unterminated quoted field is
    dropped and counted as skipped. Never raises for malformed input.
    """
    parsed = parse_rows(text or "")
    rows = parsed.rows
    skipped = 0

    if parsed.unterminated and rows:
        rows = rows[:-1]
        skipped += 1

    if not rows:
        return DecodeResult(skipped=skipped)

    data_rows = [CsvRow.from_fields(fields) for fields in rows[1:] if not _is_blank(fields)]
    return DecodeResult(header=rows[0], rows=data_rows, skipped=skipped)


def header_matches(header: Sequence[str]) -> bool:
    """
    Check the header shape: trimmed, case-insensitive and order-sensitive.

    A mismatch means the file needs reinitializing (or an import must be
    rejected); it is not a parse error.
    """
    if len(header) < len(CSV_HEADERS):
        return False
    return all(actual.strip().lower() == expected.lower() for actual, expected in zip(header, CSV_HEADERS))
