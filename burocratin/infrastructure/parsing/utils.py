"""Shared parsing utilities for broker statement ingestion."""
from __future__ import annotations

import csv
import hashlib
import io
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Sequence

import pandas as pd

from burocratin.domain.errors import RowError, StatementParseError
from burocratin.domain.records import FieldKind, ParseDiagnostic, RawField, RawRow, Section

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

_DECIMAL_PATTERNS = {
    ".": (re.compile(r"^\d+(\.\d+)?$"), re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")),
    ",": (re.compile(r"^\d+(,\d+)?$"), re.compile(r"^\d{1,3}(\.\d{3})+(,\d+)?$")),
}


def ensure_bytes(source: io.BytesIO | Path | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, io.BytesIO):
        return source.getvalue()
    if isinstance(source, Path):
        return source.read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def decode_text(data: bytes, encoding: str = "utf-8-sig") -> str:
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as exc:
        raise StatementParseError(f"Statement is not valid {encoding} text: {exc}") from exc


def parse_decimal(value: object, decimal_separator: str = ".") -> Decimal:
    """Parse a number written with the given decimal separator.

    The other separator is accepted only as a thousands separator in groups
    of three digits. Inputs that do not fit either shape are rejected instead
    of being reinterpreted.
    """
    if decimal_separator not in _DECIMAL_PATTERNS:
        raise ValueError(f"Unsupported decimal separator {decimal_separator!r}")
    s = "" if value is None else str(value).strip()
    if not s:
        raise ValueError("empty number")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    if s[:1] in "+-":
        negative = negative != (s[0] == "-")
        s = s[1:].strip()
    plain, grouped = _DECIMAL_PATTERNS[decimal_separator]
    if plain.match(s):
        digits = s
    elif grouped.match(s):
        digits = s.replace("," if decimal_separator == "." else ".", "")
    else:
        raise ValueError(f"ambiguous or malformed number {value!r}")
    digits = digits.replace(",", ".")
    try:
        result = Decimal(digits)
    except InvalidOperation as exc:
        raise ValueError(f"malformed number {value!r}") from exc
    return -result if negative else result


def parse_date(value: object, formats: Sequence[str]) -> date:
    s = "" if value is None else str(value).strip()
    if not s:
        raise ValueError("empty date")
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"date {s!r} does not match {', '.join(formats)}")


def parse_datetime(value: object, formats: Sequence[str]) -> datetime:
    s = "" if value is None else str(value).strip()
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    raise ValueError(f"timestamp {s!r} does not match {', '.join(formats)}")


def parse_currency(value: object) -> str:
    s = "" if value is None else str(value).strip().upper()
    if not _CURRENCY_RE.match(s):
        raise ValueError(f"invalid currency code {value!r}")
    return s


@dataclass(frozen=True)
class ColumnSpec:
    """Declares how one source column becomes a typed row field."""

    header: str
    name: str
    kind: FieldKind = FieldKind.STRING
    required: bool = True
    choices: frozenset[str] | None = None
    pattern: re.Pattern[str] | None = None


@dataclass(frozen=True)
class Dialect:
    delimiter: str
    decimal_separator: str
    date_formats: tuple[str, ...]


def coerce_row(
    cells: Mapping[str, object],
    specs: Iterable[ColumnSpec],
    *,
    line: int,
    section: Section,
    dialect: Dialect,
) -> RawRow:
    """Turn the raw cells of one record into a typed ``RawRow``.

    Raises ``RowError`` naming the first offending field.
    """
    fields: list[RawField] = []
    for spec in specs:
        raw = cells.get(spec.header)
        text = "" if raw is None or pd.isna(raw) else str(raw).strip()
        if not text:
            if spec.required:
                raise RowError(line, spec.name, "required value is missing")
            fields.append(RawField(spec.name, spec.kind, None))
            continue
        try:
            value = _coerce_value(text, spec, dialect)
        except ValueError as exc:
            raise RowError(line, spec.name, str(exc)) from exc
        fields.append(RawField(spec.name, spec.kind, value))
    return RawRow(section=section, line=line, fields=tuple(fields))


def _coerce_value(text: str, spec: ColumnSpec, dialect: Dialect) -> object:
    if spec.kind is FieldKind.DECIMAL:
        return parse_decimal(text, dialect.decimal_separator)
    if spec.kind is FieldKind.DATE:
        return parse_date(text, dialect.date_formats)
    if spec.kind is FieldKind.CURRENCY:
        return parse_currency(text)
    if spec.choices is not None and text not in spec.choices:
        raise ValueError(f"unexpected value {text!r}, expected one of {sorted(spec.choices)}")
    if spec.pattern is not None and not spec.pattern.match(text):
        raise ValueError(f"malformed value {text!r}")
    return text


def iter_csv_lines(text: str, delimiter: str) -> Iterator[tuple[int, list[str]]]:
    """Yield ``(line number, cells)`` for every non-blank line."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    for cells in reader:
        if not any(cell.strip() for cell in cells):
            continue
        yield reader.line_num, cells


def frame_from_rows(
    header: Sequence[str],
    rows: Sequence[tuple[int, Sequence[str]]],
    section: Section,
) -> tuple[pd.DataFrame, list[ParseDiagnostic]]:
    """Build a string DataFrame indexed by source line number.

    Short rows are padded with blanks; rows with more cells than the header
    are reported and dropped.
    """
    columns = [str(name).strip() for name in header]
    records: list[list[str]] = []
    index: list[int] = []
    diagnostics: list[ParseDiagnostic] = []
    for line, cells in rows:
        if len(cells) > len(columns) and any(c.strip() for c in cells[len(columns):]):
            diagnostics.append(
                ParseDiagnostic(
                    line=line,
                    field=None,
                    reason=f"expected {len(columns)} fields, found {len(cells)}",
                    section=section.value,
                )
            )
            continue
        padded = list(cells[: len(columns)]) + [""] * (len(columns) - len(cells))
        records.append([cell.strip() for cell in padded])
        index.append(line)
    frame = pd.DataFrame(records, columns=columns, index=index, dtype=str)
    return frame, diagnostics


def diagnostic_from_error(error: RowError, section: Section) -> ParseDiagnostic:
    return ParseDiagnostic(line=error.line, field=error.field, reason=error.reason, section=section.value)
