"""Provisional, format-agnostic rows produced by the report readers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator

from .errors import UnknownFormatError

FieldValue = str | Decimal | date | None


class BrokerFormat(str, Enum):
    DEGIRO = "degiro"
    INTERACTIVE_BROKERS = "interactive_brokers"

    @classmethod
    def from_tag(cls, tag: "BrokerFormat | str") -> "BrokerFormat":
        if isinstance(tag, cls):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            raise UnknownFormatError(tag) from None


class FieldKind(str, Enum):
    STRING = "string"
    DECIMAL = "decimal"
    DATE = "date"
    CURRENCY = "currency"


class Section(str, Enum):
    POSITION = "position"
    TRANSACTION = "transaction"


@dataclass(frozen=True)
class RawField:
    name: str
    kind: FieldKind
    value: FieldValue


@dataclass(frozen=True)
class RawRow:
    """An ordered list of typed fields read from one logical record."""

    section: Section
    line: int
    fields: tuple[RawField, ...]

    def __getitem__(self, name: str) -> FieldValue:
        for item in self.fields:
            if item.name == name:
                return item.value
        raise KeyError(name)

    def get(self, name: str, default: FieldValue = None) -> FieldValue:
        try:
            return self[name]
        except KeyError:
            return default

    def names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.fields)


@dataclass(frozen=True)
class ParseDiagnostic:
    """Row locator and reason for a row excluded from the result."""

    line: int
    field: str | None
    reason: str
    section: str = ""

    def __str__(self) -> str:
        where = f"line {self.line}"
        if self.field:
            where += f" [{self.field}]"
        return f"{where}: {self.reason}"


@dataclass(frozen=True)
class StatementMeta:
    account_id: str
    currency: str
    statement_date: date
    as_of: datetime
    file_hash: str


@dataclass(frozen=True)
class ParseResult:
    format: BrokerFormat
    meta: StatementMeta
    rows: tuple[RawRow, ...] = field(default_factory=tuple)
    diagnostics: tuple[ParseDiagnostic, ...] = field(default_factory=tuple)

    def iter_section(self, section: Section) -> Iterator[RawRow]:
        return (row for row in self.rows if row.section is section)

    def has_issues(self) -> bool:
        return bool(self.diagnostics)
