"""Base class for broker statement readers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import ClassVar, Sequence

from burocratin.domain.errors import StatementParseError
from burocratin.domain.records import (
    BrokerFormat,
    ParseDiagnostic,
    ParseResult,
    RawRow,
    StatementMeta,
)

from .utils import Dialect, compute_file_hash, decode_text, ensure_bytes


@dataclass(frozen=True)
class Preamble:
    """Statement-level values read before the row sections."""

    account_id: str
    currency: str
    statement_date: date
    generated_at: datetime | None = None


class StatementReader(ABC):
    """Parses the bytes of one broker export into provisional rows.

    Readers are stateless: ``parse`` touches nothing but the given buffer, so
    independent statements may be parsed concurrently.
    """

    format: ClassVar[BrokerFormat]
    dialect: ClassVar[Dialect]
    encoding: ClassVar[str] = "utf-8-sig"

    def parse(self, data: bytes, *, strict: bool = False, as_of: datetime | None = None) -> ParseResult:
        raw_bytes = ensure_bytes(data)
        text = decode_text(raw_bytes, self.encoding)
        preamble, rows, diagnostics = self._parse_text(text)
        diagnostics = sorted(diagnostics, key=lambda item: (item.line, item.field or ""))
        if strict and diagnostics:
            raise StatementParseError(
                f"{self.format.value} statement has {len(diagnostics)} invalid rows",
                diagnostics,
            )
        meta = StatementMeta(
            account_id=preamble.account_id,
            currency=preamble.currency,
            statement_date=preamble.statement_date,
            as_of=_naive_utc(as_of or preamble.generated_at or datetime.combine(preamble.statement_date, time.min)),
            file_hash=compute_file_hash(raw_bytes),
        )
        return ParseResult(
            format=self.format,
            meta=meta,
            rows=tuple(sorted(rows, key=lambda row: row.line)),
            diagnostics=tuple(diagnostics),
        )

    @abstractmethod
    def _parse_text(self, text: str) -> tuple[Preamble, Sequence[RawRow], Sequence[ParseDiagnostic]]:
        """Return the preamble, the accepted rows and the rejected-row diagnostics."""


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


__all__ = ["Preamble", "StatementReader"]
