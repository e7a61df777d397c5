"""Collaborator interfaces anchoring the domain layer."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from .records import ParseResult


class RateProvider(Protocol):
    """Conversion rates into the declaration currency.

    ``rate`` multiplies an amount in ``currency`` into the declaration
    currency. A missing entry raises ``MissingRateError``; it never defaults.
    """

    def rate(self, currency: str, on: date) -> Decimal:
        ...


class StatementParser(Protocol):
    """Turns the bytes of one broker export into provisional rows."""

    def parse(self, data: bytes, *, strict: bool = False, as_of: datetime | None = None) -> ParseResult:
        ...
