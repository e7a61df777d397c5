"""Base class for broker-specific field-to-canonical mappings."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from burocratin.domain.errors import InternalInvariantError
from burocratin.domain.models import (
    CustodyAccount,
    Position,
    Security,
    Transaction,
    TransactionType,
)
from burocratin.domain.records import RawRow

from .common import require, require_decimal


@dataclass(frozen=True)
class StatementContext:
    account: CustodyAccount
    statement_date: date
    as_of: datetime
    parse_order: int


class StatementMapping(ABC):
    """Maps the rows of one broker format onto the canonical model.

    The reader guarantees every required field, so a missing value here is a
    defect and raises ``InternalInvariantError``.
    """

    @abstractmethod
    def security(self, row: RawRow) -> Security:
        ...

    @abstractmethod
    def transaction_type(self, row: RawRow) -> TransactionType:
        ...

    @abstractmethod
    def transaction_amounts(self, row: RawRow) -> tuple[Decimal, Decimal]:
        """Return the non-negative (quantity, amount) of a movement row."""

    def position(self, row: RawRow, security: Security, context: StatementContext) -> Position:
        return Position(
            account=context.account,
            security=security,
            quantity=require_decimal(row, "quantity"),
            value=require_decimal(row, "value"),
            currency=str(require(row, "currency")),
            valuation_date=context.statement_date,
            as_of=context.as_of,
            parse_order=context.parse_order,
        )

    def transaction(self, row: RawRow, security: Security, context: StatementContext) -> Transaction:
        quantity, amount = self.transaction_amounts(row)
        moved_on = require(row, "date")
        if not isinstance(moved_on, date):
            raise InternalInvariantError(f"Field 'date' at line {row.line} is not a date: {moved_on!r}")
        return Transaction(
            account=context.account,
            security=security,
            type=self.transaction_type(row),
            quantity=quantity,
            amount=amount,
            currency=str(require(row, "currency")),
            date=moved_on,
            as_of=context.as_of,
            parse_order=context.parse_order,
        )
