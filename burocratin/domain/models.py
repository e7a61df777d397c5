"""Domain models for the declaration pipeline.

These dataclasses capture the canonical financial model every broker statement
is normalized into, and the derived entities the tax forms are built from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator, Mapping, Sequence


class AssetClass(str, Enum):
    EQUITY = "equity"
    FUND = "fund"
    DERIVATIVE = "derivative"
    CASH_EQUIVALENT = "cash_equivalent"


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    FEE = "fee"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class Security:
    """An instrument, identified by ISIN or by a broker-local code."""

    identifier: str
    name: str
    country: str
    asset_class: AssetClass


@dataclass(frozen=True)
class CustodyAccount:
    broker: str
    account_id: str
    country: str
    currency: str

    def key(self) -> tuple[str, str]:
        return (self.broker, self.account_id)


@dataclass(frozen=True)
class Position:
    """Holding snapshot reported by one statement."""

    account: CustodyAccount
    security: Security
    quantity: Decimal
    value: Decimal
    currency: str
    valuation_date: date
    as_of: datetime
    parse_order: int

    def key(self) -> tuple[tuple[str, str], str, date]:
        return (self.account.key(), self.security.identifier, self.valuation_date)


@dataclass(frozen=True)
class Transaction:
    """Movement reported by one statement. ``amount`` is never negative."""

    account: CustodyAccount
    security: Security
    type: TransactionType
    quantity: Decimal
    amount: Decimal
    currency: str
    date: date
    as_of: datetime
    parse_order: int

    def fingerprint(self) -> tuple[object, ...]:
        return (
            self.account.key(),
            self.security.identifier,
            self.type.value,
            self.date,
            self.quantity,
            self.amount,
            self.currency,
        )


@dataclass(frozen=True)
class HoldingContribution:
    account: CustodyAccount
    position: Position
    converted_value: Decimal


@dataclass(frozen=True)
class ConsolidatedHolding:
    """Year-end value of one security across every custody account."""

    security: Security
    total_value: Decimal
    total_quantity: Decimal
    contributions: tuple[HoldingContribution, ...]

    @property
    def accounts(self) -> tuple[CustodyAccount, ...]:
        return tuple(item.account for item in self.contributions)


@dataclass(frozen=True)
class DeclarationLine:
    """One row of a form, with its values already mapped to the form's codes."""

    form_id: str
    holding: ConsolidatedHolding
    account: CustodyAccount
    values: Mapping[str, object]
    amount: Decimal

    def sort_key(self) -> tuple[object, ...]:
        return (
            self.holding.security.identifier,
            self.account.key(),
            str(self.values.get("movement_date") or ""),
            str(self.values.get("movement_code") or ""),
            self.amount,
        )


@dataclass(frozen=True)
class FilerIdentity:
    tax_id: str
    name: str
    phone: str = ""


@dataclass(frozen=True)
class FormHeader:
    form_id: str
    form_version: str
    fiscal_year: int
    filer: FilerIdentity
    total_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class FormTrailer:
    record_count: int
    checksum: str


@dataclass(frozen=True)
class FormDocument:
    header: FormHeader
    lines: tuple[DeclarationLine, ...]
    trailer: FormTrailer
    content: bytes = field(repr=False, default=b"")

    def __iter__(self) -> Iterator[DeclarationLine]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class NormalizedStatement:
    """Canonical entities produced from one broker statement."""

    label: str
    account: CustodyAccount
    securities: Mapping[str, Security]
    positions: Sequence[Position]
    transactions: Sequence[Transaction]
    statement_date: date
    as_of: datetime
    parse_order: int
