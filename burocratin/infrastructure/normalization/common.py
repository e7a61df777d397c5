"""Helpers shared by the broker-specific normalizers."""
from __future__ import annotations

from decimal import Decimal

from burocratin.config import SETTINGS
from burocratin.domain.errors import InternalInvariantError
from burocratin.domain.models import CustodyAccount
from burocratin.domain.records import FieldValue, ParseResult, RawRow


def require(row: RawRow, name: str) -> FieldValue:
    """Return a field the reader guaranteed; its absence is a defect."""
    try:
        value = row[name]
    except KeyError:
        raise InternalInvariantError(f"Row at line {row.line} reached normalization without {name!r}") from None
    if value is None:
        raise InternalInvariantError(f"Row at line {row.line} reached normalization with empty {name!r}")
    return value


def require_decimal(row: RawRow, name: str) -> Decimal:
    value = require(row, name)
    if not isinstance(value, Decimal):
        raise InternalInvariantError(f"Field {name!r} at line {row.line} is not a decimal: {value!r}")
    return value


def optional_decimal(row: RawRow, name: str) -> Decimal:
    value = row.get(name)
    return value if isinstance(value, Decimal) else Decimal("0")


def custody_account(result: ParseResult) -> CustodyAccount:
    profile = SETTINGS.brokers[result.format.value]
    return CustodyAccount(
        broker=profile.name,
        account_id=result.meta.account_id,
        country=profile.country,
        currency=result.meta.currency,
    )
