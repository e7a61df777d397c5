"""Interactive Brokers field-to-canonical mapping."""
from __future__ import annotations

from decimal import Decimal

from burocratin.domain.errors import InternalInvariantError
from burocratin.domain.models import AssetClass, Security, TransactionType
from burocratin.domain.records import RawRow

from .base import StatementMapping
from .common import require, require_decimal

LOCAL_CODE_PREFIX = "IB"

DERIVATIVE_CATEGORIES = frozenset(
    {"Equity and Index Options", "Futures", "Options On Futures", "Warrants", "CFDs", "Structured Products"}
)
FUND_TYPES = frozenset({"ETF", "ETN", "ETC", "MUTUAL FUND", "FUND"})

# Listing exchange to country, used when an instrument has no ISIN.
EXCHANGE_COUNTRIES = {
    "NASDAQ": "US",
    "NYSE": "US",
    "ARCA": "US",
    "AMEX": "US",
    "BATS": "US",
    "CBOE": "US",
    "CME": "US",
    "LSE": "GB",
    "LSEETF": "GB",
    "IBIS": "DE",
    "IBIS2": "DE",
    "FWB": "DE",
    "EUREX": "DE",
    "AEB": "NL",
    "SBF": "FR",
    "BM": "ES",
    "BVME": "IT",
    "EBS": "CH",
    "TSE": "CA",
    "SEHK": "HK",
}


class InteractiveBrokersMapping(StatementMapping):
    """IB signs quantities (negative for sales) and proceeds (negative for buys)."""

    def security(self, row: RawRow) -> Security:
        isin = row.get("isin")
        symbol = str(require(row, "symbol"))
        exchange = str(row.get("exchange") or "").upper()
        if isin:
            identifier, country = str(isin), str(isin)[:2]
        else:
            identifier = f"{LOCAL_CODE_PREFIX}:{symbol}"
            country = EXCHANGE_COUNTRIES.get(exchange, "")
        return Security(
            identifier=identifier,
            name=str(require(row, "name")),
            country=country,
            asset_class=self._asset_class(row),
        )

    @staticmethod
    def _asset_class(row: RawRow) -> AssetClass:
        category = str(row.get("asset_category") or "Stocks")
        instrument_type = str(row.get("instrument_type") or "").upper()
        if category in DERIVATIVE_CATEGORIES:
            return AssetClass.DERIVATIVE
        if category == "Treasury Bills":
            return AssetClass.CASH_EQUIVALENT
        if category == "Mutual Funds" or instrument_type in FUND_TYPES:
            return AssetClass.FUND
        if category == "Stocks":
            return AssetClass.EQUITY
        raise InternalInvariantError(f"Unmapped Interactive Brokers asset category {category!r}")

    def transaction_type(self, row: RawRow) -> TransactionType:
        record_type = str(require(row, "record_type"))
        if record_type == "dividend":
            return TransactionType.DIVIDEND
        if record_type == "withholding":
            return TransactionType.FEE
        if record_type == "trade":
            return TransactionType.BUY if require_decimal(row, "quantity") > 0 else TransactionType.SELL
        raise InternalInvariantError(f"Unmapped Interactive Brokers record type {record_type!r}")

    def transaction_amounts(self, row: RawRow) -> tuple[Decimal, Decimal]:
        proceeds = abs(require_decimal(row, "proceeds"))
        if require(row, "record_type") in ("dividend", "withholding"):
            return Decimal("0"), proceeds
        return abs(require_decimal(row, "quantity")), proceeds
