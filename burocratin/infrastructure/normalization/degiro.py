"""Degiro field-to-canonical mapping."""
from __future__ import annotations

from decimal import Decimal

from burocratin.domain.errors import InternalInvariantError
from burocratin.domain.models import AssetClass, Security, TransactionType
from burocratin.domain.records import RawRow

from .base import StatementMapping
from .common import optional_decimal, require, require_decimal

ASSET_CLASSES = {
    "Acción": AssetClass.EQUITY,
    "ETF": AssetClass.FUND,
    "Fondo": AssetClass.FUND,
    "Opción": AssetClass.DERIVATIVE,
    "Futuro": AssetClass.DERIVATIVE,
    "Monetario": AssetClass.CASH_EQUIVALENT,
}

OPERATIONS = {
    "Compra": TransactionType.BUY,
    "Venta": TransactionType.SELL,
    "Dividendo": TransactionType.DIVIDEND,
    "Comisión": TransactionType.FEE,
    "Traspaso": TransactionType.TRANSFER,
}


class DegiroMapping(StatementMapping):
    """Degiro reports ISINs directly and signs ``Valor`` by cash direction."""

    def security(self, row: RawRow) -> Security:
        isin = str(require(row, "isin"))
        product_type = str(require(row, "product_type"))
        try:
            asset_class = ASSET_CLASSES[product_type]
        except KeyError:
            raise InternalInvariantError(f"Unmapped Degiro product type {product_type!r}") from None
        return Security(
            identifier=isin,
            name=str(require(row, "name")),
            country=isin[:2],
            asset_class=asset_class,
        )

    def transaction_type(self, row: RawRow) -> TransactionType:
        operation = str(require(row, "operation"))
        try:
            return OPERATIONS[operation]
        except KeyError:
            raise InternalInvariantError(f"Unmapped Degiro operation {operation!r}") from None

    def transaction_amounts(self, row: RawRow) -> tuple[Decimal, Decimal]:
        return abs(optional_decimal(row, "quantity")), abs(require_decimal(row, "value"))
