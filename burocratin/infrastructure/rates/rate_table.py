"""In-memory conversion-rate table and its CSV loader."""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Iterable, Mapping

import pandas as pd

from burocratin.domain.errors import ConfigurationError, MissingRateError
from burocratin.infrastructure.parsing.utils import ensure_bytes, parse_currency, parse_decimal

RATE_COLUMNS = ("currency", "date", "rate")


class InMemoryRateTable:
    """Rates keyed by (currency, date).

    ``lookback_days`` lets a lookup fall back to the closest earlier quote,
    for weekends and bank holidays. The default of zero requires an exact
    date.
    """

    def __init__(
        self,
        rates: Mapping[tuple[str, date], Decimal] | None = None,
        *,
        lookback_days: int = 0,
    ) -> None:
        self._rates: dict[tuple[str, date], Decimal] = {}
        self._lookback = timedelta(days=lookback_days)
        for (currency, on), value in (rates or {}).items():
            self.add(currency, on, value)

    def add(self, currency: str, on: date, value: Decimal) -> None:
        if value <= 0:
            raise ConfigurationError(f"Conversion rate for {currency} on {on.isoformat()} must be positive")
        self._rates[(currency.upper(), on)] = Decimal(value)

    def rate(self, currency: str, on: date) -> Decimal:
        currency = currency.upper()
        probe = on
        while on - probe <= self._lookback:
            found = self._rates.get((currency, probe))
            if found is not None:
                return found
            probe -= timedelta(days=1)
        raise MissingRateError(currency, on)

    def currencies(self) -> set[str]:
        return {currency for currency, _ in self._rates}

    def __len__(self) -> int:
        return len(self._rates)

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[str, date, Decimal]], *, lookback_days: int = 0) -> "InMemoryRateTable":
        table = cls(lookback_days=lookback_days)
        for currency, on, value in rows:
            table.add(currency, on, value)
        return table


def load_rates_csv(source: BytesIO | Path | bytes, *, lookback_days: int = 0) -> InMemoryRateTable:
    """Read a ``currency,date,rate`` CSV (ISO dates, dot decimals)."""
    frame = pd.read_csv(BytesIO(ensure_bytes(source)), dtype=str, keep_default_na=False)
    frame.columns = [str(column).strip().lower() for column in frame.columns]
    missing = [column for column in RATE_COLUMNS if column not in frame.columns]
    if missing:
        raise ConfigurationError(f"Rate table lacks columns: {', '.join(missing)}")

    rows: list[tuple[str, date, Decimal]] = []
    for idx, row in frame.iterrows():
        try:
            rows.append(
                (
                    parse_currency(row["currency"]),
                    date.fromisoformat(str(row["date"]).strip()),
                    parse_decimal(row["rate"], "."),
                )
            )
        except ValueError as exc:
            raise ConfigurationError(f"Rate table row {idx + 2} is invalid: {exc}") from exc
    return InMemoryRateTable.from_rows(rows, lookback_days=lookback_days)
