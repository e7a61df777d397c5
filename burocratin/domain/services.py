"""Domain services consolidating normalized statements into year-end holdings."""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .errors import InternalInvariantError
from .models import (
    ConsolidatedHolding,
    HoldingContribution,
    NormalizedStatement,
    Position,
    Transaction,
)
from .repositories import RateProvider

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Consolidation:
    """Holdings at the cutoff plus the movements inside the fiscal year."""

    cutoff: date
    fiscal_year_start: date
    currency: str
    holdings: tuple[ConsolidatedHolding, ...]
    transactions: tuple[Transaction, ...]

    def holding(self, identifier: str) -> ConsolidatedHolding | None:
        for holding in self.holdings:
            if holding.security.identifier == identifier:
                return holding
        return None


class PortfolioConsolidator:
    """Merges statements from several brokers and periods into one view.

    Rows one statement reports for the same (account, security, date) are
    added up. Overlapping snapshots from different statements are resolved by
    the latest ``as_of`` timestamp, then by parse order, so the result does
    not depend on the order statements or rows are given in.
    """

    def __init__(self, tolerance: Decimal | None = None) -> None:
        if tolerance is None:
            tolerance = Decimal("0")
        self._tolerance = tolerance

    def consolidate(
        self,
        statements: Sequence[NormalizedStatement],
        *,
        cutoff: date,
        fiscal_year_start: date,
        currency: str,
        rates: RateProvider,
    ) -> Consolidation:
        groups = self._latest_statement_rows(p for statement in statements for p in statement.positions)
        positions = [
            self._merge_rows(rows, currency, rates) for rows in groups if rows[0].valuation_date <= cutoff
        ]
        selected = self._select_at_cutoff(positions, cutoff)

        holdings: list[ConsolidatedHolding] = []
        for identifier in sorted(selected):
            per_account = selected[identifier]
            total_value = Decimal("0")
            total_quantity = Decimal("0")
            contributions: list[HoldingContribution] = []
            for _, position in sorted(per_account.items()):
                converted = self._convert(position.value, position.currency, position.valuation_date, currency, rates)
                total_value += converted
                total_quantity += position.quantity
                contributions.append(HoldingContribution(position.account, position, converted))
            holding = ConsolidatedHolding(
                security=contributions[0].position.security,
                total_value=total_value,
                total_quantity=total_quantity,
                contributions=tuple(contributions),
            )
            self._check_holding(holding)
            holdings.append(holding)

        transactions = self._transactions_in_period(statements, fiscal_year_start, cutoff)
        LOGGER.debug(
            "Consolidated %d statements into %d holdings and %d transactions at %s",
            len(statements),
            len(holdings),
            len(transactions),
            cutoff.isoformat(),
        )
        return Consolidation(
            cutoff=cutoff,
            fiscal_year_start=fiscal_year_start,
            currency=currency,
            holdings=tuple(holdings),
            transactions=transactions,
        )

    @staticmethod
    def _latest_statement_rows(positions: Iterable[Position]) -> list[list[Position]]:
        """Rows of the statement that wins each (account, security, date).

        A statement may list a security once per exchange, so every row it
        reports for the key is kept; other statements are resolved by the
        latest ``as_of``, then by parse order.
        """
        latest: dict[tuple[object, ...], tuple[tuple[datetime, int], list[Position]]] = {}
        for position in positions:
            key = position.key()
            rank = (position.as_of, position.parse_order)
            current = latest.get(key)
            if current is None or rank > current[0]:
                latest[key] = (rank, [position])
            elif rank == current[0]:
                current[1].append(position)
        return [rows for _, rows in latest.values()]

    def _merge_rows(self, rows: Sequence[Position], currency: str, rates: RateProvider) -> Position:
        if len(rows) == 1:
            return rows[0]
        ordered = sorted(rows, key=lambda p: (p.security.name, p.currency, p.quantity, p.value))
        quantity = sum((p.quantity for p in ordered), Decimal("0"))
        currencies = {p.currency for p in ordered}
        if len(currencies) == 1:
            return replace(ordered[0], quantity=quantity, value=sum((p.value for p in ordered), Decimal("0")))
        value = sum(
            (self._convert(p.value, p.currency, p.valuation_date, currency, rates) for p in ordered),
            Decimal("0"),
        )
        return replace(ordered[0], quantity=quantity, value=value, currency=currency)

    @staticmethod
    def _select_at_cutoff(
        positions: Iterable[Position], cutoff: date
    ) -> Mapping[str, dict[tuple[str, str], Position]]:
        """Latest snapshot not after the cutoff, per security and per account."""
        selected: dict[str, dict[tuple[str, str], Position]] = defaultdict(dict)
        for position in positions:
            if position.valuation_date > cutoff:
                continue
            per_account = selected[position.security.identifier]
            current = per_account.get(position.account.key())
            if current is None or position.valuation_date > current.valuation_date:
                per_account[position.account.key()] = position
        return selected

    @staticmethod
    def _convert(amount: Decimal, source: str, on: date, target: str, rates: RateProvider) -> Decimal:
        if source == target:
            return amount
        return amount * rates.rate(source, on)

    def _check_holding(self, holding: ConsolidatedHolding) -> None:
        contributed = sum(
            sorted((c.converted_value for c in holding.contributions), key=abs, reverse=True),
            Decimal("0"),
        )
        if abs(contributed - holding.total_value) > self._tolerance:
            raise InternalInvariantError(
                f"Holding {holding.security.identifier} totals {holding.total_value} "
                f"but its accounts sum to {contributed}"
            )
        accounts = [c.account.key() for c in holding.contributions]
        if len(set(accounts)) != len(accounts):
            raise InternalInvariantError(f"Holding {holding.security.identifier} lists an account twice")

    @staticmethod
    def _transactions_in_period(
        statements: Sequence[NormalizedStatement], start: date, end: date
    ) -> tuple[Transaction, ...]:
        """Movements inside the period, without the copies overlapping statements repeat.

        Identical movements are counted per statement; the result keeps the
        largest count any single statement reports.
        """
        kept: dict[tuple[object, ...], list[Transaction]] = {}
        for statement in sorted(statements, key=lambda s: (s.as_of, s.parse_order), reverse=True):
            counts: Counter[tuple[object, ...]] = Counter()
            grouped: dict[tuple[object, ...], list[Transaction]] = defaultdict(list)
            for transaction in statement.transactions:
                if start <= transaction.date <= end:
                    counts[transaction.fingerprint()] += 1
                    grouped[transaction.fingerprint()].append(transaction)
            for fingerprint, count in counts.items():
                if count > len(kept.get(fingerprint, ())):
                    kept[fingerprint] = grouped[fingerprint]
        ordered = [t for items in kept.values() for t in items]
        return tuple(sorted(ordered, key=_transaction_order))


def _transaction_order(transaction: Transaction) -> tuple[object, ...]:
    return (
        transaction.security.identifier,
        transaction.account.key(),
        transaction.date,
        transaction.type.value,
        transaction.quantity,
        transaction.amount,
        transaction.currency,
    )
