"""Tax rules turning consolidated holdings into per-form declaration lines."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from .errors import ConfigurationError
from .models import (
    ConsolidatedHolding,
    DeclarationLine,
    HoldingContribution,
    Transaction,
    TransactionType,
)
from .parameters import FORM_720, FORM_D6, FormParameters
from .repositories import RateProvider
from .services import Consolidation

LOGGER = logging.getLogger(__name__)


def round_half_up(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


class FormRules(ABC):
    form_id: str

    @abstractmethod
    def build_lines(
        self,
        consolidation: Consolidation,
        parameters: FormParameters,
        residence_country: str,
        rates: RateProvider,
    ) -> tuple[DeclarationLine, ...]:
        ...

    @staticmethod
    def foreign_contributions(holding: ConsolidatedHolding, residence_country: str) -> list[HoldingContribution]:
        return [c for c in holding.contributions if c.account.country != residence_country]


class ForeignAssetRules(FormRules):
    """Year-end foreign holdings (Modelo 720).

    The threshold is tested once, against the aggregate converted value of
    every foreign holding; when it is not met the form has no lines at all.
    """

    form_id = FORM_720

    def build_lines(
        self,
        consolidation: Consolidation,
        parameters: FormParameters,
        residence_country: str,
        rates: RateProvider,
    ) -> tuple[DeclarationLine, ...]:
        qualifying = [
            (holding, contribution)
            for holding in consolidation.holdings
            for contribution in self.foreign_contributions(holding, residence_country)
        ]
        aggregate = sum((c.converted_value for _, c in qualifying), Decimal("0"))
        if aggregate < parameters.threshold:
            LOGGER.debug(
                "Form %s: foreign holdings total %s, below threshold %s",
                self.form_id,
                aggregate,
                parameters.threshold,
            )
            return ()

        first_buys = _first_acquisitions(consolidation.transactions)
        lines = []
        for holding, contribution in qualifying:
            security = holding.security
            value = round_half_up(contribution.converted_value, parameters.decimal_places)
            values = {
                "security_id": security.identifier,
                "security_name": security.name,
                "custody_country": parameters.country_code(contribution.account.country),
                "issuer_country": parameters.country_code(security.country) if security.country else "",
                "asset_code": parameters.asset_code(security.asset_class.value),
                "valuation_bracket": parameters.bracket_for(value),
                "broker": contribution.account.broker,
                "account_id": contribution.account.account_id,
                "quantity": round_half_up(contribution.position.quantity, parameters.quantity_places),
                "value": value,
                "ownership": round_half_up(parameters.ownership_percentage, 2),
                "first_acquisition": first_buys.get((security.identifier, contribution.account.key())),
            }
            lines.append(
                DeclarationLine(
                    form_id=self.form_id,
                    holding=holding,
                    account=contribution.account,
                    values=values,
                    amount=value,
                )
            )
        return tuple(sorted(lines, key=DeclarationLine.sort_key))


class ForeignInvestmentRules(FormRules):
    """In-year movements of foreign holdings (form D6).

    A holding qualifies when its converted value in foreign accounts reaches
    the threshold; each of its in-year movements of a configured type becomes
    a line, converted at the rate of the movement date.
    """

    form_id = FORM_D6

    def build_lines(
        self,
        consolidation: Consolidation,
        parameters: FormParameters,
        residence_country: str,
        rates: RateProvider,
    ) -> tuple[DeclarationLine, ...]:
        if not parameters.movement_codes:
            raise ConfigurationError(f"Form {self.form_id} declares no movement types")

        qualifying: dict[str, ConsolidatedHolding] = {}
        for holding in consolidation.holdings:
            foreign_value = sum(
                (c.converted_value for c in self.foreign_contributions(holding, residence_country)),
                Decimal("0"),
            )
            if foreign_value and foreign_value >= parameters.threshold:
                qualifying[holding.security.identifier] = holding

        lines = []
        for transaction in consolidation.transactions:
            holding = qualifying.get(transaction.security.identifier)
            if holding is None or transaction.account.country == residence_country:
                continue
            if transaction.type.value not in parameters.movement_codes:
                continue
            lines.append(self._line(holding, transaction, parameters, consolidation.currency, rates))
        return tuple(sorted(lines, key=DeclarationLine.sort_key))

    def _line(
        self,
        holding: ConsolidatedHolding,
        transaction: Transaction,
        parameters: FormParameters,
        currency: str,
        rates: RateProvider,
    ) -> DeclarationLine:
        converted = transaction.amount
        if transaction.currency != currency:
            converted = transaction.amount * rates.rate(transaction.currency, transaction.date)
        amount = round_half_up(converted, parameters.decimal_places)
        security = holding.security
        values = {
            "security_id": security.identifier,
            "security_name": security.name,
            "issuer_country": parameters.country_code(security.country) if security.country else "",
            "custody_country": parameters.country_code(transaction.account.country),
            "asset_code": parameters.asset_code(security.asset_class.value),
            "movement_code": parameters.movement_code(transaction.type.value),
            "movement_date": transaction.date,
            "broker": transaction.account.broker,
            "account_id": transaction.account.account_id,
            "quantity": round_half_up(transaction.quantity, parameters.quantity_places),
            "amount": amount,
            "currency": transaction.currency,
        }
        return DeclarationLine(
            form_id=self.form_id,
            holding=holding,
            account=transaction.account,
            values=values,
            amount=amount,
        )


def _first_acquisitions(
    transactions: tuple[Transaction, ...],
) -> dict[tuple[str, tuple[str, str]], date]:
    first: dict[tuple[str, tuple[str, str]], date] = {}
    for transaction in transactions:
        if transaction.type is not TransactionType.BUY:
            continue
        key = (transaction.security.identifier, transaction.account.key())
        if key not in first or transaction.date < first[key]:
            first[key] = transaction.date
    return first


class TaxRuleEngine:
    """Dispatches a consolidation to the rule set of each target form."""

    def __init__(self, rules: Mapping[str, FormRules] | None = None) -> None:
        if rules is None:
            rules = {FORM_720: ForeignAssetRules(), FORM_D6: ForeignInvestmentRules()}
        self._rules = dict(rules)

    @property
    def form_ids(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def build_lines(
        self,
        form_id: str,
        consolidation: Consolidation,
        parameters: FormParameters,
        residence_country: str,
        rates: RateProvider,
    ) -> tuple[DeclarationLine, ...]:
        try:
            rules = self._rules[form_id]
        except KeyError:
            raise ConfigurationError(f"No tax rules for form {form_id!r}") from None
        lines = rules.build_lines(consolidation, parameters, residence_country, rates)
        LOGGER.debug("Form %s: %d declaration lines", form_id, len(lines))
        return lines
