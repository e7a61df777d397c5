"""Fiscal parameters threaded explicitly through one declaration run."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping

from .errors import MissingParameterError
from .models import FilerIdentity

FORM_720 = "720"
FORM_D6 = "D6"


@dataclass(frozen=True)
class FormParameters:
    """Threshold, currency, cutoff and code vocabularies for one target form.

    ``country_codes`` left as ``None`` passes ISO 3166 alpha-2 codes through
    unchanged; a mapping is a closed vocabulary and a missing country is an
    error. ``movement_codes`` both selects the transaction types a movement
    form declares and gives their codes.
    """

    form_id: str
    threshold: Decimal
    declaration_currency: str
    cutoff: date
    fiscal_year_start: date
    decimal_places: int = 2
    quantity_places: int = 2
    country_codes: Mapping[str, str] | None = None
    asset_codes: Mapping[str, str] = field(default_factory=dict)
    valuation_brackets: tuple[tuple[Decimal, str], ...] = ()
    movement_codes: Mapping[str, str] = field(default_factory=dict)
    ownership_percentage: Decimal = Decimal("100")

    def country_code(self, country: str) -> str:
        if self.country_codes is None:
            return country
        try:
            return self.country_codes[country]
        except KeyError:
            raise MissingParameterError(f"{self.form_id}.country_codes.{country}") from None

    def asset_code(self, asset_class: str) -> str:
        try:
            return self.asset_codes[asset_class]
        except KeyError:
            raise MissingParameterError(f"{self.form_id}.asset_codes.{asset_class}") from None

    def movement_code(self, transaction_type: str) -> str:
        try:
            return self.movement_codes[transaction_type]
        except KeyError:
            raise MissingParameterError(f"{self.form_id}.movement_codes.{transaction_type}") from None

    def bracket_for(self, value: Decimal) -> str:
        code = ""
        for lower, bracket in sorted(self.valuation_brackets, key=lambda item: item[0]):
            if value >= lower:
                code = bracket
        return code


@dataclass(frozen=True)
class DeclarationConfig:
    filer: FilerIdentity
    residence_country: str
    fiscal_year: int
    forms: Mapping[str, FormParameters]
    strict: bool = False

    def form(self, form_id: str) -> FormParameters:
        try:
            return self.forms[form_id]
        except KeyError:
            raise MissingParameterError(f"forms.{form_id}") from None
