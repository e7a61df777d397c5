"""JSON storage for the fiscal parameters of a declaration run."""
from __future__ import annotations

import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

from burocratin.domain.errors import ConfigurationError, MissingParameterError
from burocratin.domain.models import FilerIdentity
from burocratin.domain.parameters import FORM_720, FORM_D6, DeclarationConfig, FormParameters

DEFAULT_PATH = Path("burocratin.json")
DEFAULT_RESIDENCE = "ES"
DEFAULT_CURRENCY = "EUR"

DEFAULT_THRESHOLDS: Mapping[str, Decimal] = {
    FORM_720: Decimal("50000"),
    FORM_D6: Decimal("0"),
}

DEFAULT_ASSET_CODES: Mapping[str, Mapping[str, str]] = {
    FORM_720: {"equity": "V", "fund": "I", "derivative": "V", "cash_equivalent": "V"},
    FORM_D6: {"equity": "A", "fund": "F", "derivative": "D", "cash_equivalent": "M"},
}

DEFAULT_MOVEMENT_CODES: Mapping[str, Mapping[str, str]] = {
    FORM_720: {},
    FORM_D6: {"buy": "A", "sell": "T"},
}


def _require(raw: Mapping[str, Any], key: str, prefix: str = "") -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise MissingParameterError(f"{prefix}{key}")
    return value


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(f"Parameter {key} is not a number: {value!r}") from None


def _date(value: Any, key: str) -> date:
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ConfigurationError(f"Parameter {key} is not an ISO date: {value!r}") from None


def _codes(value: Any, key: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Parameter {key} must be an object")
    return {str(k): str(v) for k, v in value.items()}


def form_from_mapping(form_id: str, raw: Mapping[str, Any], fiscal_year: int) -> FormParameters:
    prefix = f"forms.{form_id}."
    threshold = raw.get("threshold", DEFAULT_THRESHOLDS.get(form_id))
    if threshold is None:
        raise MissingParameterError(f"{prefix}threshold")

    country_codes = raw.get("country_codes")
    brackets = tuple(
        (_decimal(lower, f"{prefix}valuation_brackets"), str(code))
        for lower, code in raw.get("valuation_brackets", ())
    )
    return FormParameters(
        form_id=form_id,
        threshold=_decimal(threshold, f"{prefix}threshold"),
        declaration_currency=str(raw.get("declaration_currency", DEFAULT_CURRENCY)).upper(),
        cutoff=_date(raw.get("cutoff", f"{fiscal_year}-12-31"), f"{prefix}cutoff"),
        fiscal_year_start=_date(raw.get("fiscal_year_start", f"{fiscal_year}-01-01"), f"{prefix}fiscal_year_start"),
        decimal_places=int(raw.get("decimal_places", 2)),
        quantity_places=int(raw.get("quantity_places", 2)),
        country_codes=None if country_codes is None else _codes(country_codes, f"{prefix}country_codes"),
        asset_codes=_codes(raw.get("asset_codes", DEFAULT_ASSET_CODES.get(form_id, {})), f"{prefix}asset_codes"),
        valuation_brackets=brackets,
        movement_codes=_codes(
            raw.get("movement_codes", DEFAULT_MOVEMENT_CODES.get(form_id, {})), f"{prefix}movement_codes"
        ),
        ownership_percentage=_decimal(raw.get("ownership_percentage", "100"), f"{prefix}ownership_percentage"),
    )


def config_from_mapping(raw: Mapping[str, Any]) -> DeclarationConfig:
    filer_raw = _require(raw, "filer")
    if not isinstance(filer_raw, Mapping):
        raise ConfigurationError("Parameter filer must be an object")
    filer = FilerIdentity(
        tax_id=str(_require(filer_raw, "tax_id", "filer.")).strip().upper(),
        name=str(_require(filer_raw, "name", "filer.")).strip(),
        phone=str(filer_raw.get("phone", "")).strip(),
    )
    fiscal_year = int(_require(raw, "fiscal_year"))

    forms_raw = raw.get("forms")
    if forms_raw is None:
        forms_raw = {form_id: {} for form_id in DEFAULT_THRESHOLDS}
    if not isinstance(forms_raw, Mapping):
        raise ConfigurationError("Parameter forms must be an object")
    forms = {
        str(form_id): form_from_mapping(str(form_id), form_raw or {}, fiscal_year)
        for form_id, form_raw in forms_raw.items()
    }
    return DeclarationConfig(
        filer=filer,
        residence_country=str(raw.get("residence_country", DEFAULT_RESIDENCE)).upper(),
        fiscal_year=fiscal_year,
        forms=forms,
        strict=bool(raw.get("strict", False)),
    )


def config_to_mapping(config: DeclarationConfig) -> dict[str, Any]:
    forms: dict[str, Any] = {}
    for form_id, params in config.forms.items():
        forms[form_id] = {
            "threshold": str(params.threshold),
            "declaration_currency": params.declaration_currency,
            "cutoff": params.cutoff.isoformat(),
            "fiscal_year_start": params.fiscal_year_start.isoformat(),
            "decimal_places": params.decimal_places,
            "quantity_places": params.quantity_places,
            "country_codes": None if params.country_codes is None else dict(params.country_codes),
            "asset_codes": dict(params.asset_codes),
            "valuation_brackets": [[str(lower), code] for lower, code in params.valuation_brackets],
            "movement_codes": dict(params.movement_codes),
            "ownership_percentage": str(params.ownership_percentage),
        }
    return {
        "filer": {"tax_id": config.filer.tax_id, "name": config.filer.name, "phone": config.filer.phone},
        "residence_country": config.residence_country,
        "fiscal_year": config.fiscal_year,
        "strict": config.strict,
        "forms": forms,
    }


def default_config(filer: FilerIdentity, fiscal_year: int, residence_country: str = DEFAULT_RESIDENCE) -> DeclarationConfig:
    return config_from_mapping(
        {
            "filer": {"tax_id": filer.tax_id, "name": filer.name, "phone": filer.phone},
            "fiscal_year": fiscal_year,
            "residence_country": residence_country,
        }
    )


def load_config(path: Path | None = None) -> DeclarationConfig:
    config_path = path or DEFAULT_PATH
    if not config_path.exists():
        raise ConfigurationError(f"Parameter file {config_path} does not exist")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Parameter file {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Parameter file {config_path} must hold a JSON object")
    return config_from_mapping(data)


def save_config(config: DeclarationConfig, path: Path | None = None) -> Path:
    config_path = path or DEFAULT_PATH
    config_path.write_text(
        json.dumps(config_to_mapping(config), ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    return config_path
