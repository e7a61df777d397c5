"""Built-in record layouts for the foreign asset (720) and foreign investment (D6) forms."""
from __future__ import annotations

from typing import Mapping

from burocratin.domain.errors import LayoutError
from burocratin.domain.parameters import FORM_720, FORM_D6

from .schema import FieldSpec, FormLayout, RecordLayout


def _alpha(name: str, width: int, source: str | None = None) -> FieldSpec:
    return FieldSpec(name=name, kind="alpha", width=width, source=source)


def _numeric(name: str, width: int) -> FieldSpec:
    return FieldSpec(name=name, kind="numeric", width=width)


def _amount(name: str, width: int, decimals: int = 2) -> FieldSpec:
    return FieldSpec(name=name, kind="amount", width=width, decimals=decimals)


def _date(name: str) -> FieldSpec:
    return FieldSpec(name=name, kind="date", width=8)


def _constant(name: str, value: str) -> FieldSpec:
    return FieldSpec(name=name, kind="constant", width=len(value), value=value)


FOREIGN_ASSETS_LAYOUT = FormLayout(
    form_id=FORM_720,
    version="1",
    encoding="iso-8859-1",
    record_length=500,
    header=RecordLayout(
        name="header",
        fields=(
            _constant("record_type", "1"),
            _constant("model", "720"),
            _numeric("fiscal_year", 4),
            _alpha("filer_tax_id", 9),
            _alpha("filer_name", 40),
            _alpha("filer_phone", 9),
            _alpha("form_version", 4),
            _numeric("record_count", 9),
            _amount("total_amount", 18),
        ),
    ),
    detail=RecordLayout(
        name="detail",
        fields=(
            _constant("record_type", "2"),
            _constant("model", "720"),
            _numeric("fiscal_year", 4),
            _alpha("filer_tax_id", 9),
            _alpha("asset_code", 1),
            _alpha("custody_country", 2),
            _alpha("issuer_country", 2),
            _alpha("security_id", 12),
            _alpha("security_name", 40),
            _alpha("broker", 40),
            _alpha("account_id", 20),
            _alpha("valuation_bracket", 1),
            _date("first_acquisition"),
            _amount("quantity", 13),
            _amount("value", 16),
            _amount("ownership", 6),
        ),
    ),
    trailer=RecordLayout(
        name="trailer",
        fields=(
            _constant("record_type", "9"),
            _constant("model", "720"),
            _numeric("record_count", 9),
            _alpha("checksum", 64),
        ),
    ),
    checksum="sha256",
)

FOREIGN_INVESTMENT_LAYOUT = FormLayout(
    form_id=FORM_D6,
    version="1",
    encoding="iso-8859-1",
    record_length=250,
    header=RecordLayout(
        name="header",
        fields=(
            _constant("record_type", "1"),
            _constant("model", "D6"),
            _numeric("fiscal_year", 4),
            _alpha("filer_tax_id", 9),
            _alpha("filer_name", 40),
            _alpha("form_version", 4),
            _numeric("record_count", 9),
            _amount("total_amount", 18),
        ),
    ),
    detail=RecordLayout(
        name="detail",
        fields=(
            _constant("record_type", "2"),
            _constant("model", "D6"),
            _alpha("movement_code", 2),
            _date("movement_date"),
            _alpha("security_id", 12),
            _alpha("security_name", 40),
            _alpha("issuer_country", 2),
            _alpha("custody_country", 2),
            _alpha("asset_code", 1),
            _amount("quantity", 13),
            _amount("amount", 16),
            _alpha("currency", 3),
            _alpha("broker", 40),
        ),
    ),
    trailer=RecordLayout(
        name="trailer",
        fields=(
            _constant("record_type", "9"),
            _constant("model", "D6"),
            _numeric("record_count", 9),
            _alpha("checksum", 8),
        ),
    ),
    checksum="crc32",
)

DEFAULT_LAYOUTS: Mapping[str, FormLayout] = {
    FORM_720: FOREIGN_ASSETS_LAYOUT,
    FORM_D6: FOREIGN_INVESTMENT_LAYOUT,
}


def default_layout(form_id: str) -> FormLayout:
    try:
        return DEFAULT_LAYOUTS[form_id]
    except KeyError:
        raise LayoutError(f"No built-in layout for form {form_id!r}") from None
