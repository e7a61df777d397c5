from datetime import date
from decimal import Decimal

import pytest

from burocratin.domain.errors import RowError
from burocratin.domain.records import FieldKind, Section
from burocratin.infrastructure.parsing.utils import (
    ColumnSpec,
    Dialect,
    coerce_row,
    frame_from_rows,
    iter_csv_lines,
    parse_currency,
    parse_date,
    parse_decimal,
)

COMMA_DIALECT = Dialect(delimiter=";", decimal_separator=",", date_formats=("%d-%m-%Y",))


@pytest.mark.parametrize(
    "text, separator, expected",
    [
        ("1.234,56", ",", Decimal("1234.56")),
        ("1234,56", ",", Decimal("1234.56")),
        ("-0,50", ",", Decimal("-0.50")),
        ("1,234.56", ".", Decimal("1234.56")),
        ("(12.5)", ".", Decimal("-12.5")),
        ("962.65", ".", Decimal("962.65")),
    ],
)
def test_parse_decimal_accepts_both_conventions(text, separator, expected):
    assert parse_decimal(text, separator) == expected


@pytest.mark.parametrize("text", ["1,2,3", "12,34", "1.2.3", "abc", ""])
def test_parse_decimal_rejects_ambiguous_input(text):
    with pytest.raises(ValueError):
        parse_decimal(text, ".")


def test_parse_date_tries_each_format():
    assert parse_date("04/03/2023", ("%d-%m-%Y", "%d/%m/%Y")) == date(2023, 3, 4)
    with pytest.raises(ValueError):
        parse_date("2023-03-04", ("%d-%m-%Y",))


def test_parse_currency_requires_iso_code():
    assert parse_currency(" usd ") == "USD"
    with pytest.raises(ValueError):
        parse_currency("US")


def test_coerce_row_names_offending_field():
    specs = (
        ColumnSpec("Producto", "name"),
        ColumnSpec("Cantidad", "quantity", FieldKind.DECIMAL),
    )
    with pytest.raises(RowError) as excinfo:
        coerce_row({"Producto": "X", "Cantidad": "1,2,3"}, specs, line=9, section=Section.POSITION, dialect=COMMA_DIALECT)
    assert excinfo.value.line == 9
    assert excinfo.value.field == "quantity"


def test_coerce_row_optional_field_is_none():
    specs = (ColumnSpec("Precio", "price", FieldKind.DECIMAL, required=False),)
    row = coerce_row({"Precio": ""}, specs, line=3, section=Section.POSITION, dialect=COMMA_DIALECT)
    assert row["price"] is None
    assert row.names() == ("price",)


def test_iter_csv_lines_keeps_physical_line_numbers():
    lines = list(iter_csv_lines("a;b\n\nc;d\n", ";"))
    assert lines == [(1, ["a", "b"]), (3, ["c", "d"])]


def test_frame_from_rows_reports_overlong_rows():
    frame, diagnostics = frame_from_rows(
        ["A", "B"],
        [(4, ["1", "2"]), (5, ["1", "2", "3"]), (6, ["1"])],
        Section.TRANSACTION,
    )
    assert list(frame.index) == [4, 6]
    assert frame.loc[6, "B"] == ""
    assert [d.line for d in diagnostics] == [5]
