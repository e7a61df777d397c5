"""Degiro annual report export parser producing provisional rows.

The export is ``;`` delimited text with comma decimals and ``dd-mm-yyyy``
dates::

    Cuenta;12345678
    Moneda;EUR
    Fecha;31-12-2023
    Generado;15-01-2024 10:22:31

    Cartera
    Producto;ISIN;Bolsa;Tipo;Cantidad;Precio;Moneda;Valor
    VANGUARD FTSE ALL-WORLD UCITS ETF;IE00B3RBWM25;XET;ETF;20;104,20;EUR;2.084,00

    Transacciones
    Fecha;Producto;ISIN;Bolsa;Tipo;Operación;Cantidad;Precio;Moneda;Valor;Comisión
    04-03-2023;APPLE INC. - COMMON;US0378331005;NDQ;Acción;Compra;10;150,00;USD;-1.500,00;-0,50

Long product names wrap onto a following line that only fills ``Producto``.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Sequence

import pandas as pd

from burocratin.domain.errors import RowError, StatementParseError
from burocratin.domain.records import (
    BrokerFormat,
    FieldKind,
    ParseDiagnostic,
    RawRow,
    Section,
)

from .base import Preamble, StatementReader
from .utils import (
    ColumnSpec,
    Dialect,
    coerce_row,
    diagnostic_from_error,
    frame_from_rows,
    iter_csv_lines,
    parse_currency,
    parse_date,
    parse_datetime,
)

POSITIONS_TITLE = "Cartera"
TRANSACTIONS_TITLE = "Transacciones"
CONTINUATION_COLUMN = "Producto"

ISIN_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")

PRODUCT_TYPES = frozenset({"Acción", "ETF", "Fondo", "Opción", "Futuro", "Monetario"})
OPERATIONS = frozenset({"Compra", "Venta", "Dividendo", "Comisión", "Traspaso"})

POSITION_COLUMNS = (
    ColumnSpec("Producto", "name"),
    ColumnSpec("ISIN", "isin", pattern=ISIN_RE),
    ColumnSpec("Bolsa", "exchange", required=False),
    ColumnSpec("Tipo", "product_type", choices=PRODUCT_TYPES),
    ColumnSpec("Cantidad", "quantity", FieldKind.DECIMAL),
    ColumnSpec("Precio", "price", FieldKind.DECIMAL, required=False),
    ColumnSpec("Moneda", "currency", FieldKind.CURRENCY),
    ColumnSpec("Valor", "value", FieldKind.DECIMAL),
)

TRANSACTION_COLUMNS = (
    ColumnSpec("Fecha", "date", FieldKind.DATE),
    ColumnSpec("Producto", "name"),
    ColumnSpec("ISIN", "isin", pattern=ISIN_RE),
    ColumnSpec("Bolsa", "exchange", required=False),
    ColumnSpec("Tipo", "product_type", choices=PRODUCT_TYPES),
    ColumnSpec("Operación", "operation", choices=OPERATIONS),
    ColumnSpec("Cantidad", "quantity", FieldKind.DECIMAL, required=False),
    ColumnSpec("Precio", "price", FieldKind.DECIMAL, required=False),
    ColumnSpec("Moneda", "currency", FieldKind.CURRENCY),
    ColumnSpec("Valor", "value", FieldKind.DECIMAL),
    ColumnSpec("Comisión", "commission", FieldKind.DECIMAL, required=False),
)

SECTIONS = {
    POSITIONS_TITLE: (Section.POSITION, POSITION_COLUMNS),
    TRANSACTIONS_TITLE: (Section.TRANSACTION, TRANSACTION_COLUMNS),
}

GENERATED_FORMATS = ("%d-%m-%Y %H:%M:%S", "%d-%m-%Y %H:%M")


class DegiroReader(StatementReader):
    format = BrokerFormat.DEGIRO
    dialect = Dialect(delimiter=";", decimal_separator=",", date_formats=("%d-%m-%Y", "%d/%m/%Y"))

    def _parse_text(self, text: str) -> tuple[Preamble, Sequence[RawRow], Sequence[ParseDiagnostic]]:
        preamble_cells: dict[str, str] = {}
        blocks: dict[str, tuple[int, list[str], list[tuple[int, list[str]]]]] = {}
        current: str | None = None

        for line, cells in iter_csv_lines(text, self.dialect.delimiter):
            first = cells[0].strip()
            if first in SECTIONS and not any(c.strip() for c in cells[1:]):
                if first in blocks:
                    raise StatementParseError(f"Section {first!r} appears twice (line {line})")
                current = first
                blocks[current] = (line, [], [])
                continue
            if current is None:
                if len(cells) >= 2:
                    preamble_cells[first] = cells[1].strip()
                continue
            title_line, header, rows = blocks[current]
            if not header:
                header.extend(c.strip() for c in cells)
                continue
            rows.append((line, cells))

        preamble = self._read_preamble(preamble_cells)
        if POSITIONS_TITLE not in blocks:
            raise StatementParseError(f"Degiro statement has no {POSITIONS_TITLE!r} section")

        accepted: list[RawRow] = []
        diagnostics: list[ParseDiagnostic] = []
        for title, (title_line, header, rows) in blocks.items():
            section, specs = SECTIONS[title]
            missing = [spec.header for spec in specs if spec.header not in header]
            if missing:
                raise StatementParseError(
                    f"{title!r} header (line {title_line + 1}) lacks columns: {', '.join(missing)}"
                )
            merged, merge_diagnostics = _merge_continuations(header, rows, section)
            diagnostics.extend(merge_diagnostics)
            frame, frame_diagnostics = frame_from_rows(header, merged, section)
            diagnostics.extend(frame_diagnostics)
            for row_accepted, row_diagnostic in self._coerce_frame(frame, specs, section):
                if row_accepted is not None:
                    accepted.append(row_accepted)
                else:
                    diagnostics.append(row_diagnostic)
        return preamble, accepted, diagnostics

    def _coerce_frame(self, frame: pd.DataFrame, specs: Sequence[ColumnSpec], section: Section):
        for line, row in frame.iterrows():
            try:
                yield coerce_row(row.to_dict(), specs, line=int(line), section=section, dialect=self.dialect), None
            except RowError as exc:
                yield None, diagnostic_from_error(exc, section)

    def _read_preamble(self, cells: dict[str, str]) -> Preamble:
        for key in ("Cuenta", "Moneda", "Fecha"):
            if not cells.get(key):
                raise StatementParseError(f"Degiro statement preamble lacks {key!r}")
        try:
            currency = parse_currency(cells["Moneda"])
            statement_date: date = parse_date(cells["Fecha"], self.dialect.date_formats)
            generated = cells.get("Generado")
            generated_at = parse_datetime(generated, GENERATED_FORMATS) if generated else None
        except ValueError as exc:
            raise StatementParseError(f"Degiro statement preamble is invalid: {exc}") from exc
        return Preamble(
            account_id=cells["Cuenta"],
            currency=currency,
            statement_date=statement_date,
            generated_at=generated_at,
        )


def _merge_continuations(
    header: Sequence[str],
    rows: Sequence[tuple[int, list[str]]],
    section: Section,
) -> tuple[list[tuple[int, list[str]]], list[ParseDiagnostic]]:
    """Fold wrapped product names back into the row they belong to."""
    position = list(header).index(CONTINUATION_COLUMN)
    merged: list[tuple[int, list[str]]] = []
    diagnostics: list[ParseDiagnostic] = []
    for line, cells in rows:
        filled = [i for i, cell in enumerate(cells) if cell.strip()]
        if filled == [position]:
            if not merged:
                diagnostics.append(
                    ParseDiagnostic(line, "name", "continuation line without a preceding row", section.value)
                )
                continue
            previous_line, previous = merged[-1]
            previous = list(previous) + [""] * (len(header) - len(previous))
            previous[position] = f"{previous[position].strip()} {cells[position].strip()}"
            merged[-1] = (previous_line, previous)
            continue
        merged.append((line, list(cells)))
    return merged, diagnostics


__all__ = ["DegiroReader"]
