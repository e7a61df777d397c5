"""Interactive Brokers activity statement (CSV) parser producing provisional rows.

Every line of the export starts with the section name and a discriminator::

    Statement,Data,Period,"January 1, 2023 - December 31, 2023"
    Open Positions,Header,DataDiscriminator,Asset Category,Currency,Symbol,Quantity,...
    Open Positions,Data,Summary,Stocks,USD,AAPL,10,...
    Financial Instrument Information,Data,Stocks,AAPL,APPLE INC,265598,US0378331005,...

Positions and trades only carry the symbol; the ISIN and instrument type come
from the ``Financial Instrument Information`` section and are joined on
(asset category, symbol).
"""
from __future__ import annotations

import re
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence

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
)

STATEMENT = "Statement"
ACCOUNT_INFORMATION = "Account Information"
OPEN_POSITIONS = "Open Positions"
TRADES = "Trades"
DIVIDENDS = "Dividends"
WITHHOLDING = "Withholding Tax"
INSTRUMENTS = "Financial Instrument Information"

JOIN_KEYS = ["Asset Category", "Symbol"]
INSTRUMENT_COLUMNS = ["Asset Category", "Symbol", "Description", "Security ID", "Listing Exch", "Type"]
DIVIDEND_COLUMNS = ["Currency", "Date", "Description", "Amount"]

ASSET_CATEGORIES = frozenset(
    {
        "Stocks",
        "Equity and Index Options",
        "Futures",
        "Options On Futures",
        "Warrants",
        "Treasury Bills",
        "Mutual Funds",
        "CFDs",
        "Structured Products",
    }
)
# Currency conversions are cash movements, not securities.
IGNORED_CATEGORIES = frozenset({"Forex"})
POSITION_DISCRIMINATORS = frozenset({"Summary", ""})
TRADE_DISCRIMINATORS = frozenset({"Order", "Trade", ""})

PERIOD_DATE_FORMAT = "%B %d, %Y"
GENERATED_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}),?\s+(\d{2}:\d{2}:\d{2})")
DIVIDEND_RE = re.compile(r"^\s*(?P<symbol>[^(]+?)\s*\((?P<isin>[A-Z]{2}[A-Z0-9]{9}[0-9])\)")

INSTRUMENT_SPECS = (
    ColumnSpec("Description", "name"),
    ColumnSpec("Security ID", "isin", required=False),
    ColumnSpec("Listing Exch", "exchange", required=False),
    ColumnSpec("Type", "instrument_type", required=False),
)

POSITION_SPECS = (
    ColumnSpec("Asset Category", "asset_category", choices=ASSET_CATEGORIES),
    ColumnSpec("Currency", "currency", FieldKind.CURRENCY),
    ColumnSpec("Symbol", "symbol"),
    ColumnSpec("Quantity", "quantity", FieldKind.DECIMAL),
    ColumnSpec("Close Price", "price", FieldKind.DECIMAL, required=False),
    ColumnSpec("Value", "value", FieldKind.DECIMAL),
) + INSTRUMENT_SPECS

TRADE_SPECS = (
    ColumnSpec("record_type", "record_type"),
    ColumnSpec("Asset Category", "asset_category", choices=ASSET_CATEGORIES),
    ColumnSpec("Currency", "currency", FieldKind.CURRENCY),
    ColumnSpec("Symbol", "symbol"),
    ColumnSpec("Date/Time", "date", FieldKind.DATE),
    ColumnSpec("Quantity", "quantity", FieldKind.DECIMAL),
    ColumnSpec("T. Price", "price", FieldKind.DECIMAL, required=False),
    ColumnSpec("Proceeds", "proceeds", FieldKind.DECIMAL),
    ColumnSpec("Comm/Fee", "commission", FieldKind.DECIMAL, required=False),
) + INSTRUMENT_SPECS

DIVIDEND_SPECS = (
    ColumnSpec("record_type", "record_type"),
    ColumnSpec("Asset Category", "asset_category", required=False, choices=ASSET_CATEGORIES),
    ColumnSpec("Currency", "currency", FieldKind.CURRENCY),
    ColumnSpec("Symbol", "symbol"),
    ColumnSpec("Date", "date", FieldKind.DATE),
    ColumnSpec("Amount", "proceeds", FieldKind.DECIMAL),
    ColumnSpec("Description", "name"),
    ColumnSpec("Security ID", "isin"),
    ColumnSpec("Listing Exch", "exchange", required=False),
    ColumnSpec("Type", "instrument_type", required=False),
)

Group = tuple[tuple[str, ...], list[tuple[int, list[str]]]]


class InteractiveBrokersReader(StatementReader):
    format = BrokerFormat.INTERACTIVE_BROKERS
    dialect = Dialect(
        delimiter=",",
        decimal_separator=".",
        date_formats=("%Y-%m-%d, %H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"),
    )

    def _parse_text(self, text: str) -> tuple[Preamble, Sequence[RawRow], Sequence[ParseDiagnostic]]:
        groups, diagnostics = _split_sections(iter_csv_lines(text, self.dialect.delimiter))
        preamble = self._read_preamble(groups)

        instruments = self._instrument_frame(groups.get(INSTRUMENTS, []), diagnostics)
        accepted: list[RawRow] = []

        positions = self._section_frame(groups.get(OPEN_POSITIONS, []), Section.POSITION, diagnostics)
        positions = positions[positions["DataDiscriminator"].isin(POSITION_DISCRIMINATORS)]
        positions = positions[~positions["Asset Category"].isin(IGNORED_CATEGORIES)]
        self._join_and_coerce(positions, instruments, POSITION_SPECS, Section.POSITION, accepted, diagnostics)

        trades = self._section_frame(groups.get(TRADES, []), Section.TRANSACTION, diagnostics)
        trades = trades[trades["DataDiscriminator"].isin(TRADE_DISCRIMINATORS)]
        trades = trades[~trades["Asset Category"].isin(IGNORED_CATEGORIES)]
        trades = trades.assign(record_type="trade")
        self._join_and_coerce(trades, instruments, TRADE_SPECS, Section.TRANSACTION, accepted, diagnostics)

        dividends = self._section_frame(
            groups.get(DIVIDENDS, []), Section.TRANSACTION, diagnostics, required=DIVIDEND_COLUMNS
        )
        self._coerce_dividends(dividends, instruments, "dividend", accepted, diagnostics)

        withholding = self._section_frame(
            groups.get(WITHHOLDING, []), Section.TRANSACTION, diagnostics, required=DIVIDEND_COLUMNS
        )
        self._coerce_dividends(withholding, instruments, "withholding", accepted, diagnostics)
        return preamble, accepted, diagnostics

    def _read_preamble(self, groups: dict[str, list[Group]]) -> Preamble:
        values: dict[str, str] = {}
        for section in (STATEMENT, ACCOUNT_INFORMATION):
            for _header, rows in groups.get(section, []):
                for _line, cells in rows:
                    if len(cells) >= 2:
                        values[cells[0].strip()] = cells[1].strip()
        for key in ("Period", "Account", "Base Currency"):
            if not values.get(key):
                raise StatementParseError(f"Interactive Brokers statement lacks {key!r}")
        try:
            period_end = values["Period"].split(" - ")[-1].strip()
            statement_date = parse_date(period_end, (PERIOD_DATE_FORMAT,))
            currency = parse_currency(values["Base Currency"])
        except ValueError as exc:
            raise StatementParseError(f"Interactive Brokers statement header is invalid: {exc}") from exc
        generated_at = None
        match = GENERATED_RE.match(values.get("WhenGenerated", ""))
        if match:
            generated_at = datetime.strptime(f"{match.group(1)} {match.group(2)}", "%Y-%m-%d %H:%M:%S")
        return Preamble(
            account_id=values["Account"],
            currency=currency,
            statement_date=statement_date,
            generated_at=generated_at,
        )

    @staticmethod
    def _section_frame(
        groups: Sequence[Group],
        section: Section,
        diagnostics: list[ParseDiagnostic],
        required: Sequence[str] = JOIN_KEYS,
    ) -> pd.DataFrame:
        frames = []
        for header, rows in groups:
            missing = [name for name in required if name not in header]
            if missing:
                raise StatementParseError(f"Section header lacks columns: {', '.join(missing)}")
            frame, frame_diagnostics = frame_from_rows(header, rows, section)
            diagnostics.extend(frame_diagnostics)
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=["DataDiscriminator", *required], dtype=str)
        work = pd.concat(frames).fillna("")
        if "DataDiscriminator" not in work.columns:
            work["DataDiscriminator"] = ""
        return work

    @staticmethod
    def _instrument_frame(groups: Sequence[Group], diagnostics: list[ParseDiagnostic]) -> pd.DataFrame:
        frames = []
        for header, rows in groups:
            frame, frame_diagnostics = frame_from_rows(header, rows, Section.POSITION)
            diagnostics.extend(frame_diagnostics)
            frames.append(frame.reindex(columns=INSTRUMENT_COLUMNS, fill_value=""))
        if not frames:
            return pd.DataFrame(columns=INSTRUMENT_COLUMNS, dtype=str)
        work = pd.concat(frames).fillna("")
        return work.drop_duplicates(subset=JOIN_KEYS, keep="first").reset_index(drop=True)

    def _join_and_coerce(
        self,
        frame: pd.DataFrame,
        instruments: pd.DataFrame,
        specs: Sequence[ColumnSpec],
        section: Section,
        accepted: list[RawRow],
        diagnostics: list[ParseDiagnostic],
    ) -> None:
        if frame.empty:
            return
        work = frame.drop(columns=[c for c in INSTRUMENT_COLUMNS if c not in JOIN_KEYS], errors="ignore")
        work = work.rename_axis("_line").reset_index()
        merged = work.merge(instruments, on=JOIN_KEYS, how="left", indicator=True)
        for _, row in merged.iterrows():
            line = int(row["_line"])
            if row["_merge"] == "left_only":
                diagnostics.append(
                    ParseDiagnostic(
                        line=line,
                        field="symbol",
                        reason=f"no instrument information for {row['Asset Category']} {row['Symbol']!r}",
                        section=section.value,
                    )
                )
                continue
            self._append(row.to_dict(), specs, line, section, accepted, diagnostics)

    def _coerce_dividends(
        self,
        frame: pd.DataFrame,
        instruments: pd.DataFrame,
        record_type: str,
        accepted: list[RawRow],
        diagnostics: list[ParseDiagnostic],
    ) -> None:
        """Dividend and withholding lines name the security only in the description."""
        by_isin = {
            row["Security ID"]: row for _, row in instruments.iterrows() if row["Security ID"]
        }
        for line, row in frame.iterrows():
            currency = str(row.get("Currency", ""))
            if currency.startswith("Total") or not str(row.get("Description", "")).strip():
                continue
            match = DIVIDEND_RE.match(str(row["Description"]))
            if match is None:
                diagnostics.append(
                    ParseDiagnostic(int(line), "isin", f"{record_type} description carries no ISIN", Section.TRANSACTION.value)
                )
                continue
            instrument = by_isin.get(match.group("isin"))
            cells = {
                "record_type": record_type,
                "Currency": currency,
                "Date": row.get("Date", ""),
                "Amount": row.get("Amount", ""),
                "Symbol": match.group("symbol"),
                "Security ID": match.group("isin"),
                "Description": instrument["Description"] if instrument is not None else match.group("symbol"),
                "Asset Category": instrument["Asset Category"] if instrument is not None else "",
                "Listing Exch": instrument["Listing Exch"] if instrument is not None else "",
                "Type": instrument["Type"] if instrument is not None else "",
            }
            self._append(cells, DIVIDEND_SPECS, int(line), Section.TRANSACTION, accepted, diagnostics)

    def _append(
        self,
        cells: dict[str, object],
        specs: Sequence[ColumnSpec],
        line: int,
        section: Section,
        accepted: list[RawRow],
        diagnostics: list[ParseDiagnostic],
    ) -> None:
        try:
            accepted.append(coerce_row(cells, specs, line=line, section=section, dialect=self.dialect))
        except RowError as exc:
            diagnostics.append(diagnostic_from_error(exc, section))


def _split_sections(
    lines: Iterable[tuple[int, list[str]]],
) -> tuple[dict[str, list[Group]], list[ParseDiagnostic]]:
    """Group data lines by section and by the header they follow."""
    groups: dict[str, list[Group]] = defaultdict(list)
    diagnostics: list[ParseDiagnostic] = []
    for line, cells in lines:
        if len(cells) < 2:
            diagnostics.append(ParseDiagnostic(line, None, "line has no section discriminator"))
            continue
        section, discriminator, rest = cells[0].strip(), cells[1].strip(), cells[2:]
        if discriminator == "Header":
            groups[section].append((tuple(c.strip() for c in rest), []))
        elif discriminator == "Data":
            if not groups[section]:
                diagnostics.append(ParseDiagnostic(line, None, f"data line before {section!r} header"))
                continue
            groups[section][-1][1].append((line, rest))
    return dict(groups), diagnostics


__all__ = ["InteractiveBrokersReader"]
