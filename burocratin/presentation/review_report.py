"""Human-readable review exports of declaration lines and statement contents."""
from __future__ import annotations

import csv
import html
import io
from datetime import date
from decimal import Decimal
from typing import Sequence

import pandas as pd

from burocratin.application.dto import DeclarationRun, StatementDiagnostic
from burocratin.domain.models import DeclarationLine, NormalizedStatement


def _cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def lines_to_rows(lines: Sequence[DeclarationLine]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for line in lines:
        row = {"form": line.form_id}
        row.update({key: _cell(value) for key, value in line.values.items()})
        rows.append(row)
    return rows


def diagnostics_to_rows(diagnostics: Sequence[StatementDiagnostic]) -> list[dict[str, str]]:
    return [
        {
            "statement": item.label,
            "section": item.diagnostic.section,
            "line": str(item.diagnostic.line),
            "field": item.diagnostic.field or "",
            "reason": item.diagnostic.reason,
        }
        for item in diagnostics
    ]


def positions_frame(statements: Sequence[NormalizedStatement]) -> pd.DataFrame:
    rows = [
        {
            "statement": statement.label,
            "broker": position.account.broker,
            "account": position.account.account_id,
            "security_id": position.security.identifier,
            "name": position.security.name,
            "asset_class": position.security.asset_class.value,
            "quantity": _cell(position.quantity),
            "value": _cell(position.value),
            "currency": position.currency,
            "valuation_date": _cell(position.valuation_date),
        }
        for statement in statements
        for position in statement.positions
    ]
    return pd.DataFrame(rows)


def transactions_frame(statements: Sequence[NormalizedStatement]) -> pd.DataFrame:
    rows = [
        {
            "statement": statement.label,
            "broker": transaction.account.broker,
            "account": transaction.account.account_id,
            "date": _cell(transaction.date),
            "type": transaction.type.value,
            "security_id": transaction.security.identifier,
            "name": transaction.security.name,
            "quantity": _cell(transaction.quantity),
            "amount": _cell(transaction.amount),
            "currency": transaction.currency,
        }
        for statement in statements
        for transaction in statement.transactions
    ]
    return pd.DataFrame(rows)


def render_csv(lines: Sequence[DeclarationLine]) -> bytes:
    rows = lines_to_rows(lines)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()) if rows else [])
    if rows:
        writer.writeheader()
        writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_html(lines: Sequence[DeclarationLine]) -> str:
    rows = lines_to_rows(lines)
    if not rows:
        return "<p>No declaration lines.</p>"
    header = "".join(f"<th>{html.escape(col)}</th>" for col in rows[0].keys())
    body_parts = []
    for row in rows:
        body_parts.append("<tr>" + "".join(f"<td>{html.escape(value)}</td>" for value in row.values()) + "</tr>")
    body_html = "".join(body_parts)
    return f"<table><thead><tr>{header}</tr></thead><tbody>{body_html}</tbody></table>"


def render_workbook(run: DeclarationRun) -> bytes:
    """One sheet per form, then diagnostics, positions and transactions sheets."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="xlsxwriter") as writer:
        for form_id, outcome in run.outcomes.items():
            sheet = f"form_{form_id}"
            pd.DataFrame(lines_to_rows(outcome.lines)).to_excel(writer, sheet_name=sheet, index=False)
            if outcome.error is not None:
                worksheet = writer.sheets[sheet]
                red = writer.book.add_format({"font_color": "#9C0006", "bold": True})
                worksheet.write(0, 0, f"Not generated: {outcome.error}", red)

        diagnostics = pd.DataFrame(
            diagnostics_to_rows(run.diagnostics),
            columns=["statement", "section", "line", "field", "reason"],
        )
        diagnostics.to_excel(writer, sheet_name="diagnostics", index=False)
        positions_frame(run.statements).to_excel(writer, sheet_name="positions", index=False)
        transactions_frame(run.statements).to_excel(writer, sheet_name="transactions", index=False)
    return buf.getvalue()
