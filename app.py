"""Streamlit front-end for building D6 and Modelo 720 files."""
from __future__ import annotations

import json
from datetime import date

import pandas as pd
import streamlit as st

from burocratin import BuildDeclarationsUseCase, DeclarationContext, InMemoryRateTable, StatementInput, load_rates_csv
from burocratin.application.dto import DeclarationRun
from burocratin.cli import OUTPUT_NAMES
from burocratin.domain.errors import BurocratinError, StatementParseError
from burocratin.domain.models import FilerIdentity
from burocratin.domain.parameters import FORM_720, FORM_D6
from burocratin.domain.records import BrokerFormat
from burocratin.infrastructure.layouts.defaults import DEFAULT_LAYOUTS
from burocratin.infrastructure.layouts.schema import FormLayout, layout_from_mapping
from burocratin.infrastructure.storage.parameters_store import (
    DEFAULT_THRESHOLDS,
    config_from_mapping,
    config_to_mapping,
    default_config,
)
from burocratin.logging_utils import configure_logging
from burocratin.presentation.review_report import (
    diagnostics_to_rows,
    lines_to_rows,
    positions_frame,
    render_csv,
    render_html,
    render_workbook,
    transactions_frame,
)

configure_logging()
st.set_page_config(page_title="Burocratin", layout="wide")
st.title("Burocratin: D6 and Modelo 720")


def build_config(tax_id: str, name: str, phone: str, fiscal_year: int, residence: str, thresholds: dict[str, float], parameters_file) -> dict:
    if parameters_file is not None:
        return json.loads(parameters_file.getvalue().decode("utf-8"))
    base = config_to_mapping(
        default_config(FilerIdentity(tax_id=tax_id, name=name, phone=phone), fiscal_year, residence)
    )
    for form_id, threshold in thresholds.items():
        base["forms"][form_id]["threshold"] = str(threshold)
    return base


def load_uploaded_layouts(layout_files) -> dict[str, FormLayout]:
    layouts = dict(DEFAULT_LAYOUTS)
    for uploaded in layout_files or []:
        layout = layout_from_mapping(json.loads(uploaded.getvalue().decode("utf-8")))
        layouts[layout.form_id] = layout
    return layouts


def run_declarations(
    statements: list[StatementInput], raw_config: dict, rates_file, lookback: int, layouts: dict[str, FormLayout]
) -> DeclarationRun:
    config = config_from_mapping(raw_config)
    if rates_file is not None:
        rates = load_rates_csv(rates_file, lookback_days=lookback)
    else:
        rates = InMemoryRateTable(lookback_days=lookback)
    use_case = BuildDeclarationsUseCase(DeclarationContext(config=config, rates=rates, layouts=layouts))
    return use_case.execute(statements)


if "view" not in st.session_state:
    st.session_state["view"] = "inputs"
if "result" not in st.session_state:
    st.session_state["result"] = None


if st.session_state["view"] == "inputs":
    col1, col2 = st.columns(2)
    with col1:
        degiro_files = st.file_uploader("Degiro annual reports", type=["csv", "txt"], accept_multiple_files=True)
    with col2:
        ib_files = st.file_uploader(
            "Interactive Brokers activity statements", type=["csv", "txt"], accept_multiple_files=True
        )

    st.subheader("Filer and fiscal year")
    with st.expander("Declaration parameters", expanded=True):
        col_a, col_b, col_c = st.columns(3)
        with col_a:
            tax_id = st.text_input("Tax id (NIF)", key="tax_id")
            fiscal_year = st.number_input(
                "Fiscal year", min_value=2000, max_value=2100, value=date.today().year - 1, step=1
            )
        with col_b:
            filer_name = st.text_input("Full name", key="filer_name")
            residence = st.text_input("Residence country", value="ES", max_chars=2)
        with col_c:
            phone = st.text_input("Phone", key="phone")
            strict = st.checkbox("Reject statements with invalid rows")

        col_t1, col_t2 = st.columns(2)
        with col_t1:
            threshold_720 = st.number_input("720 threshold", min_value=0.0, value=float(DEFAULT_THRESHOLDS[FORM_720]))
        with col_t2:
            threshold_d6 = st.number_input("D6 threshold", min_value=0.0, value=float(DEFAULT_THRESHOLDS[FORM_D6]))

        parameters_file = st.file_uploader("Or load a parameters JSON file", type=["json"])

    col_r1, col_r2 = st.columns([3, 1])
    with col_r1:
        rates_file = st.file_uploader("Conversion rates (currency,date,rate)", type=["csv"])
    with col_r2:
        lookback = st.number_input("Rate look-back days", min_value=0, max_value=10, value=4, step=1)

    layout_files = st.file_uploader(
        "Record layouts replacing the built-in ones (JSON)", type=["json"], accept_multiple_files=True
    )

    ready = bool(degiro_files or ib_files) and (parameters_file is not None or bool(tax_id and filer_name))
    run_btn = st.button("Generate forms", disabled=not ready)
    if run_btn and ready:
        statements = [
            StatementInput(format=BrokerFormat.DEGIRO, data=f.getvalue(), label=f.name) for f in degiro_files or []
        ] + [
            StatementInput(format=BrokerFormat.INTERACTIVE_BROKERS, data=f.getvalue(), label=f.name)
            for f in ib_files or []
        ]
        try:
            raw_config = build_config(
                tax_id,
                filer_name,
                phone,
                int(fiscal_year),
                residence.strip().upper(),
                {FORM_720: threshold_720, FORM_D6: threshold_d6},
                parameters_file,
            )
            raw_config["strict"] = bool(strict or raw_config.get("strict", False))
            layouts = load_uploaded_layouts(layout_files)
            with st.spinner("Building forms..."):
                run = run_declarations(statements, raw_config, rates_file, int(lookback), layouts)
        except StatementParseError as exc:
            st.error(f"Statement rejected: {exc}")
            st.dataframe(pd.DataFrame([{"diagnostic": str(d)} for d in exc.diagnostics]))
        except BurocratinError as exc:
            st.error(f"{exc.category.capitalize()} error: {exc}")
        except json.JSONDecodeError as exc:
            st.error(f"Uploaded JSON file is not valid: {exc}")
        else:
            st.session_state["result"] = {"run": run, "workbook": render_workbook(run)}
            st.session_state["view"] = "results"
            st.rerun()
else:
    back_clicked = st.button("← Back", key="back_to_inputs")
    if back_clicked:
        st.session_state["view"] = "inputs"
        st.session_state["result"] = None
        st.rerun()

    result = st.session_state.get("result")
    if not result:
        st.info("No results available. Upload statements and generate the forms first.")
    else:
        run: DeclarationRun = result["run"]

        st.subheader("Summary")
        st.metric("Statements", len(run.statements))
        st.metric("Rejected rows", len(run.diagnostics))
        for form_id, outcome in run.outcomes.items():
            st.metric(f"Form {form_id} lines", len(outcome.lines) if outcome.ok else "failed")

        tab_names = [f"Form {form_id}" for form_id in run.outcomes] + ["Diagnostics", "Positions", "Transactions"]
        tabs = st.tabs(tab_names)
        for tab, (form_id, outcome) in zip(tabs, run.outcomes.items()):
            with tab:
                if not outcome.ok:
                    st.error(f"Not generated ({outcome.error.category}): {outcome.error}")
                    continue
                if not outcome.lines:
                    st.info("Nothing to declare for this form.")
                    continue
                st.dataframe(pd.DataFrame(lines_to_rows(outcome.lines)))
                st.download_button(
                    f"Download {form_id} file",
                    data=outcome.content,
                    file_name=OUTPUT_NAMES.get(form_id, f"{form_id.lower()}.txt"),
                    mime="text/plain",
                )
                st.download_button(
                    "Download review CSV",
                    data=render_csv(outcome.lines),
                    file_name=f"{form_id.lower()}_review.csv",
                    mime="text/csv",
                )
                st.download_button(
                    "Download review HTML",
                    data=render_html(outcome.lines).encode("utf-8"),
                    file_name=f"{form_id.lower()}_review.html",
                    mime="text/html",
                )
        with tabs[-3]:
            st.dataframe(pd.DataFrame(diagnostics_to_rows(run.diagnostics)))
        with tabs[-2]:
            st.dataframe(positions_frame(run.statements))
        with tabs[-1]:
            st.dataframe(transactions_frame(run.statements))

        st.download_button(
            "Download review workbook",
            data=result["workbook"],
            file_name="burocratin_review.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
