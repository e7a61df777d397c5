"""Command-line entrypoint for building D6 and 720 files from broker statements."""
from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from burocratin.application.dto import StatementInput
from burocratin.application.use_cases import BuildDeclarationsUseCase, DeclarationContext
from burocratin.domain.errors import ConfigurationError, InputError, LayoutError, StatementParseError
from burocratin.domain.parameters import FORM_720, FORM_D6
from burocratin.infrastructure.layouts.defaults import DEFAULT_LAYOUTS
from burocratin.infrastructure.layouts.schema import FormLayout, load_layout
from burocratin.infrastructure.rates.rate_table import InMemoryRateTable, load_rates_csv
from burocratin.infrastructure.storage.parameters_store import load_config
from burocratin.logging_utils import configure_logging
from burocratin.presentation.review_report import render_workbook

OUTPUT_NAMES = {
    FORM_D6: "d6.txt",
    FORM_720: "fichero-720.txt",
}


def _statement(value: str) -> StatementInput:
    fmt, sep, path = value.partition(":")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected FORMAT:PATH, got {value!r}")
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise argparse.ArgumentTypeError(f"cannot read {path}: {exc.strerror}") from exc
    return StatementInput(format=fmt, data=data, label=Path(path).name)


def _layout_file(value: str) -> tuple[str, Path]:
    form_id, sep, path = value.partition(":")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected FORM:PATH, got {value!r}")
    return form_id, Path(path)


def load_layouts(overrides: list[tuple[str, Path]]) -> dict[str, FormLayout]:
    """Default layouts with the ones given on the command line swapped in."""
    layouts = dict(DEFAULT_LAYOUTS)
    for form_id, path in overrides:
        layout = load_layout(path)
        if layout.form_id != form_id:
            raise LayoutError(f"Layout file {path} describes form {layout.form_id}, not {form_id}")
        layouts[form_id] = layout
    return layouts


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate D6 and Modelo 720 files from broker statements")
    parser.add_argument(
        "--statement",
        action="append",
        type=_statement,
        required=True,
        metavar="FORMAT:PATH",
        help="Broker export, e.g. degiro:informe.csv or interactive_brokers:activity.csv",
    )
    parser.add_argument("--config", type=Path, required=True, help="Fiscal parameters JSON file")
    parser.add_argument("--rates", type=Path, help="currency,date,rate CSV of conversion rates")
    parser.add_argument(
        "--layout",
        action="append",
        type=_layout_file,
        default=[],
        metavar="FORM:PATH",
        help="Record layout JSON replacing the built-in one, e.g. 720:layout-2024.json",
    )
    parser.add_argument("--rate-lookback", type=int, default=0, help="Days a rate lookup may fall back")
    parser.add_argument("--output-dir", type=Path, default=Path("."), help="Directory for the form files")
    parser.add_argument("--review", type=Path, help="Write a review workbook (xlsx) to this path")
    parser.add_argument("--strict", action="store_true", help="Reject a statement with any invalid row")
    parser.add_argument("--log-level", help="Logging level (default from BUROCRATIN_LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
        if args.rates:
            rates = load_rates_csv(args.rates, lookback_days=args.rate_lookback)
        else:
            rates = InMemoryRateTable(lookback_days=args.rate_lookback)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    try:
        layouts = load_layouts(args.layout)
    except LayoutError as exc:
        print(f"Layout error: {exc}", file=sys.stderr)
        return 2
    if args.strict:
        config = replace(config, strict=True)

    use_case = BuildDeclarationsUseCase(DeclarationContext(config=config, rates=rates, layouts=layouts))
    try:
        run = use_case.execute(args.statement)
    except StatementParseError as exc:
        print(f"Statement rejected: {exc}", file=sys.stderr)
        for diagnostic in exc.diagnostics:
            print(f"  {diagnostic}", file=sys.stderr)
        return 2
    except InputError as exc:
        print(f"Input error: {exc}", file=sys.stderr)
        return 2

    print("Declaration Summary")
    print("===================")
    print(f"Fiscal year: {config.fiscal_year}")
    print(f"Statements: {len(run.statements)}")
    print(f"Rates loaded: {len(rates)} ({', '.join(sorted(rates.currencies())) or 'none'})")
    print(f"Rejected rows: {len(run.diagnostics)}")

    if run.diagnostics:
        print("\nRejected rows:")
        for diagnostic in run.diagnostics:
            print(f"- {diagnostic}")

    args.output_dir.mkdir(parents=True, exist_ok=True)
    print("\nForms:")
    for form_id, outcome in run.outcomes.items():
        if not outcome.ok:
            print(f"- {form_id}: not generated ({outcome.error.category}): {outcome.error}")
            continue
        if not outcome.lines:
            print(f"- {form_id}: nothing to declare")
            continue
        target = args.output_dir / OUTPUT_NAMES.get(form_id, f"{form_id.lower()}.txt")
        target.write_bytes(outcome.content)
        print(f"- {form_id}: {len(outcome.lines)} lines, total {outcome.document.header.total_amount} -> {target}")

    if args.review:
        args.review.write_bytes(render_workbook(run))
        print(f"\nReview workbook: {args.review}")

    return 0 if run.ok else 1


if __name__ == "__main__":
    sys.exit(main())
