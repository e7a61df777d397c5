import json
from dataclasses import replace
from pathlib import Path

import pytest

from burocratin.cli import main
from burocratin.infrastructure.layouts.defaults import FOREIGN_ASSETS_LAYOUT
from burocratin.infrastructure.layouts.schema import save_layout


def write_inputs(tmp_path: Path, degiro_report: bytes, ib_statement: bytes) -> list[str]:
    config = {
        "filer": {"tax_id": "12345678Z", "name": "Ana Pérez"},
        "fiscal_year": 2023,
        "forms": {"720": {"threshold": "30000"}, "D6": {"threshold": "10000"}},
    }
    (tmp_path / "params.json").write_text(json.dumps(config), encoding="utf-8")
    (tmp_path / "rates.csv").write_text(
        "currency,date,rate\n"
        "USD,2023-02-10,0.9\n"
        "USD,2023-03-03,0.9\n"
        "USD,2023-11-02,0.9\n"
        "USD,2023-12-29,0.9\n",
        encoding="utf-8",
    )
    (tmp_path / "degiro.csv").write_bytes(degiro_report)
    (tmp_path / "ib.csv").write_bytes(ib_statement)
    return [
        "--statement", f"degiro:{tmp_path / 'degiro.csv'}",
        "--statement", f"interactive_brokers:{tmp_path / 'ib.csv'}",
        "--config", str(tmp_path / "params.json"),
        "--rates", str(tmp_path / "rates.csv"),
    ]


def test_main_writes_form_files_and_review(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)
    out_dir = tmp_path / "out"

    code = main(args + ["--rate-lookback", "3", "--output-dir", str(out_dir), "--review", str(tmp_path / "review.xlsx")])

    assert code == 0
    assert (out_dir / "fichero-720.txt").stat().st_size == 6 * 502
    assert (out_dir / "d6.txt").stat().st_size == 5 * 252
    assert (tmp_path / "review.xlsx").exists()
    output = capsys.readouterr().out
    assert "Declaration Summary" in output
    assert "Rates loaded: 4 (USD)" in output
    assert "- 720: 4 lines" in output


def test_main_reports_failed_form(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)

    code = main(args + ["--output-dir", str(tmp_path / "out")])

    assert code == 1
    assert "not generated (configuration)" in capsys.readouterr().out


def test_main_skips_empty_forms(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)
    (tmp_path / "params.json").write_text(
        json.dumps({"filer": {"tax_id": "1", "name": "A"}, "fiscal_year": 2023, "forms": {"720": {}}}),
        encoding="utf-8",
    )
    out_dir = tmp_path / "out"

    code = main(args + ["--rate-lookback", "3", "--output-dir", str(out_dir)])

    assert code == 0
    assert not (out_dir / "fichero-720.txt").exists()
    assert "- 720: nothing to declare" in capsys.readouterr().out


def test_missing_config_exits_with_2(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)
    args[args.index("--config") + 1] = str(tmp_path / "absent.json")

    assert main(args) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_strict_flag_rejects_bad_rows(tmp_path: Path, capsys, degiro_report, ib_statement):
    broken = ib_statement.decode("utf-8").replace('"2023-11-02, 15:45:12"', "yesterday").encode("utf-8")
    args = write_inputs(tmp_path, degiro_report, broken)

    assert main(args + ["--strict", "--rate-lookback", "3"]) == 2
    assert "Statement rejected" in capsys.readouterr().err


def test_statement_argument_needs_a_format(tmp_path: Path):
    with pytest.raises(SystemExit):
        main(["--statement", str(tmp_path / "x.csv"), "--config", "params.json"])


def test_layout_file_replaces_the_built_in_layout(tmp_path: Path, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)
    save_layout(replace(FOREIGN_ASSETS_LAYOUT, version="2024", record_length=600), tmp_path / "layout-720.json")
    out_dir = tmp_path / "out"

    code = main(args + ["--layout", f"720:{tmp_path / 'layout-720.json'}", "--rate-lookback", "3", "--output-dir", str(out_dir)])

    assert code == 0
    assert (out_dir / "fichero-720.txt").stat().st_size == 6 * 602
    assert (out_dir / "d6.txt").stat().st_size == 5 * 252


def test_layout_for_another_form_exits_with_2(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)
    save_layout(FOREIGN_ASSETS_LAYOUT, tmp_path / "layout-720.json")

    assert main(args + ["--layout", f"D6:{tmp_path / 'layout-720.json'}"]) == 2
    assert "describes form 720, not D6" in capsys.readouterr().err


def test_unreadable_layout_exits_with_2(tmp_path: Path, capsys, degiro_report, ib_statement):
    args = write_inputs(tmp_path, degiro_report, ib_statement)

    assert main(args + ["--layout", f"720:{tmp_path / 'absent.json'}"]) == 2
    assert "Cannot read layout file" in capsys.readouterr().err
