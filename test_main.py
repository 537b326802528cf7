"""
test_main.py - CLI tests

Usage: pytest test_main.py
"""

from __future__ import annotations

import io
import json
import os
import sys

import pandas as pd
import pytest

# Ensure we can import from project root
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from main import load_bills, main, run_pipeline

BILLS = [
    {"id": "b12", "houseId": "house12", "year": 2025, "month": 3, "total": 45000},
    {"id": "b7", "houseId": "house7", "year": 2025, "month": 3, "total": 38000},
]


@pytest.fixture
def statement_path(tmp_path):
    rows = [
        ["Fecha", "Descripción", "Referencia", "Monto"],
        ["05/03/2025", "TRANSF DE JUAN PEREZ", "BILL-2025-03-house12", "45.000"],
        ["06/03/2025", "COMPRA SUPERMERCADO", None, "-12.990"],
    ]
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, header=False, index=False, engine="openpyxl")
    path = tmp_path / "cartola.xlsx"
    path.write_bytes(buffer.getvalue())
    return path


@pytest.fixture
def bills_path(tmp_path):
    path = tmp_path / "bills.json"
    path.write_text(json.dumps({"bills": BILLS}), encoding="utf-8")
    return path


def test_load_bills_list_and_object(tmp_path, bills_path):
    assert [bill.id for bill in load_bills(str(bills_path))] == ["b12", "b7"]

    plain = tmp_path / "plain.json"
    plain.write_text(json.dumps(BILLS), encoding="utf-8")
    assert len(load_bills(str(plain))) == 2


def test_load_bills_errors(tmp_path):
    with pytest.raises(ValueError):
        load_bills("  ")
    with pytest.raises(FileNotFoundError):
        load_bills(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        load_bills(str(broken))

    scalar = tmp_path / "scalar.json"
    scalar.write_text("42", encoding="utf-8")
    with pytest.raises(ValueError):
        load_bills(str(scalar))


def test_run_pipeline(statement_path, bills_path):
    result = run_pipeline(str(statement_path), load_bills(str(bills_path)))
    assert result.source == "spreadsheet"
    assert result.stats.total_transactions == 2
    assert result.stats.total_matches == 1
    assert result.matches[0].bill.id == "b12"


def test_cli_json_output(statement_path, bills_path, capsys):
    main(["--statement", str(statement_path), "--bills", str(bills_path), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "ok"
    assert payload["stats"]["totalMatches"] == 1
    assert payload["matches"][0]["score"] == 85


def test_cli_text_report(statement_path, bills_path, capsys):
    main(["-s", str(statement_path), "-b", str(bills_path)])
    out = capsys.readouterr().out
    assert "1/2 transactions matched" in out
    assert "BILL-2025-03-house12" in out


def test_cli_missing_bills_file_exits_1(statement_path, tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--statement", str(statement_path), "--bills", str(tmp_path / "missing.json")])
    assert excinfo.value.code == 1
    assert "Bills file not found" in capsys.readouterr().err


def test_cli_unsupported_statement_exits_1(tmp_path, bills_path):
    statement = tmp_path / "cartola.csv"
    statement.write_text("Fecha;Monto\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["--statement", str(statement), "--bills", str(bills_path)])
    assert excinfo.value.code == 1
