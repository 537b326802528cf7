"""
test_extract_tabular.py - Spreadsheet extractor tests

Covers:
- header detection below bank banner rows
- ColumnMap resolution (accents, Abono/Cargo layouts, fallbacks)
- parse_rows skipping rules (empty first cell, zero amounts)
- workbook reading through pandas/openpyxl

Usage: pytest test_extract_tabular.py
"""

from __future__ import annotations

import io
import os
import sys
from datetime import date

import pandas as pd
import pytest

# Ensure we can import from project root
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from errors import ParseError
from extract_tabular import ColumnMap, find_header_row, parse_excel_file, parse_rows, read_workbook_rows
from models import TransactionType

CARTOLA_ROWS = [
    ["BANCO ESTADO - CUENTA RUT", None, None, None],
    ["Cartola al 31/03/2025", None, None, None],
    ["Fecha", "Descripción", "Referencia", "Monto"],
    ["05/03/2025", "TRANSF DE JUAN PEREZ", "BILL-2025-03-house12", "45.000"],
    ["07-03-2025", "PAGO BILL-2025-03-house7 CASA 7", None, 38000],
    [None, "SALDO ANTERIOR", None, "100.000"],
    ["08/03/2025", "AJUSTE", None, "0"],
    ["10/03/2025", "PAGO PROVEEDOR", None, "-15.000"],
]


def to_xlsx_bytes(rows) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, header=False, index=False, engine="openpyxl")
    return buffer.getvalue()


def test_header_found_below_banner_rows():
    assert find_header_row(CARTOLA_ROWS) == 2


def test_header_fallback_is_first_row():
    rows = [["01/03/2025", "GASTOS", "5.000"], ["02/03/2025", "AGUA", "7.000"]]
    assert find_header_row(rows) == 0


def test_header_keyword_beyond_scan_window_is_ignored():
    rows = [["x"]] * 10 + [["Fecha", "Monto"]]
    assert find_header_row(rows) == 0


def test_column_map_from_spanish_headers():
    columns = ColumnMap.from_header(["FECHA", "DESCRIPCIÓN", "REFERENCIA", "MONTO"])
    assert columns.to_dict() == {"date": 0, "amount": 3, "description": 1, "reference": 2}


def test_column_map_abono_layout():
    columns = ColumnMap.from_header(["Fecha", "Glosa", "Cargo", "Abono"])
    assert columns.amount == 3
    assert columns.description == 1
    assert columns.reference is None


def test_column_map_fallbacks():
    wide = ColumnMap.from_header(["Fecha", "Detalle", "Cargo"])
    assert (wide.date, wide.description, wide.amount) == (0, 1, 2)

    narrow = ColumnMap.from_header(["Fecha", "Cargo"])
    assert narrow.amount == 1


def test_parse_rows_cartola():
    transactions = parse_rows(CARTOLA_ROWS)
    assert len(transactions) == 3

    first, second, third = transactions
    assert first.date == date(2025, 3, 5)
    assert first.amount == 45000.0
    assert first.reference == "BILL-2025-03-house12"
    assert first.type is TransactionType.INCOME
    assert first.raw_amount_text == "45.000"

    assert second.date == date(2025, 3, 7)
    assert second.amount == 38000.0
    assert second.reference == "BILL-2025-03-house7"
    assert second.description == "PAGO BILL-2025-03-house7 CASA 7"

    assert third.amount == 15000.0
    assert third.type is TransactionType.EXPENSE
    assert third.raw_amount_text == "-15.000"


def test_parse_rows_without_reference_column():
    rows = [
        ["Fecha", "Detalle", "Abono"],
        ["2025-03-05", "DEP PARCELA 4", "$ 41.500"],
        ["", "continuación", "1.000"],
    ]
    transactions = parse_rows(rows)
    assert len(transactions) == 1
    assert transactions[0].date == date(2025, 3, 5)
    assert transactions[0].amount == 41500.0
    assert transactions[0].reference is None


def test_zero_first_cell_is_an_empty_row():
    assert parse_rows([["Fecha", "Monto"], [0, "5.000"]]) == []
    assert parse_rows([["Fecha", "Monto"], [0.0, "5.000"], ["01/03/2025", "7.000"]])[0].amount == 7000.0


def test_unreadable_date_keeps_transaction():
    rows = [["Fecha", "Descripción", "Monto"], ["sin fecha", "ABONO", "5.000"]]
    transactions = parse_rows(rows)
    assert len(transactions) == 1
    assert transactions[0].date is None


def test_parse_rows_empty_input():
    assert parse_rows([]) == []
    assert parse_rows([["Fecha", "Monto"]]) == []


def test_read_workbook_rows_converts_blanks_to_none():
    rows = read_workbook_rows(to_xlsx_bytes(CARTOLA_ROWS), "cartola.xlsx")
    assert len(rows) == len(CARTOLA_ROWS)
    assert rows[0][1] is None
    assert rows[2] == ["Fecha", "Descripción", "Referencia", "Monto"]


def test_parse_excel_file_from_bytes_and_path(tmp_path):
    data = to_xlsx_bytes(CARTOLA_ROWS)
    from_bytes = parse_excel_file(data, "cartola.xlsx")

    path = tmp_path / "cartola.xlsx"
    path.write_bytes(data)
    from_path = parse_excel_file(str(path))

    assert [t.amount for t in from_bytes] == [45000.0, 38000.0, 15000.0]
    assert from_bytes == from_path


def test_corrupt_workbook_raises_parse_error():
    with pytest.raises(ParseError):
        read_workbook_rows(b"this is not a workbook", "cartola.xlsx")
