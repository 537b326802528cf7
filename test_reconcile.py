"""
test_reconcile.py - End-to-end reconciliation tests

Covers:
- upload validation (format, empty, size limit)
- extractor routing by extension / MIME type
- bill parsing and open-bill selection
- full runs over an in-memory .xlsx statement and over PDF text
- error paths (corrupt workbook, no transactions, no pending bills)

Usage: pytest test_reconcile.py
"""

from __future__ import annotations

import io
import os
import sys
from datetime import date

import pandas as pd
import pytest
from pydantic import ValidationError

# Ensure we can import from project root
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import extract_text
from errors import FileFormatError, NoPendingBillsError, NoTransactionsFoundError, ParseError
from models import BillStatus, MatchStatus, Transaction
from reconcile import (
    detect_kind,
    load_statement,
    load_statement_file,
    parse_bills,
    reconcile_statement,
    reconcile_transactions,
    select_open_bills,
    validate_statement_file,
)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

CARTOLA_ROWS = [
    ["BANCO ESTADO - CUENTA RUT", None, None, None],
    ["Cartola al 31/03/2025", None, None, None],
    ["Fecha", "Descripción", "Referencia", "Monto"],
    ["05/03/2025", "TRANSF DE JUAN PEREZ", "BILL-2025-03-house12", "45.000"],
    ["07-03-2025", "PAGO BILL-2025-03-house7 CASA 7", None, 38000],
    [None, "SALDO ANTERIOR", None, "100.000"],
    ["10/03/2025", "PAGO PROVEEDOR", None, "-15.000"],
]

BILL_DOCUMENTS = [
    {"id": "b12", "houseId": "house12", "year": 2025, "month": 3, "total": 45000, "status": "pending"},
    {"id": "b7", "houseId": "house7", "year": 2025, "month": 3, "total": 38000, "status": "pending"},
    {"id": "b3", "houseId": "house3", "year": 2025, "month": 3, "total": 52000, "status": "paid"},
    {"id": "b5", "houseId": "house5", "year": 2025, "month": 3, "total": 60000, "status": "pending"},
]


def to_xlsx_bytes(rows) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, header=False, index=False, engine="openpyxl")
    return buffer.getvalue()


# -- Validation --


@pytest.mark.parametrize(
    "filename, content_type, expected",
    [
        ("cartola.xlsx", None, "spreadsheet"),
        ("CARTOLA.XLS", None, "spreadsheet"),
        ("cartola.pdf", None, "pdf"),
        ("upload", XLSX_MIME, "spreadsheet"),
        ("upload", "application/pdf; charset=binary", "pdf"),
        ("cartola.csv", "text/csv", None),
        (None, None, None),
    ],
)
def test_detect_kind(filename, content_type, expected):
    assert detect_kind(filename, content_type) == expected


def test_validate_rejects_unsupported_format():
    with pytest.raises(FileFormatError):
        validate_statement_file("cartola.txt", 100, "text/plain")


def test_validate_rejects_empty_file():
    with pytest.raises(FileFormatError):
        validate_statement_file("cartola.xlsx", 0)


def test_validate_size_limit():
    assert validate_statement_file("cartola.pdf", 1024, max_bytes=1024) == "pdf"
    with pytest.raises(FileFormatError) as excinfo:
        validate_statement_file("cartola.pdf", 1025, max_bytes=1024)
    assert "too large" in str(excinfo.value)


def test_default_limit_is_ten_megabytes():
    assert validate_statement_file("cartola.xlsx", 10 * 1024 * 1024) == "spreadsheet"
    with pytest.raises(FileFormatError):
        validate_statement_file("cartola.xlsx", 10 * 1024 * 1024 + 1)


# -- Bills --


def test_parse_bills_accepts_camel_case_and_numeric_ids():
    bills = parse_bills([{"id": 17, "houseId": "house2", "year": 2025, "month": 4, "total": "30000"}])
    assert bills[0].id == "17"
    assert bills[0].house_id == "house2"
    assert bills[0].total == 30000.0
    assert bills[0].status is BillStatus.PENDING


def test_parse_bills_rejects_invalid_month():
    with pytest.raises(ValidationError):
        parse_bills([{"id": "x", "houseId": "house1", "year": 2025, "month": 13, "total": 1}])


def test_select_open_bills():
    bills = parse_bills(BILL_DOCUMENTS)
    assert [bill.id for bill in select_open_bills(bills)] == ["b12", "b7", "b5"]
    assert [bill.id for bill in select_open_bills(bills, ["PAID"])] == ["b3"]
    assert len(select_open_bills(bills, ["pending", "paid"])) == 4


# -- Full runs --


def test_reconcile_spreadsheet_statement():
    data = to_xlsx_bytes(CARTOLA_ROWS)
    result = reconcile_statement(data, "cartola.xlsx", parse_bills(BILL_DOCUMENTS))

    assert result.source == "spreadsheet"
    assert result.stats.total_transactions == 3
    assert result.stats.total_matches == 2
    assert result.stats.high_confidence == 2
    assert result.stats.no_match == 1
    assert result.safe_auto_matches == 2

    top, second, unmatched = result.matches
    assert top.bill.id == "b7"
    assert top.score == 100
    assert second.bill.id == "b12"
    assert second.score == 85
    assert second.status is MatchStatus.HIGH
    assert unmatched.bill is None
    assert unmatched.transaction.amount == 15000.0

    assigned = [match.bill.id for match in result.matches if match.bill is not None]
    assert "b3" not in assigned

    assert len(result.transactions) == 3
    assert len({item.id for item in result.transactions}) == 3
    assert result.transactions[top.transaction_index].amount == 38000.0
    assert not any(item.matched for item in result.transactions)


def test_reconcile_pdf_statement(monkeypatch):
    text = "05/03 TRANSFERENCIA PARCELA 12 45.000\n06/03 PAGO CASA 7 38.000\n"
    monkeypatch.setattr(extract_text, "read_pdf_text", lambda source, password=None: text)

    result = reconcile_statement(
        b"%PDF-1.4 stub",
        "cartola.pdf",
        parse_bills(BILL_DOCUMENTS),
        year=2025,
    )
    assert result.source == "pdf"
    assert result.stats.total_matches == 2
    assert {match.bill.id for match in result.matches} == {"b12", "b7"}
    assert all(match.score == 70 for match in result.matches)


def test_load_statement_file(tmp_path):
    path = tmp_path / "cartola.xlsx"
    path.write_bytes(to_xlsx_bytes(CARTOLA_ROWS))
    kind, transactions = load_statement_file(path)
    assert kind == "spreadsheet"
    assert len(transactions) == 3


def test_load_statement_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_statement_file(tmp_path / "nope.xlsx")


def test_corrupt_workbook_is_parse_error():
    with pytest.raises(ParseError):
        load_statement(b"PK garbage", "cartola.xlsx")


def test_statement_without_movements():
    data = to_xlsx_bytes([["Fecha", "Descripción", "Monto"], ["01/03/2025", "AJUSTE", "0"]])
    with pytest.raises(NoTransactionsFoundError):
        load_statement(data, "cartola.xlsx")


def test_no_pending_bills():
    data = to_xlsx_bytes(CARTOLA_ROWS)
    only_paid = parse_bills([BILL_DOCUMENTS[2]])
    with pytest.raises(NoPendingBillsError):
        reconcile_statement(data, "cartola.xlsx", only_paid)


def test_reconcile_transactions_directly():
    transactions = [Transaction(date=date(2025, 3, 5), amount=45000.0, description="PARCELA 12")]
    result = reconcile_transactions(transactions, parse_bills(BILL_DOCUMENTS[:1]))
    assert result.source == ""
    assert result.matches[0].score == 70
    assert result.matches[0].status is MatchStatus.MEDIUM
    assert result.safe_auto_matches == 0

    with pytest.raises(NoPendingBillsError):
        reconcile_transactions(transactions, [])
