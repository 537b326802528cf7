"""
extract_tabular.py - Spreadsheet (cartola .xls/.xlsx) extraction.

Turns the rows of one worksheet into `Transaction` records.

Pipeline role:
- Only this module knows about worksheet layout: header rows, column
  names and their Spanish variants.
- Downstream modules only ever see `list[Transaction]`.

Design notes:
- Banks put a few banner rows above the real header, so the header is
  searched for in the first HEADER_SCAN_ROWS rows.
- Column roles are resolved ONCE per sheet into a `ColumnMap`; each data
  row is then read through a `Row` wrapper against that map.
- A bad row never sinks the file. It is logged and skipped. Only an
  unreadable workbook raises (ParseError).
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import pandas as pd

from errors import ParseError
from logging_config import get_logger
from models import Transaction, TransactionType
from normalize import fold_text, is_missing, is_negative_token, parse_amount, parse_date
from reference import extract_reference

logger = get_logger(__name__)

HEADER_SCAN_ROWS = 10

HEADER_KEYWORDS: tuple[str, ...] = (
    "fecha",
    "monto",
    "descripcion",
    "referencia",
    "abono",
    "cargo",
)

DATE_KEYWORDS = ("fecha",)
AMOUNT_KEYWORDS = ("monto", "abono")
DESCRIPTION_KEYWORDS = ("descripcion", "detalle", "glosa")
REFERENCE_KEYWORDS = ("referencia", "ref")

SPREADSHEET_EXTENSIONS = {".xls", ".xlsx"}


def _cell_text(value: Any) -> str:
    if is_missing(value):
        return ""
    return str(value).strip()


def find_header_row(rows: Sequence[Sequence[Any]]) -> int:
    """Index of the first row mentioning a known column keyword (else 0)."""
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        row_text = fold_text("|".join(_cell_text(cell) for cell in (row or [])))
        if any(keyword in row_text for keyword in HEADER_KEYWORDS):
            logger.debug("header_detect | row=%s | text=%r", index, row_text)
            return index

    logger.warning(
        "header_detect | found=False | scanned_rows=%s | fallback=row_0",
        min(len(rows), HEADER_SCAN_ROWS),
    )
    return 0


class ColumnMap:
    """Column index for each transaction field, resolved from the header row."""

    def __init__(
        self,
        date: int,
        amount: int,
        description: int,
        reference: Optional[int] = None,
    ) -> None:
        self.date = date
        self.amount = amount
        self.description = description
        self.reference = reference

    @staticmethod
    def _find(headers: list[str], keywords: Sequence[str]) -> Optional[int]:
        for index, header in enumerate(headers):
            if any(keyword in header for keyword in keywords):
                return index
        return None

    @classmethod
    def from_header(cls, header_row: Sequence[Any]) -> "ColumnMap":
        """Resolve column roles, falling back to Fecha | Descripción | Monto."""
        headers = [fold_text(_cell_text(cell)) for cell in (header_row or [])]

        date_index = cls._find(headers, DATE_KEYWORDS)
        amount_index = cls._find(headers, AMOUNT_KEYWORDS)
        description_index = cls._find(headers, DESCRIPTION_KEYWORDS)
        reference_index = cls._find(headers, REFERENCE_KEYWORDS)

        if amount_index is None:
            amount_index = 2 if len(headers) > 2 else 1

        column_map = cls(
            date=0 if date_index is None else date_index,
            amount=amount_index,
            description=1 if description_index is None else description_index,
            reference=reference_index,
        )
        logger.info(
            "column_map | date=%s | amount=%s | description=%s | reference=%s | headers=%s",
            column_map.date,
            column_map.amount,
            column_map.description,
            column_map.reference,
            headers,
        )
        return column_map

    def to_dict(self) -> dict[str, Optional[int]]:
        return {
            "date": self.date,
            "amount": self.amount,
            "description": self.description,
            "reference": self.reference,
        }


class Row:
    """One worksheet row read through a ColumnMap."""

    def __init__(self, cells: Sequence[Any], number: int, columns: ColumnMap) -> None:
        self.cells = list(cells or [])
        self.number = number
        self.columns = columns

    def cell(self, index: Optional[int]) -> Any:
        if index is None or index < 0 or index >= len(self.cells):
            return None
        value = self.cells[index]
        return None if is_missing(value) else value

    @property
    def is_empty(self) -> bool:
        """No cells, or a blank / zero first cell (subtotal and filler rows)."""
        if not self.cells:
            return True
        first = self.cells[0]
        if isinstance(first, (int, float)) and not isinstance(first, bool) and first == 0:
            return True
        return _cell_text(first) == ""

    @property
    def raw_amount(self) -> Any:
        return self.cell(self.columns.amount)

    def to_transaction(self) -> Transaction:
        raw_amount = self.raw_amount
        description = _cell_text(self.cell(self.columns.description))
        reference = _cell_text(self.cell(self.columns.reference)) or None
        if reference is None:
            reference = extract_reference(description)

        return Transaction(
            date=parse_date(self.cell(self.columns.date)),
            amount=parse_amount(raw_amount),
            description=description,
            reference=reference,
            type=TransactionType.EXPENSE if is_negative_token(raw_amount) else TransactionType.INCOME,
            raw_amount_text=_cell_text(raw_amount),
        )


def parse_rows(rows: Sequence[Sequence[Any]]) -> list[Transaction]:
    """Convert worksheet rows into transactions, in row order.

    Rows before and including the header are ignored. Rows whose first cell
    is empty are skipped, as are rows without a positive amount.
    """
    if not rows:
        logger.warning("tabular_parse | rows=0 | fallback=[]")
        return []

    header_index = find_header_row(rows)
    columns = ColumnMap.from_header(rows[header_index])

    transactions: list[Transaction] = []
    skipped_empty = 0
    skipped_amount = 0
    skipped_error = 0

    for number in range(header_index + 1, len(rows)):
        row = Row(rows[number], number, columns)
        if row.is_empty:
            skipped_empty += 1
            continue

        try:
            transaction = row.to_transaction()
        except Exception as exc:
            skipped_error += 1
            logger.warning(
                "tabular_row_error | row=%s | error=%s | fallback='skip row'",
                number,
                exc,
            )
            continue

        if transaction.amount <= 0:
            skipped_amount += 1
            logger.debug(
                "tabular_row_skipped | row=%s | reason='amount <= 0' | raw_amount=%r",
                number,
                row.raw_amount,
            )
            continue

        transactions.append(transaction)

    logger.info(
        "tabular_parse_complete | header_row=%s | transactions=%s | skipped_empty=%s | skipped_zero_amount=%s | skipped_errors=%s",
        header_index,
        len(transactions),
        skipped_empty,
        skipped_amount,
        skipped_error,
    )
    return transactions


def read_workbook_rows(
    source: Union[bytes, str, Path],
    filename: Optional[str] = None,
) -> list[list[Any]]:
    """Read the first worksheet as a list of rows (None for blank cells)."""
    name = filename or (str(source) if not isinstance(source, bytes) else "")
    extension = Path(name).suffix.lower()
    engine = "xlrd" if extension == ".xls" else "openpyxl"
    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source

    try:
        frame = pd.read_excel(handle, sheet_name=0, header=None, dtype=object, engine=engine)
    except Exception as exc:
        logger.error(
            "workbook_read_error | file=%s | engine=%s | error_type=%s | error=%s",
            name or "<bytes>",
            engine,
            type(exc).__name__,
            exc,
        )
        raise ParseError(
            f"Could not read spreadsheet '{name or 'upload'}': {exc}. "
            "Check that the file is a valid .xls/.xlsx bank statement."
        ) from exc

    frame = frame.astype(object).where(pd.notna(frame), None)
    rows = frame.values.tolist()
    logger.info(
        "workbook_loaded | file=%s | engine=%s | rows=%s | columns=%s",
        name or "<bytes>",
        engine,
        len(rows),
        frame.shape[1],
    )
    return rows


def parse_excel_file(
    source: Union[bytes, str, Path],
    filename: Optional[str] = None,
) -> list[Transaction]:
    """Read a spreadsheet statement and return its transactions."""
    return parse_rows(read_workbook_rows(source, filename))
