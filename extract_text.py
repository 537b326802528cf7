"""
extract_text.py - PDF statement text extraction.

Two interchangeable strategies read line-oriented statement text, because
layouts differ from bank to bank:

    extract_transactions_from_text(text)  multi-line line items
                                          (StatementLineParser state machine)
    parse_bank_statement(text)            one transaction per dated line,
                                          last amount token wins

`parse_pdf_file` reads the PDF with pdfplumber and dispatches to one of
them (config.DEFAULT_PDF_STRATEGY, "statement" unless overridden).

Statement lines carry only DD/MM, so the year comes from the caller
(defaults to the current year) unless the line itself has DD/MM/YYYY.
"""

from __future__ import annotations

import io
import re
import time
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import pdfplumber

import config
from errors import ParseError
from logging_config import get_logger
from models import PdfStrategy, SystemTransaction, Transaction, TransactionType
from normalize import parse_amount, parse_day_month
from reference import extract_reference

logger = get_logger(__name__)

DEFAULT_DESCRIPTION = "Transacción bancaria"

# DD/MM[/YY[YY]] <description> <amount>
LINE_ITEM_RE = re.compile(
    r"^(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?(?:\s+(.*?))?\s+([-+]?\$?\d[\d.,]*)$"
)

DATE_PREFIX_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?(?!\d)")

# Whitespace-delimited so BILL-2025-03-house12 is not read as amounts.
AMOUNT_TOKEN_RE = re.compile(r"(?<!\S)[-+]?\$?\d[\d.,]*(?!\S)")


def _resolve_year(token: Optional[str], default_year: Optional[int]) -> Optional[int]:
    if not token:
        return default_year
    year = int(token)
    return year + 2000 if year < 100 else year


def _transaction_type(raw_amount: str) -> TransactionType:
    return TransactionType.EXPENSE if "-" in raw_amount else TransactionType.INCOME


def _split_lines(text: Optional[str]) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


class ParserState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


class StatementLineParser:
    """Reassembles multi-line statement items.

    IDLE          --date+amount line-->  ACCUMULATING (open a transaction)
    ACCUMULATING  --date+amount line-->  ACCUMULATING (flush, open next)
    ACCUMULATING  --plain line------->   ACCUMULATING (append to description)
    IDLE          --plain line------->   IDLE (ignored: headers, banners)

    `finish()` flushes the open transaction. Transactions whose amount is
    zero are never emitted.
    """

    def __init__(self, year: Optional[int] = None) -> None:
        self.year = year
        self.state = ParserState.IDLE
        self.transactions: list[Transaction] = []
        self._open: Optional[dict[str, Any]] = None
        self._ignored = 0

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return

        match = LINE_ITEM_RE.match(line)
        if match:
            self._flush()
            day, month, year_token, description, raw_amount = match.groups()
            self._open = {
                "date": parse_day_month(day, month, _resolve_year(year_token, self.year)),
                "description": [description.strip()] if description else [],
                "amount": parse_amount(raw_amount),
                "raw_amount": raw_amount,
            }
            self.state = ParserState.ACCUMULATING
            return

        if self.state is ParserState.ACCUMULATING and self._open is not None:
            self._open["description"].append(line)
        else:
            self._ignored += 1

    def _flush(self) -> None:
        current = self._open
        self._open = None
        self.state = ParserState.IDLE
        if current is None:
            return
        if not current["amount"]:
            logger.debug(
                "line_item_dropped | reason='zero amount' | raw_amount=%r",
                current["raw_amount"],
            )
            return

        description = " ".join(part for part in current["description"] if part)
        self.transactions.append(
            Transaction(
                date=current["date"],
                amount=current["amount"],
                description=description,
                reference=extract_reference(description),
                type=_transaction_type(current["raw_amount"]),
                raw_amount_text=current["raw_amount"],
            )
        )

    def finish(self) -> list[Transaction]:
        self._flush()
        logger.info(
            "line_items_parsed | transactions=%s | ignored_lines=%s",
            len(self.transactions),
            self._ignored,
        )
        return self.transactions


def extract_transactions_from_text(text: Optional[str], year: Optional[int] = None) -> list[Transaction]:
    """Parse statement text whose items may span several lines."""
    parser = StatementLineParser(year=year)
    for line in _split_lines(text):
        parser.feed(line)
    return parser.finish()


def parse_bank_statement(text: Optional[str], year: Optional[int] = None) -> list[Transaction]:
    """Parse statement text with one item per dated line.

    The last amount-shaped token after the date is the amount; the rest of
    the line is the description. Lines without a date prefix are skipped.
    """
    transactions: list[Transaction] = []
    skipped = 0

    for line in _split_lines(text):
        date_match = DATE_PREFIX_RE.match(line)
        if not date_match:
            continue

        day, month, year_token = date_match.groups()
        rest = line[date_match.end():].strip()
        tokens = list(AMOUNT_TOKEN_RE.finditer(rest))
        if not tokens:
            skipped += 1
            continue

        last = tokens[-1]
        raw_amount = last.group(0)
        amount = parse_amount(raw_amount)
        if amount == 0:
            skipped += 1
            continue

        description = " ".join((rest[: last.start()] + " " + rest[last.end():]).split())
        transactions.append(
            Transaction(
                date=parse_day_month(day, month, _resolve_year(year_token, year)),
                amount=amount,
                description=description,
                reference=extract_reference(description),
                type=_transaction_type(raw_amount),
                raw_amount_text=raw_amount,
            )
        )

    logger.info(
        "statement_lines_parsed | transactions=%s | skipped_dated_lines=%s",
        len(transactions),
        skipped,
    )
    return transactions


def format_transactions_for_system(transactions: list[Transaction]) -> list[SystemTransaction]:
    """Shape transactions for the review screen (ids, defaults, matched flag)."""
    stamp = int(time.time() * 1000)
    return [
        SystemTransaction(
            id=f"trans_{stamp}_{index}",
            date=transaction.date,
            description=transaction.description or DEFAULT_DESCRIPTION,
            amount=abs(transaction.amount),
            type=transaction.type,
            reference=transaction.reference or "",
            raw=transaction.raw_amount_text or f"{transaction.amount}",
            matched=False,
        )
        for index, transaction in enumerate(transactions)
    ]


def is_pdf_protected(data: bytes) -> bool:
    """True when the raw PDF bytes declare an encryption dictionary."""
    return b"/Encrypt" in (data or b"")


def read_pdf_text(source: Union[bytes, str, Path], password: Optional[str] = None) -> str:
    """Extract the text of every page, in page order."""
    handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source
    protected = isinstance(source, bytes) and is_pdf_protected(source)
    pages: list[str] = []

    try:
        with pdfplumber.open(handle, password=password or None) as pdf:
            for number, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text() or ""
                logger.debug("pdf_page | page=%s | chars=%s", number, len(page_text))
                pages.append(page_text)
    except Exception as exc:
        logger.error(
            "pdf_read_error | protected=%s | password_given=%s | error_type=%s | error=%s",
            protected,
            bool(password),
            type(exc).__name__,
            exc,
        )
        hint = (
            "The PDF is password protected; check the password. "
            if protected
            else ""
        )
        raise ParseError(
            f"Could not extract text from the PDF statement: {exc}. {hint}"
            "Try downloading the statement as Excel (.xlsx) and uploading that instead."
        ) from exc

    text = "\n".join(pages)
    logger.info("pdf_loaded | pages=%s | chars=%s | protected=%s", len(pages), len(text), protected)
    return text


def parse_statement_text(
    text: str,
    strategy: Union[PdfStrategy, str, None] = None,
    year: Optional[int] = None,
) -> list[Transaction]:
    """Run the selected text strategy over already-extracted text."""
    chosen = PdfStrategy(strategy or config.DEFAULT_PDF_STRATEGY)
    logger.info("text_parse_start | strategy=%s | year=%s", chosen.value, year)
    if chosen is PdfStrategy.LINE_ITEMS:
        return extract_transactions_from_text(text, year=year)
    return parse_bank_statement(text, year=year)


def parse_pdf_file(
    source: Union[bytes, str, Path],
    password: Optional[str] = None,
    strategy: Union[PdfStrategy, str, None] = None,
    year: Optional[int] = None,
) -> list[Transaction]:
    """Read a PDF statement and return its transactions."""
    return parse_statement_text(read_pdf_text(source, password), strategy=strategy, year=year)
