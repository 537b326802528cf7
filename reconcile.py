"""
reconcile.py - Orchestration for one statement upload.

    validate -> extract (spreadsheet | pdf) -> select open bills -> match -> stats

This module owns the file-level checks and raises the errors in errors.py.
Everything below it (extractors, matcher) is best-effort and never fails a
whole run because of one bad row or one unmatched transaction.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

import config
from classify import compute_stats, is_safe_auto_match
from errors import FileFormatError, NoPendingBillsError, NoTransactionsFoundError
from extract_tabular import SPREADSHEET_EXTENSIONS, parse_excel_file
from extract_text import format_transactions_for_system, parse_pdf_file
from logging_config import get_logger
from match import match_transactions_to_bills
from models import Bill, PdfStrategy, ReconciliationResult, Transaction

logger = get_logger(__name__)

SPREADSHEET = "spreadsheet"
PDF = "pdf"

SPREADSHEET_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
PDF_EXTENSIONS = {".pdf"}
PDF_MIME_TYPES = {"application/pdf"}


def detect_kind(filename: Optional[str], content_type: Optional[str] = None) -> Optional[str]:
    """'spreadsheet', 'pdf' or None, from the extension first, then the MIME type."""
    extension = Path(filename or "").suffix.lower()
    if extension in SPREADSHEET_EXTENSIONS:
        return SPREADSHEET
    if extension in PDF_EXTENSIONS:
        return PDF

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in SPREADSHEET_MIME_TYPES:
        return SPREADSHEET
    if mime in PDF_MIME_TYPES:
        return PDF
    return None


def validate_statement_file(
    filename: Optional[str],
    size: int,
    content_type: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> str:
    """Reject unsupported or oversized uploads before any parsing.

    Returns the statement kind ('spreadsheet' or 'pdf').
    """
    limit = config.MAX_STATEMENT_BYTES if max_bytes is None else max_bytes
    kind = detect_kind(filename, content_type)

    if kind is None:
        logger.warning(
            "statement_rejected | reason=format | file=%s | content_type=%s",
            filename,
            content_type,
        )
        raise FileFormatError(
            f"Unsupported statement file '{filename}'. "
            "Upload an Excel statement (.xls or .xlsx) or a PDF statement."
        )

    if size <= 0:
        raise FileFormatError(f"Statement file '{filename}' is empty.")

    if size > limit:
        logger.warning(
            "statement_rejected | reason=size | file=%s | size_mb=%.1f | limit_mb=%.1f",
            filename,
            size / 1024 / 1024,
            limit / 1024 / 1024,
        )
        raise FileFormatError(
            f"Statement file is too large ({size / 1024 / 1024:.1f} MB). "
            f"Maximum is {limit / 1024 / 1024:.0f} MB."
        )

    return kind


def load_statement(
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str] = None,
    password: Optional[str] = None,
    strategy: Union[PdfStrategy, str, None] = None,
    year: Optional[int] = None,
) -> tuple[str, list[Transaction]]:
    """Validate and extract a statement held in memory."""
    kind = validate_statement_file(filename, len(data or b""), content_type)

    if kind == SPREADSHEET:
        transactions = parse_excel_file(data, filename)
    else:
        transactions = parse_pdf_file(data, password=password, strategy=strategy, year=year)

    if not transactions:
        logger.warning("statement_empty | file=%s | kind=%s", filename, kind)
        raise NoTransactionsFoundError(
            f"No transactions were found in '{filename}'. "
            "Check that it is a bank statement with dated, non-zero movements."
        )

    logger.info(
        "statement_loaded | file=%s | kind=%s | transactions=%s",
        filename,
        kind,
        len(transactions),
    )
    return kind, transactions


def load_statement_file(path: Union[str, Path], **kwargs: Any) -> tuple[str, list[Transaction]]:
    """Read a statement from disk (single full-buffer read) and extract it."""
    statement_path = Path(path)
    if not statement_path.exists():
        raise FileNotFoundError(f"Statement file not found: {statement_path}")
    return load_statement(statement_path.read_bytes(), statement_path.name, **kwargs)


def parse_bills(payload: Iterable[Any]) -> list[Bill]:
    """Validate bill documents from the billing store (raises ValueError)."""
    return [item if isinstance(item, Bill) else Bill.model_validate(item) for item in payload]


def select_open_bills(bills: Sequence[Bill], statuses: Optional[Iterable[str]] = None) -> list[Bill]:
    """Keep bills whose status is one of `statuses` (config default: pending)."""
    wanted = {str(status).strip().lower() for status in (statuses or config.OPEN_BILL_STATUSES)}
    selected = [bill for bill in bills if bill.status.value in wanted]
    logger.info(
        "bills_selected | statuses=%s | total=%s | open=%s",
        sorted(wanted),
        len(bills),
        len(selected),
    )
    return selected


def reconcile_transactions(
    transactions: Sequence[Transaction],
    bills: Sequence[Bill],
    source: str = "",
) -> ReconciliationResult:
    """Match transactions against open bills and summarize the run."""
    if not bills:
        raise NoPendingBillsError(
            "There are no pending bills to reconcile against. "
            "Generate the month's bills before uploading a statement."
        )

    matches = match_transactions_to_bills(transactions, bills)
    stats = compute_stats(matches)
    safe = sum(1 for match in matches if is_safe_auto_match(match))

    logger.info(
        "reconcile_complete | source=%s | transactions=%s | matched=%s | high=%s | safe_auto=%s",
        source or "direct",
        stats.total_transactions,
        stats.total_matches,
        stats.high_confidence,
        safe,
    )
    return ReconciliationResult(
        matches=matches,
        transactions=format_transactions_for_system(list(transactions)),
        stats=stats,
        source=source,
        safe_auto_matches=safe,
    )


def reconcile_statement(
    data: bytes,
    filename: Optional[str],
    bills: Sequence[Bill],
    content_type: Optional[str] = None,
    password: Optional[str] = None,
    strategy: Union[PdfStrategy, str, None] = None,
    year: Optional[int] = None,
    statuses: Optional[Iterable[str]] = None,
) -> ReconciliationResult:
    """Full run for one upload: extract, filter open bills, match."""
    kind, transactions = load_statement(
        data,
        filename,
        content_type=content_type,
        password=password,
        strategy=strategy,
        year=year,
    )
    open_bills = select_open_bills(bills, statuses)
    return reconcile_transactions(transactions, open_bills, source=kind)
