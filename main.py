"""
main.py - CLI orchestration for statement reconciliation.

This module is orchestration-only:
1. load bills exported from the billing store (JSON)
2. extract transactions from the statement
3. match and classify
4. print a report (text or JSON)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import config
from errors import ReconciliationError
from explain import format_report, format_result_json
from logging_config import get_logger, setup_logging
from models import Bill, PdfStrategy, ReconciliationResult
from reconcile import load_statement_file, parse_bills, reconcile_transactions, select_open_bills

logger = get_logger("reconciler")


def load_bills(bills_path: str) -> list[Bill]:
    """Load bills from a JSON file: a list, or an object with a "bills" list."""
    if not bills_path or not str(bills_path).strip():
        raise ValueError("bills_path cannot be empty")

    path = Path(str(bills_path).strip())
    if not path.exists():
        raise FileNotFoundError(
            f"Bills file not found: {path}\n"
            "Export the pending bills as JSON and pass the path with --bills"
        )

    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Bills file '{path}' is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("bills", [])
    if not isinstance(payload, list):
        raise ValueError(f"Bills file '{path}' must contain a list of bills")

    bills = parse_bills(payload)
    logger.info("bills_loaded | path=%s | bills=%s", path, len(bills))
    return bills


def run_pipeline(
    statement_path: str,
    bills: list[Bill],
    password: str | None = None,
    strategy: str | None = None,
    year: int | None = None,
    statuses: list[str] | None = None,
) -> ReconciliationResult:
    """Run extraction and matching for one statement file."""
    pipeline_start = time.time()
    logger.info("pipeline_start | statement=%s | bills=%s", Path(statement_path).name, len(bills))

    stage_start = time.time()
    kind, transactions = load_statement_file(
        statement_path,
        password=password,
        strategy=strategy,
        year=year,
    )
    logger.info(
        "pipeline_stage | stage=1/2 | name=extract | kind=%s | transactions=%s | duration_s=%.2f",
        kind,
        len(transactions),
        time.time() - stage_start,
    )

    stage_start = time.time()
    result = reconcile_transactions(transactions, select_open_bills(bills, statuses), source=kind)
    logger.info(
        "pipeline_stage | stage=2/2 | name=match | matched=%s | duration_s=%.2f",
        result.stats.total_matches,
        time.time() - stage_start,
    )
    logger.info("pipeline_complete | duration_s=%.2f", time.time() - pipeline_start)
    return result


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the reconciler."""
    parser = argparse.ArgumentParser(
        prog="reconciler",
        description=(
            "Bank statement reconciliation\n"
            "Matches bank statement movements (Excel or PDF) against pending bills."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --statement cartola.xlsx --bills bills.json\n"
            "  %(prog)s --statement cartola.pdf --password 1234 --year 2025 --bills bills.json\n"
            "  %(prog)s --statement cartola.xlsx --bills bills.json --status pending --status partial --json\n"
        ),
    )
    parser.add_argument("--statement", "-s", type=str, required=True, help="Bank statement (.xls, .xlsx or .pdf)")
    parser.add_argument("--bills", "-b", type=str, required=True, help="JSON file with bills from the billing store")
    parser.add_argument("--password", "-p", type=str, default=None, help="Password for protected PDF statements")
    parser.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in PdfStrategy],
        default=None,
        help=f"PDF text strategy (default: {config.DEFAULT_PDF_STRATEGY})",
    )
    parser.add_argument("--year", type=int, default=None, help="Statement year for DD/MM dates in PDFs")
    parser.add_argument(
        "--status",
        action="append",
        default=None,
        help="Bill status to match against; repeatable (default: pending)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (DEBUG-level) logging")
    parser.add_argument("--json", action="store_true", help="Output results as JSON instead of formatted text")
    parser.add_argument("--log-json", action="store_true", help="Output logs as JSON lines")

    args = parser.parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        json_format=args.log_json or config.LOG_JSON,
    )

    try:
        bills = load_bills(args.bills)
        result = run_pipeline(
            args.statement,
            bills,
            password=args.password,
            strategy=args.strategy,
            year=args.year,
            statuses=args.status,
        )
        if args.json:
            print(json.dumps(format_result_json(result), indent=2, ensure_ascii=False))
        else:
            print(format_report(result))
    except FileNotFoundError as exc:
        logger.error("cli_error | type=FileNotFoundError | error=%s", exc)
        print(f"\nError: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except (ReconciliationError, ValueError) as exc:
        logger.error("cli_error | type=%s | error=%s", type(exc).__name__, exc)
        print(f"\nError: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)


if __name__ == "__main__":
    main()
