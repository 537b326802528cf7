"""
explain.py - Human-readable and JSON-ready reconciliation output.

This module converts a `ReconciliationResult` into:
- a terminal-friendly report for CLI usage
- a machine-friendly dictionary for the API and the review screen
"""

from __future__ import annotations

from typing import Any

from classify import is_safe_auto_match
from extract_text import DEFAULT_DESCRIPTION
from logging_config import get_logger
from models import MatchCandidate, MatchStatus, ReconciliationResult
from normalize import format_clp
from reference import bill_reference

logger = get_logger(__name__)

STATUS_LABELS: dict[MatchStatus, str] = {
    MatchStatus.HIGH: "HIGH",
    MatchStatus.MEDIUM: "MEDIUM",
    MatchStatus.LOW: "LOW",
    MatchStatus.NONE: "NO MATCH",
}

OUTPUT_WIDTH = 64
SEPARATOR = "=" * OUTPUT_WIDTH
MAX_REASONS_DISPLAY = 6
MAX_DESCRIPTION_CHARS = 48


def _short(text: str, limit: int = MAX_DESCRIPTION_CHARS) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _format_candidate(match: MatchCandidate) -> list[str]:
    transaction = match.transaction
    label = STATUS_LABELS.get(match.status, match.status.value)
    paid_on = transaction.date.isoformat() if transaction.date else "date unknown"

    lines = [
        f"  [{label:>8}] {match.score:>3}  {format_clp(transaction.amount):>12}  {paid_on}",
        f"             {_short(transaction.description) or DEFAULT_DESCRIPTION}",
    ]
    if match.bill is not None:
        safe = "  (safe to auto-confirm)" if is_safe_auto_match(match) else ""
        lines.append(
            f"             -> {bill_reference(match.bill)}  "
            f"{format_clp(match.bill.total)}{safe}"
        )

    reasons = list(match.reasons)
    for reason in reasons[:MAX_REASONS_DISPLAY]:
        lines.append(f"               • {reason}")
    if len(reasons) > MAX_REASONS_DISPLAY:
        lines.append(f"               • ... and {len(reasons) - MAX_REASONS_DISPLAY} more")
    return lines


def format_report(result: ReconciliationResult | None) -> str:
    """Format a reconciliation run as a plain-text block."""
    if result is None:
        logger.error("explain_input_error | result_none=True | fallback=error_block")
        return "\n" + SEPARATOR + "\n  ERROR: No reconciliation data available\n" + SEPARATOR + "\n"

    stats = result.stats
    lines: list[str] = ["", SEPARATOR]
    lines.append(
        f"  Reconciliation - {stats.total_matches}/{stats.total_transactions} transactions matched"
    )
    lines.append(SEPARATOR)
    lines.append("")
    lines.append(
        f"  High: {stats.high_confidence}  |  Medium: {stats.medium_confidence}  |  "
        f"Low: {stats.low_confidence}  |  No match: {stats.no_match}"
    )
    lines.append(f"  Safe to auto-confirm: {result.safe_auto_matches}")

    for match in result.matches:
        lines.append("")
        lines.extend(_format_candidate(match))

    if stats.no_match:
        lines.append("")
        lines.append(f"  NOTE: {stats.no_match} transaction(s) need manual assignment.")

    lines.append("")
    lines.append(SEPARATOR)
    lines.append("")
    return "\n".join(lines)


def candidate_to_dict(match: MatchCandidate, transaction_id: str | None = None) -> dict[str, Any]:
    """JSON-ready view of one candidate.

    `transaction_id` is the review-screen id (trans_<ms>_<index>) the
    portal uses when the candidate is confirmed.
    """
    transaction = match.transaction
    bill_section = None
    if match.bill is not None:
        bill_section = {
            "id": match.bill.id,
            "houseId": match.bill.house_id,
            "year": match.bill.year,
            "month": match.bill.month,
            "total": match.bill.total,
            "status": match.bill.status.value,
            "reference": bill_reference(match.bill),
        }

    return {
        "transaction": {
            "date": transaction.date.isoformat() if transaction.date else None,
            "amount": transaction.amount,
            "description": transaction.description,
            "reference": transaction.reference,
            "type": transaction.type.value,
            "rawAmountText": transaction.raw_amount_text,
        },
        "bill": bill_section,
        "score": match.score,
        "status": match.status.value,
        "reasons": list(match.reasons),
        "safeAutoMatch": is_safe_auto_match(match),
        "transactionId": transaction_id,
        "transactionIndex": match.transaction_index,
        "billIndex": match.bill_index,
    }


def _transaction_id(result: ReconciliationResult, match: MatchCandidate) -> str | None:
    if 0 <= match.transaction_index < len(result.transactions):
        return result.transactions[match.transaction_index].id
    return None


def format_result_json(result: ReconciliationResult | None) -> dict[str, Any]:
    """Format a reconciliation run as a JSON-compatible dictionary."""
    if result is None:
        logger.error("explain_json_input_error | result_none=True | fallback=error_payload")
        return {
            "status": "error",
            "matches": [],
            "stats": None,
            "warnings": ["Reconciliation result was None"],
        }

    stats = result.stats
    warnings: list[str] = []
    if stats.no_match:
        warnings.append(f"{stats.no_match} transaction(s) without a matching bill.")

    return {
        "status": "ok",
        "source": result.source,
        "matches": [
            candidate_to_dict(match, _transaction_id(result, match)) for match in result.matches
        ],
        "transactions": [item.model_dump(mode="json") for item in result.transactions],
        "stats": {
            "totalTransactions": stats.total_transactions,
            "totalMatches": stats.total_matches,
            "highConfidence": stats.high_confidence,
            "mediumConfidence": stats.medium_confidence,
            "lowConfidence": stats.low_confidence,
            "noMatch": stats.no_match,
        },
        "safeAutoMatches": result.safe_auto_matches,
        "warnings": warnings,
    }
