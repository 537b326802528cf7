"""
match.py - Transaction/bill scoring and greedy assignment.

Each transaction is scored against each open bill on four signals:
- amount proximity        0-40
- reference code          0-30
- billing month           0-15
- house number mention    0-15

Scores are integers clamped to 0-100. Every signal that fires adds an
evidence string so the review screen can show why a pairing was proposed.

Assignment is greedy and order-dependent: transactions are taken in input
order and each one claims its best still-unassigned bill. An earlier,
weaker transaction can therefore take a bill that a later one fits better.
"""

from __future__ import annotations

from typing import Optional, Sequence

from classify import MIN_MATCH_SCORE, classify_score
from logging_config import get_logger
from models import Bill, MatchCandidate, MatchStatus, Transaction
from normalize import format_clp
from reference import bill_reference, house_number

logger = get_logger(__name__)

AMOUNT_EXACT_POINTS = 40
# (max percent difference, points), checked in order.
AMOUNT_TIERS: tuple[tuple[float, int], ...] = (
    (1.0, 35),
    (5.0, 25),
    (10.0, 15),
)
AMOUNT_TOLERANCE = 0.01

REFERENCE_FIELD_POINTS = 30
REFERENCE_DESCRIPTION_POINTS = 25
HOUSE_ID_POINTS = 10

SAME_MONTH_POINTS = 15
ADJACENT_MONTH_POINTS = 8

HOUSE_LABEL_POINTS = 15
HOUSE_NUMBER_POINTS = 8
HOUSE_LABELS = ("PARCELA {n}", "PARC {n}", "CASA {n}", "#{n}")

NO_MATCH_REASON = "No matching bill found"


def score_amount(transaction: Transaction, bill: Bill) -> tuple[int, Optional[str]]:
    """Score how close the paid amount is to the bill total."""
    diff = abs(transaction.amount - bill.total)
    if diff < AMOUNT_TOLERANCE:
        return AMOUNT_EXACT_POINTS, f"Exact amount: {format_clp(transaction.amount)}"

    if bill.total <= 0:
        return 0, (
            f"Different amount: {format_clp(transaction.amount)} "
            f"(bill total {format_clp(bill.total)})"
        )

    pct_diff = diff / bill.total * 100.0
    for limit, points in AMOUNT_TIERS:
        if pct_diff < limit:
            return points, (
                f"Similar amount: {format_clp(transaction.amount)} "
                f"({pct_diff:.1f}% difference)"
            )

    return 0, (
        f"Different amount: {format_clp(transaction.amount)} vs "
        f"{format_clp(bill.total)} ({pct_diff:.1f}% difference)"
    )


def score_reference(transaction: Transaction, bill: Bill) -> tuple[int, Optional[str]]:
    """Score the payer's reference code, or failing that a houseId mention."""
    expected = bill_reference(bill).upper()
    reference = transaction.reference or ""
    description = transaction.description or ""

    if expected in reference.upper():
        return REFERENCE_FIELD_POINTS, f"Exact reference in reference field: {bill_reference(bill)}"
    if expected in description.upper():
        return REFERENCE_DESCRIPTION_POINTS, f"Reference found in description: {bill_reference(bill)}"
    if bill.house_id and (bill.house_id in reference or bill.house_id in description):
        return HOUSE_ID_POINTS, f"House id mentioned: {bill.house_id}"
    return 0, None


def score_date(transaction: Transaction, bill: Bill) -> tuple[int, Optional[str]]:
    """Score whether the payment falls in the billing month."""
    paid = transaction.date
    if paid is None:
        return 0, None

    if paid.year == bill.year and paid.month == bill.month:
        return SAME_MONTH_POINTS, f"Same month as bill: {bill.month:02d}/{bill.year}"
    if paid.year == bill.year and abs(paid.month - bill.month) == 1:
        return ADJACENT_MONTH_POINTS, (
            f"Adjacent month: paid {paid.month:02d}/{paid.year}, "
            f"bill {bill.month:02d}/{bill.year}"
        )
    return 0, f"Different month: transaction in {paid.month:02d}/{paid.year}"


def score_house_number(transaction: Transaction, bill: Bill) -> tuple[int, Optional[str]]:
    """Score a parcel/house number written in the description."""
    number = house_number(bill.house_id)
    if not number:
        return 0, None

    description = (transaction.description or "").upper()
    for label in HOUSE_LABELS:
        mention = label.format(n=number)
        if mention in description:
            return HOUSE_LABEL_POINTS, f"House number mentioned: {mention}"
    if number in description:
        return HOUSE_NUMBER_POINTS, f"House number appears in description: {number}"
    return 0, None


SIGNALS = (score_amount, score_reference, score_date, score_house_number)


def score_match(transaction: Transaction, bill: Bill) -> tuple[int, list[str]]:
    """Confidence (0-100) that `transaction` pays `bill`, with its evidence."""
    total = 0
    reasons: list[str] = []
    for signal in SIGNALS:
        points, reason = signal(transaction, bill)
        total += points
        if reason:
            reasons.append(reason)

    score = max(0, min(100, total))
    logger.debug(
        "match_scoring | bill=%s | house=%s | amount=%.2f | score=%s",
        bill.id,
        bill.house_id,
        transaction.amount,
        score,
    )
    return score, reasons


def match_transactions_to_bills(
    transactions: Sequence[Transaction],
    bills: Sequence[Bill],
) -> list[MatchCandidate]:
    """Pair each transaction with at most one bill, greedily in input order.

    Every transaction yields exactly one MatchCandidate; unmatched ones
    carry bill=None and score 0. The result is sorted by score, highest
    first (ties keep input order).
    """
    bill_used = [False] * len(bills)
    candidates: list[MatchCandidate] = []

    for transaction_index, transaction in enumerate(transactions):
        best_index: Optional[int] = None
        best_score = 0
        best_reasons: list[str] = []

        for bill_index, bill in enumerate(bills):
            if bill_used[bill_index]:
                continue
            score, reasons = score_match(transaction, bill)
            if score > best_score and score >= MIN_MATCH_SCORE:
                best_index = bill_index
                best_score = score
                best_reasons = reasons

        if best_index is None:
            candidates.append(
                MatchCandidate(
                    transaction=transaction,
                    bill=None,
                    score=0,
                    status=MatchStatus.NONE,
                    reasons=[NO_MATCH_REASON],
                    transaction_index=transaction_index,
                    bill_index=None,
                )
            )
            continue

        bill_used[best_index] = True
        candidates.append(
            MatchCandidate(
                transaction=transaction,
                bill=bills[best_index],
                score=best_score,
                status=classify_score(best_score),
                reasons=best_reasons,
                transaction_index=transaction_index,
                bill_index=best_index,
            )
        )

    candidates.sort(key=lambda candidate: candidate.score, reverse=True)

    matched = sum(bill_used)
    logger.info(
        "matching_complete | transactions=%s | bills=%s | matched=%s | unmatched_transactions=%s | unused_bills=%s",
        len(transactions),
        len(bills),
        matched,
        len(transactions) - matched,
        len(bills) - matched,
    )
    return candidates


def find_bill_by_criteria(
    bills: Sequence[Bill],
    amount: Optional[float] = None,
    house_id: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> Optional[Bill]:
    """First bill satisfying every criterion given (manual lookup helper)."""
    for bill in bills:
        if amount is not None and abs(bill.total - amount) > AMOUNT_TOLERANCE:
            continue
        if house_id is not None and bill.house_id != house_id:
            continue
        if month is not None and bill.month != month:
            continue
        if year is not None and bill.year != year:
            continue
        return bill
    return None
