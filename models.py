"""
models.py - Data Models for the reconciliation pipeline

Every module communicates through these models:

    extract_tabular.py / extract_text.py  ->  list[Transaction]
    match.py                              ->  list[MatchCandidate]
    classify.py                           ->  MatchStats
    reconcile.py                          ->  ReconciliationResult
    explain.py                            ->  str / dict (uses ReconciliationResult)

Design principles:
1. Each layer's output is the next layer's input
2. Candidates carry reason strings so every score is auditable in the
   review screen
3. Bills come from the billing store and are never mutated here
4. Everything is created fresh per run; nothing is cached between calls

Schema relationships:
    Transaction    --used by--> MatchCandidate.transaction
    Bill           --used by--> MatchCandidate.bill
    MatchStatus    --used by--> MatchCandidate.status
    MatchCandidate --used by--> ReconciliationResult.matches
    MatchStats     --used by--> ReconciliationResult.stats
"""

from __future__ import annotations

from datetime import date as Date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TransactionType(str, Enum):
    """Direction of the money movement, inferred from the signed raw value."""

    INCOME = "income"
    EXPENSE = "expense"


class BillStatus(str, Enum):
    """Lifecycle of a bill in the billing subsystem."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class MatchStatus(str, Enum):
    """Confidence tier of a transaction/bill pairing.

    Thresholds live in classify.py:
    - HIGH:   score >= 80, candidate for unattended confirmation
    - MEDIUM: score >= 60, usually right, needs a glance
    - LOW:    score >= 50, weakest pairing the matcher will propose
    - NONE:   nothing cleared 50, the transaction stays unassigned
    """

    HIGH = "high-confidence"
    MEDIUM = "medium-confidence"
    LOW = "low-confidence"
    NONE = "no-match"


class PdfStrategy(str, Enum):
    """Which text extractor reads PDF statements."""

    STATEMENT = "statement"
    LINE_ITEMS = "line-items"


class Transaction(BaseModel):
    """One normalized bank-statement line item.

    Produced by the tabular (spreadsheet) or textual (PDF) extractor and
    never modified afterwards. The amount is always the absolute value of
    the movement; the direction lives in `type`.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "date": "2025-03-05",
                    "amount": 45000.0,
                    "description": "TRANSF. DE JUAN PEREZ PARCELA 12",
                    "reference": "BILL-2025-03-house12",
                    "type": "income",
                    "raw_amount_text": "45.000",
                }
            ]
        },
    )

    date: Optional[Date] = Field(
        default=None,
        description=(
            "Calendar date of the movement. None when the statement cell or "
            "token could not be interpreted as a date."
        ),
    )
    amount: float = Field(
        ...,
        ge=0,
        description="Absolute value of the movement in CLP.",
    )
    description: str = Field(
        default="",
        description=(
            "Free text from the statement (glosa/detalle). Multi-line PDF "
            "items are space-joined into one string."
        ),
    )
    reference: Optional[str] = Field(
        default=None,
        description=(
            "Payer-supplied reference code. Taken from a reference column "
            "when present, else extracted from the description when it "
            "contains a BILL-YYYY-MM-<house> token."
        ),
    )
    type: TransactionType = Field(
        default=TransactionType.INCOME,
        description="income or expense, from the sign of the original value.",
    )
    raw_amount_text: str = Field(
        default="",
        description="The original amount token, kept for audit.",
    )


class Bill(BaseModel):
    """An outstanding monthly charge for one parcel.

    Owned by the billing store; this engine only reads it. Accepts the
    camelCase field names used by the store's JSON documents.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Bill identifier in the billing store.")
    house_id: str = Field(
        ...,
        alias="houseId",
        description="Parcel identifier, e.g. 'house12' (Parcela 12).",
    )
    year: int = Field(..., description="Billing year.")
    month: int = Field(..., ge=1, le=12, description="Billing month, 1-12.")
    total: float = Field(..., ge=0, description="Amount owed in CLP.")
    status: BillStatus = Field(default=BillStatus.PENDING)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class MatchCandidate(BaseModel):
    """The matcher's verdict for one transaction.

    Every transaction of a run yields exactly one candidate. When no bill
    reached the minimum score, `bill` is None, `score` is 0 and `status`
    is no-match.
    """

    transaction: Transaction
    bill: Optional[Bill] = None
    score: int = Field(default=0, ge=0, le=100)
    status: MatchStatus = MatchStatus.NONE
    reasons: list[str] = Field(
        default_factory=list,
        description="Ordered evidence strings, one per signal that fired.",
    )
    transaction_index: int = Field(
        ...,
        ge=0,
        description="Position of the transaction in the matcher input.",
    )
    bill_index: Optional[int] = Field(
        default=None,
        description="Position of the assigned bill in the matcher input.",
    )

    @property
    def is_match(self) -> bool:
        return self.bill is not None


class MatchStats(BaseModel):
    """Aggregate counts for one run. Derived, never persisted."""

    total_transactions: int = 0
    total_matches: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    no_match: int = 0


class SystemTransaction(BaseModel):
    """Transaction shaped for the portal's review screen."""

    id: str
    date: Optional[Date] = None
    description: str
    amount: float = Field(..., ge=0)
    type: TransactionType
    reference: str = ""
    raw: str = ""
    matched: bool = False


class ReconciliationResult(BaseModel):
    """Everything the review UI needs from one statement upload."""

    matches: list[MatchCandidate] = Field(default_factory=list)
    transactions: list[SystemTransaction] = Field(
        default_factory=list,
        description=(
            "Review-screen view of every input transaction, indexed like "
            "MatchCandidate.transaction_index."
        ),
    )
    stats: MatchStats = Field(default_factory=MatchStats)
    source: str = Field(
        default="",
        description="'spreadsheet' or 'pdf', or '' when transactions were supplied directly.",
    )
    safe_auto_matches: int = Field(
        default=0,
        description="How many matches may skip manual confirmation.",
    )
