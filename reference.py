"""
reference.py - Bill reference codes.

Residents are asked to put `BILL-YYYY-MM-<houseId>` in the transfer
comment. The same string is printed on generated bills, so it is the
strongest evidence the matcher gets.
"""

from __future__ import annotations

import re
from typing import Optional

from models import Bill

REFERENCE_RE = re.compile(r"BILL-\d{4}-\d{2}-[a-zA-Z0-9]+", re.IGNORECASE)

HOUSE_PREFIX = "house"


def bill_reference(bill: Bill) -> str:
    """Canonical reference for a bill, e.g. BILL-2025-03-house12."""
    return f"BILL-{bill.year}-{bill.month:02d}-{bill.house_id}"


def extract_reference(text: Optional[str]) -> Optional[str]:
    """Return the first BILL-YYYY-MM-<alnum> token found in text."""
    if not text:
        return None
    match = REFERENCE_RE.search(text)
    return match.group(0) if match else None


def house_number(house_id: str) -> str:
    """'house12' -> '12'. Ids without the prefix are returned unchanged."""
    return (house_id or "").replace(HOUSE_PREFIX, "")
