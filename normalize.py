"""
normalize.py - Locale normalization for Chilean bank statements.

Core normalizers:
    parse_amount(token)          -> non-negative float
    parse_date(token)            -> date or None
    parse_day_month(d, m, year)  -> date or None

Helpers:
    is_negative_token(token)     -> sign of the original value
    fold_text(text)              -> lowercase, accent-free text for keyword tests
    format_clp(amount)           -> "$1.234.567"

Design principles:
    - Pure transformations, no I/O
    - Invalid input degrades to neutral defaults (0.0 / None), never raises
    - Sign is NOT kept in amounts; callers that see the raw token derive the
      transaction type with is_negative_token
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd
from dateutil import parser as dateparser

from logging_config import get_logger

logger = get_logger(__name__)

# 1900 date system. Day 60 is Excel's phantom 1900-02-29, so counting from
# 1899-12-30 is exact for every serial after it.
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

# Serials beyond 9999-12-31 cannot be dates.
MAX_SPREADSHEET_SERIAL = 2958465

DAY_MONTH_YEAR_RE = re.compile(r"(\d{1,2})[-/](\d{1,2})[-/](\d{4})")

# dateutil with dayfirst=True would read 2025-03-05 as May 3rd.
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")

_NON_NUMERIC_RE = re.compile(r"[^\d.,]")

_NUMERIC_PREFIX_RE = re.compile(r"\d*\.?\d*")

_NULL_TOKENS = {"", "n/a", "na", "none", "null", "nan", "-"}


def is_missing(value: Any) -> bool:
    """True for None and NaN-like cells (pandas fills blanks with NaN)."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def fold_text(text: Any) -> str:
    """Lowercase text with accents removed ("Descripción" -> "descripcion")."""
    if is_missing(text):
        return ""
    folded = unicodedata.normalize("NFD", str(text).lower())
    return "".join(char for char in folded if unicodedata.category(char) != "Mn")


def is_negative_token(token: Any) -> bool:
    """Return True when the raw value represents an outgoing movement."""
    if is_missing(token) or isinstance(token, bool):
        return False
    if isinstance(token, (int, float)):
        return token < 0
    text = str(token).strip()
    if text.startswith("(") and text.endswith(")"):
        return True
    return "-" in text


def _clean_number_text(text: str) -> str:
    """Apply the Chilean separator heuristic to a digits/./, string."""
    has_dot = "." in text
    has_comma = "," in text

    if has_dot and has_comma:
        # $1.234.567,89; only the first comma is decimal, anything after
        # a second comma is dropped ("1.000,2,34" -> 1000.2)
        swapped = text.replace(".", "").replace(",", ".", 1)
        return _NUMERIC_PREFIX_RE.match(swapped).group(0)

    if has_dot:
        groups = text.split(".")
        if len(groups[-1]) <= 2:
            # 1234.56 or 1.234.56: last dot is the decimal point
            return "".join(groups[:-1]) + "." + groups[-1]
        return "".join(groups)

    if has_comma:
        if text.count(",") == 1:
            return text.replace(",", ".")
        return text.replace(",", "")

    return text


def parse_amount(token: Any) -> float:
    """Convert a statement amount token into a non-negative float.

    Examples:
        "$1.234.567,89" -> 1234567.89
        "1.234"         -> 1234.0 (3-digit trailing group: thousands)
        "12,5"          -> 12.5
        "-45.000"       -> 45000.0
        "abc"           -> 0.0
    """
    if is_missing(token) or isinstance(token, bool):
        return 0.0

    if isinstance(token, (int, float)):
        value = float(token)
        if not math.isfinite(value):
            logger.warning("parse_amount | non_finite=%r | fallback=0.0", token)
            return 0.0
        return abs(value)

    text = str(token).strip()
    if text.lower() in _NULL_TOKENS:
        return 0.0

    cleaned = _clean_number_text(_NON_NUMERIC_RE.sub("", text))
    if not cleaned or cleaned == ".":
        logger.debug("parse_amount | no_digits | raw=%r | fallback=0.0", token)
        return 0.0

    try:
        value = float(cleaned)
    except ValueError:
        logger.debug("parse_amount | parse_failed | raw=%r | fallback=0.0", token)
        return 0.0

    if not math.isfinite(value):
        return 0.0

    logger.debug("parse_amount | raw=%r | normalized=%s", token, abs(value))
    return abs(value)


def _from_serial(serial: float) -> date | None:
    if not math.isfinite(serial) or serial < 1 or serial > MAX_SPREADSHEET_SERIAL:
        return None
    return (SPREADSHEET_EPOCH + timedelta(days=int(serial))).date()


def parse_day_month(day: Any, month: Any, year: int | None = None) -> date | None:
    """Build a date from DD/MM parts; the year defaults to the current one."""
    try:
        return date(int(year or date.today().year), int(month), int(day))
    except (TypeError, ValueError):
        logger.debug(
            "parse_day_month | invalid | day=%r | month=%r | year=%r",
            day,
            month,
            year,
        )
        return None


def parse_date(token: Any) -> date | None:
    """Interpret a spreadsheet cell or text token as a calendar date.

    Accepts date/datetime values, spreadsheet serial numbers, DD-MM-YYYY or
    DD/MM/YYYY strings, and anything python-dateutil understands (day
    first). Returns None instead of raising.
    """
    if is_missing(token) or isinstance(token, bool):
        return None

    if isinstance(token, datetime):
        return token.date()
    if isinstance(token, date):
        return token

    if isinstance(token, (int, float)):
        return _from_serial(float(token))

    text = str(token).strip()
    if not text or text.lower() in _NULL_TOKENS:
        return None

    match = DAY_MONTH_YEAR_RE.search(text)
    if match:
        day, month, year = match.groups()
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            logger.debug("parse_date | invalid_dmy=%r | fallback=generic", text)

    iso_match = ISO_DATE_RE.match(text)
    if iso_match:
        year, month, day = iso_match.groups()
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None

    if not any(char.isdigit() for char in text):
        return None

    try:
        return dateparser.parse(text, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError) as exc:
        logger.debug(
            "parse_date | parse_error=%s | raw=%r | fallback=None",
            type(exc).__name__,
            text,
        )
        return None


def format_clp(amount: float) -> str:
    """Render an amount the way Chilean statements print it: $1.234.567."""
    rounded = int(round(abs(amount or 0.0)))
    return "$" + f"{rounded:,}".replace(",", ".")
