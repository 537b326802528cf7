"""
errors.py - Failure taxonomy for statement reconciliation.

Only file-level problems surface as exceptions. Malformed rows inside a
readable statement are logged and skipped by the extractors, and matching
itself never raises.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for every error raised by the reconciliation engine."""


class FileFormatError(ReconciliationError):
    """Wrong extension/MIME type, or the file is over the size limit."""


class ParseError(ReconciliationError):
    """The whole source is unreadable (corrupt workbook, undecryptable PDF)."""


class NoTransactionsFoundError(ReconciliationError):
    """The statement parsed but yielded zero transactions."""


class NoPendingBillsError(ReconciliationError):
    """Matching was requested against an empty set of open bills."""
