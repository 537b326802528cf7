"""
config.py - Runtime settings read from the environment (and `.env`).

All values have safe defaults so the engine runs without any configuration.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

try:
    load_dotenv()
except UnicodeDecodeError:
    # Legacy Windows-encoded .env files.
    load_dotenv(encoding="cp1252")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


# Upload guard for statement files.
MAX_STATEMENT_MB = _env_int("RECON_MAX_FILE_MB", 10)
MAX_STATEMENT_BYTES = MAX_STATEMENT_MB * 1024 * 1024

# "statement" = parse_bank_statement, "line-items" = multi-line state machine.
DEFAULT_PDF_STRATEGY = os.getenv("RECON_PDF_STRATEGY", "statement").strip().lower() or "statement"

# Bill statuses considered open for matching.
OPEN_BILL_STATUSES = _env_list("RECON_BILL_STATUSES", ("pending",))

LOG_LEVEL = os.getenv("RECON_LOG_LEVEL", "info").strip().lower() or "info"
LOG_JSON = _env_bool("RECON_LOG_JSON")

PORT = _env_int("PORT", 8000)
