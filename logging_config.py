"""
logging_config.py - Centralized logging configuration.

Every module logs through `get_logger(__name__)` and emits pipe-separated
`event | key=value` lines. `setup_logging` is called once by the entry
points (main.py, api.py); library use leaves the host's logging alone.
"""

from __future__ import annotations

import logging
import sys

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_level(level: int | str | None) -> int:
    """Turn a level name or number into a logging level (INFO if unknown)."""
    if isinstance(level, int):
        return level
    if level is None:
        return logging.INFO
    return _LEVELS.get(str(level).strip().lower(), logging.INFO)


def setup_logging(level: int | str = logging.INFO, json_format: bool = False) -> None:
    """Configure the root logger for the reconciliation engine.

    Args:
        level: Logging level, as a number or a name such as "debug".
        json_format: If True, emit JSON-like log lines.
    """
    root = logging.getLogger()
    root.setLevel(resolve_level(level))
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-16s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)
