"""
classify.py - Confidence tiers for match scores.

Turns numeric scores into the tiers shown in the review screen, decides
which matches may be confirmed without a human, and aggregates run stats.
"""

from __future__ import annotations

from typing import Sequence

from logging_config import get_logger
from models import MatchCandidate, MatchStats, MatchStatus

logger = get_logger(__name__)

HIGH_CONFIDENCE_SCORE = 80
# Exact amount, reference code and billing month (85) land here.

MEDIUM_CONFIDENCE_SCORE = 60
# Exact amount plus billing month alone (55) stays below this.

MIN_MATCH_SCORE = 50
# Below this the matcher leaves the transaction unassigned.

SAFE_AUTO_MIN_REASONS = 3


def classify_score(score: int) -> MatchStatus:
    """Map a 0-100 score to its confidence tier."""
    if score >= HIGH_CONFIDENCE_SCORE:
        return MatchStatus.HIGH
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return MatchStatus.MEDIUM
    if score >= MIN_MATCH_SCORE:
        return MatchStatus.LOW
    return MatchStatus.NONE


def is_safe_auto_match(match: MatchCandidate) -> bool:
    """True when a match may bypass manual confirmation."""
    return match.score >= HIGH_CONFIDENCE_SCORE and len(match.reasons) >= SAFE_AUTO_MIN_REASONS


def compute_stats(matches: Sequence[MatchCandidate]) -> MatchStats:
    """Aggregate counts over one run's candidates."""
    stats = MatchStats(total_transactions=len(matches))
    for match in matches:
        if match.bill is not None:
            stats.total_matches += 1
        if match.status is MatchStatus.HIGH:
            stats.high_confidence += 1
        elif match.status is MatchStatus.MEDIUM:
            stats.medium_confidence += 1
        elif match.status is MatchStatus.LOW:
            stats.low_confidence += 1
        else:
            stats.no_match += 1

    logger.debug(
        "match_stats | total=%s | matched=%s | high=%s | medium=%s | low=%s | none=%s",
        stats.total_transactions,
        stats.total_matches,
        stats.high_confidence,
        stats.medium_confidence,
        stats.low_confidence,
        stats.no_match,
    )
    return stats
