# =============================================================================
# Freshness — Recency Tie-Break Between Conflicting Evidence
# =============================================================================
#
# When two sources disagree, the engine prefers the most recently updated
# one. "Most recent" is decided in two tiers:
#
#   1. An explicit date in the result metadata (effective_date, updated_at,
#      last_updated, date), parsed as ISO-8601. Newer dates win.
#   2. The source's freshness label, ranked by cadence:
#      real-time > hourly > daily > weekly > monthly > quarterly > yearly
#      > anything unrecognised.
#
# Results with a parsed date always rank ahead of results without one; a
# label only says how often a source CAN change, a date says when it DID.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.services.dispatcher import RetrievalResult

DATE_METADATA_KEYS = ("effective_date", "updated_at", "last_updated", "date")

# Checked in order; the first keyword found in the label wins.
_CADENCE_RANKS: list[tuple[str, int]] = [
    ("real-time", 7),
    ("realtime", 7),
    ("live", 7),
    ("minute", 6),
    ("hour", 6),
    ("dai", 5),   # daily
    ("day", 5),
    ("week", 4),
    ("month", 3),
    ("quarter", 2),
    ("year", 1),
    ("annual", 1),
]


def parse_date(value: object) -> datetime | None:
    """Parse an ISO-8601 date or datetime; 'YYYY-MM' is accepted too."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if len(text) == 7 and text[4] == "-":
        text = f"{text}-01"
    try:
        # Compare naive datetimes; metadata rarely carries consistent zones
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(
            tzinfo=None,
        )
    except ValueError:
        return None


def cadence_rank(freshness: str) -> int:
    """Rank a free-text freshness label; higher means fresher."""
    label = freshness.lower()
    for keyword, rank in _CADENCE_RANKS:
        if keyword in label:
            return rank
    return 0


def recency_key(result: RetrievalResult) -> tuple[int, datetime, int]:
    """Sort key: larger means more recent."""
    for key in DATE_METADATA_KEYS:
        parsed = parse_date(result.metadata.get(key))
        if parsed is not None:
            return 1, parsed, cadence_rank(result.freshness)
    return 0, datetime.min, cadence_rank(result.freshness)


def most_recent_first(results: Iterable[RetrievalResult]) -> list[RetrievalResult]:
    """Return results ordered most recent first (stable for ties)."""
    return sorted(results, key=recency_key, reverse=True)
