from __future__ import annotations

from datetime import datetime

from elomondo.config import BASE_ELO, DECAY_HALF_LIFE_DAYS

SECONDS_PER_DAY = 24 * 60 * 60


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end (negative when end is earlier)."""
    return (end - start).total_seconds() / SECONDS_PER_DAY


def decay(
    elo: float,
    last_match_date: datetime,
    as_of: datetime,
    *,
    base_elo: float = BASE_ELO,
    half_life_days: float = DECAY_HALF_LIFE_DAYS,
    grace_days: float = 0,
) -> float:
    """
    Pull a dormant rating back towards base_elo.

    The distance from base halves every `half_life_days` of inactivity.
    A non-positive gap (same instant, or as_of in the past) leaves the rating
    untouched, so decay never pushes a rating away from base. With
    `grace_days` set, gaps up to that many days are also left alone; the
    half-life is still measured from the last match.
    """
    gap = days_between(last_match_date, as_of)
    if gap <= 0 or gap <= grace_days:
        return elo
    factor = 0.5 ** (gap / half_life_days)
    return base_elo + (elo - base_elo) * factor
