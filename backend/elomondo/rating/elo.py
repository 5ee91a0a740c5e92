from __future__ import annotations

import math
from typing import Sequence

from elomondo.config import K_FACTOR


def round_half_up(x: float) -> int:
    """
    Round to the nearest integer with .5 going up (towards +inf).

    Python's round() is banker's rounding; ratings are stored with the same
    half-up convention the leaderboard has always used (e.g. 15.5 -> 16, -15.5 -> -15).
    """
    return int(math.floor(x + 0.5))


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1.0 / (1.0 + 10.0 ** ((opponent_rating - rating) / 400.0))


def actual_score(rank: int, opponent_rank: int) -> float:
    """1 for finishing ahead (lower rank), 0 for behind, 0.5 for a shared rank."""
    if rank < opponent_rank:
        return 1.0
    if rank > opponent_rank:
        return 0.0
    return 0.5


def elo_change(winner_rating: float, loser_rating: float, k_factor: float = K_FACTOR) -> int:
    """Points the winner takes from the loser in a 1v1 match."""
    expected_winner = expected_score(winner_rating, loser_rating)
    return round_half_up(k_factor * (1.0 - expected_winner))


def one_vs_one_changes(
    winner_rating: float,
    loser_rating: float,
    *,
    winner_k: float = K_FACTOR,
    loser_k: float = K_FACTOR,
) -> tuple[int, int]:
    """
    Return (winner_change, loser_change) for a 1v1 result.

    The pair always sums to zero. With equal K factors that falls out of the
    rounding directly; with different K factors the side whose adjustment adds
    the least rounding error absorbs the drift (winner on ties).
    """
    if winner_k == loser_k:
        change = elo_change(winner_rating, loser_rating, winner_k)
        return change, -change

    expected_winner = expected_score(winner_rating, loser_rating)
    winner_raw = winner_k * (1.0 - expected_winner)
    loser_raw = loser_k * (0.0 - (1.0 - expected_winner))

    winner_change = round_half_up(winner_raw)
    loser_change = round_half_up(loser_raw)

    drift = winner_change + loser_change
    if drift != 0:
        winner_candidate = winner_change - drift
        winner_error = abs(winner_candidate - winner_raw) + abs(loser_change - loser_raw)
        loser_candidate = loser_change - drift
        loser_error = abs(winner_change - winner_raw) + abs(loser_candidate - loser_raw)
        if winner_error <= loser_error:
            winner_change = winner_candidate
        else:
            loser_change = loser_candidate

    return winner_change, loser_change


def multiplayer_changes(
    field: Sequence[tuple[float, int]], k_factors: Sequence[float] | None = None
) -> list[int]:
    """
    Rating change for each entrant of a ranked free-for-all.

    `field` holds (rating_before, rank) per entrant. Each entrant is scored
    pairwise against every other entrant, the K-weighted deltas are averaged
    over the number of opponents and rounded. Changes are computed
    independently per entrant, so the field as a whole is not zero-sum.
    """
    n = len(field)
    if n < 2:
        raise ValueError("a ranked match needs at least 2 entrants")
    if k_factors is None:
        k_factors = [K_FACTOR] * n
    if len(k_factors) != n:
        raise ValueError("k_factors must match the number of entrants")

    changes: list[int] = []
    for i, (rating, rank) in enumerate(field):
        total = 0.0
        for j, (opp_rating, opp_rank) in enumerate(field):
            if i == j:
                continue
            total += k_factors[i] * (actual_score(rank, opp_rank) - expected_score(rating, opp_rating))
        changes.append(round_half_up(total / (n - 1)))
    return changes
