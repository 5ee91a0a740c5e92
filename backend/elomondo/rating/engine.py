from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence

from elomondo.config import RatingConfig
from elomondo.errors import DataIntegrityError
from elomondo.rating.decay import days_between, decay
from elomondo.rating.elo import multiplayer_changes, one_vs_one_changes, round_half_up
from elomondo.rating.models import (
    MATCH_TYPES,
    CalculatedPlayer,
    EloResult,
    Match,
    MatchHistoryEntry,
    Player,
    PlayerRatingState,
    RatingsResult,
)

logger = logging.getLogger(__name__)


def compute_ratings(
    players: Iterable[Player],
    matches: Iterable[Match],
    now: datetime,
    apply_decay: bool = True,
    *,
    config: RatingConfig | None = None,
    decay_in_matches: bool | None = None,
    season: int | None = None,
    include_provisional: bool = True,
) -> RatingsResult:
    """
    Replay a group's match history and derive every player's rating.

    Every player starts at base Elo and matches are folded in chronological
    order. Before each match a participant's stored rating is decayed up to
    the match's own timestamp (when `decay_in_matches`, which defaults to
    `apply_decay`). The final ratings are decayed up to `now` when
    `apply_decay` is set.

    `now` is an input rather than sampled here, so the same inputs always
    yield the same result.

    Matches supplied out of order are stable-sorted by created_at (ties keep
    input order). Unknown player ids and malformed matches raise
    DataIntegrityError before anything is computed.
    """
    config = config or RatingConfig()
    if decay_in_matches is None:
        decay_in_matches = apply_decay

    player_list = tuple(players)
    match_list = tuple(matches)

    known = _index_players(player_list)
    for match in match_list:
        _validate_match(match, known)

    ordered = _chronological(match_list)
    available_years = tuple(sorted({m.created_at.year for m in ordered}, reverse=True))
    if season is not None:
        ordered = [m for m in ordered if m.created_at.year == season]

    logger.info(
        "Computing ratings: %d players, %d matches (season=%s, decay in matches=%s, decay on output=%s)",
        len(player_list),
        len(ordered),
        season if season is not None else "all",
        decay_in_matches,
        apply_decay,
    )

    states = {p.id: PlayerRatingState(elo=config.base_elo) for p in player_list}
    history = tuple(
        _process_match(match, states, config=config, apply_decay=decay_in_matches)
        for match in ordered
    )

    ratings = _current_ratings(
        player_list,
        states,
        now=now,
        apply_decay=apply_decay,
        config=config,
        season=season,
        include_provisional=include_provisional,
    )

    return RatingsResult(
        match_history=history,
        current_ratings=ratings,
        calculated_at=now,
        decay_half_life_days=config.decay_half_life_days,
        decay_enabled=apply_decay,
        decay_applied_in_matches=decay_in_matches,
        available_years=available_years,
        season=season,
    )


def _index_players(players: Sequence[Player]) -> dict[str, Player]:
    known: dict[str, Player] = {}
    for p in players:
        if p.id in known:
            raise DataIntegrityError(f"player '{p.id}' supplied more than once")
        known[p.id] = p
    return known


def _validate_match(match: Match, known: dict[str, Player]) -> None:
    if match.match_type not in MATCH_TYPES:
        raise DataIntegrityError(f"match '{match.id}' has unsupported type {match.match_type!r}")

    if match.match_type == "1v1":
        if match.winner_id is None or match.loser_id is None:
            raise DataIntegrityError(f"1v1 match '{match.id}' needs a winner and a loser")
        if match.winner_id == match.loser_id:
            raise DataIntegrityError(f"1v1 match '{match.id}' has the same winner and loser")
    else:
        if len(match.participants) < 2:
            raise DataIntegrityError(
                f"multiplayer match '{match.id}' has {len(match.participants)} participant(s); need at least 2"
            )
        seen: set[str] = set()
        for p in match.participants:
            if p.match_id != match.id:
                raise DataIntegrityError(
                    f"participant '{p.player_id}' belongs to match '{p.match_id}', not '{match.id}'"
                )
            if p.player_id in seen:
                raise DataIntegrityError(f"player '{p.player_id}' appears twice in match '{match.id}'")
            seen.add(p.player_id)

    for pid in match.player_ids:
        if pid not in known:
            raise DataIntegrityError(f"match '{match.id}' references unknown player '{pid}'")


def _chronological(matches: Sequence[Match]) -> list[Match]:
    in_order = all(a.created_at <= b.created_at for a, b in zip(matches, matches[1:]))
    if in_order:
        return list(matches)
    logger.warning("Matches were supplied out of chronological order; re-sorting by created_at")
    return sorted(matches, key=lambda m: m.created_at)


def _elo_before(
    state: PlayerRatingState, match_date: datetime, *, config: RatingConfig, apply_decay: bool
) -> float:
    if not apply_decay or state.last_match_date is None:
        return state.elo
    return decay(
        state.elo,
        state.last_match_date,
        match_date,
        base_elo=config.base_elo,
        half_life_days=config.decay_half_life_days,
        grace_days=config.decay_grace_days,
    )


def _process_match(
    match: Match,
    states: dict[str, PlayerRatingState],
    *,
    config: RatingConfig,
    apply_decay: bool,
) -> MatchHistoryEntry:
    when = match.created_at
    results: dict[str, EloResult] = {}

    if match.match_type == "1v1":
        winner = states[match.winner_id]
        loser = states[match.loser_id]
        winner_before = _elo_before(winner, when, config=config, apply_decay=apply_decay)
        loser_before = _elo_before(loser, when, config=config, apply_decay=apply_decay)

        winner_change, loser_change = one_vs_one_changes(
            winner_before,
            loser_before,
            winner_k=config.k_for(winner.matches_played),
            loser_k=config.k_for(loser.matches_played),
        )

        results[match.winner_id] = EloResult(winner_before, winner_before + winner_change, winner_change)
        results[match.loser_id] = EloResult(loser_before, loser_before + loser_change, loser_change)
        winner.wins += 1
        loser.losses += 1
    else:
        participants = match.participants
        befores = [
            _elo_before(states[p.player_id], when, config=config, apply_decay=apply_decay)
            for p in participants
        ]
        k_factors = [config.k_for(states[p.player_id].matches_played) for p in participants]
        changes = multiplayer_changes(
            [(before, p.rank) for before, p in zip(befores, participants)], k_factors
        )
        for p, before, change in zip(participants, befores, changes):
            results[p.player_id] = EloResult(before, before + change, change)

        ranks = [p.rank for p in participants]
        best, worst = min(ranks), max(ranks)
        # A match where everyone shares a rank is a draw: no wins or losses.
        if best != worst:
            for p in participants:
                if p.rank == best:
                    states[p.player_id].wins += 1
                elif p.rank == worst:
                    states[p.player_id].losses += 1

    for pid, result in results.items():
        state = states[pid]
        state.elo = result.elo_after
        state.last_match_date = when
        state.matches_played += 1

    return MatchHistoryEntry(match_id=match.id, match_date=when, results=results)


def _current_ratings(
    players: Sequence[Player],
    states: dict[str, PlayerRatingState],
    *,
    now: datetime,
    apply_decay: bool,
    config: RatingConfig,
    season: int | None,
    include_provisional: bool,
) -> tuple[CalculatedPlayer, ...]:
    rows: list[CalculatedPlayer] = []
    for player in players:
        state = states[player.id]
        if season is not None and state.matches_played == 0:
            continue

        raw_elo = state.elo
        current_elo = raw_elo
        days_since: int | None = None
        if state.last_match_date is not None:
            days_since = round_half_up(days_between(state.last_match_date, now))
            if apply_decay:
                current_elo = decay(
                    raw_elo,
                    state.last_match_date,
                    now,
                    base_elo=config.base_elo,
                    half_life_days=config.decay_half_life_days,
                    grace_days=config.decay_grace_days,
                )

        win_rate = state.wins / state.matches_played if state.matches_played else 0.0
        is_provisional = state.matches_played < config.provisional_threshold
        if is_provisional and not include_provisional:
            continue

        rows.append(
            CalculatedPlayer(
                player_id=player.id,
                player_name=player.name,
                current_elo=round_half_up(current_elo),
                raw_elo=round_half_up(raw_elo),
                decay_applied=round_half_up(raw_elo - current_elo),
                days_since_last_match=days_since,
                matches_played=state.matches_played,
                wins=state.wins,
                losses=state.losses,
                win_rate=round_half_up(win_rate * 1000) / 1000,
                is_provisional=is_provisional,
            )
        )

    rows.sort(key=lambda r: (-r.current_elo, -r.win_rate, r.player_id))

    ranked: list[CalculatedPlayer] = []
    for i, row in enumerate(rows):
        rank = i + 1
        if ranked:
            prev = ranked[-1]
            if prev.current_elo == row.current_elo and prev.win_rate == row.win_rate:
                rank = prev.rank
        ranked.append(replace(row, rank=rank))
    return tuple(ranked)
