from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MatchType = Literal["1v1", "multiplayer"]
MATCH_TYPES: tuple[str, ...] = ("1v1", "multiplayer")


@dataclass(frozen=True)
class Player:
    """
    A group member as stored. Ratings are never stored here; they are derived
    by replaying the group's matches.
    """

    id: str
    name: str
    matches_played: int = 0
    wins: int = 0
    losses: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True)
class MatchParticipant:
    match_id: str
    player_id: str
    rank: int  # 1 = best finish; repeated ranks are draws between those players

    @property
    def is_winner(self) -> bool:
        return self.rank == 1


@dataclass(frozen=True)
class Match:
    """
    An immutable, timestamped result.

    1v1 matches use winner_id/loser_id; multiplayer matches use participants.
    """

    id: str
    match_type: str
    created_at: datetime
    winner_id: str | None = None
    loser_id: str | None = None
    participants: tuple[MatchParticipant, ...] = field(default_factory=tuple)

    @property
    def player_ids(self) -> tuple[str, ...]:
        if self.match_type == "1v1":
            return tuple(pid for pid in (self.winner_id, self.loser_id) if pid is not None)
        return tuple(p.player_id for p in self.participants)


@dataclass
class PlayerRatingState:
    """Per-player accumulator threaded through one replay; never persisted."""

    elo: float
    last_match_date: datetime | None = None
    matches_played: int = 0
    wins: int = 0
    losses: int = 0


@dataclass(frozen=True)
class EloResult:
    elo_before: float
    elo_after: float
    elo_change: int


@dataclass(frozen=True)
class MatchHistoryEntry:
    match_id: str
    match_date: datetime
    # player_id -> result, in the match's own participant order
    results: dict[str, EloResult]


@dataclass(frozen=True)
class CalculatedPlayer:
    player_id: str
    player_name: str
    current_elo: int
    raw_elo: int
    decay_applied: int
    days_since_last_match: int | None
    matches_played: int
    wins: int
    losses: int
    win_rate: float
    is_provisional: bool
    rank: int = 0


@dataclass(frozen=True)
class RatingsResult:
    match_history: tuple[MatchHistoryEntry, ...]
    current_ratings: tuple[CalculatedPlayer, ...]
    calculated_at: datetime
    decay_half_life_days: float
    decay_enabled: bool
    decay_applied_in_matches: bool
    available_years: tuple[int, ...] = field(default_factory=tuple)
    season: int | None = None

    def rating_for(self, player_id: str) -> CalculatedPlayer | None:
        for p in self.current_ratings:
            if p.player_id == player_id:
                return p
        return None
