from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from elomondo.errors import (
    DataIntegrityError,
    InvalidThrowError,
    NothingToUndoError,
    OrderingAssumptionViolation,
)
from elomondo.scoring.darts import DartThrow

logger = logging.getLogger(__name__)

STARTING_SCORES: dict[str, int] = {"301": 301, "501": 501}
START_RULES: tuple[str, ...] = ("straight-in", "double-in")
END_RULES: tuple[str, ...] = ("straight-out", "double-out")
DARTS_PER_TURN = 3


@dataclass(frozen=True)
class GameConfig:
    game_type: str = "501"
    start_rule: str = "straight-in"
    end_rule: str = "double-out"

    def __post_init__(self) -> None:
        if self.game_type not in STARTING_SCORES:
            raise DataIntegrityError(f"unsupported game type {self.game_type!r}")
        if self.start_rule not in START_RULES:
            raise DataIntegrityError(f"unsupported start rule {self.start_rule!r}")
        if self.end_rule not in END_RULES:
            raise DataIntegrityError(f"unsupported end rule {self.end_rule!r}")

    @property
    def starting_score(self) -> int:
        return STARTING_SCORES[self.game_type]

    @property
    def double_in(self) -> bool:
        return self.start_rule == "double-in"

    @property
    def double_out(self) -> bool:
        return self.end_rule == "double-out"


@dataclass(frozen=True)
class GamePlayer:
    id: str
    name: str


@dataclass(frozen=True)
class TurnRecord:
    """
    A completed turn: 3 darts, or fewer when it ended in a bust or a finish.
    """

    darts: tuple[DartThrow, ...]
    score_at_start: int
    score_at_end: int
    is_bust: bool
    had_doubled_in_before: bool
    doubled_in_this_turn: bool

    @property
    def scored(self) -> int:
        return self.score_at_start - self.score_at_end


@dataclass(frozen=True)
class PlayerGameState:
    player_id: str
    player_name: str
    starting_score: int
    current_score: int
    has_doubled_in: bool = False
    finished_rank: int | None = None  # set once the player checks out (or is last left)
    turn_history: tuple[TurnRecord, ...] = field(default_factory=tuple)

    @property
    def is_finished(self) -> bool:
        return self.finished_rank is not None


@dataclass(frozen=True)
class LiveGameState:
    """
    Full state of a game in progress, rebuilt from its throw log.

    `current_score` of a player only moves when a turn completes; the running
    total of the turn in progress is `potential_score`.
    """

    config: GameConfig
    players: tuple[GamePlayer, ...]
    player_order: tuple[str, ...]
    player_states: tuple[PlayerGameState, ...]
    current_player_index: int = 0
    current_turn_darts: tuple[DartThrow, ...] = field(default_factory=tuple)
    score_before_turn: int = 0
    finished_player_ids: tuple[str, ...] = field(default_factory=tuple)
    next_rank: int = 1
    is_game_over: bool = False
    throws: tuple[DartThrow, ...] = field(default_factory=tuple)

    def player_state(self, player_id: str) -> PlayerGameState:
        for ps in self.player_states:
            if ps.player_id == player_id:
                return ps
        raise DataIntegrityError(f"unknown player '{player_id}'")

    @property
    def current_player(self) -> PlayerGameState:
        return self.player_state(self.player_order[self.current_player_index])

    @property
    def active_player_ids(self) -> tuple[str, ...]:
        return tuple(pid for pid in self.player_order if pid not in self.finished_player_ids)

    @property
    def current_turn_score(self) -> int:
        score, _ = _counted_score(
            self.current_turn_darts,
            already_in=_in_at_turn_start(self.config, self.current_player),
        )
        return score

    @property
    def potential_score(self) -> int:
        return self.score_before_turn - self.current_turn_score

    def rankings(self) -> tuple[tuple[str, str, int], ...]:
        """(player_id, player_name, rank) for every ranked player, best first."""
        ranked = [ps for ps in self.player_states if ps.finished_rank is not None]
        ranked.sort(key=lambda ps: ps.finished_rank)
        return tuple((ps.player_id, ps.player_name, ps.finished_rank) for ps in ranked)


@dataclass(frozen=True)
class ThrowOutcome:
    state: LiveGameState
    is_bust: bool
    is_finished: bool

    @property
    def is_game_over(self) -> bool:
        return self.state.is_game_over


@dataclass(frozen=True)
class ThrowRow:
    """A stored throw, keyed by (player_id, turn_number, throw_index)."""

    player_id: str
    turn_number: int  # 1-based, per player
    throw_index: int  # 0, 1, 2 within the turn
    dart: DartThrow


def new_game(
    config: GameConfig,
    players: Sequence[GamePlayer],
    *,
    player_order: Sequence[str] | None = None,
) -> LiveGameState:
    players = tuple(players)
    if not players:
        raise DataIntegrityError("a game needs at least one player")
    ids = [p.id for p in players]
    if len(set(ids)) != len(ids):
        raise DataIntegrityError("player ids must be unique")

    order = tuple(player_order) if player_order is not None else tuple(ids)
    _check_order(order, ids)

    start = config.starting_score
    return LiveGameState(
        config=config,
        players=players,
        player_order=order,
        player_states=tuple(
            PlayerGameState(
                player_id=p.id,
                player_name=p.name,
                starting_score=start,
                current_score=start,
                has_doubled_in=not config.double_in,
            )
            for p in players
        ),
        score_before_turn=start,
    )


def reorder_players(state: LiveGameState, player_order: Sequence[str]) -> LiveGameState:
    """Change the throwing order; only allowed before the first dart."""
    if state.throws:
        raise InvalidThrowError("player order cannot change once play has started")
    order = tuple(player_order)
    _check_order(order, [p.id for p in state.players])
    return replace(
        state,
        player_order=order,
        current_player_index=0,
        score_before_turn=state.player_state(order[0]).current_score,
    )


def apply_throw(state: LiveGameState, dart: DartThrow) -> ThrowOutcome:
    """
    Apply one dart for the player whose turn it is.

    Rules:
    - Double-in: until a player hits a double, their darts score nothing; the
      doubling dart and every dart after it in that turn count.
    - Bust: the turn would leave the score below 0, or (with double-out) at 1,
      or at 0 on a dart that is not a double. The whole turn is voided, the
      score reverts to the start of the turn and play passes on.
    - A turn ends after 3 darts, a bust, or a finish. Play passes to the next
      player in order who has not finished.
    - The finisher takes the next rank; when at most one player is left the
      game is over and that player takes the last rank.

    Raises InvalidThrowError without producing a new state when the dart
    cannot be thrown.
    """
    config = state.config
    if state.is_game_over:
        raise InvalidThrowError("game is already over")

    player = state.current_player
    if player.is_finished:
        raise InvalidThrowError(f"player '{player.player_id}' has already finished")
    if len(state.current_turn_darts) >= DARTS_PER_TURN:
        raise InvalidThrowError(f"a turn may include at most {DARTS_PER_TURN} darts")

    darts = (*state.current_turn_darts, dart)
    in_at_start = _in_at_turn_start(config, player)
    turn_score, doubled_in_now = _counted_score(darts, already_in=in_at_start)
    potential = state.score_before_turn - turn_score

    is_bust = _is_bust(potential, dart, double_out=config.double_out)
    throws = (*state.throws, dart)

    if is_bust:
        logger.debug(
            "Bust for %s: %d -> %d on %s", player.player_id, state.score_before_turn, potential, dart
        )
        record = TurnRecord(
            darts=darts,
            score_at_start=state.score_before_turn,
            score_at_end=state.score_before_turn,
            is_bust=True,
            had_doubled_in_before=in_at_start,
            doubled_in_this_turn=False,
        )
        busted = replace(
            player,
            current_score=state.score_before_turn,
            has_doubled_in=in_at_start,
            turn_history=(*player.turn_history, record),
        )
        after = _advance(_with_player(replace(state, throws=throws), busted))
        return ThrowOutcome(state=after, is_bust=True, is_finished=False)

    is_finished = potential == 0
    has_doubled_in = in_at_start or doubled_in_now

    if not is_finished and len(darts) < DARTS_PER_TURN:
        mid_turn = replace(player, has_doubled_in=has_doubled_in)
        after = _with_player(replace(state, current_turn_darts=darts, throws=throws), mid_turn)
        return ThrowOutcome(state=after, is_bust=False, is_finished=False)

    record = TurnRecord(
        darts=darts,
        score_at_start=state.score_before_turn,
        score_at_end=potential,
        is_bust=False,
        had_doubled_in_before=in_at_start,
        doubled_in_this_turn=doubled_in_now,
    )
    completed = replace(
        player,
        current_score=potential,
        has_doubled_in=has_doubled_in,
        finished_rank=state.next_rank if is_finished else None,
        turn_history=(*player.turn_history, record),
    )
    after = _with_player(replace(state, current_turn_darts=(), throws=throws), completed)

    if not is_finished:
        return ThrowOutcome(state=_advance(after), is_bust=False, is_finished=False)

    logger.debug("%s finished in position %d", player.player_id, state.next_rank)
    after = replace(
        after,
        finished_player_ids=(*after.finished_player_ids, player.player_id),
        next_rank=after.next_rank + 1,
    )

    remaining = after.active_player_ids
    if len(remaining) > 1:
        return ThrowOutcome(state=_advance(after), is_bust=False, is_finished=True)

    if remaining:
        last = replace(after.player_state(remaining[0]), finished_rank=after.next_rank)
        after = replace(
            _with_player(after, last),
            finished_player_ids=(*after.finished_player_ids, last.player_id),
            next_rank=after.next_rank + 1,
        )
    after = replace(after, is_game_over=True)
    logger.info("Game over: %s", ", ".join(f"{rank}. {pid}" for pid, _, rank in after.rankings()))
    return ThrowOutcome(state=after, is_bust=False, is_finished=True)


def undo_last_throw(state: LiveGameState) -> LiveGameState:
    """
    Remove the most recent dart, even when it completed a turn, finished a
    player, or ended the game. The result is a replay of the shortened log,
    so scores, double-in status, ranks and game-over status all roll back.
    """
    if not state.throws:
        raise NothingToUndoError("nothing to undo")
    return compute_game_state(
        state.config,
        state.players,
        state.throws[:-1],
        player_order=state.player_order,
    )


def compute_game_state(
    config: GameConfig,
    players: Sequence[GamePlayer],
    throws: Iterable[DartThrow],
    *,
    player_order: Sequence[str] | None = None,
) -> LiveGameState:
    """Replay an ordered throw log from the start of the game."""
    state = new_game(config, players, player_order=player_order)
    for dart in throws:
        state = apply_throw(state, dart).state
    return state


def order_throw_rows(rows: Iterable[ThrowRow], player_order: Sequence[str]) -> list[ThrowRow]:
    """
    Sort stored throw rows into play order.

    Every player still in the game takes exactly one turn per round, in seat
    order, so play order is (turn_number, seat, throw_index).
    """
    seat = {pid: i for i, pid in enumerate(player_order)}
    seen: set[tuple[str, int, int]] = set()
    rows = list(rows)
    for row in rows:
        if row.player_id not in seat:
            raise DataIntegrityError(f"throw references unknown player '{row.player_id}'")
        key = (row.player_id, row.turn_number, row.throw_index)
        if key in seen:
            raise OrderingAssumptionViolation(
                f"duplicate throw for player '{row.player_id}' turn {row.turn_number} dart {row.throw_index}"
            )
        seen.add(key)
    return sorted(rows, key=lambda r: (r.turn_number, seat[r.player_id], r.throw_index))


def compute_game_state_from_rows(
    config: GameConfig,
    players: Sequence[GamePlayer],
    rows: Iterable[ThrowRow],
    *,
    player_order: Sequence[str] | None = None,
) -> LiveGameState:
    """
    Replay stored throw rows, checking each one lands where the replay expects
    it (right player, right turn, right dart slot).
    """
    state = new_game(config, players, player_order=player_order)
    for row in order_throw_rows(rows, state.player_order):
        if state.is_game_over:
            raise OrderingAssumptionViolation(
                f"throw for player '{row.player_id}' turn {row.turn_number} comes after the game ended"
            )
        expected_player = state.current_player
        expected = (
            expected_player.player_id,
            len(expected_player.turn_history) + 1,
            len(state.current_turn_darts),
        )
        actual = (row.player_id, row.turn_number, row.throw_index)
        if actual != expected:
            raise OrderingAssumptionViolation(
                f"throw log out of sequence: got player '{actual[0]}' turn {actual[1]} dart {actual[2]}, "
                f"expected player '{expected[0]}' turn {expected[1]} dart {expected[2]}"
            )
        state = apply_throw(state, row.dart).state
    return state


def throw_rows(state: LiveGameState) -> list[ThrowRow]:
    """The stored-row form of a state's throw log, in play order."""
    replay = new_game(state.config, state.players, player_order=state.player_order)
    rows: list[ThrowRow] = []
    for dart in state.throws:
        player = replay.current_player
        rows.append(
            ThrowRow(
                player_id=player.player_id,
                turn_number=len(player.turn_history) + 1,
                throw_index=len(replay.current_turn_darts),
                dart=dart,
            )
        )
        replay = apply_throw(replay, dart).state
    return rows


class LiveGame:
    """
    Stateful wrapper around the pure engine for an interactive session.

    Each call swaps in a new immutable state; a rejected dart leaves the
    current state as it was.
    """

    def __init__(
        self,
        config: GameConfig,
        players: Sequence[GamePlayer],
        *,
        player_order: Sequence[str] | None = None,
    ) -> None:
        self._state = new_game(config, players, player_order=player_order)

    def state(self) -> LiveGameState:
        return self._state

    def reset(self, *, config: GameConfig | None = None) -> LiveGameState:
        """Start over with the same players; a new config replaces the current one."""
        self._state = new_game(
            config or self._state.config,
            self._state.players,
            player_order=self._state.player_order,
        )
        return self._state

    def reorder(self, player_order: Sequence[str]) -> LiveGameState:
        self._state = reorder_players(self._state, player_order)
        return self._state

    def throw(self, dart: DartThrow, *, player_id: str | None = None) -> ThrowOutcome:
        if player_id is not None and player_id != self._state.current_player.player_id:
            raise InvalidThrowError("not this player's turn")
        outcome = apply_throw(self._state, dart)
        self._state = outcome.state
        return outcome

    def undo(self) -> LiveGameState:
        self._state = undo_last_throw(self._state)
        return self._state


def _check_order(order: Sequence[str], ids: Sequence[str]) -> None:
    if sorted(order) != sorted(ids):
        raise DataIntegrityError("player order must list every player exactly once")


def _in_at_turn_start(config: GameConfig, player: PlayerGameState) -> bool:
    if not config.double_in:
        return True
    return any(t.doubled_in_this_turn for t in player.turn_history)


def _counted_score(darts: Sequence[DartThrow], *, already_in: bool) -> tuple[int, bool]:
    """
    Score of the darts that count this turn, and whether this turn doubled in.
    """
    if already_in:
        return sum(d.score for d in darts), False
    for i, d in enumerate(darts):
        if d.is_double:
            return sum(x.score for x in darts[i:]), True
    return 0, False


def _is_bust(potential: int, last_dart: DartThrow, *, double_out: bool) -> bool:
    if potential < 0:
        return True
    if double_out and potential == 1:
        # No double scores 1.
        return True
    if double_out and potential == 0 and not last_dart.is_double:
        return True
    return False


def _with_player(state: LiveGameState, updated: PlayerGameState) -> LiveGameState:
    return replace(
        state,
        player_states=tuple(
            updated if ps.player_id == updated.player_id else ps for ps in state.player_states
        ),
    )


def _advance(state: LiveGameState) -> LiveGameState:
    """Hand the board to the next unfinished player, wrapping round the order."""
    order = state.player_order
    if not state.active_player_ids:
        return state

    next_index = state.current_player_index
    for _ in range(len(order)):
        next_index = (next_index + 1) % len(order)
        if order[next_index] not in state.finished_player_ids:
            break

    return replace(
        state,
        current_player_index=next_index,
        current_turn_darts=(),
        score_before_turn=state.player_state(order[next_index]).current_score,
    )
