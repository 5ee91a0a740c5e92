from __future__ import annotations

import pytest

from elomondo.errors import (
    DataIntegrityError,
    InvalidThrowError,
    NothingToUndoError,
    OrderingAssumptionViolation,
)
from elomondo.scoring.darts import DartThrow
from elomondo.scoring.game import (
    GameConfig,
    GamePlayer,
    LiveGame,
    LiveGameState,
    apply_throw,
    compute_game_state,
    compute_game_state_from_rows,
    new_game,
    reorder_players,
    throw_rows,
    undo_last_throw,
)

DOUBLE_OUT_301 = GameConfig(game_type="301", start_rule="straight-in", end_rule="double-out")
STRAIGHT_OUT_301 = GameConfig(game_type="301", start_rule="straight-in", end_rule="straight-out")
DOUBLE_IN_301 = GameConfig(game_type="301", start_rule="double-in", end_rule="double-out")

# Two players on 301: "a" ends on 40, "b" still on 301, "a" to throw.
A_TO_40 = ["T20", "T20", "T20", "MISS", "MISS", "MISS", "T20", "7", "D7", "MISS", "MISS", "MISS"]


def _players(*ids: str) -> list[GamePlayer]:
    return [GamePlayer(id=pid, name=pid.title()) for pid in ids]


def _play(config: GameConfig, players: list[GamePlayer], labels: list[str]) -> LiveGameState:
    return compute_game_state(config, players, [DartThrow.from_label(x) for x in labels])


def _throw(state: LiveGameState, label: str):
    return apply_throw(state, DartThrow.from_label(label))


def test_three_triple_twenties_from_501() -> None:
    state = _play(GameConfig(), _players("solo"), ["T20", "T20", "T20"])

    solo = state.player_state("solo")
    assert solo.current_score == 321
    assert solo.turn_history[-1].is_bust is False
    assert solo.turn_history[-1].scored == 180
    assert state.current_turn_darts == ()
    assert state.score_before_turn == 321


def test_scores_only_move_when_the_turn_completes() -> None:
    state = _play(GameConfig(), _players("a", "b"), ["T20", "T19"])
    assert state.player_state("a").current_score == 501
    assert state.current_turn_score == 117
    assert state.potential_score == 384
    assert state.current_player.player_id == "a"


def test_checkout_on_double_after_setup_turn() -> None:
    state = _play(DOUBLE_OUT_301, _players("solo"), ["T20", "T20", "T20", "T20", "7", "D7"])
    assert state.player_state("solo").current_score == 40

    outcome = _throw(state, "20")
    assert (outcome.is_bust, outcome.is_finished) == (False, False)
    assert outcome.state.potential_score == 20

    state = _play(DOUBLE_OUT_301, _players("solo"), ["T20", "T20", "T20", "T20", "7", "D7", "20", "MISS", "MISS"])
    assert state.player_state("solo").current_score == 20

    outcome = _throw(state, "D10")
    assert outcome.is_finished is True
    assert outcome.state.player_state("solo").finished_rank == 1
    assert outcome.state.is_game_over is True
    assert outcome.state.rankings() == (("solo", "Solo", 1),)


def test_overshoot_busts_and_reverts() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40)
    assert state.current_player.player_id == "a"

    outcome = _throw(state, "T20")
    assert outcome.is_bust is True
    a = outcome.state.player_state("a")
    assert a.current_score == 40
    assert a.turn_history[-1].is_bust is True
    assert a.turn_history[-1].score_at_start == a.turn_history[-1].score_at_end == 40
    assert outcome.state.current_player.player_id == "b"
    assert outcome.state.score_before_turn == 301


def test_leaving_one_is_a_bust_under_double_out() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40)
    state = _throw(state, "19").state
    outcome = _throw(state, "D10")
    assert outcome.is_bust is True
    assert outcome.state.player_state("a").current_score == 40

    direct = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40 + ["T13"])
    assert direct.player_state("a").current_score == 40
    assert direct.player_state("a").turn_history[-1].is_bust is True


def test_finishing_on_a_single_busts_under_double_out() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40 + ["20"])
    outcome = _throw(state, "20")
    assert outcome.is_bust is True
    assert outcome.is_finished is False
    assert outcome.state.player_state("a").current_score == 40


def test_straight_out_allows_any_finish_and_ends_two_player_game() -> None:
    state = _play(STRAIGHT_OUT_301, _players("a", "b"), A_TO_40 + ["20"])
    outcome = _throw(state, "20")
    assert outcome.is_finished is True
    assert outcome.is_game_over is True
    assert outcome.state.rankings() == (("a", "A", 1), ("b", "B", 2))


def test_straight_out_allows_leaving_one() -> None:
    state = _play(STRAIGHT_OUT_301, _players("a", "b"), A_TO_40 + ["19", "D10"])
    assert state.potential_score == 1
    assert state.current_turn_darts == (DartThrow(19), DartThrow(10, 2))
    assert state.player_state("a").turn_history[-1].is_bust is False


def test_darts_before_double_in_score_nothing() -> None:
    state = _play(DOUBLE_IN_301, _players("solo"), ["20", "20", "20"])
    solo = state.player_state("solo")
    assert solo.current_score == 301
    assert solo.has_doubled_in is False
    assert solo.turn_history[-1].doubled_in_this_turn is False

    state = _play(DOUBLE_IN_301, _players("solo"), ["20", "20", "20", "20", "D10", "5"])
    solo = state.player_state("solo")
    assert solo.current_score == 276
    assert solo.has_doubled_in is True
    turn = solo.turn_history[-1]
    assert (turn.had_doubled_in_before, turn.doubled_in_this_turn) == (False, True)

    state = _play(DOUBLE_IN_301, _players("solo"), ["20", "20", "20", "20", "D10", "5", "T20", "T20", "T20"])
    solo = state.player_state("solo")
    assert solo.current_score == 96
    assert solo.turn_history[-1].had_doubled_in_before is True
    assert solo.turn_history[-1].doubled_in_this_turn is False


def test_double_in_status_shows_mid_turn() -> None:
    state = _play(DOUBLE_IN_301, _players("solo"), ["20", "D10"])
    assert state.player_state("solo").has_doubled_in is True
    assert state.current_turn_score == 20


def test_play_skips_finished_players_and_last_player_takes_last_rank() -> None:
    config = STRAIGHT_OUT_301
    players = _players("a", "b", "c")
    round_one = ["T20", "T20", "T20", "MISS", "MISS", "MISS", "MISS", "MISS", "MISS"]

    state = _play(config, players, round_one + ["T20", "T20", "1"])
    assert state.player_state("a").finished_rank == 1
    assert state.current_player.player_id == "b"
    assert state.active_player_ids == ("b", "c")
    assert state.is_game_over is False

    state = _play(config, players, round_one + ["T20", "T20", "1", "T20", "T20", "T20", "MISS", "MISS", "MISS"])
    assert state.current_player.player_id == "b"
    assert state.score_before_turn == 121

    outcome = _throw(_throw(_throw(state, "T20").state, "T20").state, "1")
    final = outcome.state
    assert final.is_game_over is True
    assert final.rankings() == (("a", "A", 1), ("b", "B", 2), ("c", "C", 3))
    assert final.player_state("c").current_score == 301


def test_undo_into_previous_turn() -> None:
    state = _play(GameConfig(), _players("a", "b"), ["T20", "T20", "T20"])
    assert state.current_player.player_id == "b"

    undone = undo_last_throw(state)
    assert undone.current_player.player_id == "a"
    assert undone.current_turn_darts == (DartThrow(20, 3), DartThrow(20, 3))
    assert undone.player_state("a").current_score == 501
    assert undone.player_state("a").turn_history == ()
    assert undone.potential_score == 381


def test_undo_revokes_finish_and_game_over() -> None:
    state = _play(STRAIGHT_OUT_301, _players("a", "b"), A_TO_40 + ["20", "20"])
    assert state.is_game_over is True

    undone = undo_last_throw(state)
    assert undone.is_game_over is False
    assert undone.finished_player_ids == ()
    assert undone.next_rank == 1
    assert undone.player_state("a").finished_rank is None
    assert undone.player_state("b").finished_rank is None
    assert undone.current_turn_darts == (DartThrow(20),)
    assert undone.potential_score == 20


def test_undo_recomputes_double_in() -> None:
    state = _play(DOUBLE_IN_301, _players("solo"), ["20", "D10", "5"])
    once = undo_last_throw(state)
    assert once.player_state("solo").has_doubled_in is True
    assert once.player_state("solo").turn_history == ()
    twice = undo_last_throw(once)
    assert twice.player_state("solo").has_doubled_in is False


def test_undo_on_fresh_game_is_rejected() -> None:
    with pytest.raises(NothingToUndoError):
        undo_last_throw(new_game(GameConfig(), _players("a")))


def test_no_throws_after_game_over() -> None:
    state = _play(STRAIGHT_OUT_301, _players("a", "b"), A_TO_40 + ["20", "20"])
    with pytest.raises(InvalidThrowError):
        apply_throw(state, DartThrow(20))
    assert len(state.throws) == len(A_TO_40) + 2


def test_replay_is_deterministic() -> None:
    labels = A_TO_40 + ["T20", "19", "D5"]
    assert _play(DOUBLE_OUT_301, _players("a", "b"), labels) == _play(DOUBLE_OUT_301, _players("a", "b"), labels)


def test_live_game_wrapper() -> None:
    game = LiveGame(DOUBLE_OUT_301, _players("a", "b"))
    outcome = game.throw(DartThrow(20, 3), player_id="a")
    assert outcome.state is game.state()

    with pytest.raises(InvalidThrowError):
        game.throw(DartThrow(20), player_id="b")
    assert len(game.state().throws) == 1

    game.undo()
    assert game.state().throws == ()
    with pytest.raises(NothingToUndoError):
        game.undo()

    game.throw(DartThrow(20))
    state = game.reset(config=GameConfig(game_type="501"))
    assert state.throws == ()
    assert state.score_before_turn == 501


def test_player_order() -> None:
    state = new_game(GameConfig(), _players("a", "b", "c"), player_order=["c", "a", "b"])
    assert state.current_player.player_id == "c"

    state = reorder_players(state, ["b", "c", "a"])
    assert state.current_player.player_id == "b"

    started = apply_throw(state, DartThrow(20)).state
    with pytest.raises(InvalidThrowError):
        reorder_players(started, ["a", "b", "c"])
    with pytest.raises(DataIntegrityError):
        reorder_players(state, ["a", "b"])


def test_bad_setup_is_rejected() -> None:
    with pytest.raises(DataIntegrityError):
        GameConfig(game_type="701")
    with pytest.raises(DataIntegrityError):
        GameConfig(end_rule="master-out")
    with pytest.raises(DataIntegrityError):
        new_game(GameConfig(), [])
    with pytest.raises(DataIntegrityError):
        new_game(GameConfig(), _players("a", "a"))


def test_stored_rows_replay_in_any_order() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40 + ["T20", "T20", "19"])
    rows = throw_rows(state)
    assert (rows[-1].player_id, rows[-1].turn_number, rows[-1].throw_index) == ("b", 3, 1)

    assert compute_game_state_from_rows(DOUBLE_OUT_301, _players("a", "b"), reversed(rows)) == state


def test_gap_in_stored_rows_is_an_ordering_violation() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), A_TO_40)
    rows = [r for r in throw_rows(state) if (r.player_id, r.turn_number, r.throw_index) != ("a", 2, 0)]
    with pytest.raises(OrderingAssumptionViolation):
        compute_game_state_from_rows(DOUBLE_OUT_301, _players("a", "b"), rows)


def test_duplicate_stored_rows_are_rejected() -> None:
    state = _play(DOUBLE_OUT_301, _players("a", "b"), ["T20"])
    rows = throw_rows(state)
    with pytest.raises(OrderingAssumptionViolation):
        compute_game_state_from_rows(DOUBLE_OUT_301, _players("a", "b"), rows + rows)
