from __future__ import annotations

from threading import RLock
from typing import Sequence
from uuid import uuid4

from elomondo.errors import GameNotFoundError
from elomondo.scoring.darts import DartThrow
from elomondo.scoring.game import GameConfig, GamePlayer, LiveGame, LiveGameState, ThrowOutcome


class InMemoryGameStore:
    """
    Live games in progress, keyed by game id.

    Only the config, player order and throw log matter; every state is a replay
    of them, so resuming a session is just looking the game up again.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._games: dict[str, LiveGame] = {}

    def clear(self) -> None:
        with self._lock:
            self._games.clear()

    def create_game(
        self,
        config: GameConfig,
        players: Sequence[GamePlayer],
        *,
        player_order: Sequence[str] | None = None,
    ) -> tuple[str, LiveGame]:
        game = LiveGame(config, players, player_order=player_order)
        game_id = str(uuid4())
        with self._lock:
            self._games[game_id] = game
        return game_id, game

    def game(self, game_id: str) -> LiveGame:
        with self._lock:
            game = self._games.get(game_id)
        if game is None:
            raise GameNotFoundError(f"game '{game_id}' not found")
        return game

    # Mutations go through the store so concurrent requests on one game serialize.
    def throw(self, game_id: str, dart: DartThrow, *, player_id: str | None = None) -> ThrowOutcome:
        with self._lock:
            return self.game(game_id).throw(dart, player_id=player_id)

    def undo(self, game_id: str) -> LiveGameState:
        with self._lock:
            return self.game(game_id).undo()

    def delete_game(self, game_id: str) -> bool:
        with self._lock:
            return self._games.pop(game_id, None) is not None


_STORE: InMemoryGameStore | None = None


def get_store() -> InMemoryGameStore:
    global _STORE
    if _STORE is None:
        _STORE = InMemoryGameStore()
    return _STORE
