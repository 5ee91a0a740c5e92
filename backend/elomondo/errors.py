from __future__ import annotations


class ElomondoError(Exception):
    """
    Base class for errors raised by the rating and live-game engines.

    `code` is a stable machine-readable identifier; `detail` is a human message.
    """

    code = "elomondo_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class DataIntegrityError(ElomondoError, ValueError):
    """Input rows reference unknown players or are structurally impossible."""

    code = "data_integrity"


class InvalidThrowError(ElomondoError, ValueError):
    """A dart was rejected; the game state it was applied to is unchanged."""

    code = "invalid_throw"


class OrderingAssumptionViolation(ElomondoError, ValueError):
    """A match or throw log is not in an order the engine can replay."""

    code = "ordering_violation"


class NothingToUndoError(ElomondoError, RuntimeError):
    code = "nothing_to_undo"


class GameNotFoundError(ElomondoError, KeyError):
    code = "game_not_found"

    def __str__(self) -> str:
        return self.detail
