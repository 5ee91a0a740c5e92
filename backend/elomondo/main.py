import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Literal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from elomondo.config import RatingConfig
from elomondo.errors import (
    DataIntegrityError,
    ElomondoError,
    GameNotFoundError,
    InvalidThrowError,
    NothingToUndoError,
    OrderingAssumptionViolation,
)
from elomondo.logging_setup import setup_logging
from elomondo.rating.engine import compute_ratings
from elomondo.rating.models import CalculatedPlayer, Match, MatchHistoryEntry, MatchParticipant, Player
from elomondo.scoring.darts import DartThrow
from elomondo.scoring.game import (
    GameConfig,
    GamePlayer,
    LiveGameState,
    PlayerGameState,
    TurnRecord,
    compute_game_state,
)
from elomondo.scoring.store import get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="Elomondo", lifespan=lifespan)
store = get_store()
rating_config = RatingConfig.from_env()

_STATUS_BY_ERROR: dict[type[ElomondoError], int] = {
    DataIntegrityError: 422,
    OrderingAssumptionViolation: 422,
    InvalidThrowError: 409,
    NothingToUndoError: 409,
    GameNotFoundError: 404,
}


@app.exception_handler(ElomondoError)
async def elomondo_error_handler(request: Request, exc: ElomondoError) -> JSONResponse:
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(
        status_code=status,
        content={
            "title": type(exc).__name__,
            "detail": exc.detail,
            "status": status,
            "code": exc.code,
        },
    )


@app.get("/", include_in_schema=False)
def root(request: Request):
    # Browsers go to Swagger UI; API clients get a JSON index.
    accept = (request.headers.get("accept") or "").lower()
    if "text/html" in accept:
        return RedirectResponse(url="/docs")
    return {
        "name": "Elomondo",
        "docs": "/docs",
        "health": "/health",
        "endpoints": [
            "POST /ratings",
            "POST /games",
            "POST /games/replay",
            "GET /games/{game_id}",
            "POST /games/{game_id}/throws",
            "POST /games/{game_id}/undo",
            "DELETE /games/{game_id}",
        ],
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# --- Ratings ---


class PlayerDTO(BaseModel):
    id: str
    name: str
    matches_played: int = Field(default=0, ge=0)
    wins: int = Field(default=0, ge=0)
    losses: int = Field(default=0, ge=0)
    created_at: datetime | None = None


class ParticipantDTO(BaseModel):
    player_id: str
    rank: int = Field(..., ge=1, description="1 = best finish; equal ranks are draws")


class MatchDTO(BaseModel):
    id: str
    match_type: Literal["1v1", "multiplayer"]
    created_at: datetime
    winner_id: str | None = None
    loser_id: str | None = None
    participants: list[ParticipantDTO] = Field(default_factory=list)


class RatingsRequest(BaseModel):
    players: list[PlayerDTO]
    matches: list[MatchDTO] = Field(default_factory=list)
    now: datetime | None = Field(default=None, description="Reference time for decay; defaults to server time")
    apply_decay: bool = True
    decay_in_matches: bool | None = Field(
        default=None, description="Decay ratings between matches; defaults to apply_decay"
    )
    season: int | None = Field(default=None, description="Only replay matches from this calendar year")
    include_provisional: bool = True


class EloResultDTO(BaseModel):
    player_id: str
    elo_before: float
    elo_after: float
    elo_change: int


class MatchHistoryEntryDTO(BaseModel):
    match_id: str
    match_date: datetime
    results: list[EloResultDTO]


class CalculatedPlayerDTO(BaseModel):
    player_id: str
    player_name: str
    rank: int
    current_elo: int
    raw_elo: int
    decay_applied: int
    days_since_last_match: int | None
    matches_played: int
    wins: int
    losses: int
    win_rate: float
    is_provisional: bool


class RatingsResponseDTO(BaseModel):
    players: list[CalculatedPlayerDTO]
    match_history: list[MatchHistoryEntryDTO]
    calculated_at: datetime
    decay_half_life_days: float
    decay_enabled: bool
    decay_applied_in_matches: bool
    available_years: list[int]
    season: int | None


def _utc(dt: datetime) -> datetime:
    # Naive timestamps from the client are taken to be UTC.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _dto_to_match(m: MatchDTO) -> Match:
    return Match(
        id=m.id,
        match_type=m.match_type,
        created_at=_utc(m.created_at),
        winner_id=m.winner_id,
        loser_id=m.loser_id,
        participants=tuple(MatchParticipant(m.id, p.player_id, p.rank) for p in m.participants),
    )


def _history_to_dto(entry: MatchHistoryEntry) -> MatchHistoryEntryDTO:
    return MatchHistoryEntryDTO(
        match_id=entry.match_id,
        match_date=entry.match_date,
        results=[
            EloResultDTO(
                player_id=pid,
                elo_before=r.elo_before,
                elo_after=r.elo_after,
                elo_change=r.elo_change,
            )
            for pid, r in entry.results.items()
        ],
    )


def _rating_to_dto(p: CalculatedPlayer) -> CalculatedPlayerDTO:
    return CalculatedPlayerDTO(
        player_id=p.player_id,
        player_name=p.player_name,
        rank=p.rank,
        current_elo=p.current_elo,
        raw_elo=p.raw_elo,
        decay_applied=p.decay_applied,
        days_since_last_match=p.days_since_last_match,
        matches_played=p.matches_played,
        wins=p.wins,
        losses=p.losses,
        win_rate=p.win_rate,
        is_provisional=p.is_provisional,
    )


@app.post("/ratings", response_model=RatingsResponseDTO)
def ratings(req: RatingsRequest) -> RatingsResponseDTO:
    now = _utc(req.now) if req.now is not None else datetime.now(timezone.utc)
    result = compute_ratings(
        [
            Player(
                id=p.id,
                name=p.name,
                matches_played=p.matches_played,
                wins=p.wins,
                losses=p.losses,
                created_at=p.created_at,
            )
            for p in req.players
        ],
        [_dto_to_match(m) for m in req.matches],
        now,
        req.apply_decay,
        config=rating_config,
        decay_in_matches=req.decay_in_matches,
        season=req.season,
        include_provisional=req.include_provisional,
    )
    return RatingsResponseDTO(
        players=[_rating_to_dto(p) for p in result.current_ratings],
        match_history=[_history_to_dto(e) for e in result.match_history],
        calculated_at=result.calculated_at,
        decay_half_life_days=result.decay_half_life_days,
        decay_enabled=result.decay_enabled,
        decay_applied_in_matches=result.decay_applied_in_matches,
        available_years=list(result.available_years),
        season=result.season,
    )


# --- Live games ---


class GameConfigDTO(BaseModel):
    game_type: Literal["301", "501"] = "501"
    start_rule: Literal["straight-in", "double-in"] = "straight-in"
    end_rule: Literal["straight-out", "double-out"] = "double-out"


class GamePlayerDTO(BaseModel):
    id: str
    name: str


class NewGameRequest(BaseModel):
    config: GameConfigDTO = Field(default_factory=GameConfigDTO)
    players: list[GamePlayerDTO] = Field(..., min_length=1)
    player_order: list[str] | None = Field(default=None, description="Throwing order by player id")


class ThrowRequest(BaseModel):
    label: str | None = Field(default=None, description='Pad label, e.g. "T20", "D16", "BULL", "MISS"')
    segment: int | None = Field(default=None, ge=0, le=50, description="0=miss, 1-20, 25=bull, 50=inner bull")
    multiplier: int = Field(default=1, ge=1, le=3, description="1=single, 2=double, 3=triple")
    player_id: str | None = Field(default=None, description="Optional: validate whose turn it is")


class ReplayRequest(BaseModel):
    config: GameConfigDTO = Field(default_factory=GameConfigDTO)
    players: list[GamePlayerDTO] = Field(..., min_length=1)
    player_order: list[str] | None = None
    throws: list[str] = Field(default_factory=list, description="Dart labels in throwing order")


class DartDTO(BaseModel):
    segment: int
    multiplier: int
    score: int
    label: str


class TurnRecordDTO(BaseModel):
    darts: list[DartDTO]
    score_at_start: int
    score_at_end: int
    is_bust: bool
    had_doubled_in_before: bool
    doubled_in_this_turn: bool


class PlayerGameStateDTO(BaseModel):
    player_id: str
    player_name: str
    starting_score: int
    current_score: int
    has_doubled_in: bool
    finished_rank: int | None
    turn_history: list[TurnRecordDTO]


class GameStateDTO(BaseModel):
    game_id: str | None = None
    config: GameConfigDTO
    player_order: list[str]
    players: list[PlayerGameStateDTO]
    current_player_id: str
    current_turn_darts: list[DartDTO]
    score_before_turn: int
    current_turn_score: int
    potential_score: int
    finished_player_ids: list[str]
    next_rank: int
    is_game_over: bool
    darts_thrown: int


class ThrowResponseDTO(BaseModel):
    state: GameStateDTO
    is_bust: bool
    is_finished: bool


def _dart_to_dto(d: DartThrow) -> DartDTO:
    return DartDTO(segment=d.segment, multiplier=d.multiplier, score=d.score, label=d.label)


def _turn_to_dto(t: TurnRecord) -> TurnRecordDTO:
    return TurnRecordDTO(
        darts=[_dart_to_dto(d) for d in t.darts],
        score_at_start=t.score_at_start,
        score_at_end=t.score_at_end,
        is_bust=t.is_bust,
        had_doubled_in_before=t.had_doubled_in_before,
        doubled_in_this_turn=t.doubled_in_this_turn,
    )


def _player_to_dto(p: PlayerGameState) -> PlayerGameStateDTO:
    return PlayerGameStateDTO(
        player_id=p.player_id,
        player_name=p.player_name,
        starting_score=p.starting_score,
        current_score=p.current_score,
        has_doubled_in=p.has_doubled_in,
        finished_rank=p.finished_rank,
        turn_history=[_turn_to_dto(t) for t in p.turn_history],
    )


def _state_to_dto(s: LiveGameState, game_id: str | None = None) -> GameStateDTO:
    return GameStateDTO(
        game_id=game_id,
        config=GameConfigDTO(
            game_type=s.config.game_type,
            start_rule=s.config.start_rule,
            end_rule=s.config.end_rule,
        ),
        player_order=list(s.player_order),
        players=[_player_to_dto(s.player_state(pid)) for pid in s.player_order],
        current_player_id=s.current_player.player_id,
        current_turn_darts=[_dart_to_dto(d) for d in s.current_turn_darts],
        score_before_turn=s.score_before_turn,
        current_turn_score=s.current_turn_score,
        potential_score=s.potential_score,
        finished_player_ids=list(s.finished_player_ids),
        next_rank=s.next_rank,
        is_game_over=s.is_game_over,
        darts_thrown=len(s.throws),
    )


def _dto_to_config(c: GameConfigDTO) -> GameConfig:
    return GameConfig(game_type=c.game_type, start_rule=c.start_rule, end_rule=c.end_rule)


def _dto_to_dart(req: ThrowRequest) -> DartThrow:
    if req.label is not None:
        return DartThrow.from_label(req.label)
    if req.segment is None:
        raise InvalidThrowError("a throw needs either a label or a segment")
    return DartThrow(req.segment, req.multiplier)


@app.post("/games", response_model=GameStateDTO)
def start_game(req: NewGameRequest) -> GameStateDTO:
    game_id, game = store.create_game(
        _dto_to_config(req.config),
        [GamePlayer(id=p.id, name=p.name) for p in req.players],
        player_order=req.player_order,
    )
    logger.info("Started game %s with %d player(s)", game_id, len(req.players))
    return _state_to_dto(game.state(), game_id)


@app.post("/games/replay", response_model=GameStateDTO)
def replay_game(req: ReplayRequest) -> GameStateDTO:
    state = compute_game_state(
        _dto_to_config(req.config),
        [GamePlayer(id=p.id, name=p.name) for p in req.players],
        [DartThrow.from_label(label) for label in req.throws],
        player_order=req.player_order,
    )
    return _state_to_dto(state)


@app.get("/games/{game_id}", response_model=GameStateDTO)
def get_game(game_id: str) -> GameStateDTO:
    return _state_to_dto(store.game(game_id).state(), game_id)


@app.post("/games/{game_id}/throws", response_model=ThrowResponseDTO)
def throw_dart(game_id: str, req: ThrowRequest) -> ThrowResponseDTO:
    dart = _dto_to_dart(req)
    outcome = store.throw(game_id, dart, player_id=req.player_id)
    return ThrowResponseDTO(
        state=_state_to_dto(outcome.state, game_id),
        is_bust=outcome.is_bust,
        is_finished=outcome.is_finished,
    )


@app.post("/games/{game_id}/undo", response_model=GameStateDTO)
def undo_throw(game_id: str) -> GameStateDTO:
    return _state_to_dto(store.undo(game_id), game_id)


@app.delete("/games/{game_id}")
def delete_game(game_id: str):
    if not store.delete_game(game_id):
        raise GameNotFoundError(f"game '{game_id}' not found")
    return {"deleted": game_id}
