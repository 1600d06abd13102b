"""
scoreboard/server.py - FastAPI server for Bracketeer.

Endpoints:
    GET    /competitors                          Saved roster
    POST   /competitors                          Replace the roster
    POST   /competitors/add                      Add one competitor
    PATCH  /competitors/{id}                     Edit name/subtitle
    DELETE /competitors/{id}                     Remove a competitor
    POST   /competitors/{id}/image               Upload a picture (base64)

    POST   /bracket/generate                     Rebuild from the roster
    GET    /bracket                              Current tree + champion
    POST   /bracket/rounds/{r}/matches/{m}/winner  Record a winner by id
    POST   /bracket/rounds/{r}/matches/{m}/score   Record scores (ties flip a coin)
    PATCH  /bracket/competitors/{id}             Rename inside the bracket only
    GET    /bracket/layout                       Diagram geometry

    GET    /timer                                Match clock state
    PUT    /timer                                Set the match length
    POST   /timer/{action}                       toggle | reset | tick

    GET    /matches                              Raw match records
    POST   /matches                              Upsert match records
    DELETE /matches                              Delete a tournament's records
    GET    /health                               Server health check

The bracket lives in memory. Every change swaps in a new tree first and
then writes to SQLite; a failed write is logged and returned as a notice,
never rolled back.
"""

import base64
import binascii
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from bracketeer.bracket import (
    Bracket,
    BracketMode,
    BracketModeError,
    Competitor,
    InvalidDecisionError,
    build_bracket,
    check_integrity,
    match_records,
)
from bracketeer.config import BracketeerConfig, load_config
from bracketeer.layout import LayoutSpec, compute_layout, scale_to_fit
from bracketeer.progression import rename_competitor, record_result
from bracketeer.roster import (
    RosterError,
    add_competitor,
    edit_competitor,
    remove_competitor,
    set_competitor_image,
)
from bracketeer.scoring import MatchTimer, decide_match

from .db import BracketDB

logger = logging.getLogger(__name__)


# ======================================================================
# State
# ======================================================================


@dataclass
class BracketSession:
    """The one bracket this server is running, plus how it was built."""

    bracket: Bracket = field(default_factory=Bracket)
    mode: BracketMode = BracketMode.MANUAL
    tournament_id: str = "default"
    max_competitors: int = 1024
    timer: MatchTimer = field(default_factory=MatchTimer)


# Global DB + session — set during lifespan
_db: BracketDB | None = None
_session: BracketSession | None = None


def get_db() -> BracketDB:
    assert _db is not None, "DB not initialized"
    return _db


def get_session() -> BracketSession:
    assert _session is not None, "Session not initialized"
    return _session


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _db, _session
    config: BracketeerConfig = getattr(app.state, "config", None) or load_config()
    db_path = (
        getattr(app.state, "db_path", None)
        or os.environ.get("BRACKETEER_DB")
        or config.server.db_path
    )
    _db = BracketDB(db_path)
    _session = BracketSession(
        mode=config.bracket.mode,
        tournament_id=config.bracket.tournament_id,
        max_competitors=config.bracket.max_competitors,
        timer=MatchTimer(config.bracket.timer_seconds),
    )
    logger.info(f"Bracket DB initialized: {db_path}")

    # Reopen with a fresh bracket over the saved roster
    roster = _db.load_competitors()
    if len(roster) >= 2:
        _session.bracket = build_bracket(roster, _session.mode)
    logger.info(
        f"Loaded {len(roster)} competitors (mode: {_session.mode.value}, "
        f"tournament: {_session.tournament_id})"
    )

    yield
    _db.close()
    _db = None
    _session = None


app = FastAPI(title="Bracketeer", lifespan=lifespan)

# Allow the browser front end to call the API from its own origin
from starlette.middleware.cors import CORSMiddleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ======================================================================
# Request/Response Models
# ======================================================================


class CompetitorModel(BaseModel):
    id: str
    name: str
    subtitle: str = ""
    image_url: str | None = None
    score: int | None = None


class MatchModel(BaseModel):
    a: CompetitorModel | None = None
    b: CompetitorModel | None = None


class RosterRequest(BaseModel):
    competitors: list[CompetitorModel]


class AddCompetitorRequest(BaseModel):
    name: str
    subtitle: str = ""


class EditCompetitorRequest(BaseModel):
    field: str  # 'name' | 'subtitle'
    value: str


class ImageUploadRequest(BaseModel):
    data: str  # base64-encoded file contents
    content_type: str = "image/png"


class RosterResponse(BaseModel):
    success: bool
    competitors: list[CompetitorModel]
    notice: str | None = None  # set when the save failed (non-fatal)


class GenerateRequest(BaseModel):
    mode: BracketMode | None = None
    tournament_id: str | None = None


class WinnerRequest(BaseModel):
    winner_id: str
    score: int | None = None


class ScoreRequest(BaseModel):
    score_a: int
    score_b: int


class BracketResponse(BaseModel):
    mode: str
    tournament_id: str
    rounds: list[list[MatchModel]]
    winners: list[list[CompetitorModel]]
    champion: CompetitorModel | None = None
    notice: str | None = None


class MatchRecordModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    tournament_id: str
    round_index: int
    match_index: int
    a: CompetitorModel | None = None
    b: CompetitorModel | None = None
    winner_id: str | None = None
    created_at: str | None = None


class MatchRecordsRequest(BaseModel):
    matches: list[MatchRecordModel]


class TimerResponse(BaseModel):
    duration: int
    remaining: int
    display: str
    running: bool
    expired: bool
    warning: bool


class TimerDurationRequest(BaseModel):
    minutes: int
    seconds: int = 0


class HealthResponse(BaseModel):
    status: str
    competitors: int
    rounds: int
    mode: str
    champion: str | None = None


# ======================================================================
# Helpers
# ======================================================================


def _try_save(what: str, save: Callable[..., Any], *args: Any) -> str | None:
    """Run a storage call. Returns a user-facing notice if it failed."""
    try:
        save(*args)
        return None
    except sqlite3.Error as e:
        logger.warning(f"Saving {what} failed (non-critical): {e}")
        return f"Could not save {what}; kept in memory only"


def _bracket_payload(session: BracketSession, notice: str | None = None) -> dict[str, Any]:
    data = session.bracket.to_dict()
    data["mode"] = session.mode.value
    data["tournament_id"] = session.tournament_id
    data["notice"] = notice
    return data


def _roster_payload(roster: list[Competitor], notice: str | None = None) -> dict[str, Any]:
    return {
        "success": notice is None,
        "competitors": [c.to_dict() for c in roster],
        "notice": notice,
    }


def _load_roster() -> list[Competitor]:
    try:
        return get_db().load_competitors()
    except sqlite3.Error as e:
        logger.error(f"Error fetching competitors: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch competitors")


def _replace_bracket(session: BracketSession, bracket: Bracket) -> str | None:
    """Swap in a new bracket and store its match records."""
    check_integrity(bracket)
    session.bracket = bracket
    return _try_save("match results", get_db().save_matches, match_records(bracket, session.tournament_id))


def _rebuild(roster: list[Competitor]) -> str | None:
    """Build a fresh bracket for the roster and replace the stored records."""
    session = get_session()
    notice = _try_save("match results", get_db().delete_matches, session.tournament_id)
    return _replace_bracket(session, build_bracket(roster, session.mode)) or notice


def _apply_roster_change(roster: list[Competitor]) -> dict[str, Any]:
    notice = _try_save("competitors", get_db().save_competitors, roster)
    notice = _rebuild(roster) or notice
    return _roster_payload(roster, notice)


def _apply_decision(decide: Callable[[Bracket], Bracket]) -> dict[str, Any]:
    session = get_session()
    try:
        bracket = decide(session.bracket)
    except BracketModeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidDecisionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    notice = _replace_bracket(session, bracket)
    return _bracket_payload(session, notice)


# ======================================================================
# Roster Endpoints
# ======================================================================


@app.get("/competitors", response_model=RosterResponse)
def get_competitors() -> dict[str, Any]:
    """Saved roster (empty if nothing saved yet)."""
    return _roster_payload(_load_roster())


@app.post("/competitors", response_model=RosterResponse)
def save_competitors(req: RosterRequest) -> dict[str, Any]:
    """Replace the whole roster and rebuild the bracket."""
    session = get_session()
    if len(req.competitors) > session.max_competitors:
        raise HTTPException(status_code=400, detail=f"At most {session.max_competitors} competitors")
    ids = [c.id for c in req.competitors]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Competitor ids must be unique")

    roster = [Competitor(**c.model_dump()) for c in req.competitors]
    logger.info(f"Roster replaced: {len(roster)} competitors")
    return _apply_roster_change(roster)


@app.post("/competitors/add", response_model=RosterResponse)
def add_to_roster(req: AddCompetitorRequest) -> dict[str, Any]:
    session = get_session()
    try:
        roster = add_competitor(_load_roster(), req.name, req.subtitle, session.max_competitors)
    except RosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _apply_roster_change(roster)


@app.patch("/competitors/{competitor_id}", response_model=RosterResponse)
def edit_roster_entry(competitor_id: str, req: EditCompetitorRequest) -> dict[str, Any]:
    try:
        roster = edit_competitor(_load_roster(), competitor_id, req.field, req.value)
    except RosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    # Cosmetic edits don't reseed the bracket
    notice = _try_save("competitors", get_db().save_competitors, roster)
    session = get_session()
    session.bracket = rename_competitor(session.bracket, competitor_id, req.field, req.value)
    return _roster_payload(roster, notice)


@app.delete("/competitors/{competitor_id}", response_model=RosterResponse)
def remove_from_roster(competitor_id: str) -> dict[str, Any]:
    try:
        roster = remove_competitor(_load_roster(), competitor_id)
    except RosterError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _apply_roster_change(roster)


@app.post("/competitors/{competitor_id}/image", response_model=RosterResponse)
def upload_image(competitor_id: str, req: ImageUploadRequest) -> dict[str, Any]:
    try:
        data = base64.b64decode(req.data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image data is not valid base64")
    try:
        roster = set_competitor_image(_load_roster(), competitor_id, data, req.content_type)
    except RosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    notice = _try_save("competitors", get_db().save_competitors, roster)
    return _roster_payload(roster, notice)


# ======================================================================
# Bracket Endpoints
# ======================================================================


@app.post("/bracket/generate", response_model=BracketResponse)
def generate_bracket(req: GenerateRequest) -> dict[str, Any]:
    """Reseed the bracket from the saved roster, optionally switching mode."""
    roster = _load_roster()
    if len(roster) < 2:
        raise HTTPException(status_code=400, detail="Add at least two competitors to generate a bracket")

    session = get_session()
    if req.tournament_id:
        session.tournament_id = req.tournament_id
    if req.mode is not None:
        session.mode = req.mode

    notice = _rebuild(roster)
    return _bracket_payload(session, notice)


@app.get("/bracket", response_model=BracketResponse)
def get_bracket() -> dict[str, Any]:
    return _bracket_payload(get_session())


@app.post("/bracket/rounds/{round_index}/matches/{match_index}/winner", response_model=BracketResponse)
def select_winner(round_index: int, match_index: int, req: WinnerRequest) -> dict[str, Any]:
    """Record a winner picked by id, optionally with their final score."""

    def decide(bracket: Bracket) -> Bracket:
        match = bracket.match(round_index, match_index)
        winner = next((c for c in match.occupants() if c.id == req.winner_id), None)
        if winner is None:
            raise InvalidDecisionError(
                f"{req.winner_id} is not playing in round {round_index} match {match_index}"
            )
        if req.score is not None:
            winner = replace(winner, score=req.score)
        return record_result(bracket, round_index, match_index, winner)

    return _apply_decision(decide)


@app.post("/bracket/rounds/{round_index}/matches/{match_index}/score", response_model=BracketResponse)
def submit_score(round_index: int, match_index: int, req: ScoreRequest) -> dict[str, Any]:
    """Finish scoring a match. The higher score advances; a tie is a coin flip."""
    data = _apply_decision(
        lambda bracket: decide_match(bracket, round_index, match_index, req.score_a, req.score_b)
    )
    # The clock belongs to the match that just ended
    get_session().timer.reset()
    return data


@app.patch("/bracket/competitors/{competitor_id}", response_model=BracketResponse)
def rename_in_bracket(competitor_id: str, req: EditCompetitorRequest) -> dict[str, Any]:
    """Edit a name/subtitle on the diagram without touching the saved roster."""
    session = get_session()
    try:
        session.bracket = rename_competitor(session.bracket, competitor_id, req.field, req.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _bracket_payload(session)


@app.get("/bracket/layout")
def get_layout(
    match_width: int = Query(310, gt=0),
    match_height: int = Query(150, gt=0),
    h_gap: int = Query(80, ge=0),
    v_gap: int = Query(25, ge=0),
    show_champion: bool = True,
    viewport_width: float | None = Query(None, gt=0),
    viewport_height: float | None = Query(None, gt=0),
) -> dict[str, Any]:
    """Box positions and connector paths for drawing the current bracket."""
    spec = LayoutSpec(
        match_width=match_width,
        match_height=match_height,
        h_gap=h_gap,
        v_gap=v_gap,
        show_champion=show_champion,
    )
    layout = compute_layout(get_session().bracket, spec)
    data = layout.to_dict()
    data["scale"] = scale_to_fit(layout, viewport_width, viewport_height) if viewport_width else 1.0
    return data


# ======================================================================
# Timer Endpoints
# ======================================================================


def _timer_payload(timer: MatchTimer) -> dict[str, Any]:
    return {
        "duration": timer.duration,
        "remaining": timer.remaining,
        "display": timer.display,
        "running": timer.running,
        "expired": timer.expired,
        "warning": timer.warning,
    }


@app.get("/timer", response_model=TimerResponse)
def get_timer() -> dict[str, Any]:
    return _timer_payload(get_session().timer)


@app.put("/timer", response_model=TimerResponse)
def set_timer(req: TimerDurationRequest) -> dict[str, Any]:
    timer = get_session().timer
    try:
        timer.set_duration(req.minutes, req.seconds)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _timer_payload(timer)


@app.post("/timer/{action}", response_model=TimerResponse)
def control_timer(action: str) -> dict[str, Any]:
    """Start/pause, rewind, or advance the clock by one second."""
    timer = get_session().timer
    if action == "toggle":
        timer.toggle()
    elif action == "reset":
        timer.reset()
    elif action == "tick":
        timer.tick()
    else:
        raise HTTPException(status_code=404, detail=f"Unknown timer action: {action}")
    return _timer_payload(timer)


# ======================================================================
# Match Record Endpoints
# ======================================================================


@app.get("/matches")
def get_matches(tournament_id: str | None = None) -> dict[str, Any]:
    try:
        matches = get_db().load_matches(tournament_id)
    except sqlite3.Error as e:
        logger.error(f"Error fetching matches: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch")
    return {"success": True, "matches": matches}


@app.post("/matches")
def save_matches(req: MatchRecordsRequest) -> dict[str, Any]:
    try:
        get_db().save_matches([m.model_dump() for m in req.matches])
    except sqlite3.Error as e:
        logger.error(f"Error saving matches: {e}")
        raise HTTPException(status_code=500, detail="Failed to save")
    return {"success": True, "message": "Matches saved"}


@app.delete("/matches")
def delete_matches(tournament_id: str | None = None) -> dict[str, Any]:
    if not tournament_id:
        raise HTTPException(status_code=400, detail="Missing tournament_id")
    try:
        deleted = get_db().delete_matches(tournament_id)
    except sqlite3.Error as e:
        logger.error(f"Error deleting matches: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete")
    return {"success": True, "deleted": deleted}


@app.get("/health", response_model=HealthResponse)
def health() -> dict[str, Any]:
    session = get_session()
    rounds = session.bracket.rounds
    champion = session.bracket.champion
    return {
        "status": "ok",
        "competitors": sum(len(m.occupants()) for m in rounds[0]) if rounds else 0,
        "rounds": len(rounds),
        "mode": session.mode.value,
        "champion": champion.name if champion else None,
    }
