from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from trufman.engine.errors import RoundInProgress
from trufman.engine.game_manager import game_manager
from trufman.engine.orchestrator import next_round

router = APIRouter()


class CreateGameRequest(BaseModel):
    seatTypes: list[str] | None = None
    seatNames: list[str] | None = None
    dealer: int = Field(default=0, ge=0, le=3)
    revealDelayMs: int | None = Field(default=None, ge=0, le=2000)
    botDelayMs: int | None = Field(default=None, ge=0, le=1200)


class CreateGameResponse(BaseModel):
    gameId: str


def _get_or_404(game_id: str):
    match = game_manager.get_match(game_id)
    if not match:
        raise HTTPException(status_code=404, detail="Game not found")
    return match


@router.get("/health")
def health() -> dict:
    return {"ok": True}


@router.post("/games", response_model=CreateGameResponse)
def create_game(req: CreateGameRequest) -> CreateGameResponse:
    try:
        match = game_manager.create_match(
            seat_types=req.seatTypes,
            seat_names=req.seatNames,
            dealer=req.dealer,
            reveal_delay_ms=req.revealDelayMs,
            bot_delay_ms=req.botDelayMs,
        )
        return CreateGameResponse(gameId=match.game_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/games/{game_id}")
def get_game(game_id: str, viewerSeat: int | None = None) -> dict:
    match = _get_or_404(game_id)
    if viewerSeat is not None and not 0 <= viewerSeat <= 3:
        raise HTTPException(status_code=400, detail="viewerSeat must be in 0..3")
    return match.to_public_dict(viewerSeat)


@router.post("/games/{game_id}/next-round")
def start_next_round(game_id: str) -> dict:
    match = _get_or_404(game_id)
    try:
        next_round(match)
    except RoundInProgress as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return match.to_public_dict()


@router.post("/games/{game_id}/bots/reset")
def reset_bots(game_id: str, hard: bool = False) -> dict:
    match = _get_or_404(game_id)
    game_manager.reset_bots(match, hard=hard)
    return {"ok": True, "hard": hard, "seats": sorted(match.agents)}


@router.delete("/games/{game_id}")
def delete_game(game_id: str) -> dict:
    _get_or_404(game_id)
    game_manager.delete_match(game_id)
    return {"ok": True}
