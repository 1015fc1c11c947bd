from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from trufman.engine.bot_runner import advance_bots_until_human
from trufman.engine.errors import SpectatorOnly, TrufmanError
from trufman.engine.game_manager import game_manager
from trufman.engine.legal_actions import get_legal_actions
from trufman.engine.orchestrator import next_round, play_card, set_delays, submit_bid
from trufman.engine.state import MatchState

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_state(websocket: WebSocket, match: MatchState, seat: int | None) -> None:
    actions = get_legal_actions(match, seat)
    await websocket.send_json({"type": "STATE_UPDATE", "state": match.to_public_dict(seat)})
    await websocket.send_json({"type": "LEGAL_ACTIONS", "actions": actions})


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_json({"type": "ERROR", "code": code, "message": message})


def _require_seat(seat: int | None) -> int:
    if seat is None:
        raise SpectatorOnly("Spectators cannot act; connect with ?seat=n to play.")
    return seat


def _acting_seat(match: MatchState, msg: dict, seat: int | None) -> int:
    """Seat named in the message; must be a human seat and this connection's seat."""
    seat = _require_seat(seat)
    raw = msg.get("seatIndex", seat)
    try:
        acting = int(raw)
    except (TypeError, ValueError) as e:
        raise TrufmanError(f"Invalid seatIndex: {raw!r}.") from e
    if not 0 <= acting <= 3:
        raise TrufmanError(f"Invalid seatIndex: {raw!r}.")
    if acting != seat:
        raise TrufmanError(f"This connection plays seat {seat}.")
    if match.seat_types[acting] != "human":
        raise TrufmanError(f"Seat {acting} is played by a bot.")
    return acting


@router.websocket("/ws/games/{game_id}")
async def ws_game(websocket: WebSocket, game_id: str, seat: int | None = None) -> None:
    await websocket.accept()

    match = game_manager.get_match(game_id)
    if not match:
        await _send_error(websocket, "GAME_NOT_FOUND", "Game not found")
        await websocket.close()
        return

    if seat is not None and not 0 <= seat <= 3:
        await _send_error(websocket, "INVALID_SEAT", "seat must be in 0..3")
        await websocket.close()
        return

    app = websocket.scope["app"]
    pool = getattr(app.state, "process_pool", None)
    bot_sem = getattr(app.state, "bot_sem", None) or asyncio.Semaphore(1)

    async def push() -> None:
        await _send_state(websocket, match, seat)

    async def advance() -> None:
        await advance_bots_until_human(match, pool, bot_sem, on_update=push)
        await push()

    await advance()

    try:
        while True:
            msg = await websocket.receive_json()
            msg_type = msg.get("type")

            try:
                if msg_type == "GET_STATE":
                    await advance()
                    continue

                if msg_type == "SUBMIT_BID":
                    acting = _acting_seat(match, msg, seat)
                    submit_bid(match, acting, str(msg.get("suit")), msg.get("rank"))
                    await advance()
                    continue

                if msg_type == "PLAY_CARD":
                    acting = _acting_seat(match, msg, seat)
                    play_card(match, acting, str(msg.get("cardId")))
                    await push()
                    await advance()
                    continue

                if msg_type == "NEXT_ROUND":
                    _require_seat(seat)
                    next_round(match)
                    await advance()
                    continue

                if msg_type == "SET_DELAYS":
                    _require_seat(seat)
                    set_delays(
                        match,
                        reveal_delay_ms=msg.get("revealDelayMs"),
                        bot_delay_ms=msg.get("botDelayMs"),
                    )
                    await push()
                    continue

                await _send_error(websocket, "UNKNOWN_MESSAGE", f"Unknown message type: {msg_type!r}")

            except TrufmanError as e:
                await _send_error(websocket, e.code, str(e))
            except ValueError as e:
                await _send_error(websocket, "BAD_REQUEST", str(e))

    except WebSocketDisconnect:
        logger.info("Client left game %s", game_id)
        return
