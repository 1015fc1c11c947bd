from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

import trufman.bots.learning_bot as lb
import trufman.main as main
from trufman.main import app
from trufman.settings import Settings


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setattr(main, "settings", Settings(memory_dir=str(tmp_path), workers=1))
    monkeypatch.setattr(
        lb, "settings", Settings(rollouts=8, rollout_ceiling=16, exact_enumeration_limit=200)
    )
    with TestClient(app) as c:
        yield c


def _drain_until(ws, predicate, max_msgs: int = 2000) -> tuple[dict[str, Any], dict]:
    state = None
    legal = None

    for _ in range(max_msgs):
        msg = ws.receive_json()
        if msg.get("type") == "STATE_UPDATE":
            state = msg["state"]
            legal = None
        elif msg.get("type") == "LEGAL_ACTIONS":
            legal = msg["actions"]
        elif msg.get("type") == "ERROR":
            raise AssertionError(f"WS ERROR: {msg.get('code')} {msg.get('message')}")
        if state is not None and legal is not None and predicate(state, legal):
            return state, legal

    raise AssertionError("Timed out waiting for expected WS state/actions.")


def _new_game(client: TestClient) -> str:
    res = client.post(
        "/games",
        json={
            "seatTypes": ["human", "bot", "bot", "bot"],
            "revealDelayMs": 0,
            "botDelayMs": 0,
        },
    )
    assert res.status_code == 200
    return res.json()["gameId"]


def test_http_snapshot_hides_other_hands_and_rejects_early_next_round(client) -> None:
    game_id = _new_game(client)

    snap = client.get(f"/games/{game_id}", params={"viewerSeat": 0}).json()
    assert snap["phase"] == "BIDDING"
    assert len(snap["players"][0]["cards"]) == 13
    assert snap["players"][1]["cards"] is None
    assert snap["players"][1]["hasBid"] is True
    assert snap["bids"] is None

    spectator = client.get(f"/games/{game_id}").json()
    assert all(len(p["cards"]) == 13 for p in spectator["players"])

    assert client.post(f"/games/{game_id}/next-round").status_code == 409
    assert client.get("/games/nope").status_code == 404

    res = client.post(f"/games/{game_id}/bots/reset", params={"hard": True})
    assert res.json() == {"ok": True, "hard": True, "seats": [1, 2, 3]}

    assert client.delete(f"/games/{game_id}").status_code == 200
    assert client.get(f"/games/{game_id}").status_code == 404


def test_create_game_validates_seats(client) -> None:
    res = client.post("/games", json={"seatTypes": ["human", "robot", "bot", "bot"]})
    assert res.status_code == 400
    res = client.post("/games", json={"botDelayMs": 5000})
    assert res.status_code == 422


def test_ws_rejects_bad_proposals_without_changing_state(client) -> None:
    game_id = _new_game(client)

    with client.websocket_connect(f"/ws/games/{game_id}?seat=0") as ws:
        state, legal = _drain_until(ws, lambda s, a: a["type"] == "BID")

        ws.send_json({"type": "PLAY_CARD", "seatIndex": 0, "cardId": "S14"})
        msg = ws.receive_json()
        assert msg["type"] == "ERROR"
        assert msg["code"] == "ILLEGAL_PLAY"

        ws.send_json({"type": "SUBMIT_BID", "seatIndex": 1, "suit": "S", "rank": 14})
        msg = ws.receive_json()
        assert msg["type"] == "ERROR"

        held = {c["cardId"] for c in state["players"][0]["cards"]}
        missing = next(
            f"{s}{r}" for s in "CDHS" for r in range(2, 15) if f"{s}{r}" not in held
        )
        ws.send_json(
            {"type": "SUBMIT_BID", "seatIndex": 0, "suit": missing[0], "rank": int(missing[1:])}
        )
        msg = ws.receive_json()
        assert msg["type"] == "ERROR"
        assert msg["code"] == "INVALID_BID"

        ws.send_json({"type": "SET_DELAYS", "revealDelayMs": 99999})
        msg = ws.receive_json()
        assert msg["type"] == "ERROR"

        ws.send_json({"type": "WHAT"})
        assert ws.receive_json()["code"] == "UNKNOWN_MESSAGE"

        ws.send_json({"type": "GET_STATE"})
        state, legal = _drain_until(ws, lambda s, a: True)
        assert state["phase"] == "BIDDING"
        assert legal["type"] == "BID"


def test_ws_plays_a_full_round_against_three_bots(client) -> None:
    """
    Seat 0 is human and always plays its first legal card; the bots bid at deal
    time and play through the process pool. The round must end in SCORING with
    13 tricks counted and scores applied once.
    """
    game_id = _new_game(client)

    with client.websocket_connect(f"/ws/games/{game_id}?seat=0") as ws:
        state, legal = _drain_until(ws, lambda s, a: a["type"] == "BID")
        suit, options = next(iter(legal["options"].items()))
        ws.send_json(
            {"type": "SUBMIT_BID", "seatIndex": 0, "suit": suit, "rank": options[0]["rank"]}
        )

        cards_left = 13
        while True:
            state, legal = _drain_until(
                ws,
                lambda s, a: a["type"] == "NEXT_ROUND"
                or (
                    a["type"] == "PLAY_CARD"
                    and a["seatIndex"] == 0
                    and len(s["players"][0]["cards"]) == cards_left
                ),
            )
            if legal["type"] == "NEXT_ROUND":
                break

            assert state["trump"] is not None
            assert state["bids"] is not None
            ws.send_json({"type": "PLAY_CARD", "seatIndex": 0, "cardId": legal["cardIds"][0]})
            cards_left -= 1

        assert cards_left == 0
        assert state["phase"] == "SCORING"
        assert state["trickStatus"] == "ROUND_COMPLETE"
        assert sum(state["play"]["tricksWon"]) == 13
        assert state["totalScores"] == state["lastRoundScores"]
        assert [row["score"] for row in state["leaderboard"]] == sorted(
            state["totalScores"], reverse=True
        )

        ws.send_json({"type": "NEXT_ROUND"})
        state, legal = _drain_until(ws, lambda s, a: s["round"] == 2)
        assert state["dealer"] == 1
        assert state["phase"] == "BIDDING"
        assert legal["type"] == "BID"


def test_connection_without_a_seat_can_watch_but_not_act(client) -> None:
    game_id = _new_game(client)

    with client.websocket_connect(f"/ws/games/{game_id}") as ws:
        state, _ = _drain_until(ws, lambda s, a: True)
        assert all(len(p["cards"]) == 13 for p in state["players"])

        held = state["players"][0]["cards"][0]["cardId"]
        proposals = [
            {"type": "SUBMIT_BID", "seatIndex": 0, "suit": held[0], "rank": int(held[1:])},
            {"type": "PLAY_CARD", "seatIndex": 0, "cardId": held},
            {"type": "NEXT_ROUND"},
            {"type": "SET_DELAYS", "botDelayMs": 100},
        ]
        for proposal in proposals:
            ws.send_json(proposal)
            msg = ws.receive_json()
            assert msg["type"] == "ERROR"
            assert msg["code"] == "SPECTATOR_ONLY"

    snap = client.get(f"/games/{game_id}", params={"viewerSeat": 0}).json()
    assert snap["players"][0]["hasBid"] is False
    assert snap["phase"] == "BIDDING"
