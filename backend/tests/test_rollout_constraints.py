from __future__ import annotations

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

import trufman.bots.rollout_bot as rb
from trufman.bots.view import PlayContext, build_play_context
from trufman.engine.cards import Card, from_card_id, full_deck, to_card_id
from trufman.engine.play_engine import apply_play_card
from trufman.engine.state import Bid, RoundState
from trufman.settings import Settings


def _snapshot(
    *,
    bot_hand: list[str],
    unknown: list[str],
    table: list[tuple[int, str | None]],
    hand_sizes: list[int],
    voids: list[list[str]] | None = None,
    pinned: dict[str, list[str]] | None = None,
    exact_limit: int = 3000,
    rollouts: int = 40,
) -> dict:
    """Everything not in the bot's hand and not listed as unknown counts as seen."""
    hidden_ids = set(bot_hand) | set(unknown)
    for cids in (pinned or {}).values():
        hidden_ids |= set(cids)
    seen = [to_card_id(c) for c in full_deck() if to_card_id(c) not in hidden_ids]

    return {
        "botSeat": 0,
        "trump": "S",
        "leadSuit": "D",
        "table": [{"seat": s, "cardId": cid} for s, cid in table],
        "candidates": list(bot_hand),
        "botHandCardIds": list(bot_hand),
        "handSizes": hand_sizes,
        "seenCardIds": seen,
        "voids": voids or [[], [], [], []],
        "pinned": pinned or {},
        "suitWeights": {},
        "rollouts": rollouts,
        "exactLimit": exact_limit,
    }


def test_face_down_card_is_always_a_trump_and_pinned_bid_card_stays_with_its_seat() -> None:
    """
    Late in a round, seat 2 led D5, seat 3 dropped a face-down card, and the bot
    (seat 0) is next with seat 1 still to play. Seat 1 bid with S9 (not yet seen)
    and has shown void in diamonds.
    """
    snap = _snapshot(
        bot_hand=["D14", "D2"],
        unknown=["S3", "D7", "H2", "C9"],
        pinned={"1": ["S9"]},
        table=[(2, "D5"), (3, None)],
        hand_sizes=[2, 2, 1, 1],
        voids=[[], ["D"], [], []],
    )
    problem = rb._prepare(snap)
    worlds = list(rb._enumerate_worlds(problem))

    assert len(worlds) == 4
    for hands, hidden in worlds:
        assert hidden == {3: Card("S", 3)}
        assert Card("D", 7) not in hands[1]
        assert len(hands[1]) == 1 and len(hands[2]) == 1 and len(hands[3]) == 1
        dealt = [c for h in hands.values() for c in h] + list(hidden.values())
        assert len(dealt) == len(set(dealt)) == 4

    result = rb.rollout_worker(snap, 0, seed=1)
    assert result["exact"] is True
    assert result["worlds"] == 4
    # the face-down trump beats even the ace of the led suit
    assert result["wins"] == {"D14": 0, "D2": 0}


def test_visible_table_gives_certain_outcomes() -> None:
    snap = _snapshot(
        bot_hand=["D14", "D2"],
        unknown=["D7", "H2", "C9"],
        pinned={"1": ["S9"]},
        table=[(2, "D5"), (3, "D6")],
        hand_sizes=[2, 2, 1, 1],
        voids=[[], ["D"], [], []],
    )
    probs = rb.estimate_win_probabilities(snap, seed=3)
    # seat 1 is void in diamonds and plays its lowest card, never the S9
    assert probs == {"D14": 1.0, "D2": 0.0}


def test_large_pool_is_sampled_with_sizes_voids_and_pins_respected() -> None:
    bot_hand = ["H14", "H13", "H12", "D2", "D3", "D4", "C5", "C6", "C7", "S2"]
    unknown = (
        [f"S{r}" for r in range(3, 14)]
        + [f"H{r}" for r in range(2, 12)]
        + ["C2", "C3", "C4", "C8", "C9", "C10", "C11", "C12"]
    )
    snap = _snapshot(
        bot_hand=bot_hand,
        unknown=unknown,
        pinned={"2": ["S14"]},
        table=[(3, None)],
        hand_sizes=[10, 10, 10, 9],
        voids=[[], ["C"], [], ["H"]],
        exact_limit=10,
    )
    problem = rb._prepare(snap)
    assert not rb.plan_is_exact(snap)

    rng = np.random.default_rng(5)
    for _ in range(200):
        hands, hidden = rb._sample_world(problem, rng)
        assert [len(hands[s]) for s in (1, 2, 3)] == [10, 9, 9]
        assert hidden[3].suit == "S"
        assert Card("S", 14) not in hands[2]
        dealt = [c for h in hands.values() for c in h] + list(hidden.values())
        assert len(set(dealt)) == 29
        assert set(dealt) == set(problem.pool)


def test_sampling_terminates_even_when_voids_cannot_all_hold() -> None:
    snap = _snapshot(
        bot_hand=["D14"],
        unknown=["H2", "H3", "H4"],
        table=[],
        hand_sizes=[1, 1, 1, 1],
        voids=[[], ["H"], ["H"], ["H"]],
        exact_limit=3000,
    )
    # no exact world exists, so the worker samples instead
    result = rb.rollout_worker(snap, 10, seed=9)
    assert result["exact"] is False
    assert result["worlds"] == 10


def test_rollout_count_scales_with_need_cards_left_and_position() -> None:
    assert rb.rollout_count(base=48, ceiling=160, need=0, cards_left=10, position=0) == 48
    assert rb.rollout_count(base=48, ceiling=160, need=2, cards_left=10, position=0) == 72
    assert rb.rollout_count(base=48, ceiling=160, need=2, cards_left=3, position=0) == 108
    assert rb.rollout_count(base=48, ceiling=160, need=2, cards_left=3, position=2) == 135
    assert rb.rollout_count(base=100, ceiling=160, need=2, cards_left=3, position=3) == 160


def test_snapshot_hides_face_down_cards_and_pins_revealed_bid_cards() -> None:
    hands = [
        [from_card_id(c) for c in ("D14", "D2", "C3")],
        [from_card_id(c) for c in ("H9", "C4", "C12")],
        [from_card_id(c) for c in ("D5", "H3", "C5")],
        [from_card_id(c) for c in ("S3", "H4", "C6")],
    ]
    rnd = RoundState(dealer=1, deck=[c for h in hands for c in h], hands=hands)
    rnd.phase = "PLAY"
    rnd.trump = "S"
    rnd.leader_index = 2
    rnd.bids = [
        Bid(0, "D", 2, 2),
        Bid(1, "H", 9, 9),
        Bid(2, "C", 5, 5),
        Bid(3, "S", 3, 3),
    ]
    apply_play_card(rnd, 2, "D5")
    apply_play_card(rnd, 3, "S3")

    ctx = build_play_context(rnd, 0)
    assert ctx.table == [(2, Card("D", 5)), (3, None)]
    assert Card("S", 3) not in ctx.seen
    assert ctx.hidden_seats == [3]

    snap = rb.build_snapshot(
        ctx,
        candidates=[Card("D", 14), Card("D", 2)],
        voids=[[], [], [], ["D"]],
        suit_weights={},
        rollouts=10,
        exact_limit=3000,
    )
    assert snap["table"] == [{"seat": 2, "cardId": "D5"}, {"seat": 3, "cardId": None}]
    assert "S3" not in snap["seenCardIds"]
    # seat 1's H9 is pinned; seat 2's C5 is still in hand; seat 3's bid card may be the face-down one
    assert snap["pinned"] == {"1": ["H9"], "2": ["C5"]}
    json.dumps(snap)


def test_failure_writes_a_dump_when_enabled(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(rb, "settings", Settings(dump_agent_failures=True))
    monkeypatch.setattr(rb, "_dump_dir_backend_root", lambda: tmp_path)

    snap = _snapshot(bot_hand=["D14"], unknown=["H2"], table=[], hand_sizes=[1, 1, 1, 1])
    with pytest.raises(RuntimeError, match="ROLLOUT_FAILURE_DUMP="):
        rb.rollout_worker(snap, 5, seed=1)

    dumps = list(tmp_path.glob("failure_*.json"))
    assert len(dumps) == 1
    dump = json.loads(dumps[0].read_text(encoding="utf-8"))
    assert dump["kind"] == "rollout_failure_dump"
    assert dump["snapshot"]["botSeat"] == 0


def _contradictory_snapshot() -> dict:
    # seat 3's face-down card must be a trump, but no spade is left unseen
    return _snapshot(
        bot_hand=["D14", "D2"],
        unknown=["D7", "H2", "C9", "H3"],
        table=[(2, "D5"), (3, None)],
        hand_sizes=[2, 1, 1, 1],
        rollouts=40,
    )


def test_no_consistent_world_falls_back_to_the_full_sample() -> None:
    snap = _contradictory_snapshot()
    assert rb.plan_is_exact(snap)

    result = rb.rollout_worker(snap, 40, seed=2)
    assert result["exact"] is False
    assert result["worlds"] == 40
    # same seed, same worlds
    assert rb.rollout_worker(snap, 40, seed=2) == result


def test_pool_path_keeps_the_rollout_budget_for_the_exact_job(monkeypatch) -> None:
    calls = []
    worker = rb.rollout_worker

    def spy(snapshot, n, seed):
        calls.append(n)
        return worker(snapshot, n, seed)

    monkeypatch.setattr(rb, "rollout_worker", spy)

    with ThreadPoolExecutor(max_workers=1) as pool:
        probs = asyncio.run(rb.estimate_win_probabilities_parallel(_contradictory_snapshot(), pool))

    assert calls == [40]
    assert set(probs) == {"D14", "D2"}
    assert all(0.0 <= p <= 1.0 for p in probs.values())
