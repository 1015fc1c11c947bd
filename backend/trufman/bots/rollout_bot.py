from __future__ import annotations

import asyncio
import itertools
import json
import math
import os
import time
import traceback
from collections import Counter
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import numpy as np

from trufman.bots.view import PlayContext
from trufman.engine.cards import Card, SUIT_ORDER, from_card_id, full_deck, to_card_id
from trufman.engine.play_engine import evaluate_trick
from trufman.engine.state import TrickPlay
from trufman.settings import settings

# Weight multiplier for a card in a suit the seat has shown void in.
VOID_PENALTY = 0.02

World = tuple[dict[int, list[Card]], dict[int, Card]]


# -----------------------------
# Worker-side helpers (picklable)
# -----------------------------


def _seed_entropy() -> int:
    # Non-deterministic seed with high diversity across workers
    return int.from_bytes(os.urandom(8), "little") ^ os.getpid() ^ time.time_ns()


def _dump_dir_backend_root() -> Path:
    # rollout_bot.py is: backend/trufman/bots/rollout_bot.py
    backend_root = Path(__file__).resolve().parents[2]
    dump_dir = backend_root / "agent_failure_dumps"
    dump_dir.mkdir(parents=True, exist_ok=True)
    return dump_dir


@dataclass
class _Slot:
    seat: int
    size: int
    # a face-down card already on the table (always a trump)
    hidden: bool = False


@dataclass
class _Problem:
    bot_seat: int
    trump: str | None
    table: list[tuple[int, Card | None]]
    candidates: list[Card]
    pool: list[Card]
    slots: list[_Slot]
    voids: list[set[str]]
    pinned: dict[int, list[Card]] = field(default_factory=dict)
    suit_weights: dict[int, dict[str, float]] = field(default_factory=dict)

    def allowed(self, slot: _Slot, card: Card) -> bool:
        if slot.hidden:
            return card.suit == self.trump
        return card.suit not in self.voids[slot.seat]

    def weight(self, seat: int, card: Card) -> float:
        w = self.suit_weights.get(seat, {}).get(card.suit, 1.0)
        if card.suit in self.voids[seat]:
            w *= VOID_PENALTY
        return max(w, 1e-9)


def _prepare(snapshot: dict[str, Any]) -> _Problem:
    bot_seat: int = snapshot["botSeat"]
    trump: str | None = snapshot["trump"]

    table = [
        (int(e["seat"]), from_card_id(e["cardId"]) if e["cardId"] else None)
        for e in snapshot["table"]
    ]
    candidates = [from_card_id(cid) for cid in snapshot["candidates"]]
    if not candidates:
        raise RuntimeError("No candidate cards to evaluate.")

    pinned: dict[int, list[Card]] = {
        int(s): [from_card_id(cid) for cid in cids]
        for s, cids in (snapshot.get("pinned") or {}).items()
    }

    known = set(snapshot["botHandCardIds"]) | set(snapshot["seenCardIds"])
    known |= {to_card_id(c) for cards in pinned.values() for c in cards}
    pool = [c for c in full_deck() if to_card_id(c) not in known]

    hand_sizes: list[int] = snapshot["handSizes"]
    slots: list[_Slot] = []
    for seat in range(4):
        if seat == bot_seat:
            continue
        size = hand_sizes[seat] - len(pinned.get(seat, []))
        if size < 0:
            raise RuntimeError(f"Seat {seat} has more pinned cards than cards in hand.")
        slots.append(_Slot(seat=seat, size=size))
    for seat, card in table:
        if card is None:
            slots.append(_Slot(seat=seat, size=1, hidden=True))

    if sum(s.size for s in slots) != len(pool):
        raise RuntimeError(
            f"Unseen pool ({len(pool)}) does not match unknown slots "
            f"({sum(s.size for s in slots)})."
        )

    voids = [set(v) for v in snapshot.get("voids") or [[], [], [], []]]
    weights = {
        int(s): {suit: float(w) for suit, w in ws.items()}
        for s, ws in (snapshot.get("suitWeights") or {}).items()
    }

    return _Problem(
        bot_seat=bot_seat,
        trump=trump,
        table=table,
        candidates=candidates,
        pool=pool,
        slots=slots,
        voids=voids,
        pinned=pinned,
        suit_weights=weights,
    )


def count_assignments(pool_size: int, sizes: list[int], limit: int | None = None) -> int:
    """Unconstrained number of ways to split the pool into slots of the given sizes."""
    total = 1
    left = pool_size
    for k in sizes:
        total *= math.comb(left, k)
        left -= k
        if limit is not None and total > limit:
            return total
    return total


def _enumerate_worlds(problem: _Problem) -> Iterator[World]:
    slots = sorted(problem.slots, key=lambda s: (not s.hidden, s.seat))

    def rec(i: int, remaining: list[Card], hands: dict, hidden: dict) -> Iterator[World]:
        if i == len(slots):
            yield dict(hands), dict(hidden)
            return
        slot = slots[i]
        allowed = [c for c in remaining if problem.allowed(slot, c)]
        for combo in itertools.combinations(allowed, slot.size):
            chosen = set(combo)
            rest = [c for c in remaining if c not in chosen]
            if slot.hidden:
                hidden[slot.seat] = combo[0]
            else:
                hands[slot.seat] = list(combo)
            yield from rec(i + 1, rest, hands, hidden)

    yield from rec(0, list(problem.pool), {}, {})


def _weighted_pick(
    cards: list[Card], k: int, weight, rng: np.random.Generator
) -> list[Card]:
    """Weighted sampling without replacement."""
    if k <= 0:
        return []
    probs = np.array([weight(c) for c in cards], dtype=float)
    probs /= probs.sum()
    idx = rng.choice(len(cards), size=k, replace=False, p=probs)
    return [cards[i] for i in sorted(idx)]


def _sample_world(problem: _Problem, rng: np.random.Generator) -> World:
    """
    Constructive weighted deal, always one pass:
      - face-down table cards first (must be trumps)
      - then the seat with the least slack between allowed cards and cards needed
      - void suits are down-weighted rather than forbidden, so a tight spot
        never needs a retry
    """
    remaining = list(problem.pool)
    hands: dict[int, list[Card]] = {}
    hidden: dict[int, Card] = {}

    for slot in problem.slots:
        if not slot.hidden:
            continue
        trumps = [c for c in remaining if c.suit == problem.trump]
        options = trumps or remaining
        card = options[int(rng.integers(len(options)))]
        hidden[slot.seat] = card
        remaining.remove(card)

    pending = [s for s in problem.slots if not s.hidden]
    while pending:
        pending.sort(
            key=lambda s: (
                sum(1 for c in remaining if problem.allowed(s, c)) - s.size,
                s.seat,
            )
        )
        slot = pending.pop(0)
        picked = _weighted_pick(
            remaining, slot.size, lambda c, seat=slot.seat: problem.weight(seat, c), rng
        )
        hands[slot.seat] = picked
        chosen = set(picked)
        remaining = [c for c in remaining if c not in chosen]

    return hands, hidden


def _lowest_legal(hand: list[Card], lead_suit: str) -> Card:
    follow = [c for c in hand if c.suit == lead_suit]
    return min(follow or hand, key=lambda c: (c.rank, SUIT_ORDER[c.suit]))


def simulate_trick(problem: _Problem, world: World, candidate: Card) -> bool:
    """Plays out the rest of the trick with every other seat playing its lowest legal card."""
    hands, hidden = world

    plays = [
        TrickPlay(seat=s, card=c if c is not None else hidden[s], concealed=False)
        for s, c in problem.table
    ]
    plays.append(TrickPlay(seat=problem.bot_seat, card=candidate, concealed=False))
    lead_suit = plays[0].card.suit

    seat = problem.bot_seat
    while len(plays) < 4:
        seat = (seat + 1) % 4
        hand = hands.get(seat, []) + problem.pinned.get(seat, [])
        if not hand:
            raise RuntimeError(f"Seat {seat} has no cards left to play in simulation.")
        plays.append(TrickPlay(seat=seat, card=_lowest_legal(hand, lead_suit), concealed=False))

    return evaluate_trick(plays, problem.trump, lead_suit) == problem.bot_seat


def plan_is_exact(snapshot: dict[str, Any]) -> bool:
    problem = _prepare(snapshot)
    limit = int(snapshot["exactLimit"])
    return count_assignments(len(problem.pool), [s.size for s in problem.slots], limit) <= limit


def _write_failure_dump(snapshot: dict[str, Any], n: int, seed: int, exc: Exception) -> Path:
    dump = {
        "kind": "rollout_failure_dump",
        "pid": os.getpid(),
        "seed": seed,
        "n": n,
        "exception": {
            "type": type(exc).__name__,
            "message": str(exc),
            "traceback": traceback.format_exc(),
        },
        "snapshot": snapshot,
    }
    fn = f"failure_{int(time.time()*1000)}_pid{os.getpid()}_seed{seed}.json"
    path = _dump_dir_backend_root() / fn
    path.write_text(json.dumps(dump, indent=2), encoding="utf-8")
    return path


def rollout_worker(snapshot: dict[str, Any], n: int, seed: int) -> dict[str, Any]:
    """
    Evaluates every candidate against the same set of worlds and returns
      {"wins": {cardId: wins}, "worlds": count, "exact": bool}
    Exact enumeration ignores `n`. This function MUST be top-level for pickling.
    """
    rng = np.random.default_rng(seed)
    try:
        problem = _prepare(snapshot)
        limit = int(snapshot["exactLimit"])
        sizes = [s.size for s in problem.slots]

        wins: Counter = Counter()
        worlds = 0
        exact = False

        if count_assignments(len(problem.pool), sizes, limit) <= limit:
            for world in _enumerate_worlds(problem):
                worlds += 1
                for cand in problem.candidates:
                    if simulate_trick(problem, world, cand):
                        wins[to_card_id(cand)] += 1
            exact = worlds > 0

        if not exact:
            # Constraints admitted no exact world (or too many): sample instead.
            wins = Counter()
            worlds = 0
            for _ in range(max(1, n)):
                world = _sample_world(problem, rng)
                worlds += 1
                for cand in problem.candidates:
                    if simulate_trick(problem, world, cand):
                        wins[to_card_id(cand)] += 1

    except Exception as e:
        if settings.dump_agent_failures:
            path = _write_failure_dump(snapshot, n, seed, e)
            raise RuntimeError(f"ROLLOUT_FAILURE_DUMP={str(path)}") from e
        raise

    return {
        "wins": {to_card_id(c): wins[to_card_id(c)] for c in problem.candidates},
        "worlds": worlds,
        "exact": exact,
    }


def merge_results(results: list[dict[str, Any]]) -> dict[str, float]:
    wins: Counter = Counter()
    worlds = 0
    for r in results:
        wins.update(r["wins"])
        worlds += r["worlds"]
    if worlds == 0:
        raise RuntimeError("Rollouts produced no worlds.")
    return {cid: wins[cid] / worlds for cid in results[0]["wins"]}


# -----------------------------
# Main-process side
# -----------------------------


def rollout_count(*, base: int, ceiling: int, need: int, cards_left: int, position: int) -> int:
    n = float(base)
    if need > 0:
        n *= 1.5
    if cards_left <= 3:
        n *= 1.5
    if position >= 2:
        n *= 1.25
    return max(1, min(ceiling, int(round(n))))


def pinned_bid_cards(ctx: PlayContext) -> dict[str, list[str]]:
    """
    Bid cards are shown face up once bidding closes, so every bid card not yet
    seen must still be in its owner's hand (or be that owner's face-down trump).
    """
    seen_ids = {to_card_id(c) for c in ctx.seen}
    own_ids = {to_card_id(c) for c in ctx.hand}
    hidden = set(ctx.hidden_seats)

    pinned: dict[str, list[str]] = {}
    for b in ctx.bids:
        if b.seat == ctx.seat:
            continue
        cid = f"{b.suit}{b.rank}"
        if cid in seen_ids or cid in own_ids:
            continue
        if b.seat in hidden and b.suit == ctx.trump:
            continue
        if ctx.hand_sizes[b.seat] <= 0:
            continue
        pinned[str(b.seat)] = [cid]
    return pinned


def build_snapshot(
    ctx: PlayContext,
    *,
    candidates: list[Card],
    voids: list[list[str]],
    suit_weights: dict[int, dict[str, float]],
    rollouts: int,
    exact_limit: int,
) -> dict[str, Any]:
    return {
        "botSeat": ctx.seat,
        "trump": ctx.trump,
        "leadSuit": ctx.lead_suit,
        "table": [
            {"seat": s, "cardId": to_card_id(c) if c is not None else None}
            for s, c in ctx.table
        ],
        "candidates": [to_card_id(c) for c in candidates],
        "botHandCardIds": [to_card_id(c) for c in ctx.hand],
        "handSizes": list(ctx.hand_sizes),
        "seenCardIds": sorted({to_card_id(c) for c in ctx.seen}),
        "voids": [list(v) for v in voids],
        "pinned": pinned_bid_cards(ctx),
        "suitWeights": {str(s): dict(w) for s, w in suit_weights.items()},
        "rollouts": rollouts,
        "exactLimit": exact_limit,
    }


def estimate_win_probabilities(
    snapshot: dict[str, Any], seed: int | None = None
) -> dict[str, float]:
    """In-process evaluation (self-play, tests and the no-pool path)."""
    seed = _seed_entropy() if seed is None else seed
    return merge_results([rollout_worker(snapshot, int(snapshot["rollouts"]), seed)])


async def estimate_win_probabilities_parallel(
    snapshot: dict[str, Any], pool: Executor
) -> dict[str, float]:
    """Splits sampled worlds across the pool; exact enumeration runs as one job."""
    loop = asyncio.get_running_loop()

    if plan_is_exact(snapshot):
        fut = pool.submit(
            rollout_worker, snapshot, max(1, int(snapshot["rollouts"])), _seed_entropy()
        )
        result = await asyncio.wrap_future(fut, loop=loop)
        return merge_results([result])

    total_rollouts = max(1, int(snapshot["rollouts"]))
    worker_count = max(1, min(int(settings.workers), total_rollouts))

    base = total_rollouts // worker_count
    rem = total_rollouts % worker_count

    tasks = []
    for i in range(worker_count):
        n = base + (1 if i < rem else 0)
        fut = pool.submit(rollout_worker, snapshot, n, _seed_entropy())
        tasks.append(asyncio.wrap_future(fut, loop=loop))

    results = await asyncio.gather(*tasks)
    return merge_results(list(results))
