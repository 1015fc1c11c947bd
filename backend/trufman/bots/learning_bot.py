from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any

from trufman.bots.bidding_bot import BidPlan, choose_bid
from trufman.bots.memory_store import (
    MemoryWriter,
    RECORD_VERSION,
    normalize_record,
    seat_id_for,
)
from trufman.bots.opponent_model import OpponentModel, VoidTracker, update_overtrump_counts
from trufman.bots.rollout_bot import build_snapshot, estimate_win_probabilities, rollout_count
from trufman.bots.view import PlayContext
from trufman.engine.cards import Card, RANKS, SUITS, SUIT_ORDER
from trufman.engine.errors import AgentEvaluationFailure
from trufman.engine.play_engine import beats, current_best, legal_cards
from trufman.engine.state import Bid, CompletedTrick, TrickPlay
from trufman.settings import settings

logger = logging.getLogger(__name__)

# Preferred card of the rule-based policy gets this on top of its base score.
CHOICE_BONUS = 0.35
# Winning when the trick is not needed costs a bit less than missing a needed one.
LOSE_DISCOUNT = 0.6
LATE_DISCARD_NUDGE = 0.1
# A follow card is likely to be trumped over when the next seat is void in the lead.
NEXT_VOID_PENALTY = 0.25
TRUMP_LEAD_PENALTY = 0.7

# (won, lost) reward by sign of need when the card was chosen
REWARDS = {
    1: (0.15, -0.12),
    -1: (-0.15, 0.08),
    0: (-0.05, 0.05),
}
END_GAME_MULTIPLIER = 1.5


def _low_key(c: Card) -> tuple[int, int]:
    return (c.rank, SUIT_ORDER[c.suit])


def rank_bucket(rank: int) -> str:
    if rank >= 14:
        return "A"
    if rank >= 13:
        return "K"
    if rank >= 12:
        return "Q"
    if rank >= 11:
        return "J"
    if rank >= 9:
        return "T"
    return "L"


def need_sign(need: int) -> int:
    return 1 if need > 0 else -1 if need < 0 else 0


def feature_key(card: Card, *, position: int, need: int, end_game: bool, trump: str | None) -> str:
    sign = {1: "pos", 0: "zero", -1: "neg"}[need_sign(need)]
    return (
        f"v2|isT:{1 if card.suit == trump else 0}|b:{rank_bucket(card.rank)}"
        f"|pos:{position}|need:{sign}|end:{1 if end_game else 0}"
    )


def reward_for(need: int, won: bool, end_game: bool) -> float:
    on_win, on_loss = REWARDS[need_sign(need)]
    r = on_win if won else on_loss
    return r * END_GAME_MULTIPLIER if end_game else r


def combined_score(
    heuristic: float,
    win_prob: float,
    need: int,
    cards_left: int,
    learned: float,
    *,
    alpha: float,
    beta: float,
    lam: float,
) -> float:
    signed = win_prob if need > 0 else -LOSE_DISCOUNT * win_prob
    urgency = min(1.0, abs(need) / max(1, cards_left))
    swing = (2 * win_prob - 1) if need > 0 else -(2 * win_prob - 1)
    return heuristic + alpha * signed + beta * urgency * swing + lam * learned


# -----------------------------
# Rule-based baseline
# -----------------------------


def assumed_table(ctx: PlayContext) -> list[TrickPlay]:
    """
    Table as this seat sees it: a face-down card is taken to be the lowest
    trump it could still be.
    """
    known = {(c.suit, c.rank) for c in ctx.seen} | {(c.suit, c.rank) for c in ctx.hand}
    spare = [r for r in RANKS if (ctx.trump, r) not in known] if ctx.trump else []

    plays: list[TrickPlay] = []
    for seat, card in ctx.table:
        if card is None:
            rank = spare.pop(0) if spare else 2
            card = Card(ctx.trump, rank)
        plays.append(TrickPlay(seat=seat, card=card, concealed=False))
    return plays


def _table_best(ctx: PlayContext) -> Card | None:
    best = current_best(assumed_table(ctx), ctx.lead_suit, ctx.trump)
    return best.card if best is not None else None


def suit_strength(hand: list[Card], suit: str) -> float:
    ranks = [c.rank for c in hand if c.suit == suit]
    if not ranks:
        return 0.0
    score = len(ranks) * 0.8
    for r in ranks:
        if r >= 14:
            score += 2.2
        elif r >= 13:
            score += 1.6
        elif r >= 12:
            score += 1.2
        elif r >= 11:
            score += 0.8
        elif r >= 10:
            score += 0.5
    return score


def minimal_winning_card(ctx: PlayContext, legal: list[Card]) -> Card | None:
    best = _table_best(ctx)
    winners = [c for c in legal if beats(c, best, ctx.lead_suit, ctx.trump)]
    return min(winners, key=_low_key) if winners else None


def heuristic_choice(ctx: PlayContext, legal: list[Card]) -> Card:
    hand, trump, lead = ctx.hand, ctx.trump, ctx.lead_suit
    choice: Card | None = None

    if not lead:
        if ctx.need > 0:
            # strongest suit's top card, reluctant to open trumps
            best_suit, best_score = None, -1.0
            for s in SUITS:
                if not any(c.suit == s for c in legal):
                    continue
                sc = suit_strength(hand, s) - (TRUMP_LEAD_PENALTY if s == trump else 0.0)
                if sc > best_score:
                    best_suit, best_score = s, sc
            if best_suit is not None:
                choice = max((c for c in legal if c.suit == best_suit), key=_low_key)
        else:
            # lowest card of a suit unlikely to take the trick; short suits are risky
            best_score = 1e9
            for s in SUITS:
                if s == trump:
                    continue
                of_suit = [c for c in legal if c.suit == s]
                if not of_suit:
                    continue
                lo = min(of_suit, key=_low_key)
                sc = lo.rank + (5 if len(of_suit) <= 2 else 0)
                if sc < best_score:
                    best_score, choice = sc, lo
    else:
        can_follow = any(c.suit == lead for c in hand)
        if ctx.need > 0:
            if can_follow:
                choice = minimal_winning_card(ctx, legal)
            else:
                best = _table_best(ctx)
                trumps = [c for c in legal if c.suit == trump and beats(c, best, lead, trump)]
                choice = min(trumps, key=_low_key) if trumps else None
            if choice is None:
                choice = min(legal, key=_low_key)
        else:
            if can_follow:
                choice = min(legal, key=_low_key)
            else:
                non_trump = [c for c in legal if c.suit != trump]
                choice = max(non_trump, key=_low_key) if non_trump else min(legal, key=_low_key)

    return choice if choice is not None else min(legal, key=_low_key)


def base_score(ctx: PlayContext, card: Card) -> float:
    trump = ctx.trump
    if not ctx.lead_suit:
        if ctx.need > 0:
            return (0.2 if card.suit == trump else 0.5) + card.rank / 20
        return (-1.2 if card.suit == trump else -0.2) - card.rank / 40

    will_win = beats(card, _table_best(ctx), ctx.lead_suit, trump)
    if ctx.need > 0:
        return 1.0 - card.rank / 60 if will_win else -0.8
    return -1.0 if will_win else 0.3 - (0.2 if card.suit == trump else 0.0)


def heuristic_scores(ctx: PlayContext, legal: list[Card]) -> dict[Card, float]:
    choice = heuristic_choice(ctx, legal)
    nxt = (ctx.seat + 1) % 4
    next_void = (
        ctx.lead_suit is not None
        and ctx.lead_suit != ctx.trump
        and ctx.lead_suit in ctx.voids[nxt]
        and ctx.position < 3
    )

    scores: dict[Card, float] = {}
    for c in legal:
        s = base_score(ctx, c)
        if c == choice:
            s += CHOICE_BONUS
        if next_void and ctx.need > 0 and c.suit == ctx.lead_suit:
            s -= NEXT_VOID_PENALTY
        # late in the hand, shed high off-suit cards when the trick is not wanted
        if (
            ctx.end_game
            and ctx.need <= 0
            and ctx.lead_suit
            and c.suit not in (ctx.lead_suit, ctx.trump)
        ):
            s += LATE_DISCARD_NUDGE * c.rank / 14
        scores[c] = s
    return scores


def fallback_card(ctx: PlayContext, legal: list[Card]) -> Card:
    """Lowest legal card, or the cheapest winner when the trick is needed."""
    if ctx.need > 0 and ctx.table:
        winner = minimal_winning_card(ctx, legal)
        if winner is not None:
            return winner
    return min(legal, key=_low_key)


# -----------------------------
# Agent
# -----------------------------


@dataclass
class LastAction:
    key: str
    card: Card
    need: int
    end_game: bool
    trick_number: int


@dataclass
class SeatMemory:
    """
    What one seat identity has learned. Every match with a bot in that seat
    shares the same instance.
    """

    seat: int
    weights: dict[str, float] = field(default_factory=dict)
    games: int = 0
    opponent_models: dict[int, OpponentModel] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for s in range(4):
            if s != self.seat:
                self.opponent_models.setdefault(s, OpponentModel())

    @classmethod
    def load(
        cls, seat: int, writer: MemoryWriter | None = None, *, memory_key: str | None = None
    ) -> "SeatMemory":
        key = memory_key or settings.memory_key
        raw = writer.load(seat_id_for(key, seat)) if writer is not None else None
        memory = cls(seat=seat)
        memory.apply_record(normalize_record(raw))
        return memory

    def apply_record(self, record: dict[str, Any]) -> None:
        self.weights = dict(record["weights"])
        self.games = record["games"]
        for s, raw in record["opponentModels"].items():
            if int(s) != self.seat:
                self.opponent_models[int(s)] = OpponentModel.from_dict(raw)

    def to_record(self) -> dict[str, Any]:
        return {
            "version": RECORD_VERSION,
            "weights": dict(self.weights),
            "games": self.games,
            "opponentModels": {str(s): m.to_dict() for s, m in sorted(self.opponent_models.items())},
        }

    def clear(self) -> None:
        self.weights = {}
        self.games = 0
        self.opponent_models = {s: OpponentModel() for s in range(4) if s != self.seat}


@dataclass
class SeatAgent:
    """Learning card-play agent bound to one seat; per-match state lives here, learning in `memory`."""

    seat: int
    memory_key: str = field(default_factory=lambda: settings.memory_key)
    writer: MemoryWriter | None = None
    memory: SeatMemory | None = None

    voids: VoidTracker = field(default_factory=VoidTracker)
    last_action: LastAction | None = None
    rng: random.Random | None = None

    def __post_init__(self) -> None:
        if self.memory is None:
            self.memory = SeatMemory(seat=self.seat)
        elif self.memory.seat != self.seat:
            raise ValueError(f"Memory for seat {self.memory.seat} given to seat {self.seat}.")

    @property
    def seat_id(self) -> str:
        return seat_id_for(self.memory_key, self.seat)

    @property
    def weights(self) -> dict[str, float]:
        return self.memory.weights

    @weights.setter
    def weights(self, value: dict[str, float]) -> None:
        self.memory.weights = value

    @property
    def games(self) -> int:
        return self.memory.games

    @games.setter
    def games(self, value: int) -> None:
        self.memory.games = value

    @property
    def opponent_models(self) -> dict[int, OpponentModel]:
        return self.memory.opponent_models

    # ---- persistence ----

    @classmethod
    def load(
        cls,
        seat: int,
        writer: MemoryWriter | None = None,
        *,
        memory_key: str | None = None,
        rng: random.Random | None = None,
    ) -> "SeatAgent":
        key = memory_key or settings.memory_key
        memory = SeatMemory.load(seat, writer, memory_key=key)
        return cls(seat=seat, memory_key=key, writer=writer, memory=memory, rng=rng)

    def to_record(self) -> dict[str, Any]:
        return self.memory.to_record()

    def persist(self) -> None:
        if self.writer is not None:
            self.writer.schedule(self.seat_id, self.to_record())

    def for_seat(self, new_seat: int, writer: MemoryWriter | None = None) -> "SeatAgent":
        self.persist()
        return SeatAgent.load(
            new_seat, writer or self.writer, memory_key=self.memory_key, rng=self.rng
        )

    def reset(self, hard: bool = False) -> None:
        self.last_action = None
        if hard:
            self.memory.clear()
            self.persist()

    # ---- bidding ----

    def start_round(self) -> None:
        self.voids.reset()
        self.last_action = None

    def choose_bid(self, hand: list[Card]) -> BidPlan:
        return choose_bid(hand)

    def observe_bids(self, bids: list[Bid]) -> None:
        for b in bids:
            model = self.opponent_models.get(b.seat)
            if model is not None:
                model.observe_bid(b.suit, b.count)
        self.persist()

    # ---- play ----

    def suit_weights(self, ctx: PlayContext) -> dict[int, dict[str, float]]:
        bids = {b.seat: b for b in ctx.bids}
        out: dict[int, dict[str, float]] = {}
        for s, model in self.opponent_models.items():
            b = bids.get(s)
            out[s] = model.suit_weights(
                trump=ctx.trump, current_bid=(b.suit, b.count) if b is not None else None
            )
        return out

    def view(self, ctx: PlayContext) -> PlayContext:
        return replace(ctx, voids=[set(v) for v in self.voids.voids])

    def rollout_snapshot(self, ctx: PlayContext, candidates: list[Card]) -> dict[str, Any]:
        n = rollout_count(
            base=settings.rollouts,
            ceiling=settings.rollout_ceiling,
            need=ctx.need,
            cards_left=ctx.cards_left,
            position=ctx.position,
        )
        return build_snapshot(
            ctx,
            candidates=candidates,
            voids=[sorted(v, key=SUITS.index) for v in ctx.voids],
            suit_weights=self.suit_weights(ctx),
            rollouts=n,
            exact_limit=settings.exact_enumeration_limit,
        )

    def legal(self, ctx: PlayContext) -> list[Card]:
        legal = legal_cards(ctx.hand, ctx.lead_suit, ctx.trump, ctx.trump_broken)
        if not legal:
            raise RuntimeError(f"Seat {self.seat} asked to play with an empty hand.")
        return legal

    def score_candidates(
        self,
        ctx: PlayContext,
        legal: list[Card],
        win_probs: dict[str, float] | None = None,
    ) -> dict[Card, float]:
        try:
            if win_probs is None:
                seed = self.rng.getrandbits(63) if self.rng is not None else None
                win_probs = estimate_win_probabilities(self.rollout_snapshot(ctx, legal), seed)

            heur = heuristic_scores(ctx, legal)
            scored: dict[Card, float] = {}
            for c in legal:
                key = feature_key(
                    c, position=ctx.position, need=ctx.need, end_game=ctx.end_game, trump=ctx.trump
                )
                scored[c] = combined_score(
                    heur[c],
                    win_probs[c.card_id],
                    ctx.need,
                    ctx.cards_left,
                    self.weights.get(key, 0.0),
                    alpha=settings.win_prob_weight,
                    beta=settings.ev_weight,
                    lam=settings.learned_weight,
                )
            return scored
        except Exception as e:
            raise AgentEvaluationFailure(f"Seat {self.seat}: {e}") from e

    def pick_card(self, ctx: PlayContext, win_probs: dict[str, float] | None = None) -> Card:
        ctx = self.view(ctx)
        legal = self.legal(ctx)
        if len(legal) == 1:
            return self._remember(ctx, legal[0])

        try:
            scored = self.score_candidates(ctx, legal, win_probs)
        except AgentEvaluationFailure:
            logger.exception("Card evaluation failed; seat %s falls back", self.seat)
            return self.pick_fallback(ctx)

        # ties resolve toward the cheaper card
        best = max(legal, key=lambda c: (scored[c], -c.rank, -SUIT_ORDER[c.suit]))
        return self._remember(ctx, best)

    def pick_fallback(self, ctx: PlayContext) -> Card:
        ctx = self.view(ctx)
        return self._remember(ctx, fallback_card(ctx, self.legal(ctx)))

    def _remember(self, ctx: PlayContext, card: Card) -> Card:
        self.last_action = LastAction(
            key=feature_key(
                card, position=ctx.position, need=ctx.need, end_game=ctx.end_game, trump=ctx.trump
            ),
            card=card,
            need=ctx.need,
            end_game=ctx.end_game,
            trick_number=ctx.trick_number,
        )
        return card

    # ---- observation ----

    def observe_play(
        self,
        *,
        seat: int,
        card: Card | None,
        concealed: bool,
        lead_suit: str | None,
        trump: str | None,
    ) -> None:
        self.voids.observe_play(
            seat=seat, card=card, concealed=concealed, lead_suit=lead_suit, trump=trump
        )

    def observe_trick(self, trick: CompletedTrick, trump: str | None) -> None:
        update_overtrump_counts(self.opponent_models, trick, trump)

        action = self.last_action
        played = any(p.seat == self.seat and p.card == action.card for p in trick.plays) if action else False
        if action is not None and played:
            delta = reward_for(action.need, trick.winner == self.seat, action.end_game)
            self.weights[action.key] = round(self.weights.get(action.key, 0.0) + delta, 6)
            self.last_action = None

        self.persist()

    def observe_round_end(self) -> None:
        self.games += 1
        self.last_action = None
        self.persist()
