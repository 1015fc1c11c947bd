from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from trufman.engine.cards import Card, SUITS
from trufman.engine.play_engine import beats
from trufman.engine.state import CompletedTrick

AGGRESSION_ALPHA = 0.2

# Sampling bias knobs
HISTORY_BIAS = 0.3
CURRENT_BID_BIAS = 0.5
OVERTRUMP_BIAS = 0.6


class VoidTracker:
    """Per-round record of suits each seat has shown it cannot follow."""

    def __init__(self) -> None:
        self.voids: list[set[str]] = [set(), set(), set(), set()]

    def reset(self) -> None:
        self.voids = [set(), set(), set(), set()]

    def observe_play(
        self,
        *,
        seat: int,
        card: Card | None,
        concealed: bool,
        lead_suit: str | None,
        trump: str | None,
    ) -> None:
        if not lead_suit:
            return
        # A face-down card is always a trump.
        played_suit = trump if concealed else (card.suit if card is not None else None)
        if played_suit is None or played_suit == lead_suit:
            return
        self.voids[seat].add(lead_suit)

    def is_void(self, seat: int, suit: str) -> bool:
        return suit in self.voids[seat]

    def as_lists(self) -> list[list[str]]:
        return [sorted(v, key=SUITS.index) for v in self.voids]


@dataclass
class OpponentModel:
    bid_histogram: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SUITS})
    aggression: float = 0.0
    bids_seen: int = 0
    overtrump_opportunities: int = 0
    overtrumps: int = 0

    @property
    def overtrump_frequency(self) -> float:
        if self.overtrump_opportunities == 0:
            return 0.0
        return self.overtrumps / self.overtrump_opportunities

    def observe_bid(self, suit: str, count: int) -> None:
        self.bid_histogram[suit] = self.bid_histogram.get(suit, 0) + 1
        if self.bids_seen == 0:
            self.aggression = float(count)
        else:
            self.aggression += AGGRESSION_ALPHA * (count - self.aggression)
        self.bids_seen += 1

    def suit_share(self, suit: str) -> float:
        total = sum(self.bid_histogram.values())
        if total == 0:
            return 0.0
        return self.bid_histogram.get(suit, 0) / total

    def suit_weights(
        self, *, trump: str | None, current_bid: tuple[str, int] | None
    ) -> dict[str, float]:
        """Relative likelihood of this seat holding each suit, before void penalties."""
        weights = {s: 1.0 + HISTORY_BIAS * self.suit_share(s) for s in SUITS}

        if current_bid is not None:
            bid_suit, bid_count = current_bid
            # Habitually high bidders say less about their holding.
            dampen = 1.0 + max(0.0, self.aggression - bid_count) / 4.0
            weights[bid_suit] += CURRENT_BID_BIAS / dampen

        if trump is not None:
            weights[trump] += OVERTRUMP_BIAS * self.overtrump_frequency

        return weights

    def to_dict(self) -> dict[str, Any]:
        return {
            "bidHistogram": dict(self.bid_histogram),
            "aggression": self.aggression,
            "bidsSeen": self.bids_seen,
            "overtrumpFrequency": self.overtrump_frequency,
            "overtrumpOpportunities": self.overtrump_opportunities,
            "overtrumps": self.overtrumps,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "OpponentModel":
        hist = {s: 0 for s in SUITS}
        for s, n in (raw.get("bidHistogram") or {}).items():
            if s in hist:
                hist[s] = int(n)
        return cls(
            bid_histogram=hist,
            aggression=float(raw.get("aggression", 0.0)),
            bids_seen=int(raw.get("bidsSeen", sum(hist.values()))),
            overtrump_opportunities=int(raw.get("overtrumpOpportunities", 0)),
            overtrumps=int(raw.get("overtrumps", 0)),
        )


def update_overtrump_counts(
    models: dict[int, OpponentModel], trick: CompletedTrick, trump: str | None
) -> None:
    """
    A seat that cannot follow a non-trump lead has an opportunity to trump;
    it counts as an over-trump when its trump takes the lead from the best card so far.
    """
    if trump is None or trick.lead_suit == trump:
        return

    best: Card | None = None
    for i, play in enumerate(trick.plays):
        card = play.card
        model = models.get(play.seat)
        if i > 0 and model is not None and card.suit != trick.lead_suit:
            model.overtrump_opportunities += 1
            if card.suit == trump and beats(card, best, trick.lead_suit, trump):
                model.overtrumps += 1
        if beats(card, best, trick.lead_suit, trump):
            best = card
