from __future__ import annotations

import math
from dataclasses import dataclass

from trufman.engine.bidding_engine import held_ranks_by_suit
from trufman.engine.cards import Card, SUIT_ORDER, bid_value
from trufman.settings import settings

RANK_BONUS = {14: 0.9, 13: 0.6, 12: 0.35, 11: 0.2, 10: 0.12}

# Average bid per seat if the table bid exactly the number of tricks.
NEUTRAL_MIDPOINT = 13 / 4

BASE_CAP = 7
STRONG_CAP_MAX = 10


@dataclass(frozen=True)
class BidPlan:
    suit: str
    rank: int
    count: int
    strength: float
    target: int


def suit_strength(ranks: list[int]) -> float:
    n = len(ranks)
    if n == 0:
        return 0.0

    score = sum(RANK_BONUS.get(r, 0.0) for r in ranks)

    # length
    if n >= 5:
        score += 0.4 + 0.1 * (n - 5)
    elif n == 4:
        score += 0.2

    # trump candidacy
    if n > 3:
        score += 0.15 * (n - 3)
    if n >= 3 and (14 in ranks or 13 in ranks):
        score += 0.25

    return score


def is_strong_suit(ranks: list[int]) -> bool:
    honours = [r for r in ranks if r >= 11]
    return (
        len(ranks) >= 6
        and (14 in ranks or 13 in ranks)
        and 10 in ranks
        and len(honours) >= 2
    )


def target_count(strength: float, ranks: list[int], aggressiveness: float) -> int:
    target = math.floor(strength + aggressiveness + 0.5)

    cap = BASE_CAP
    if is_strong_suit(ranks):
        cap = min(STRONG_CAP_MAX, 8 + (len(ranks) - 6))

    target = min(target, cap)
    return max(0, min(target, len(ranks) + 2))


def bid_distance(achievable: int, target: int, overbid_penalty: float) -> float:
    return abs(achievable - target) + (overbid_penalty if achievable > target else 0.0)


def closest_achievable(ranks: list[int], target: int, overbid_penalty: float) -> int:
    options = sorted({bid_value(r) for r in ranks})
    return min(options, key=lambda a: (bid_distance(a, target, overbid_penalty), a))


def rank_for_count(ranks: list[int], count: int) -> int:
    if count == 0:
        for face in (13, 12, 11):
            if face in ranks:
                return face
    elif count == 1:
        if 14 in ranks:
            return 14
    elif count in ranks:
        return count
    raise ValueError(f"No held rank gives a bid of {count}.")


def choose_bid(
    hand: list[Card],
    *,
    aggressiveness: float | None = None,
    overbid_penalty: float | None = None,
) -> BidPlan:
    """
    Picks the suit and representative card to bid with.

    Every suit held is scored by strength and by how close one of its cards' bid
    values gets to the count the strength suggests; the best suit wins, ties going
    to longer suits, then to bids near an even share of the 13 tricks.
    """
    if not hand:
        raise ValueError("Cannot bid with an empty hand.")

    if aggressiveness is None:
        aggressiveness = settings.bid_aggressiveness
    if overbid_penalty is None:
        overbid_penalty = settings.overbid_penalty

    best_key: tuple | None = None
    best_plan: BidPlan | None = None

    for suit, ranks in held_ranks_by_suit(hand).items():
        if not ranks:
            continue

        strength = suit_strength(ranks)
        target = target_count(strength, ranks, aggressiveness)
        count = closest_achievable(ranks, target, overbid_penalty)

        key = (
            strength,
            -bid_distance(count, target, overbid_penalty),
            len(ranks),
            -abs(count - NEUTRAL_MIDPOINT),
            SUIT_ORDER[suit],
        )
        if best_key is None or key > best_key:
            best_key = key
            best_plan = BidPlan(
                suit=suit,
                rank=rank_for_count(ranks, count),
                count=count,
                strength=round(strength, 4),
                target=target,
            )

    assert best_plan is not None
    return best_plan
