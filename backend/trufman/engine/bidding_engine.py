from __future__ import annotations

from dataclasses import dataclass

from trufman.engine.cards import Card, SUIT_ORDER, bid_value
from trufman.engine.errors import IncompleteBidding, InvalidBid
from trufman.engine.state import Bid, Mode

TRICKS_PER_ROUND = 13


@dataclass(frozen=True)
class TrumpResolution:
    trump: str
    mode: Mode
    targets: list[int]
    high_seat: int


def held_ranks_by_suit(hand: list[Card]) -> dict[str, list[int]]:
    by_suit: dict[str, list[int]] = {s: [] for s in SUIT_ORDER}
    for c in hand:
        if c.rank not in by_suit[c.suit]:
            by_suit[c.suit].append(c.rank)
    for ranks in by_suit.values():
        ranks.sort()
    return by_suit


def make_bid(seat: int, hand: list[Card], suit: str, rank: int) -> Bid:
    """
    A bid names a card the seat actually holds; its count is that card's bid value.
    """
    if suit not in SUIT_ORDER:
        raise InvalidBid(f"Unknown suit: {suit!r}.")
    try:
        rank = int(rank)
    except (TypeError, ValueError) as e:
        raise InvalidBid(f"Invalid rank: {rank!r}.") from e

    if not any(c.suit == suit and c.rank == rank for c in hand):
        raise InvalidBid(f"P{seat+1} does not hold {suit}{rank}.")

    return Bid(seat=seat, suit=suit, rank=rank, count=bid_value(rank))


def mode_for_total(total: int) -> Mode:
    # 13 counts as ATAS
    return "BAWAH" if total < TRICKS_PER_ROUND else "ATAS"


def target_for(count: int, mode: Mode) -> int:
    if mode == "BAWAH":
        return max(0, count - 1)
    return count + 1


def highest_bid(bids: list[Bid]) -> Bid:
    # Ties go to the higher suit: C < D < H < S.
    best = bids[0]
    for b in bids[1:]:
        if b.count > best.count:
            best = b
        elif b.count == best.count and SUIT_ORDER[b.suit] > SUIT_ORDER[best.suit]:
            best = b
    return best


def resolve_trump(bids: list[Bid | None]) -> TrumpResolution:
    if len(bids) != 4 or any(b is None for b in bids):
        raise IncompleteBidding("All four bids are required before resolving trump.")

    full: list[Bid] = [b for b in bids if b is not None]
    high = highest_bid(full)
    mode = mode_for_total(sum(b.count for b in full))

    return TrumpResolution(
        trump=high.suit,
        mode=mode,
        targets=[target_for(b.count, mode) for b in full],
        high_seat=high.seat,
    )
