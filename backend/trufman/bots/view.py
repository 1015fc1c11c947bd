from __future__ import annotations

from dataclasses import dataclass, field

from trufman.engine.cards import Card
from trufman.engine.state import Bid, Mode, RoundState


@dataclass
class PlayContext:
    """What one seat may know when it is asked for a card."""

    seat: int
    hand: list[Card]
    trump: str | None
    lead_suit: str | None
    trump_broken: bool
    leader_index: int
    # (seat, card) in play order; card is None while the play is face down
    table: list[tuple[int, Card | None]]
    need: int
    hand_sizes: list[int]
    seen: list[Card]
    bids: list[Bid] = field(default_factory=list)
    mode: Mode | None = None
    trick_number: int = 1
    # suits each seat has shown void in, as tracked by the observing agent
    voids: list[set[str]] = field(default_factory=lambda: [set(), set(), set(), set()])

    @property
    def position(self) -> int:
        return len(self.table)

    @property
    def cards_left(self) -> int:
        return len(self.hand)

    @property
    def end_game(self) -> bool:
        return len(self.hand) <= 3

    @property
    def visible_table(self) -> list[tuple[int, Card]]:
        return [(s, c) for s, c in self.table if c is not None]

    @property
    def hidden_seats(self) -> list[int]:
        return [s for s, c in self.table if c is None]


def build_play_context(rnd: RoundState, seat: int) -> PlayContext:
    seen: list[Card] = [p.card for t in rnd.completed_tricks for p in t.plays]
    table: list[tuple[int, Card | None]] = []
    for p in rnd.trick:
        if p.concealed:
            table.append((p.seat, None))
        else:
            table.append((p.seat, p.card))
            seen.append(p.card)

    return PlayContext(
        seat=seat,
        hand=list(rnd.hands[seat]),
        trump=rnd.trump,
        lead_suit=rnd.lead_suit,
        trump_broken=rnd.trump_broken,
        leader_index=rnd.leader_index,
        table=table,
        need=rnd.need(seat),
        hand_sizes=[len(h) for h in rnd.hands],
        seen=seen,
        bids=[b for b in rnd.bids if b is not None],
        mode=rnd.mode,
        trick_number=rnd.trick_number,
    )
