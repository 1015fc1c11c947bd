from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from trufman.engine.cards import Card, SUITS


Phase = Literal["BIDDING", "PLAY", "SCORING"]

TrickStatus = Literal[
    "AWAITING_LEAD",
    "AWAITING_FOLLOW",
    "TRICK_COMPLETE",
    "ROUND_COMPLETE",
]

Mode = Literal["ATAS", "BAWAH"]

SEAT_NAMES = ("Kamu", "Albert", "Harriet", "Cleopatra")


@dataclass(frozen=True)
class Bid:
    seat: int
    suit: str
    rank: int
    count: int


@dataclass
class TrickPlay:
    seat: int
    card: Card
    concealed: bool


@dataclass(frozen=True)
class CompletedTrick:
    plays: tuple[TrickPlay, ...]
    lead_suit: str
    winner: int


@dataclass
class RoundState:
    dealer: int
    deck: list[Card]
    hands: list[list[Card]]

    phase: Phase = "BIDDING"

    bids: list[Bid | None] = field(default_factory=lambda: [None, None, None, None])
    trump: str | None = None
    mode: Mode | None = None
    targets: list[int] = field(default_factory=lambda: [0, 0, 0, 0])

    leader_index: int = 0
    lead_suit: str | None = None
    trick: list[TrickPlay] = field(default_factory=list)
    completed_tricks: list[CompletedTrick] = field(default_factory=list)
    tricks_won: list[int] = field(default_factory=lambda: [0, 0, 0, 0])

    trump_broken: bool = False
    void_map: list[set[str]] = field(default_factory=lambda: [set(), set(), set(), set()])

    # Set before a full trick is evaluated, cleared once the winner is recorded.
    resolving: bool = False

    @property
    def all_bids_in(self) -> bool:
        return all(b is not None for b in self.bids)

    @property
    def sum_bids(self) -> int:
        return sum(b.count for b in self.bids if b is not None)

    @property
    def trick_number(self) -> int:
        return len(self.completed_tricks) + 1

    @property
    def round_complete(self) -> bool:
        return self.phase != "BIDDING" and all(len(h) == 0 for h in self.hands) and not self.trick

    @property
    def trick_status(self) -> TrickStatus | None:
        if self.phase == "BIDDING":
            return None
        if self.round_complete:
            return "ROUND_COMPLETE"
        if len(self.trick) == 4:
            return "TRICK_COMPLETE"
        if not self.trick:
            return "AWAITING_LEAD"
        return "AWAITING_FOLLOW"

    @property
    def turn_index(self) -> int:
        if self.phase != "PLAY" or self.resolving or len(self.trick) >= 4:
            return -1
        return (self.leader_index + len(self.trick)) % 4

    def need(self, seat: int) -> int:
        return self.targets[seat] - self.tricks_won[seat]


@dataclass
class MatchState:
    game_id: str
    seat_types: list[str]
    round: RoundState

    seat_names: list[str] = field(default_factory=lambda: list(SEAT_NAMES))
    dealer: int = 0
    round_number: int = 1
    total_scores: list[int] = field(default_factory=lambda: [0, 0, 0, 0])
    last_round_scores: list[int] | None = None

    reveal_delay_ms: int = 1200
    bot_delay_ms: int = 600

    # seat -> SeatAgent, only for bot seats
    agents: dict[int, Any] = field(default_factory=dict)

    event_log: list[str] = field(default_factory=list)

    @property
    def bot_seats(self) -> set[int]:
        return {i for i, t in enumerate(self.seat_types) if t == "bot"}

    @property
    def leaderboard(self) -> list[dict]:
        order = sorted(range(4), key=lambda i: (-self.total_scores[i], i))
        return [
            {"seatIndex": i, "name": self.seat_names[i], "score": self.total_scores[i]}
            for i in order
        ]

    def to_public_dict(self, viewer_seat: int | None = None) -> dict:
        """Read-only snapshot; hands of other seats are hidden unless spectating."""
        from trufman.engine.serializer import serialize_bid, serialize_card, serialize_play

        rnd = self.round
        spectating = viewer_seat is None
        resolved = rnd.trump is not None

        players = []
        for i, hand in enumerate(rnd.hands):
            visible = spectating or i == viewer_seat
            players.append(
                {
                    "seatIndex": i,
                    "name": self.seat_names[i],
                    "seatType": self.seat_types[i],
                    "cards": [serialize_card(c) for c in hand] if visible else None,
                    "cardCount": len(hand),
                    "hasBid": rnd.bids[i] is not None,
                    "tricksWon": rnd.tricks_won[i],
                    "target": rnd.targets[i] if resolved else None,
                    "totalScore": self.total_scores[i],
                }
            )

        return {
            "gameId": self.game_id,
            "round": self.round_number,
            "dealer": self.dealer,
            "phase": rnd.phase,
            "viewerSeat": viewer_seat,
            "turnIndex": rnd.turn_index,
            "trickStatus": rnd.trick_status,
            "trickNumber": rnd.trick_number,
            "players": players,
            "bids": (
                [serialize_bid(b) for b in rnd.bids] if rnd.all_bids_in else None
            ),
            "sumBids": rnd.sum_bids if rnd.all_bids_in else None,
            "trump": rnd.trump,
            "mode": rnd.mode,
            "targets": list(rnd.targets) if resolved else None,
            "play": {
                "leaderIndex": rnd.leader_index,
                "leadSuit": rnd.lead_suit,
                "trumpBroken": rnd.trump_broken,
                "resolving": rnd.resolving,
                "trick": [serialize_play(p) for p in rnd.trick],
                "tricksWon": list(rnd.tricks_won),
            },
            "voids": {str(i): sorted(rnd.void_map[i], key=SUITS.index) for i in range(4)},
            "totalScores": list(self.total_scores),
            "lastRoundScores": self.last_round_scores,
            "leaderboard": self.leaderboard,
            "delays": {"revealDelayMs": self.reveal_delay_ms, "botDelayMs": self.bot_delay_ms},
            "eventLog": self.event_log,
        }
