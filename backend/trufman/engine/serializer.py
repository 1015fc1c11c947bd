from __future__ import annotations

from trufman.engine.cards import Card, rank_label
from trufman.engine.state import Bid, TrickPlay


def serialize_card(card: Card) -> dict:
    return {
        "cardId": card.card_id,
        "suit": card.suit,
        "rank": card.rank,
        "label": card.label,
    }


def serialize_play(play: TrickPlay) -> dict:
    # A concealed play shows only that a card lies face down in front of the seat.
    return {
        "seatIndex": play.seat,
        "concealed": play.concealed,
        "card": None if play.concealed else serialize_card(play.card),
    }


def serialize_bid(bid: Bid | None) -> dict | None:
    if bid is None:
        return None
    return {
        "seatIndex": bid.seat,
        "suit": bid.suit,
        "rank": bid.rank,
        "rankLabel": rank_label(bid.rank),
        "count": bid.count,
    }
