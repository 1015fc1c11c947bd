from __future__ import annotations

from trufman.engine.bidding_engine import held_ranks_by_suit
from trufman.engine.cards import bid_value, to_card_id
from trufman.engine.play_engine import legal_cards
from trufman.engine.state import MatchState


def get_legal_actions(match: MatchState, viewer_seat: int | None = None) -> dict:
    """What `viewer_seat` may do right now (spectators see the acting seat's options)."""
    rnd = match.round

    if rnd.phase == "BIDDING":
        waiting = [i for i in range(4) if rnd.bids[i] is None]
        if viewer_seat is not None and viewer_seat in waiting:
            options = {
                suit: [{"rank": r, "count": bid_value(r)} for r in ranks]
                for suit, ranks in held_ranks_by_suit(rnd.hands[viewer_seat]).items()
                if ranks
            }
            return {"type": "BID", "seatIndex": viewer_seat, "options": options}
        return {"type": "WAIT", "seatIndex": None, "waitingFor": waiting}

    if rnd.phase == "SCORING":
        return {"type": "NEXT_ROUND", "seatIndex": None}

    if rnd.resolving or len(rnd.trick) == 4:
        return {"type": "WAIT", "seatIndex": None, "reason": "RESOLVING"}

    actor = rnd.turn_index
    if viewer_seat is not None and viewer_seat != actor:
        return {"type": "WAIT", "seatIndex": actor, "reason": "OTHER_TURN"}

    legal = legal_cards(rnd.hands[actor], rnd.lead_suit, rnd.trump, rnd.trump_broken)
    return {
        "type": "PLAY_CARD",
        "seatIndex": actor,
        "cardIds": [to_card_id(c) for c in legal],
    }
