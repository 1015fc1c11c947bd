from __future__ import annotations

from trufman.engine.bidding_engine import TrumpResolution
from trufman.engine.cards import Card, from_card_id
from trufman.engine.errors import IllegalPlay
from trufman.engine.state import CompletedTrick, RoundState, TrickPlay


def current_actor_index(leader_index: int, trick_len: int) -> int:
    return (leader_index + trick_len) % 4


def beats(a: Card, b: Card | None, lead_suit: str | None, trump: str | None) -> bool:
    """True if `a` would take the trick from `b` (b=None means nothing played yet)."""
    if b is None:
        return True

    a_trump, b_trump = a.suit == trump, b.suit == trump
    if a_trump and not b_trump:
        return True
    if b_trump and not a_trump:
        return False
    if a_trump and b_trump:
        return a.rank > b.rank

    a_lead, b_lead = a.suit == lead_suit, b.suit == lead_suit
    if a_lead and not b_lead:
        return True
    if b_lead and not a_lead:
        return False
    if a.suit == b.suit:
        return a.rank > b.rank
    return False


def current_best(
    plays: list[TrickPlay], lead_suit: str | None, trump: str | None
) -> TrickPlay | None:
    best: TrickPlay | None = None
    for pl in plays:
        if best is None or beats(pl.card, best.card, lead_suit, trump):
            best = pl
    return best


def evaluate_trick(plays: list[TrickPlay], trump: str | None, lead_suit: str) -> int:
    """
    Winner of a full trick:
      1. any trump beats any non-trump
      2. higher trump beats lower trump
      3. among non-trumps a lead-suit card beats an off-suit card
      4. higher lead-suit card beats lower lead-suit card
      5. off-suit cards never win
    """
    if not plays:
        raise ValueError("Cannot evaluate an empty trick.")

    winner = plays[0]
    for pl in plays[1:]:
        c, w = pl.card, winner.card
        c_trump, w_trump = c.suit == trump, w.suit == trump
        if c_trump and not w_trump:
            winner = pl
        elif c_trump and w_trump and c.rank > w.rank:
            winner = pl
        elif not c_trump and not w_trump:
            c_lead, w_lead = c.suit == lead_suit, w.suit == lead_suit
            if c_lead and not w_lead:
                winner = pl
            elif c_lead and w_lead and c.rank > w.rank:
                winner = pl
    return winner.seat


def legal_cards(
    hand: list[Card], lead_suit: str | None, trump: str | None, trump_broken: bool
) -> list[Card]:
    if not lead_suit:
        if trump_broken:
            return list(hand)
        non_trump = [c for c in hand if c.suit != trump]
        # A trump-only hand may lead trump before it is broken.
        return non_trump if non_trump else list(hand)

    follow = [c for c in hand if c.suit == lead_suit]
    return follow if follow else list(hand)


def illegal_play_reason(rnd: RoundState, seat: int, card: Card) -> str | None:
    if rnd.phase != "PLAY":
        return "Not in PLAY phase."
    if rnd.resolving or len(rnd.trick) >= 4:
        return "Trick is being resolved."
    if seat != current_actor_index(rnd.leader_index, len(rnd.trick)):
        return "Not your turn."

    hand = rnd.hands[seat]
    if card not in hand:
        return "Card not in hand."

    if not rnd.trick:
        if card.suit == rnd.trump and not rnd.trump_broken:
            if any(c.suit != rnd.trump for c in hand):
                return "Trump cannot be led before it is broken."
        return None

    if card.suit != rnd.lead_suit and any(c.suit == rnd.lead_suit for c in hand):
        return f"Must follow {rnd.lead_suit}."
    return None


def can_play(rnd: RoundState, seat: int, card: Card) -> bool:
    return illegal_play_reason(rnd, seat, card) is None


def init_play_state(rnd: RoundState, resolution: TrumpResolution) -> None:
    rnd.trump = resolution.trump
    rnd.mode = resolution.mode
    rnd.targets = list(resolution.targets)

    rnd.phase = "PLAY"
    rnd.leader_index = (rnd.dealer + 1) % 4
    rnd.lead_suit = None
    rnd.trick = []
    rnd.completed_tricks = []
    rnd.tricks_won = [0, 0, 0, 0]
    rnd.trump_broken = False
    rnd.void_map = [set(), set(), set(), set()]
    rnd.resolving = False


def apply_play_card(rnd: RoundState, seat: int, card_id: str) -> TrickPlay:
    try:
        card = from_card_id(card_id)
    except ValueError as e:
        raise IllegalPlay(str(e)) from e

    reason = illegal_play_reason(rnd, seat, card)
    if reason is not None:
        raise IllegalPlay(reason)

    leading = not rnd.trick
    lead_suit = card.suit if leading else rnd.lead_suit

    rnd.hands[seat].remove(card)
    play = TrickPlay(seat=seat, card=card, concealed=card.suit == rnd.trump)
    rnd.trick.append(play)

    if leading:
        rnd.lead_suit = card.suit
        if card.suit == rnd.trump:
            rnd.trump_broken = True
    else:
        if card.suit != lead_suit:
            # Failing to follow is permanent for the rest of the round.
            rnd.void_map[seat].add(lead_suit)
            if card.suit == rnd.trump and lead_suit != rnd.trump:
                rnd.trump_broken = True

    if len(rnd.trick) == 4:
        # Full trick: every hidden trump turns face up at once.
        for p in rnd.trick:
            p.concealed = False

    return play


def begin_trick_resolution(rnd: RoundState) -> bool:
    """Claims the full trick for resolution; False if not full or already claimed."""
    if rnd.phase != "PLAY" or len(rnd.trick) != 4 or rnd.resolving:
        return False
    rnd.resolving = True
    return True


def finish_trick_resolution(rnd: RoundState) -> CompletedTrick:
    if not rnd.resolving or len(rnd.trick) != 4 or rnd.lead_suit is None:
        raise RuntimeError("finish_trick_resolution() without a claimed full trick.")

    winner = evaluate_trick(rnd.trick, rnd.trump, rnd.lead_suit)
    done = CompletedTrick(plays=tuple(rnd.trick), lead_suit=rnd.lead_suit, winner=winner)

    rnd.tricks_won[winner] += 1
    rnd.completed_tricks.append(done)
    rnd.trick = []
    rnd.lead_suit = None
    rnd.leader_index = winner
    rnd.resolving = False

    if all(len(h) == 0 for h in rnd.hands):
        rnd.phase = "SCORING"

    return done


def resolve_if_trick_complete(rnd: RoundState) -> CompletedTrick | None:
    if not begin_trick_resolution(rnd):
        return None
    return finish_trick_resolution(rnd)
