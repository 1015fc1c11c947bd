from __future__ import annotations

import logging
import random

from trufman.engine.bidding_engine import make_bid, resolve_trump
from trufman.engine.cards import SUIT_ICONS, deal, new_shuffled_deck, rank_label
from trufman.engine.errors import IllegalPlay, InvalidBid, RoundInProgress, TrufmanError
from trufman.engine.play_engine import (
    apply_play_card,
    begin_trick_resolution,
    finish_trick_resolution,
    init_play_state,
)
from trufman.engine.scoring import round_scores
from trufman.engine.state import Bid, CompletedTrick, MatchState, RoundState, TrickPlay
from trufman.engine.validator import assert_partition
from trufman.settings import settings

logger = logging.getLogger(__name__)

REVEAL_DELAY_RANGE = (0, 2000)
BOT_DELAY_RANGE = (0, 1200)


def _check_seat(seat: int) -> None:
    if not isinstance(seat, int) or not 0 <= seat <= 3:
        raise TrufmanError(f"Invalid seatIndex: {seat!r}.")


def _check_invariants(match: MatchState) -> None:
    if settings.debug:
        assert_partition(match.round)


def open_round(match: MatchState, rng: random.Random | None = None) -> RoundState:
    """Shuffles, deals and collects the bots' bids; the human seats bid afterwards."""
    deck = new_shuffled_deck(rng)
    rnd = RoundState(dealer=match.dealer, deck=deck, hands=deal(deck))
    match.round = rnd
    match.last_round_scores = None

    for agent in match.agents.values():
        agent.start_round()

    match.event_log.append(
        f"Round {match.round_number}: {match.seat_names[match.dealer]} deals."
    )
    logger.info("Game %s round %s dealt", match.game_id, match.round_number)
    _check_invariants(match)

    for seat in sorted(match.bot_seats):
        plan = match.agents[seat].choose_bid(rnd.hands[seat])
        submit_bid(match, seat, plan.suit, plan.rank)

    return rnd


def submit_bid(match: MatchState, seat: int, suit: str, rank: int) -> Bid:
    _check_seat(seat)
    rnd = match.round
    if rnd.phase != "BIDDING":
        raise InvalidBid("Not in BIDDING phase.")
    if rnd.bids[seat] is not None:
        raise InvalidBid(f"{match.seat_names[seat]} has already bid.")

    bid = make_bid(seat, rnd.hands[seat], suit, rank)
    rnd.bids[seat] = bid
    match.event_log.append(f"{match.seat_names[seat]} placed a bid.")

    if rnd.all_bids_in:
        _close_bidding(match)
    return bid


def _close_bidding(match: MatchState) -> None:
    rnd = match.round
    bids = [b for b in rnd.bids if b is not None]
    resolution = resolve_trump(rnd.bids)
    init_play_state(rnd, resolution)

    for b in bids:
        match.event_log.append(
            f"{match.seat_names[b.seat]} bid {rank_label(b.rank)}{SUIT_ICONS[b.suit]} ({b.count})."
        )
    match.event_log.append(
        f"Trump {SUIT_ICONS[rnd.trump]}, {rnd.mode} (total {rnd.sum_bids}). "
        f"{match.seat_names[rnd.leader_index]} leads."
    )

    for agent in match.agents.values():
        agent.observe_bids(bids)


def play_card(match: MatchState, seat: int, card_id: str) -> TrickPlay:
    """Single entry point for committing a card, for humans and bots alike."""
    _check_seat(seat)
    rnd = match.round
    if rnd.phase != "PLAY":
        raise IllegalPlay("Not in PLAY phase.")

    lead_before = rnd.lead_suit
    play = apply_play_card(rnd, seat, card_id)

    if play.concealed:
        match.event_log.append(f"{match.seat_names[seat]} played a card face down.")
    else:
        match.event_log.append(f"{match.seat_names[seat]} played {play.card.label}.")

    for agent in match.agents.values():
        agent.observe_play(
            seat=seat,
            card=None if play.concealed else play.card,
            concealed=play.concealed,
            lead_suit=lead_before,
            trump=rnd.trump,
        )

    _check_invariants(match)
    return play


def resolve_trick(match: MatchState) -> CompletedTrick | None:
    """Resolves a full trick once; returns None when there is nothing to resolve."""
    rnd = match.round
    if not begin_trick_resolution(rnd):
        return None
    done = finish_trick_resolution(rnd)

    match.event_log.append(
        f"Trick {len(rnd.completed_tricks)} to {match.seat_names[done.winner]}."
    )
    for agent in match.agents.values():
        agent.observe_trick(done, rnd.trump)

    if rnd.phase == "SCORING":
        _finish_round(match)

    _check_invariants(match)
    return done


def _finish_round(match: MatchState) -> None:
    rnd = match.round
    deltas = round_scores(rnd)
    for i in range(4):
        match.total_scores[i] += deltas[i]
    match.last_round_scores = deltas

    for i in range(4):
        match.event_log.append(
            f"{match.seat_names[i]}: {rnd.tricks_won[i]}/{rnd.targets[i]} -> {deltas[i]:+d}"
        )
    for agent in match.agents.values():
        agent.observe_round_end()

    logger.info(
        "Game %s round %s scored %s (totals %s)",
        match.game_id,
        match.round_number,
        deltas,
        match.total_scores,
    )


def next_round(match: MatchState, rng: random.Random | None = None) -> RoundState:
    if match.round.phase != "SCORING":
        raise RoundInProgress("The current round is not finished.")
    match.dealer = (match.dealer + 1) % 4
    match.round_number += 1
    return open_round(match, rng)


def set_delays(
    match: MatchState, *, reveal_delay_ms: int | None = None, bot_delay_ms: int | None = None
) -> None:
    if reveal_delay_ms is not None:
        lo, hi = REVEAL_DELAY_RANGE
        if not lo <= int(reveal_delay_ms) <= hi:
            raise TrufmanError(f"revealDelayMs must be in {lo}..{hi}.")
        match.reveal_delay_ms = int(reveal_delay_ms)
    if bot_delay_ms is not None:
        lo, hi = BOT_DELAY_RANGE
        if not lo <= int(bot_delay_ms) <= hi:
            raise TrufmanError(f"botDelayMs must be in {lo}..{hi}.")
        match.bot_delay_ms = int(bot_delay_ms)
