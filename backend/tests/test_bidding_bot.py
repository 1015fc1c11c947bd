from __future__ import annotations

import random

import pytest

from trufman.bots.bidding_bot import (
    choose_bid,
    closest_achievable,
    is_strong_suit,
    rank_for_count,
    suit_strength,
    target_count,
)
from trufman.engine.bidding_engine import make_bid
from trufman.engine.cards import deal, from_card_id, new_shuffled_deck


def _hand(ids: str) -> list:
    return [from_card_id(cid) for cid in ids.split()]


def test_long_spade_suit_with_honours_is_chosen_and_bid_with_the_ace() -> None:
    hand = _hand("S14 S13 S10 S9 S8 S7 H2 H3 D4 D5 C6 C7 C12")

    plan = choose_bid(hand, aggressiveness=0.3, overbid_penalty=0.75)

    assert plan.suit == "S"
    assert plan.strength == pytest.approx(2.82)
    assert plan.target == 3
    # held spade bid values are {0, 1, 7, 8, 9, 10}; 1 is nearest to 3
    assert plan.count == 1
    assert plan.rank == 14


def test_suit_strength_parts() -> None:
    assert suit_strength([]) == 0.0
    # two cards, no honours
    assert suit_strength([2, 3]) == 0.0
    # exactly four with an ace: .9 + .2 length + .15 candidacy + .25 A/K
    assert suit_strength([2, 3, 4, 14]) == pytest.approx(1.5)


def test_strong_suit_raises_the_cap() -> None:
    strong = [9, 10, 11, 12, 13, 14, 2, 3]
    assert is_strong_suit(strong)
    assert target_count(9.0, strong, 0.3) == 9

    plain = [2, 3, 4, 5, 6]
    assert not is_strong_suit(plain)
    assert target_count(9.0, plain, 0.3) == 7


def test_target_never_exceeds_length_plus_two() -> None:
    assert target_count(6.0, [14, 13], 0.3) == 4


def test_overbid_penalty_pushes_toward_underbidding() -> None:
    assert closest_achievable([2, 5], 3, 0.75) == 2
    assert closest_achievable([2, 5], 4, 0.75) == 5
    assert closest_achievable([2, 5], 4, 1.5) == 2


def test_rank_mapping_for_counts() -> None:
    assert rank_for_count([11, 12, 13], 0) == 13
    assert rank_for_count([11, 12], 0) == 12
    assert rank_for_count([11, 3], 0) == 11
    assert rank_for_count([14, 3], 1) == 14
    assert rank_for_count([7, 9], 7) == 7
    with pytest.raises(ValueError):
        rank_for_count([7, 9], 8)


def test_bot_bid_is_always_a_held_card() -> None:
    rng = random.Random(11)
    for _ in range(50):
        for seat, hand in enumerate(deal(new_shuffled_deck(rng))):
            plan = choose_bid(hand)
            bid = make_bid(seat, hand, plan.suit, plan.rank)
            assert bid.count == plan.count
            assert 0 <= plan.count <= 10
