from __future__ import annotations

import random
from dataclasses import dataclass

SUITS = ("C", "D", "H", "S")
SUIT_ORDER = {s: i for i, s in enumerate(SUITS)}
SUIT_ICONS = {"C": "♣", "D": "♦", "H": "♥", "S": "♠"}

RANKS = tuple(range(2, 15))  # J=11, Q=12, K=13, A=14
FACE_LABELS = {11: "J", 12: "Q", 13: "K", 14: "A"}


def rank_label(rank: int) -> str:
    return FACE_LABELS.get(rank, str(rank))


def bid_value(rank: int) -> int:
    """Count a card contributes when used as a bid: A=1, J/Q/K=0, else its rank."""
    if rank == 14:
        return 1
    if 11 <= rank <= 13:
        return 0
    return rank


@dataclass(frozen=True)
class Card:
    suit: str
    rank: int

    def __post_init__(self) -> None:
        if self.suit not in SUIT_ORDER:
            raise ValueError(f"Invalid suit: {self.suit}")
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")

    @property
    def card_id(self) -> str:
        return f"{self.suit}{self.rank}"

    @property
    def label(self) -> str:
        return f"{rank_label(self.rank)}{SUIT_ICONS[self.suit]}"

    def __str__(self) -> str:
        return self.label


def to_card_id(card: Card) -> str:
    return card.card_id


def from_card_id(card_id: str) -> Card:
    # cardId is "S14" => suit "S", rank 14
    if not isinstance(card_id, str) or len(card_id) < 2:
        raise ValueError(f"Invalid cardId: {card_id!r}")

    suit, rank_part = card_id[0], card_id[1:]
    if suit not in SUIT_ORDER:
        raise ValueError(f"Invalid suit in cardId: {card_id}")
    if not rank_part.isdigit():
        raise ValueError(f"Invalid rank in cardId: {card_id}")

    return Card(suit=suit, rank=int(rank_part))


def full_deck() -> list[Card]:
    return [Card(suit=s, rank=r) for s in SUITS for r in RANKS]


def new_shuffled_deck(rng: random.Random | None = None) -> list[Card]:
    deck = full_deck()
    (rng or random).shuffle(deck)
    return deck


def hand_sort_key(card: Card) -> tuple[int, int]:
    return SUIT_ORDER[card.suit], -card.rank


def deal(deck: list[Card]) -> list[list[Card]]:
    """Round-robin deal of a 52-card deck to seats 0..3."""
    if len(deck) != 52 or len(set(deck)) != 52:
        raise ValueError("deal() expects a full 52-card deck without duplicates.")

    hands: list[list[Card]] = [[], [], [], []]
    for i, card in enumerate(deck):
        hands[i % 4].append(card)

    for hand in hands:
        hand.sort(key=hand_sort_key)
    return hands
