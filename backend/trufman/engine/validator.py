from __future__ import annotations

from collections import Counter

from trufman.engine.state import RoundState


def partition_errors(rnd: RoundState) -> list[str]:
    """
    Hands + trick in progress + completed tricks must partition the round's deck.
    Returns a list of human-readable problems (empty when the invariant holds).
    """
    problems: list[str] = []

    if len(rnd.deck) != 52 or len(set(rnd.deck)) != 52:
        problems.append("Round deck is not 52 unique cards.")

    held = [c for hand in rnd.hands for c in hand]
    on_table = [p.card for p in rnd.trick]
    taken = [p.card for t in rnd.completed_tricks for p in t.plays]
    everything = held + on_table + taken

    dupes = [c.card_id for c, n in Counter(everything).items() if n > 1]
    if dupes:
        problems.append(f"Duplicate cards: {sorted(dupes)}")

    missing = set(rnd.deck) - set(everything)
    if missing:
        problems.append(f"Missing cards: {sorted(c.card_id for c in missing)}")

    extra = set(everything) - set(rnd.deck)
    if extra:
        problems.append(f"Cards not in deck: {sorted(c.card_id for c in extra)}")

    for t in rnd.completed_tricks:
        if len(t.plays) != 4:
            problems.append("Completed trick without exactly four plays.")
            break

    return problems


def assert_partition(rnd: RoundState) -> None:
    problems = partition_errors(rnd)
    if problems:
        raise RuntimeError("Round state corrupted: " + "; ".join(problems))
