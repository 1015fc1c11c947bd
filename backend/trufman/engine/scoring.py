from __future__ import annotations

from trufman.engine.state import Mode, RoundState


def round_score(got: int, target: int, mode: Mode | None) -> int:
    """
    Exact: +target.
    Short: -diff under BAWAH, -2*diff under ATAS.
    Over:  -diff under ATAS,  -2*diff under BAWAH.
    """
    if got == target:
        return target
    if got < target:
        diff = target - got
        return -2 * diff if mode == "ATAS" else -diff
    diff = got - target
    return -2 * diff if mode == "BAWAH" else -diff


def round_scores(rnd: RoundState) -> list[int]:
    return [round_score(rnd.tricks_won[i], rnd.targets[i], rnd.mode) for i in range(4)]
