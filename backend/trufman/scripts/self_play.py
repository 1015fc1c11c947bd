from __future__ import annotations

import argparse
import logging
import random

from trufman.bots.learning_bot import SeatAgent
from trufman.bots.memory_store import JsonFileMemoryStore, MemoryWriter
from trufman.bots.view import build_play_context
from trufman.engine.game_manager import GameManager
from trufman.engine.orchestrator import next_round, play_card, resolve_trick
from trufman.engine.state import MatchState
from trufman.engine.validator import assert_partition

logger = logging.getLogger(__name__)


def play_round(match: MatchState) -> list[int]:
    """Plays the current round to the end in-process, no pacing. Returns the score deltas."""
    rnd = match.round
    while rnd.phase == "PLAY":
        if len(rnd.trick) == 4:
            resolve_trick(match)
            continue
        seat = rnd.turn_index
        agent: SeatAgent = match.agents[seat]
        card = agent.pick_card(build_play_context(rnd, seat))
        play_card(match, seat, card.card_id)
        assert_partition(rnd)

    assert match.last_round_scores is not None
    return list(match.last_round_scores)


def run_match(
    rounds: int = 1,
    seed: int | None = None,
    writer: MemoryWriter | None = None,
) -> MatchState:
    rng = random.Random(seed)
    manager = GameManager(writer)
    match = manager.create_match(
        seat_types=["bot", "bot", "bot", "bot"],
        reveal_delay_ms=0,
        bot_delay_ms=0,
        rng=rng,
    )

    for i in range(rounds):
        if i > 0:
            next_round(match, rng)
        deltas = play_round(match)
        logger.info("Round %s: %s", match.round_number, deltas)

    return match


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless all-bot Trufman match.")
    parser.add_argument("--rounds", type=int, default=4)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--memory-dir",
        default=None,
        help="Persist what the bots learn to this directory (default: in-memory only).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    writer = MemoryWriter(JsonFileMemoryStore(args.memory_dir)) if args.memory_dir else None
    match = run_match(args.rounds, args.seed, writer)

    for row in match.leaderboard:
        print(f"{row['name']:>10}  {row['score']:+d}")


if __name__ == "__main__":
    main()
