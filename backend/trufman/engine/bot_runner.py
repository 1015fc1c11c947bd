from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import Awaitable, Callable

from trufman.bots.rollout_bot import (
    estimate_win_probabilities,
    estimate_win_probabilities_parallel,
)
from trufman.bots.view import build_play_context
from trufman.engine.cards import Card
from trufman.engine.orchestrator import play_card, resolve_trick
from trufman.engine.state import MatchState

logger = logging.getLogger(__name__)

OnUpdate = Callable[[], Awaitable[None]]


async def choose_card(
    match: MatchState, seat: int, pool: Executor | None, bot_sem: asyncio.Semaphore
) -> Card:
    """
    Win probabilities are computed off the event loop (process pool when there is
    one); scoring and the learning bookkeeping stay with the seat's agent.
    """
    agent = match.agents[seat]
    ctx = agent.view(build_play_context(match.round, seat))
    legal = agent.legal(ctx)
    if len(legal) == 1:
        return agent.pick_card(ctx)

    try:
        snapshot = agent.rollout_snapshot(ctx, legal)
        # Limit concurrent bot computations globally
        async with bot_sem:
            if pool is None:
                win_probs = await asyncio.to_thread(estimate_win_probabilities, snapshot)
            else:
                win_probs = await estimate_win_probabilities_parallel(snapshot, pool)
    except Exception:
        logger.exception("Rollouts failed for seat %s in game %s", seat, match.game_id)
        return agent.pick_fallback(ctx)

    return agent.pick_card(ctx, win_probs)


async def advance_bots_until_human(
    match: MatchState,
    pool: Executor | None,
    bot_sem: asyncio.Semaphore,
    on_update: OnUpdate | None = None,
) -> None:
    """
    Runs bot turns and trick resolution until a human seat must act or the round
    is scored. Nothing is committed before a wait finishes, so cancelling this
    coroutine never leaves a half-applied play or resolution.
    """
    while True:
        rnd = match.round
        if rnd.phase != "PLAY":
            return

        if len(rnd.trick) == 4:
            await asyncio.sleep(match.reveal_delay_ms / 1000)
            if match.round is not rnd:
                return
            resolve_trick(match)
            if on_update is not None:
                await on_update()
            continue

        actor = rnd.turn_index
        if actor not in match.bot_seats:
            return
        position = (len(rnd.completed_tricks), len(rnd.trick))

        await asyncio.sleep(match.bot_delay_ms / 1000)
        card = await choose_card(match, actor, pool, bot_sem)

        if (
            match.round is not rnd
            or rnd.turn_index != actor
            or (len(rnd.completed_tricks), len(rnd.trick)) != position
        ):
            # another driver moved the round on while this one was thinking
            return
        play_card(match, actor, card.card_id)
        if on_update is not None:
            await on_update()
