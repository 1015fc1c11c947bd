from __future__ import annotations

import random
import uuid

from trufman.bots.learning_bot import SeatAgent, SeatMemory
from trufman.bots.memory_store import MemoryWriter, seat_id_for
from trufman.engine.errors import TrufmanError
from trufman.engine.orchestrator import open_round, set_delays
from trufman.engine.state import SEAT_NAMES, MatchState, RoundState
from trufman.settings import settings

SEAT_TYPES = ("human", "bot")
DEFAULT_SEAT_TYPES = ("human", "bot", "bot", "bot")


class GameManager:
    def __init__(self, writer: MemoryWriter | None = None) -> None:
        self._games: dict[str, MatchState] = {}
        # one learned record per seat identity, shared by every live match
        self._memories: dict[str, SeatMemory] = {}
        self._writer = writer

    @property
    def writer(self) -> MemoryWriter | None:
        return self._writer

    @writer.setter
    def writer(self, writer: MemoryWriter | None) -> None:
        # set by the app lifespan; None keeps agent memory in-process only
        self._writer = writer
        self._memories.clear()

    def memory_for(self, seat: int) -> SeatMemory:
        seat_id = seat_id_for(settings.memory_key, seat)
        memory = self._memories.get(seat_id)
        if memory is None:
            memory = SeatMemory.load(seat, self._writer, memory_key=settings.memory_key)
            self._memories[seat_id] = memory
        return memory

    def create_match(
        self,
        *,
        seat_types: list[str] | None = None,
        seat_names: list[str] | None = None,
        dealer: int = 0,
        reveal_delay_ms: int | None = None,
        bot_delay_ms: int | None = None,
        rng: random.Random | None = None,
    ) -> MatchState:
        types = list(seat_types or DEFAULT_SEAT_TYPES)
        if len(types) != 4 or any(t not in SEAT_TYPES for t in types):
            raise TrufmanError("seatTypes must be 4 entries of 'human' or 'bot'.")

        names = list(seat_names or SEAT_NAMES)
        if len(names) != 4 or any(not str(n).strip() for n in names):
            raise TrufmanError("seatNames must be 4 non-empty names.")

        if not 0 <= dealer <= 3:
            raise TrufmanError("dealer must be in 0..3")

        match = MatchState(
            game_id=str(uuid.uuid4()),
            seat_types=types,
            # replaced by open_round below
            round=RoundState(dealer=dealer, deck=[], hands=[[], [], [], []]),
            seat_names=[str(n).strip() for n in names],
            dealer=dealer,
            reveal_delay_ms=settings.reveal_delay_ms,
            bot_delay_ms=settings.bot_delay_ms,
            event_log=["Game created."],
        )
        set_delays(match, reveal_delay_ms=reveal_delay_ms, bot_delay_ms=bot_delay_ms)

        for seat in sorted(match.bot_seats):
            match.agents[seat] = SeatAgent(
                seat=seat,
                memory_key=settings.memory_key,
                writer=self._writer,
                memory=self.memory_for(seat),
                rng=rng,
            )

        open_round(match, rng)
        self._games[match.game_id] = match
        return match

    def get_match(self, game_id: str) -> MatchState | None:
        return self._games.get(game_id)

    def delete_match(self, game_id: str) -> None:
        match = self._games.pop(game_id, None)
        if match is not None:
            for agent in match.agents.values():
                agent.persist()

    def reset_bots(self, match: MatchState, *, hard: bool = False) -> None:
        for agent in match.agents.values():
            agent.reset(hard=hard)
        match.event_log.append("Bots hard reset." if hard else "Bots reset.")


game_manager = GameManager()
