from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ProcessPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trufman.settings import settings
from trufman.api.routes import router as http_router
from trufman.api.ws import router as ws_router
from trufman.bots.memory_store import JsonFileMemoryStore, MemoryWriter
from trufman.engine.game_manager import game_manager

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Process pool for multiprocessing rollouts
    app.state.process_pool = ProcessPoolExecutor(max_workers=settings.workers)

    # Global semaphore to avoid CPU meltdown if multiple games run bots
    app.state.bot_sem = asyncio.Semaphore(settings.max_concurrent_bot_thinking)

    writer = MemoryWriter(JsonFileMemoryStore(settings.memory_dir), settings.memory_debounce_ms)
    game_manager.writer = writer
    logger.info("Bot memory under %s", settings.memory_dir)

    yield

    await writer.flush()
    game_manager.writer = None
    app.state.process_pool.shutdown(wait=True, cancel_futures=True)


app = FastAPI(title="Trufman Game Server", debug=settings.debug, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(http_router)
app.include_router(ws_router)
