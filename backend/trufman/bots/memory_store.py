from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RECORD_VERSION = 2


def seat_id_for(memory_key: str, seat: int) -> str:
    return f"{memory_key}:seat:{seat}"


def empty_record() -> dict[str, Any]:
    return {"version": RECORD_VERSION, "weights": {}, "games": 0, "opponentModels": {}}


def normalize_record(raw: Any) -> dict[str, Any]:
    """Fills in missing keys; anything unreadable or of an unknown version starts over."""
    if not isinstance(raw, dict) or raw.get("version") != RECORD_VERSION:
        return empty_record()

    weights = raw.get("weights") or {}
    models = raw.get("opponentModels") or {}
    return {
        "version": RECORD_VERSION,
        "weights": {str(k): float(v) for k, v in weights.items()},
        "games": int(raw.get("games", 0)),
        "opponentModels": {str(k): dict(v) for k, v in models.items()},
    }


class MemoryStore:
    """
    Persistence boundary for per-seat agent records.
    Subclasses implement _load/_save; failures never escape load/save.
    """

    def load(self, seat_id: str) -> dict[str, Any] | None:
        try:
            return self._load(seat_id)
        except Exception:
            logger.exception("Failed to load agent memory for %s", seat_id)
            return None

    def save(self, seat_id: str, record: dict[str, Any]) -> bool:
        try:
            self._save(seat_id, record)
            return True
        except Exception:
            logger.exception("Failed to save agent memory for %s", seat_id)
            return False

    def _load(self, seat_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def _save(self, seat_id: str, record: dict[str, Any]) -> None:
        raise NotImplementedError


class NullMemoryStore(MemoryStore):
    def _load(self, seat_id: str) -> dict[str, Any] | None:
        return None

    def _save(self, seat_id: str, record: dict[str, Any]) -> None:
        return None


class JsonFileMemoryStore(MemoryStore):
    """One JSON file per seat id under `root`."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, seat_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", seat_id)
        return self.root / f"{safe}.json"

    def _load(self, seat_id: str) -> dict[str, Any] | None:
        path = self.path_for(seat_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _save(self, seat_id: str, record: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(seat_id)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, sort_keys=True)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


class MemoryWriter:
    """
    Coalesces writes per seat id.

    Inside a running event loop the latest record for a seat is written once the
    debounce window passes, by at most one task per seat (serialized by a per-seat
    lock). Without a loop (scripts, sync tests) the write happens immediately.
    """

    def __init__(self, store: MemoryStore, debounce_ms: int = 600) -> None:
        self.store = store
        self.debounce_ms = debounce_ms
        self._pending: dict[str, dict[str, Any]] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def load(self, seat_id: str) -> dict[str, Any] | None:
        return self.store.load(seat_id)

    def schedule(self, seat_id: str, record: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending.pop(seat_id, None)
            self.store.save(seat_id, record)
            return

        self._pending[seat_id] = record
        task = self._tasks.get(seat_id)
        if task is None or task.done():
            self._tasks[seat_id] = loop.create_task(self._write_later(seat_id))

    async def _write_later(self, seat_id: str) -> None:
        # records scheduled while a save is in flight are picked up by this same task
        while seat_id in self._pending:
            await asyncio.sleep(self.debounce_ms / 1000)
            await self._write_pending(seat_id)

    async def _write_pending(self, seat_id: str) -> None:
        lock = self._locks.setdefault(seat_id, asyncio.Lock())
        async with lock:
            record = self._pending.pop(seat_id, None)
            if record is None:
                return
            await asyncio.to_thread(self.store.save, seat_id, record)

    async def flush(self) -> None:
        for seat_id in list(self._pending):
            await self._write_pending(seat_id)
        # whatever is still scheduled has nothing left to write
        for task in list(self._tasks.values()):
            if not task.done():
                task.cancel()
        self._tasks.clear()
