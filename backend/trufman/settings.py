from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return int(val)


def _get_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return float(val)


def _get_str(name: str, default: str) -> str:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return val.strip()


@dataclass(frozen=True)
class Settings:
    debug: bool = _get_bool("APP_DEBUG", True)
    log_level: str = _get_str("APP_LOG_LEVEL", "INFO")

    # Rollout evaluation
    workers: int = _get_int("APP_WORKERS", 2)
    rollouts: int = _get_int("APP_ROLLOUTS", 48)
    rollout_ceiling: int = _get_int("APP_ROLLOUT_CEILING", 160)
    exact_enumeration_limit: int = _get_int("APP_EXACT_ENUMERATION_LIMIT", 3000)

    max_concurrent_bot_thinking: int = _get_int(
        "APP_MAX_CONCURRENT_BOT_THINKING", 1
    )

    # Pacing (milliseconds)
    reveal_delay_ms: int = _get_int("APP_REVEAL_DELAY_MS", 1200)
    bot_delay_ms: int = _get_int("APP_BOT_DELAY_MS", 600)

    # Agent tuning
    bid_aggressiveness: float = _get_float("APP_BID_AGGRESSIVENESS", 0.3)
    overbid_penalty: float = _get_float("APP_OVERBID_PENALTY", 0.75)
    win_prob_weight: float = _get_float("APP_WIN_PROB_WEIGHT", 1.2)
    ev_weight: float = _get_float("APP_EV_WEIGHT", 0.8)
    learned_weight: float = _get_float("APP_LEARNED_WEIGHT", 0.5)

    # Bot memory persistence
    memory_dir: str = _get_str("APP_MEMORY_DIR", ".trufman_memory")
    memory_key: str = _get_str("APP_MEMORY_KEY", "trufman_bot_memory_v1")
    memory_debounce_ms: int = _get_int("APP_MEMORY_DEBOUNCE_MS", 600)

    dump_agent_failures: bool = _get_bool("APP_DUMP_AGENT_FAILURES", False)

    cors_origins: tuple[str, ...] = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    )


settings = Settings()
