"""Runtime configuration loaded from .env / process environment."""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, "").strip() or default
    return [part.strip() for part in raw.split(",") if part.strip()]


# Result cache
CACHE_TTL_HOURS = _int_env("CACHE_TTL_HOURS", 24)

# Batch recompute scheduler
RECOMPUTE_DEBOUNCE_SECONDS = _int_env("RECOMPUTE_DEBOUNCE_SECONDS", 300)
RECOMPUTE_FRESH_MINUTES = _int_env("RECOMPUTE_FRESH_MINUTES", 60)
RESULT_RETENTION_DAYS = _int_env("RESULT_RETENTION_DAYS", 7)
RECOMPUTE_BATCH_SIZE = _int_env("RECOMPUTE_BATCH_SIZE", 100)
RANK_LAG_HOURS = [int(v) for v in _csv_env("RANK_LAG_HOURS", "0,6,12,24,48")]
RANK_TIME_RANGES = _csv_env("RANK_TIME_RANGES", "7d,30d,90d")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str | None = None) -> None:
    """Console logging for applications embedding the engine."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
