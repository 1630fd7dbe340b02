"""Shared logging utilities."""

from __future__ import annotations

import os
import time
from typing import Any

from loguru import logger


def env_log_level(default: str = "INFO") -> str:
    """Return log level string from LOG_LEVEL env (fallback to ``default``)."""
    return os.getenv("LOG_LEVEL", default).upper()


def add_optional_sinks() -> None:
    """Attach optional sinks controlled by env vars.

    - ``LOG_DEBUG_FILE``: path for a DEBUG sink (serialize=False).
    - ``LOG_JSON`` ("1"/"true"): write structured JSON to ``logs/deedscraper_{time}.jsonl``.
    """

    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=True, enqueue=False)

    if os.getenv("LOG_JSON", "0").lower() in {"1", "true", "yes", "on"}:
        os.makedirs("logs", exist_ok=True)
        logger.add(
            "logs/deedscraper_{time}.jsonl",
            level="DEBUG",
            serialize=True,
            backtrace=True,
            diagnose=True,
            enqueue=False,
        )


def bind_context(**kwargs: Any):
    """Return a logger with bound contextual fields (request/jurisdiction/attempt)."""
    return logger.bind(**{k: v for k, v in kwargs.items() if v is not None})


def log_search(
    *,
    source: str,
    mode: str,
    query: Any,
    matched: bool,
    transactions: int,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """One ``search`` event per site lookup.

    ``matched`` says whether the site recognised the address or parcel at all,
    ``transactions`` how many deed rows were listed for it. Keeping both apart
    distinguishes "unknown property" from "known property, no deeds".
    """
    payload: dict[str, Any] = {
        "source": source,
        "mode": mode,
        "query": query,
        "matched": matched,
        "transactions": transactions,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 1)
    payload.update({k: v for k, v in context.items() if v is not None})
    logger.info("search", **payload)


class Timer:
    """Context timer. ``elapsed_ms`` is live inside the block and frozen on exit."""

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end: float | None = None
        return self

    def __exit__(self, *exc: object) -> None:
        self._end = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000

    @property
    def elapsed(self) -> float:
        return self.elapsed_ms / 1000
