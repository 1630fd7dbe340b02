"""
DeedScraper configuration.

Module-level defaults, overridable from the environment (or a ``.env`` file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Browser
NAVIGATION_TIMEOUT_MS = 60_000
ACTION_TIMEOUT_MS = 30_000
POPUP_TIMEOUT_MS = 15_000
SETTLE_SECONDS = 2.0
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}
LOCALE = "en-US"

# CAPTCHA solver (2captcha-compatible API)
CAPTCHA_SOLVER_URL = "http://2captcha.com"
CAPTCHA_POLL_INTERVAL = 3.0
CAPTCHA_MAX_POLLS = 40
CAPTCHA_POLL_TIMEOUT = 120.0    # hard ceiling on waiting for a token, in seconds
CAPTCHA_CONFIRM_SECONDS = 20.0
CAPTCHA_MAX_SOLVE_ATTEMPTS = 2

# Batch
MAX_BATCH_SIZE = 10
MAX_CONCURRENCY = 2
FRESH_SESSION_RETRIES = 1

# Fallback jurisdiction when neither the caller nor the address names one
DEFAULT_COUNTY = "Orange"
DEFAULT_STATE = "FL"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


@dataclass(frozen=True, slots=True)
class Settings:
    captcha_solver_token: str | None = None
    captcha_solver_url: str = CAPTCHA_SOLVER_URL
    captcha_poll_interval: float = CAPTCHA_POLL_INTERVAL
    captcha_max_polls: int = CAPTCHA_MAX_POLLS
    captcha_poll_timeout: float = CAPTCHA_POLL_TIMEOUT
    captcha_confirm_seconds: float = CAPTCHA_CONFIRM_SECONDS
    captcha_max_solve_attempts: int = CAPTCHA_MAX_SOLVE_ATTEMPTS
    browser_executable_path: str | None = None
    headless: bool = True
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    max_batch_size: int = MAX_BATCH_SIZE
    max_concurrency: int = MAX_CONCURRENCY
    fresh_session_retries: int = FRESH_SESSION_RETRIES
    default_county: str = DEFAULT_COUNTY
    default_state: str = DEFAULT_STATE

    @property
    def captcha_enabled(self) -> bool:
        return bool(self.captcha_solver_token)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (``.env`` is loaded first)."""
        load_dotenv()
        return cls(
            captcha_solver_token=os.getenv("CAPTCHA_SOLVER_TOKEN") or None,
            captcha_solver_url=os.getenv("CAPTCHA_SOLVER_URL", CAPTCHA_SOLVER_URL),
            captcha_poll_interval=_env_float("CAPTCHA_POLL_INTERVAL", CAPTCHA_POLL_INTERVAL),
            captcha_max_polls=_env_int("CAPTCHA_MAX_POLLS", CAPTCHA_MAX_POLLS),
            captcha_poll_timeout=_env_float("CAPTCHA_POLL_TIMEOUT", CAPTCHA_POLL_TIMEOUT),
            captcha_confirm_seconds=_env_float("CAPTCHA_CONFIRM_SECONDS", CAPTCHA_CONFIRM_SECONDS),
            captcha_max_solve_attempts=_env_int("CAPTCHA_MAX_SOLVE_ATTEMPTS", CAPTCHA_MAX_SOLVE_ATTEMPTS),
            browser_executable_path=os.getenv("BROWSER_EXECUTABLE_PATH") or None,
            headless=_env_bool("HEADLESS", True),
            navigation_timeout_ms=_env_int("NAVIGATION_TIMEOUT_MS", NAVIGATION_TIMEOUT_MS),
            max_batch_size=_env_int("MAX_BATCH_SIZE", MAX_BATCH_SIZE),
            max_concurrency=_env_int("MAX_CONCURRENCY", MAX_CONCURRENCY),
            fresh_session_retries=_env_int("FRESH_SESSION_RETRIES", FRESH_SESSION_RETRIES),
            default_county=os.getenv("DEFAULT_COUNTY", DEFAULT_COUNTY),
            default_state=os.getenv("DEFAULT_STATE", DEFAULT_STATE),
        )
