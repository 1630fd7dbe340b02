from __future__ import annotations

from typing import Any

from deedscraper import config
from deedscraper.config import Settings


def test_defaults() -> None:
    settings = Settings()

    assert settings.captcha_enabled is False
    assert settings.max_batch_size == 10
    assert settings.navigation_timeout_ms == 60_000
    assert settings.captcha_solver_url == "http://2captcha.com"
    assert settings.default_county == "Orange"


def test_from_env_reads_overrides(monkeypatch: Any) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda: False)
    monkeypatch.setenv("CAPTCHA_SOLVER_TOKEN", "abc123")
    monkeypatch.setenv("MAX_BATCH_SIZE", "5")
    monkeypatch.setenv("HEADLESS", "false")
    monkeypatch.setenv("CAPTCHA_POLL_INTERVAL", "1.5")
    monkeypatch.setenv("BROWSER_EXECUTABLE_PATH", "/usr/bin/chromium")

    settings = Settings.from_env()

    assert settings.captcha_enabled is True
    assert settings.max_batch_size == 5
    assert settings.headless is False
    assert settings.captcha_poll_interval == 1.5
    assert settings.browser_executable_path == "/usr/bin/chromium"


def test_blank_token_means_no_solver(monkeypatch: Any) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda: False)
    monkeypatch.setenv("CAPTCHA_SOLVER_TOKEN", "")

    assert Settings.from_env().captcha_enabled is False
