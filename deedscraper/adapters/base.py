"""
Jurisdiction adapter contract.

Every county adapter walks the same five steps:

    acknowledge_disclaimer -> search -> select_document
        -> resolve_captcha_if_present -> download_document

Adapters are stateless. Anything discovered while serving a request lives on
the ``NavigationSession`` passed to each step, so one adapter instance can
serve any number of concurrent sessions.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from deedscraper.browser.session import LaunchConfig, StealthPosture
from deedscraper.captcha.resolver import ANCHOR_PATTERNS
from deedscraper.config import CAPTCHA_CONFIRM_SECONDS, Settings
from deedscraper.documents import normalize_document
from deedscraper.exceptions import (
    AuthenticationRequired,
    CaptchaUnsolved,
    NavigationTimeout,
    SolverUnavailable,
    UnsupportedJurisdiction,
)
from deedscraper.models import CaptchaChallenge, DeedDocument, Jurisdiction, SearchRequest, TransactionRecord
from deedscraper.state import NavigationSession
from deedscraper.utils.logging_utils import Timer, log_search

ADDRESS = "address"
PARCEL = "parcel"

NO_RESULTS_PHRASES = ("no results", "not found", "no records found", "no records")

BODY_TEXT_JS = "() => document.body ? document.body.innerText : ''"

FIRST_SELECTOR_JS = "(selectors) => selectors.find((s) => document.querySelector(s)) || null"

# Clicks the first element under ``tags`` whose text contains every needle.
CLICK_BY_TEXT_JS = """
([tags, needles]) => {
    for (const el of document.querySelectorAll(tags)) {
        const text = (el.innerText || el.value || el.textContent || '').trim().toLowerCase();
        if (text && needles.every((n) => text.includes(n))) {
            el.click();
            return text;
        }
    }
    return null;
}
"""

_LOGIN_RE = re.compile(r"\b(sign in|log in|login)\b.*\b(password|account)\b", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True, slots=True)
class AdapterConfig:
    """Static, read-only description of one county's portals."""

    county: str
    state: str
    base_url: str
    recorder_url: str | None = None
    has_disclaimer: bool = False
    requires_captcha: bool = False
    stealth: StealthPosture = StealthPosture.MINIMAL
    search_modes: frozenset[str] = frozenset({ADDRESS})
    timezone_id: str = "America/New_York"

    @property
    def jurisdiction(self) -> Jurisdiction:
        return Jurisdiction(county=self.county, state=self.state)

    def describe(self) -> dict:
        return {
            "county": self.county,
            "state": self.state,
            "key": self.jurisdiction.key,
            "searchModes": sorted(self.search_modes),
            "hasDisclaimer": self.has_disclaimer,
            "requiresCaptcha": self.requires_captcha,
            "url": self.base_url,
        }


def looks_like_no_results(text: str) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in NO_RESULTS_PHRASES)


def looks_like_login_wall(text: str) -> bool:
    return bool(_LOGIN_RE.search(text or ""))


class JurisdictionAdapter(ABC):
    config: AdapterConfig

    @property
    def key(self) -> str:
        return self.config.jurisdiction.key

    def launch_config(self, settings: Settings) -> LaunchConfig:
        return LaunchConfig(
            headless=settings.headless,
            executable_path=settings.browser_executable_path,
            stealth=self.config.stealth,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            timezone_id=self.config.timezone_id,
        )

    # ------------------------------------------------------------------
    # Step 1
    # ------------------------------------------------------------------

    async def acknowledge_disclaimer(self, session: NavigationSession) -> None:
        """Accept the site's terms gate. No-op for sites without one."""
        return None

    # ------------------------------------------------------------------
    # Step 2
    # ------------------------------------------------------------------

    async def search(self, session: NavigationSession, request: SearchRequest) -> list[TransactionRecord]:
        """Run the site search and list the parcel's transactions.

        An empty list means the site answered and nothing matched.
        """
        modes = self.config.search_modes
        with Timer() as timer:
            if request.parcel_id and PARCEL in modes:
                query, mode = request.parcel_id, PARCEL
                found = await self.search_by_parcel(session, request.parcel_id)
            elif ADDRESS in modes:
                query, mode = request.address, ADDRESS
                found = await self.search_by_address(session, request.address)
            else:
                raise UnsupportedJurisdiction(
                    f"{self.config.jurisdiction} only supports {', '.join(sorted(modes))} search; "
                    "supply a parcel id"
                )
            records = await self.list_transactions(session) if found else []

        log_search(
            source=self.key,
            mode=mode,
            query=query,
            matched=bool(found),
            transactions=len(records),
            duration_ms=timer.elapsed_ms,
            request_id=session.request_id,
            parcel_id=session.parcel_id,
        )
        return records

    async def search_by_address(self, session: NavigationSession, address: str) -> bool:
        """Submit an address search. Returns False when the site reports no match."""
        raise UnsupportedJurisdiction(f"{self.config.jurisdiction} has no address search")

    async def search_by_parcel(self, session: NavigationSession, parcel_id: str) -> bool:
        """Submit a parcel-number search. Returns False when the site reports no match."""
        raise UnsupportedJurisdiction(f"{self.config.jurisdiction} has no parcel search")

    @abstractmethod
    async def list_transactions(self, session: NavigationSession) -> list[TransactionRecord]:
        """Read the parcel's document history, most useful deed first."""

    # ------------------------------------------------------------------
    # Steps 3-5
    # ------------------------------------------------------------------

    @abstractmethod
    async def select_document(self, session: NavigationSession, record: TransactionRecord) -> None:
        """Do whatever makes ``record``'s document reachable."""

    async def resolve_captcha_if_present(self, session: NavigationSession) -> bool:
        """Solve a reCAPTCHA on the current page. Returns True if one was solved."""
        if session.captcha is None:
            if any(p in url for url in session.browser.frame_urls() for p in ANCHOR_PATTERNS):
                raise SolverUnavailable("Page shows a reCAPTCHA but no solver is configured")
            return False
        return await session.captcha.solve(
            session, confirm=lambda challenge: self.confirm_captcha(session, challenge)
        )

    @staticmethod
    def confirm_seconds(session: NavigationSession) -> float:
        if session.captcha is None:
            return CAPTCHA_CONFIRM_SECONDS
        return session.captcha.settings.captcha_confirm_seconds

    async def confirm_captcha(self, session: NavigationSession, challenge: CaptchaChallenge) -> None:
        """Wait for the site to act on the injected token.

        Default: the page moves off the challenge URL or the reCAPTCHA frame
        goes away. Raises ``CaptchaUnsolved`` otherwise.
        """
        browser = session.browser

        def cleared() -> bool:
            if browser.page.url != challenge.page_url:
                return True
            return not any(p in url for url in browser.frame_urls() for p in ANCHOR_PATTERNS)

        try:
            await browser.wait_for(cleared, timeout=self.confirm_seconds(session), description="reCAPTCHA to clear")
        except NavigationTimeout as e:
            raise CaptchaUnsolved(f"Challenge still showing on {challenge.page_url} after token injection") from e

    @abstractmethod
    async def download_document(self, session: NavigationSession, record: TransactionRecord) -> DeedDocument:
        """Fetch the document and return it normalized to a single PDF."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def page_text(self, session: NavigationSession) -> str:
        return await session.browser.run_in_page(BODY_TEXT_JS, what="page text") or ""

    async def first_selector(self, session: NavigationSession, selectors: list[str], what: str) -> str:
        """Return the first selector that matches, or raise ``SelectorNotFound``."""
        return await session.browser.run_in_page(
            FIRST_SELECTOR_JS, selectors, expect_non_empty=True, what=what
        )

    async def click_by_text(
        self,
        session: NavigationSession,
        *needles: str,
        tags: str = "a, button, input[type=submit], input[type=button]",
        target=None,
    ) -> str | None:
        """Click the first element whose text contains all ``needles`` (lowercase)."""
        return await session.browser.run_in_page(
            CLICK_BY_TEXT_JS, [tags, list(needles)], what=" ".join(needles), target=target
        )

    async def ensure_not_login_wall(self, session: NavigationSession) -> None:
        if looks_like_login_wall(await self.page_text(session)):
            raise AuthenticationRequired(
                f"{self.config.jurisdiction} requires credentials", url=session.browser.page.url
            )

    async def fetch_document(self, session: NavigationSession, record: TransactionRecord, url: str) -> DeedDocument:
        logger.info("Downloading instrument {} from {}", record.instrument_number, url)
        payload = await session.browser.fetch_bytes(url)
        return normalize_document(record.instrument_number, record.document_type, payload)
