"""
Navigation orchestrator.

Drives one SearchRequest through the adapter workflow:

    Init -> DisclaimerHandled -> Searched -> DocumentSelected
         -> [CaptchaResolved] -> Downloaded -> Done

Any step may end the run in Errored(kind). This is the only place that turns
``ScrapeError`` exceptions into ``ScrapeOutcome`` values, and it never
branches on jurisdiction.
"""

from __future__ import annotations

from loguru import logger

from deedscraper.adapters.base import JurisdictionAdapter
from deedscraper.browser.session import BrowserSession, SessionFactory
from deedscraper.captcha.resolver import CaptchaResolver
from deedscraper.config import Settings
from deedscraper.exceptions import CaptchaError, NoResultsFound, ScrapeError, UnsupportedJurisdiction
from deedscraper.models import ErrorKind, Failure, Jurisdiction, PartialFailure, ScrapeOutcome, SearchRequest, Success
from deedscraper.registry import AdapterRegistry, default_registry
from deedscraper.state import NavigationSession, WorkflowState
from deedscraper.utils.logging_utils import Timer, bind_context

# Worth a second try in a brand new browser
FRESH_SESSION_KINDS = frozenset({ErrorKind.NAVIGATION_TIMEOUT, ErrorKind.SELECTOR_NOT_FOUND})


class NavigationOrchestrator:
    def __init__(
        self,
        registry: AdapterRegistry,
        settings: Settings,
        captcha: CaptchaResolver | None = None,
        session_factory: SessionFactory = BrowserSession,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.captcha = captcha
        self.session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "NavigationOrchestrator":
        default = Jurisdiction(county=settings.default_county, state=settings.default_state)
        captcha = CaptchaResolver(settings) if settings.captcha_enabled else None
        return cls(default_registry(default), settings, captcha=captcha)

    async def close(self) -> None:
        if self.captcha is not None:
            await self.captcha.close()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, request: SearchRequest) -> ScrapeOutcome:
        """Scrape one request. Always returns an outcome, never raises ScrapeError."""
        try:
            adapter = self.registry.resolve(request)
        except UnsupportedJurisdiction as e:
            logger.warning("outcome", address=request.address, outcome="failure", error_kind=e.kind.value)
            return Failure(address=request.address, error_kind=e.kind, detail=str(e))

        if adapter.config.requires_captcha and (self.captcha is None or not self.settings.captcha_enabled):
            detail = f"{adapter.config.jurisdiction} requires a CAPTCHA solver; set CAPTCHA_SOLVER_TOKEN"
            logger.warning("outcome", address=request.address, outcome="failure", error_kind="SolverUnavailable")
            return Failure(address=request.address, error_kind=ErrorKind.SOLVER_UNAVAILABLE, detail=detail)

        attempts = 1 + max(0, self.settings.fresh_session_retries)
        with Timer() as timer:
            for attempt in range(1, attempts + 1):
                nav = await self._attempt(adapter, request, attempt)
                if nav.state is WorkflowState.DONE or nav.error_kind not in FRESH_SESSION_KINDS:
                    break
                if attempt < attempts:
                    logger.warning(
                        "Retrying {} with a fresh session after {}: {}",
                        request.address,
                        nav.error_kind.value,
                        nav.error_detail,
                    )

        outcome = self._outcome(nav)
        bind_context(request_id=nav.request_id, jurisdiction=adapter.key, attempt=nav.attempt).info(
            "outcome",
            address=request.address,
            outcome=outcome.outcome,
            error_kind=nav.error_kind.value if nav.error_kind else None,
            duration_ms=round(timer.elapsed_ms, 1),
        )
        return outcome

    # ------------------------------------------------------------------
    # One attempt = one browser session
    # ------------------------------------------------------------------

    async def _attempt(
        self, adapter: JurisdictionAdapter, request: SearchRequest, attempt: int
    ) -> NavigationSession:
        browser = self.session_factory(adapter.launch_config(self.settings))
        nav = NavigationSession(
            request=request,
            browser=browser,
            jurisdiction=adapter.config.jurisdiction,
            attempt=attempt,
            captcha=self.captcha,
        )
        log = bind_context(request_id=nav.request_id, jurisdiction=adapter.key, attempt=attempt)
        try:
            async with browser:
                await self._drive(adapter, nav)
        except ScrapeError as e:
            if e.kind.is_error:
                log.warning("{} in {}: {}", e.kind.value, nav.state.value, e)
            self._fail(nav, e.kind, str(e))
        except Exception as e:
            log.exception(f"Unexpected error while scraping {request.address}")
            self._fail(nav, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}")
        return nav

    async def _drive(self, adapter: JurisdictionAdapter, nav: NavigationSession) -> None:
        await adapter.acknowledge_disclaimer(nav)
        self._transition(nav, WorkflowState.DISCLAIMER_HANDLED)

        nav.transactions = await adapter.search(nav, nav.request)
        self._transition(nav, WorkflowState.SEARCHED)
        if not nav.transactions:
            what = "transactions" if nav.parcel_id else "property"
            raise NoResultsFound(f"No {what} found for {nav.request.address}")

        record = nav.transactions[0]
        nav.selected = record
        await adapter.select_document(nav, record)
        self._transition(nav, WorkflowState.DOCUMENT_SELECTED)

        if await self._resolve_captcha(adapter, nav):
            self._transition(nav, WorkflowState.CAPTCHA_RESOLVED)

        nav.document = await adapter.download_document(nav, record)
        self._transition(nav, WorkflowState.DOWNLOADED)
        self._transition(nav, WorkflowState.DONE)

    async def _resolve_captcha(self, adapter: JurisdictionAdapter, nav: NavigationSession) -> bool:
        budget = max(1, self.settings.captcha_max_solve_attempts)
        for solve_attempt in range(1, budget + 1):
            try:
                return await adapter.resolve_captcha_if_present(nav)
            except CaptchaError as e:
                if solve_attempt >= budget:
                    raise
                logger.warning(
                    "captcha_retry",
                    request_id=nav.request_id,
                    error_kind=e.kind.value,
                    solve_attempt=solve_attempt,
                    budget=budget,
                )
        return False

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, nav: NavigationSession, target: WorkflowState) -> None:
        previous = nav.state
        nav.advance(target)
        bind_context(
            request_id=nav.request_id,
            jurisdiction=nav.jurisdiction.key if nav.jurisdiction else None,
            attempt=nav.attempt,
        ).info("state_transition", from_state=previous.value, to_state=target.value)

    def _fail(self, nav: NavigationSession, kind: ErrorKind, detail: str) -> None:
        if nav.state.is_terminal:
            # Raised after Done, e.g. while closing the browser
            logger.warning(f"Ignoring {kind.value} after {nav.state.value}: {detail}")
            return
        previous = nav.state
        nav.fail(kind, detail)
        bind_context(
            request_id=nav.request_id,
            jurisdiction=nav.jurisdiction.key if nav.jurisdiction else None,
            attempt=nav.attempt,
        ).info("state_transition", from_state=previous.value, to_state=nav.state.value, error_kind=kind.value)

    @staticmethod
    def _outcome(nav: NavigationSession) -> ScrapeOutcome:
        if nav.state is WorkflowState.DONE:
            return Success(result=nav.to_result())
        kind = nav.error_kind or ErrorKind.UNEXPECTED
        detail = nav.error_detail or kind.value
        if nav.found_anything:
            return PartialFailure(result=nav.to_result(), error_kind=kind, reason=detail)
        return Failure(address=nav.request.address, error_kind=kind, detail=detail)
