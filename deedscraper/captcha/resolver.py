"""
reCAPTCHA v2 resolver backed by a 2captcha-compatible solving service.

Flow: detect the anchor iframe -> submit site key + page URL -> poll for a
token every few seconds up to a hard deadline -> inject the token, fire the
page's own callback and let the caller confirm the site accepted it.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx
from loguru import logger

from deedscraper.config import Settings
from deedscraper.exceptions import CaptchaTimeout, CaptchaUnsolved, SolverRejected, SolverUnavailable
from deedscraper.models import CaptchaChallenge
from deedscraper.utils.logging_utils import Timer

if TYPE_CHECKING:
    from deedscraper.state import NavigationSession

ANCHOR_PATTERNS = ("google.com/recaptcha/api2/anchor", "google.com/recaptcha/enterprise/anchor")
_SITE_KEY_RE = re.compile(r"[?&]k=([^&]+)")

ConfirmHook = Callable[[CaptchaChallenge], Awaitable[None]]

NOT_READY = "CAPCHA_NOT_READY"

FIND_SITE_KEY_JS = """
() => {
    const el = document.querySelector('[data-sitekey]');
    return el ? el.getAttribute('data-sitekey') : null;
}
"""

INJECT_TOKEN_JS = """
(token) => {
    const field = document.getElementById('g-recaptcha-response')
        || document.querySelector('textarea[name="g-recaptcha-response"]');
    if (field) {
        field.style.display = 'block';
        field.value = token;
        field.innerHTML = token;
    }
    let called = false;
    const seen = new Set();
    const visit = (obj, depth) => {
        if (!obj || typeof obj !== 'object' || depth > 4 || seen.has(obj) || called) return;
        seen.add(obj);
        for (const key of Object.keys(obj)) {
            const value = obj[key];
            if (key === 'callback') {
                if (typeof value === 'function') { value(token); called = true; return; }
                if (typeof value === 'string' && typeof window[value] === 'function') {
                    window[value](token); called = true; return;
                }
            }
            visit(value, depth + 1);
        }
    };
    if (typeof ___grecaptcha_cfg !== 'undefined' && ___grecaptcha_cfg.clients) {
        for (const client of Object.values(___grecaptcha_cfg.clients)) visit(client, 0);
    }
    return { field: !!field, called };
}
"""


def site_key_from_url(url: str) -> str | None:
    match = _SITE_KEY_RE.search(url)
    return match.group(1) if match else None


class CaptchaResolver:
    """Bridge between a page's reCAPTCHA and the external solving service."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.captcha_solver_url,
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Shut down the HTTP client (only if we created it)."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _key(self) -> str:
        if not self.settings.captcha_solver_token:
            raise SolverUnavailable("CAPTCHA_SOLVER_TOKEN is not configured")
        return self.settings.captcha_solver_token

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def detect(self, session: "NavigationSession") -> CaptchaChallenge | None:
        """Return the active challenge on the current page, if any."""
        anchor = next(
            (u for u in session.browser.frame_urls() if any(p in u for p in ANCHOR_PATTERNS)),
            None,
        )
        if anchor is None:
            return None
        site_key = site_key_from_url(anchor)
        if not site_key:
            site_key = await session.browser.run_in_page(FIND_SITE_KEY_JS, what="reCAPTCHA site key")
        if not site_key:
            raise CaptchaUnsolved("reCAPTCHA frame present but no site key found")
        challenge = CaptchaChallenge(site_key=site_key, page_url=session.browser.page.url)
        logger.info("captcha_detected", site_key=site_key, page_url=challenge.page_url)
        return challenge

    async def submit(self, challenge: CaptchaChallenge) -> str:
        """Post the challenge to the solver and return its request id."""
        key = self._key()
        client = await self._ensure_client()
        params = {
            "key": key,
            "method": "userrecaptcha",
            "googlekey": challenge.site_key,
            "pageurl": challenge.page_url,
            "json": 1,
        }
        try:
            resp = await client.get("/in.php", params=params)
        except httpx.HTTPError as exc:
            raise SolverUnavailable(f"Solver unreachable: {exc}") from exc
        if not resp.is_success:
            raise SolverUnavailable(f"Solver submit returned HTTP {resp.status_code}")
        data = _json(resp)
        if data.get("status") != 1:
            raise SolverRejected(f"Solver refused challenge: {data.get('request')}")
        request_id = str(data["request"])
        logger.info("captcha_submitted", request_id=request_id)
        return request_id

    async def poll(self, request_id: str) -> str:
        """Check the solver every few seconds until a token arrives or we give up.

        Gives up after ``captcha_max_polls`` polls or ``captcha_poll_timeout``
        seconds, whichever comes first. A slow or hanging solver request counts
        against the same deadline.
        """
        key = self._key()
        client = await self._ensure_client()
        params = {"key": key, "action": "get", "id": request_id, "json": 1}
        timeout = self.settings.captcha_poll_timeout
        with Timer() as timer:
            try:
                return await asyncio.wait_for(self._poll_until_ready(client, params, request_id, timer), timeout)
            except asyncio.TimeoutError as exc:
                raise CaptchaTimeout(
                    f"No token within {timeout:g}s (gave up after {timer.elapsed:.1f}s)"
                ) from exc

    async def _poll_until_ready(
        self, client: httpx.AsyncClient, params: dict[str, Any], request_id: str, timer: Timer
    ) -> str:
        interval = self.settings.captcha_poll_interval
        max_polls = self.settings.captcha_max_polls

        for attempt in range(1, max_polls + 1):
            await asyncio.sleep(interval)
            try:
                resp = await client.get("/res.php", params=params)
            except httpx.TimeoutException:
                logger.warning(f"Solver poll timeout (attempt {attempt}/{max_polls})")
                continue
            except httpx.HTTPError as exc:
                logger.warning(f"Solver poll error: {exc} (attempt {attempt}/{max_polls})")
                continue
            if not resp.is_success:
                logger.warning(f"Solver poll returned HTTP {resp.status_code} (attempt {attempt}/{max_polls})")
                continue

            data = _json(resp)
            if data.get("status") == 1:
                logger.info("captcha_solved", request_id=request_id, polls=attempt)
                return str(data["request"])
            if data.get("request") == NOT_READY:
                logger.debug(f"Solver not ready (attempt {attempt}/{max_polls})")
                continue
            raise SolverRejected(f"Solver error: {data.get('request')}")

        raise CaptchaTimeout(f"No token after {max_polls} polls ({timer.elapsed:.1f}s)")

    async def inject(self, session: "NavigationSession", token: str) -> None:
        """Write the token into the page and trigger its callback."""
        result = await session.browser.run_in_page(INJECT_TOKEN_JS, token, what="reCAPTCHA response field")
        if not result or not result.get("field"):
            raise CaptchaUnsolved("reCAPTCHA response field not found")
        if not result.get("called"):
            logger.debug("No reCAPTCHA callback registered; token written to field only")

    async def solve(self, session: "NavigationSession", confirm: ConfirmHook | None = None) -> bool:
        """Run detect -> submit -> poll -> inject -> confirm. Returns False if no challenge.

        ``confirm`` is the site-specific check that the page accepted the
        token; it raises ``CaptchaUnsolved`` when it did not.
        """
        challenge = await self.detect(session)
        if challenge is None:
            return False
        session.begin_challenge(challenge)
        try:
            request_id = await self.submit(challenge)
            token = await self.poll(request_id)
            await self.inject(session, token)
            if confirm is not None:
                await confirm(challenge)
        finally:
            session.end_challenge()
        logger.info("captcha_resolved", site_key=challenge.site_key, page_url=challenge.page_url)
        return True


def _json(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as exc:
        raise SolverRejected(f"Solver returned non-JSON body: {resp.text[:100]}") from exc
    if not isinstance(data, dict):
        raise SolverRejected(f"Unexpected solver response: {data!r}")
    return data
