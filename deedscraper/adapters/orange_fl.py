"""
Orange County, FL.

Property Appraiser (ocpaweb.ocpafl.org) for the parcel and its sales history,
then the Comptroller's self-service recorder site for the deed image. The
recorder gates documents behind a disclaimer with a reCAPTCHA.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

from loguru import logger

from deedscraper.adapters.base import ADDRESS, AdapterConfig, JurisdictionAdapter, looks_like_no_results
from deedscraper.address import normalize_street_suffix, street_line
from deedscraper.browser.session import StealthPosture
from deedscraper.exceptions import CaptchaUnsolved, DownloadFailed, NavigationTimeout, SelectorNotFound
from deedscraper.models import CaptchaChallenge, DeedDocument, TransactionRecord
from deedscraper.state import NavigationSession

APPRAISER_URL = "https://ocpaweb.ocpafl.org/parcelsearch"
RECORDER_URL = "https://selfservice.or.occompt.com"
DISCLAIMER_PATH = "/user/disclaimer"
ACCEPT_SELECTOR = "#submitDisclaimerAccept"

ADDRESS_INPUTS = [
    'input[name*="Address"]',
    'input[placeholder*="Address"]',
    'input[id*="address"]',
    'input[name*="PropertyAddress"]',
    'input[type="text"]',
]

SEARCH_BUTTONS = [
    'button[type="submit"]',
    'input[type="submit"]',
    'button[aria-label*="Search"]',
    ".btn-search",
    "#btnSearch",
]

# Deed Code column of the Sales History table
DEED_CODES = {
    "WD": "Warranty Deed",
    "SW": "Special Warranty Deed",
    "QC": "Quit Claim Deed",
    "CT": "Certificate of Title",
    "TD": "Tax Deed",
    "PR": "Personal Representative Deed",
    "TR": "Trustee Deed",
    "DD": "Deed",
}

INSTRUMENT_RE = re.compile(r"^\d{10,12}$")
BOOK_PAGE_RE = re.compile(r"(\d+)\s*/\s*(\d+)")
PARCEL_RE = re.compile(r"\b\d{2}-\d{2}-\d{2}-\d{4}-\d{2}-\d{3}\b")
OWNER_LABELS = {"owner", "owner(s)", "owners", "owner name", "name(s)", "owner/mailing address"}

CLICK_SALES_TAB_JS = """
() => {
    const candidates = document.querySelectorAll('a, button, [role="tab"], li, span');
    for (const el of candidates) {
        const text = (el.innerText || el.textContent || '').trim().toLowerCase();
        if (text === 'sales' || (text.includes('sales') && text.length < 30)) {
            const clickable = el.tagName === 'A' || el.tagName === 'BUTTON'
                || el.onclick || el.getAttribute('role') === 'tab';
            if (clickable || (el.parentElement && el.parentElement.onclick)) {
                el.click();
                return true;
            }
        }
    }
    return false;
}
"""

SALES_TABLE_READY_JS = """
() => {
    const text = document.body ? document.body.innerText : '';
    return text.includes('Instrument #') || text.includes('Parcel Sales History');
}
"""

SALES_ROWS_JS = """
() => {
    const rows = [];
    for (const table of document.querySelectorAll('table')) {
        if (!(table.innerText || '').includes('Instrument')) continue;
        for (const tr of Array.from(table.querySelectorAll('tr')).slice(1)) {
            const cells = Array.from(tr.querySelectorAll('td'));
            if (cells.length < 4) continue;
            rows.push({
                cells: cells.map((c) => (c.innerText || '').trim()),
                instrumentLinked: !!cells[2].querySelector('a'),
            });
        }
    }
    return rows;
}
"""

CLICK_INSTRUMENT_JS = """
(instrument) => {
    for (const link of document.querySelectorAll('a')) {
        if ((link.textContent || '').trim() === instrument) {
            link.click();
            return true;
        }
    }
    return false;
}
"""

CONTINUE_LINK_JS = """
(host) => {
    for (const link of document.querySelectorAll('a')) {
        const text = (link.textContent || '').trim().toLowerCase();
        if (text.includes('continue') && text.includes('site') && (link.href || '').includes(host)) {
            return link.href;
        }
    }
    return null;
}
"""

VIEWER_IFRAME_JS = """
() => {
    for (const frame of document.querySelectorAll('iframe')) {
        if (frame.src && frame.src.includes('file=')) return frame.src;
    }
    return null;
}
"""


def parse_sales_rows(rows: list[dict]) -> list[TransactionRecord]:
    """Turn Sales History rows into transactions.

    Columns: Sale Date | Sale Amt | Instrument # | Book/Page | Seller(s) | Buyer(s) | Deed Code.
    Only numeric instrument links lead to the recorder, everything else is skipped.
    """
    records: list[TransactionRecord] = []
    seen: set[str] = set()
    for row in rows:
        cells = [c.strip() for c in row.get("cells", [])]
        if len(cells) < 4:
            continue
        instrument = cells[2]
        if not INSTRUMENT_RE.match(instrument) or not row.get("instrumentLinked") or instrument in seen:
            continue
        seen.add(instrument)
        book_page = BOOK_PAGE_RE.search(cells[3])
        code = cells[6].upper() if len(cells) > 6 else ""
        records.append(
            TransactionRecord(
                instrument_number=instrument,
                document_type=DEED_CODES.get(code, code or "Deed"),
                recorded_date=cells[0] or None,
                sale_price=re.sub(r"[,$]", "", cells[1]) or None,
                book_page=f"{book_page.group(1)}/{book_page.group(2)}" if book_page else None,
                grantor=cells[4] if len(cells) > 4 and cells[4] else None,
                grantee=cells[5] if len(cells) > 5 and cells[5] else None,
                view_handle=instrument,
            )
        )
    return records


def parse_parcel_summary(text: str) -> tuple[str | None, str | None]:
    """Pull (parcel id, owner name) out of the appraiser summary text."""
    parcel = PARCEL_RE.search(text or "")
    owner = None
    lines = [line.strip() for line in (text or "").splitlines()]
    for i, line in enumerate(lines):
        label, _, rest = line.partition(":")
        if label.strip().lower() not in OWNER_LABELS:
            continue
        if rest.strip():
            owner = rest.strip()
        else:
            owner = next((nxt for nxt in lines[i + 1:] if nxt), None)
        if owner:
            break
    return (parcel.group(0) if parcel else None), owner


def pdf_url_from_viewer(src: str, base: str = RECORDER_URL) -> str:
    """``...viewer.html?file=%2Fssweb%2Fdocument%2Fservepdf%2F...`` -> absolute PDF URL."""
    match = re.search(r"[?&]file=([^&]+)", src)
    if not match:
        raise DownloadFailed(f"Viewer URL has no file parameter: {src}")
    path = unquote(match.group(1))
    if path.startswith("http"):
        return path
    return base.rstrip("/") + "/" + path.lstrip("/")


class OrangeCountyFLAdapter(JurisdictionAdapter):
    config = AdapterConfig(
        county="Orange",
        state="FL",
        base_url=APPRAISER_URL,
        recorder_url=RECORDER_URL,
        has_disclaimer=True,
        requires_captcha=True,
        stealth=StealthPosture.STEALTH,
        search_modes=frozenset({ADDRESS}),
    )

    async def search_by_address(self, session: NavigationSession, address: str) -> bool:
        street = normalize_street_suffix(street_line(address))
        browser = session.browser
        await browser.navigate(APPRAISER_URL)
        await browser.settle()

        field = await self.first_selector(session, ADDRESS_INPUTS, "address input")
        await browser.fill(field, street)
        try:
            button = await self.first_selector(session, SEARCH_BUTTONS, "search button")
            await browser.click(button)
        except SelectorNotFound:
            await browser.press("Enter")
        await browser.settle(4)

        text = await self.page_text(session)
        if looks_like_no_results(text):
            logger.info("Orange appraiser has no parcel for {}", street)
            return False
        session.parcel_id, session.owner_name = parse_parcel_summary(text)
        return True

    async def list_transactions(self, session: NavigationSession) -> list[TransactionRecord]:
        browser = session.browser
        if await browser.run_in_page(CLICK_SALES_TAB_JS, what="Sales tab"):
            try:
                await browser.wait_for(
                    lambda: browser.run_in_page(SALES_TABLE_READY_JS),
                    timeout=15,
                    description="Sales History table",
                )
            except NavigationTimeout:
                logger.warning("Sales History table not detected, reading current page")
        rows = await browser.run_in_page(SALES_ROWS_JS, what="sales rows") or []
        return parse_sales_rows(rows)

    async def select_document(self, session: NavigationSession, record: TransactionRecord) -> None:
        browser = session.browser
        clicked = await browser.run_in_page(CLICK_INSTRUMENT_JS, record.view_handle, what="instrument link")
        if not clicked:
            raise SelectorNotFound(f"No link for instrument {record.instrument_number}")

        deed_url = await browser.wait_for(
            lambda: browser.run_in_page(CONTINUE_LINK_JS, "selfservice.or.occompt.com"),
            timeout=15,
            description='"Continue to site" link',
        )
        session.scratch["deed_url"] = deed_url
        await browser.navigate(deed_url)
        await browser.settle()

        if DISCLAIMER_PATH in browser.page.url:
            await self._accept_disclaimer(session)
        await self.ensure_not_login_wall(session)

    async def _accept_disclaimer(self, session: NavigationSession) -> None:
        browser = session.browser
        if await browser.exists(ACCEPT_SELECTOR):
            await browser.click(ACCEPT_SELECTOR)
            await browser.settle(3)
        if await self.click_by_text(session, "yes", "continue", tags="button"):
            logger.debug("Confirmed recorder session takeover")
            await browser.settle(3)

    async def confirm_captcha(self, session: NavigationSession, challenge: CaptchaChallenge) -> None:
        """The token only counts once the disclaimer is submitted again."""
        browser = session.browser
        if DISCLAIMER_PATH not in browser.page.url:
            return
        await self._accept_disclaimer(session)
        try:
            await browser.wait_for(
                lambda: DISCLAIMER_PATH not in browser.page.url,
                timeout=self.confirm_seconds(session),
                description="recorder to leave the disclaimer page",
            )
        except NavigationTimeout as e:
            raise CaptchaUnsolved("Recorder kept the disclaimer page after CAPTCHA") from e

    async def download_document(self, session: NavigationSession, record: TransactionRecord) -> DeedDocument:
        browser = session.browser
        viewer_src = await browser.wait_for(
            lambda: browser.run_in_page(VIEWER_IFRAME_JS),
            timeout=30,
            description="document viewer",
        )
        return await self.fetch_document(session, record, pdf_url_from_viewer(viewer_src))