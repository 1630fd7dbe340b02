"""King County, WA (Assessor eRealProperty + recorder document links)."""

from __future__ import annotations

import re

from loguru import logger

from deedscraper.adapters.base import ADDRESS, AdapterConfig, JurisdictionAdapter, looks_like_no_results
from deedscraper.address import strip_locality
from deedscraper.browser.session import StealthPosture
from deedscraper.exceptions import SelectorNotFound
from deedscraper.models import DeedDocument, TransactionRecord
from deedscraper.state import NavigationSession

SEARCH_URL = "https://blue.kingcounty.com/Assessor/eRealProperty/default.aspx"
ACK_CHECKBOX = "#cphContent_checkbox_acknowledge"
ADDRESS_INPUT = (
    'input[name*="Address"]:not([id="global-search-text"]), '
    'input[id*="Address"]:not([id="global-search-text"]), '
    'input[placeholder*="Address"]:not([id="global-search-text"])'
)
DETAIL_LINK = '#cphContent_LinkButtonDetail, a[id*="LinkButtonDetail"]'

RECORDING_RE = re.compile(r"^\d{14,}$")
PARCEL_RE = re.compile(r"\b\d{10}\b")

SALES_HISTORY_JS = """
() => {
    const text = document.body ? document.body.innerText : '';
    if (!/SALES HISTORY/i.test(text)) return null;
    const rows = [];
    for (const tr of document.querySelectorAll('tr')) {
        const cells = Array.from(tr.querySelectorAll('td'));
        if (!cells.length) continue;
        rows.push(cells.map((cell) => {
            const link = cell.querySelector('a');
            return { text: (cell.textContent || '').trim(), href: link ? link.href : null };
        }));
    }
    return { rows };
}
"""

DETAIL_FACTS_JS = """
() => {
    const facts = {};
    for (const tr of document.querySelectorAll('tr')) {
        const cells = tr.querySelectorAll('td');
        if (cells.length !== 2) continue;
        const label = (cells[0].textContent || '').trim().toLowerCase();
        const value = (cells[1].textContent || '').trim();
        if (label === 'parcel' || label === 'parcel number') facts.parcel = value;
        if (label === 'name' || label === 'taxpayer name' || label === 'owner') facts.owner = facts.owner || value;
    }
    return facts;
}
"""

DEED_IFRAME_JS = """
() => {
    for (const frame of document.querySelectorAll('iframe')) {
        if (frame.src && (frame.src.includes('.pdf') || frame.src.includes('document'))) return frame.src;
    }
    return null;
}
"""


def clean_address(address: str) -> str:
    """``"7550 41st Ave NE, Seattle, WA 98115"`` -> ``"7550 41st Ave NE"``."""
    return strip_locality(address, "WA", "Washington", "King County")


def parse_sales_history(rows: list[list[dict]]) -> list[TransactionRecord]:
    """Sales history rows with a linked 14+ digit recording number, newest first."""
    records: list[TransactionRecord] = []
    seen: set[str] = set()
    for cells in rows:
        texts = [c.get("text", "") for c in cells]
        for index, cell in enumerate(cells):
            number = cell.get("text", "")
            if not RECORDING_RE.match(number) or number in seen:
                continue
            if not cell.get("href"):
                logger.debug("Recording number {} is not linked, skipping", number)
                continue
            seen.add(number)
            doc_type = next(
                (t for t in texts[index + 1:] if "deed" in t.lower()),
                "Deed",
            )
            records.append(
                TransactionRecord(
                    instrument_number=number,
                    document_type=doc_type,
                    recorded_date=texts[index - 1] if index > 0 and texts[index - 1] else None,
                    view_handle=cell["href"],
                )
            )
            break
    return records


class KingCountyWAAdapter(JurisdictionAdapter):
    config = AdapterConfig(
        county="King",
        state="WA",
        base_url=SEARCH_URL,
        has_disclaimer=True,
        stealth=StealthPosture.MINIMAL,
        search_modes=frozenset({ADDRESS}),
        timezone_id="America/Los_Angeles",
    )

    async def acknowledge_disclaimer(self, session: NavigationSession) -> None:
        browser = session.browser
        await browser.navigate(SEARCH_URL)
        await browser.settle()
        if await browser.exists(ACK_CHECKBOX):
            await browser.click(ACK_CHECKBOX)
            await browser.settle(1)

    async def search_by_address(self, session: NavigationSession, address: str) -> bool:
        browser = session.browser
        street = clean_address(address)
        await browser.fill(ADDRESS_INPUT, street)
        await browser.press("Enter")
        await browser.wait_for_load(timeout_ms=30_000)
        await browser.settle(3)

        url = browser.page.url
        if "kingcounty.gov" in url and "Assessor/eRealProperty" not in url:
            raise SelectorNotFound("Search landed on kingcounty.gov instead of eRealProperty", url=url)
        if looks_like_no_results(await self.page_text(session)):
            return False
        if not await browser.exists(DETAIL_LINK):
            # A result list instead of a single parcel
            raise SelectorNotFound(
                f"No Property Detail link for {street!r}; the address matches several parcels or none uniquely",
                url=url,
            )

        await browser.click(DETAIL_LINK)
        await browser.wait_for_load(timeout_ms=30_000)
        if "Detail.aspx" not in browser.page.url:
            raise SelectorNotFound(f"Expected Detail.aspx, got {browser.page.url}", url=browser.page.url)

        facts = await browser.run_in_page(DETAIL_FACTS_JS, what="parcel facts") or {}
        parcel = PARCEL_RE.search(facts.get("parcel", "") or "")
        session.parcel_id = parcel.group(0) if parcel else facts.get("parcel") or None
        session.owner_name = facts.get("owner") or None
        return True

    async def list_transactions(self, session: NavigationSession) -> list[TransactionRecord]:
        browser = session.browser
        section = await browser.wait_for(
            lambda: browser.run_in_page(SALES_HISTORY_JS, what="sales history"),
            timeout=15,
            description="SALES HISTORY section",
        )
        return parse_sales_history(section["rows"])

    async def select_document(self, session: NavigationSession, record: TransactionRecord) -> None:
        await session.browser.navigate(record.view_handle, wait_until="load", timeout_ms=30_000)
        await session.browser.settle(2)

    async def download_document(self, session: NavigationSession, record: TransactionRecord) -> DeedDocument:
        browser = session.browser
        url = browser.page.url
        if not (".pdf" in url.lower() or "document" in url or "recording" in url):
            iframe = await browser.run_in_page(DEED_IFRAME_JS, what="deed iframe")
            if not iframe:
                raise SelectorNotFound(f"No deed image for recording {record.instrument_number}", url=url)
            url = iframe
        return await self.fetch_document(session, record, url)
