"""
Duval County, FL.

Property Appraiser (paopropertysearch.coj.net) takes the address split into
number / street name / street-type dropdown. Deeds are then looked up by
instrument number on the Clerk's Official Records site, which opens the image
in a new window.
"""

from __future__ import annotations

import re

from loguru import logger

from deedscraper.adapters.base import ADDRESS, AdapterConfig, JurisdictionAdapter, looks_like_no_results
from deedscraper.address import split_street
from deedscraper.browser.session import StealthPosture
from deedscraper.exceptions import SelectorNotFound
from deedscraper.models import DeedDocument, TransactionRecord
from deedscraper.state import NavigationSession

APPRAISER_URL = "https://paopropertysearch.coj.net"
CLERK_URL = "https://or.duvalclerk.com/"

RE_NUMBER_RE = re.compile(r"^\d{6}-\d{4}$")
INSTRUMENT_RE = re.compile(r"(\d{8,})")
BOOK_PAGE_RE = re.compile(r"\b(\d{4,6})\s*/\s*(\d{1,5})\b")

SEARCH_FORM_JS = """
([number, name, type]) => {
    const num = document.querySelector('input[name="streetNumber"]');
    const street = document.querySelector('input[name="streetName"]');
    if (!num || !street) return false;
    num.value = number;
    street.value = name;
    for (const el of [num, street]) el.dispatchEvent(new Event('input', { bubbles: true }));
    const select = document.querySelector('select[name="streetType"]');
    if (select && type) {
        const option = Array.from(select.options).find(
            (o) => o.text.trim().toLowerCase() === type.toLowerCase() || o.value.toLowerCase() === type.toLowerCase()
        );
        if (option) {
            select.value = option.value;
            select.dispatchEvent(new Event('change', { bubbles: true }));
        }
    }
    return true;
}
"""

RESULT_LINKS_JS = """
() => Array.from(document.querySelectorAll('a')).map((a) => (a.innerText || a.textContent || '').trim())
"""

CLICK_LINK_TEXT_JS = """
(wanted) => {
    for (const link of document.querySelectorAll('a')) {
        if ((link.innerText || link.textContent || '').trim() === wanted) { link.click(); return true; }
    }
    return false;
}
"""

DETAIL_ROWS_JS = """
() => {
    const rows = [];
    for (const tr of document.querySelectorAll('table tr')) {
        const cells = Array.from(tr.querySelectorAll('td, th')).map((c) => (c.innerText || '').trim());
        if (cells.length) rows.push(cells);
    }
    return rows;
}
"""

OWNER_JS = """
() => {
    for (const el of document.querySelectorAll('[id*="OwnerName"], [id*="ownerName"], .owner-name')) {
        const text = (el.innerText || '').trim();
        if (text) return text;
    }
    return null;
}
"""

INSTRUMENT_INPUT_JS = """
(instrument) => {
    const input = document.querySelector('input[name*="instrument" i], input[id*="instrument" i]');
    if (!input) return false;
    input.value = instrument;
    input.dispatchEvent(new Event('input', { bubbles: true }));
    return true;
}
"""


def pick_re_number(link_texts: list[str]) -> str | None:
    """First link that looks like a Duval RE# (``123456-0000``)."""
    return next((t for t in link_texts if RE_NUMBER_RE.match(t)), None)


def parse_detail_rows(rows: list[list[str]]) -> list[TransactionRecord]:
    """Deed rows on the appraiser detail page, deduplicated by instrument."""
    records: list[TransactionRecord] = []
    seen: set[str] = set()
    for cells in rows:
        row_text = " ".join(cells)
        if "deed" not in row_text.lower():
            continue
        inst = INSTRUMENT_RE.search(row_text)
        if not inst or inst.group(1) in seen:
            continue
        seen.add(inst.group(1))
        doc_type = next((c for c in cells if "deed" in c.lower()), "Deed")
        book_page = BOOK_PAGE_RE.search(row_text.replace(inst.group(1), " "))
        date = next((c for c in cells if re.match(r"^\d{1,2}/\d{1,2}/\d{4}$", c)), None)
        records.append(
            TransactionRecord(
                instrument_number=inst.group(1),
                document_type=doc_type,
                recorded_date=date,
                book_page=f"{book_page.group(1)}/{book_page.group(2)}" if book_page else None,
                view_handle=inst.group(1),
            )
        )
    return records


class DuvalCountyFLAdapter(JurisdictionAdapter):
    config = AdapterConfig(
        county="Duval",
        state="FL",
        base_url=APPRAISER_URL,
        recorder_url=CLERK_URL,
        has_disclaimer=True,
        stealth=StealthPosture.STEALTH,
        search_modes=frozenset({ADDRESS}),
    )

    async def search_by_address(self, session: NavigationSession, address: str) -> bool:
        browser = session.browser
        parts = split_street(address)
        await browser.navigate(APPRAISER_URL)
        await browser.settle()

        filled = await browser.run_in_page(
            SEARCH_FORM_JS, [parts.number, parts.name, parts.street_type], what="address search form"
        )
        if not filled:
            raise SelectorNotFound("Duval search form fields missing", url=browser.page.url)
        if not await self.click_by_text(session, "search", tags="button, input[type=submit], input[type=button]"):
            await browser.press("Enter")
        await browser.wait_for_load(timeout_ms=30_000)
        await browser.settle(3)

        if looks_like_no_results(await self.page_text(session)):
            return False
        re_number = pick_re_number(await browser.run_in_page(RESULT_LINKS_JS, what="result links") or [])
        if re_number is None:
            raise SelectorNotFound("Results page has no RE# link", url=browser.page.url)

        await browser.run_in_page(CLICK_LINK_TEXT_JS, re_number, what="RE# link")
        await browser.wait_for_load(timeout_ms=30_000)
        await browser.settle(3)
        session.parcel_id = re_number
        session.owner_name = await browser.run_in_page(OWNER_JS, what="owner name")
        return True

    async def list_transactions(self, session: NavigationSession) -> list[TransactionRecord]:
        rows = await session.browser.run_in_page(DETAIL_ROWS_JS, what="detail tables") or []
        return parse_detail_rows(rows)

    async def select_document(self, session: NavigationSession, record: TransactionRecord) -> None:
        browser = session.browser
        await browser.navigate(CLERK_URL)
        await browser.settle(3)
        accepted = await self.click_by_text(session, "accept") or await self.click_by_text(session, "agree")
        if accepted:
            logger.debug("Accepted Duval clerk disclaimer")
            await browser.settle(3)
        await self.ensure_not_login_wall(session)

        await self.click_by_text(session, "instrument", tags="a, button")
        await browser.settle()
        if not await browser.run_in_page(INSTRUMENT_INPUT_JS, record.instrument_number, what="instrument input"):
            raise SelectorNotFound("Clerk instrument search field missing", url=browser.page.url)
        if not await self.click_by_text(session, "search", tags="button, input[type=submit]"):
            await browser.press("Enter")
        await browser.wait_for_load(timeout_ms=30_000)
        await browser.settle(3)

    async def download_document(self, session: NavigationSession, record: TransactionRecord) -> DeedDocument:
        browser = session.browser

        async def open_viewer() -> None:
            if not (await self.click_by_text(session, "view") or await self.click_by_text(session, "pdf")):
                raise SelectorNotFound(f"No view button for instrument {record.instrument_number}")

        popup = await browser.expect_popup(open_viewer, timeout_ms=30_000)
        browser.adopt(popup)
        await browser.settle(3)
        return await self.fetch_document(session, record, popup.url)
