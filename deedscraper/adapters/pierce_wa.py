"""
Pierce County, WA (Auditor recorded documents, armsweb).

Searches by parcel number only. The results grid puts every document in one
wide row; each document starts at a "View" cell followed by its instrument
number and, a few cells later, its document type.
"""

from __future__ import annotations

import re

from loguru import logger

from deedscraper.adapters.base import PARCEL, AdapterConfig, JurisdictionAdapter, looks_like_no_results
from deedscraper.browser.session import StealthPosture
from deedscraper.exceptions import NavigationTimeout, ScriptError, SelectorNotFound
from deedscraper.models import DeedDocument, TransactionRecord
from deedscraper.state import NavigationSession

SEARCH_URL = "https://armsweb.co.pierce.wa.us/RealEstate/SearchEntry.aspx"
PARCEL_INPUT = "#cphNoMargin_f_Datatextedit28p"

INSTRUMENT_RE = re.compile(r"^\d{7,}$")
DEED_TYPE_RE = re.compile(
    r"^((STATUTORY\s+)?WARRANTY\s+DEED|QUIT\s*CLAIM\s+DEED|DEED|EXCISE\s+TAX\s+AFFIDAVIT)$",
    re.IGNORECASE,
)
PDF_FRAME_MARKERS = (".pdf", "GetFile", "ViewImage", "GetImage")

ACK_DISCLAIMER_JS = """
() => {
    for (const link of document.querySelectorAll('a')) {
        const text = (link.textContent || '').toLowerCase();
        if (text.includes('click here to acknowledge')
            || (text.includes('acknowledge') && text.includes('disclaimer'))) {
            link.click();
            return true;
        }
    }
    return false;
}
"""

PARCEL_FIELD_JS = """
(directSelector) => {
    const direct = document.querySelector(directSelector);
    if (direct) return directSelector;
    for (const el of document.querySelectorAll('span, label, td, th')) {
        if (!(el.textContent || '').includes('Parcel #')) continue;
        const row = el.closest('tr');
        const input = row && row.querySelector('input[type="text"]');
        if (input) return input.id ? '#' + input.id : `input[name="${input.name}"]`;
    }
    return null;
}
"""

GRID_CELLS_JS = """
() => {
    let widest = [];
    for (const row of document.querySelectorAll('tr')) {
        const cells = row.querySelectorAll('td');
        if (cells.length >= 100 && cells.length > widest.length) widest = Array.from(cells);
    }
    return widest.map((cell) => {
        const link = cell.querySelector('a');
        return { text: (cell.textContent || '').trim(), href: link ? link.href : null };
    });
}
"""

CLICK_IMAGE_ICON_JS = """
() => {
    for (const cell of document.querySelectorAll('td, th')) {
        if (!(cell.textContent || '').trim().startsWith('Image:')) continue;
        const next = cell.nextElementSibling;
        const link = (next && next.querySelector('a')) || (cell.parentElement && cell.parentElement.querySelector('a img')?.parentElement);
        if (link) { link.click(); return true; }
    }
    for (const link of document.querySelectorAll('a')) {
        const title = (link.title || '').toLowerCase();
        if (title.includes('image') || (link.href || '').toLowerCase().includes('image')) {
            link.click();
            return true;
        }
    }
    return false;
}
"""

GET_IMAGE_NOW_JS = """
() => {
    for (const el of document.querySelectorAll('a, button, input[type="button"], input[type="submit"]')) {
        const text = (el.textContent || el.value || '').toLowerCase().trim();
        if (text.includes('get image now') || text.includes('get item') || el.id === 'btnProcessNow') {
            el.click();
            return true;
        }
    }
    return false;
}
"""

EMBEDDED_PDF_JS = """
() => {
    const embed = document.querySelector('embed[type="application/pdf"], object[type="application/pdf"]');
    return embed ? (embed.src || embed.data) : null;
}
"""


def parse_document_grid(cells: list[dict]) -> list[TransactionRecord]:
    """Walk the one-row grid and return deeds in page order.

    Excise tax affidavits are listed alongside deeds but carry no deed image
    worth fetching, so they are dropped.
    """
    records: list[TransactionRecord] = []
    for i, cell in enumerate(cells):
        if cell.get("text") != "View" or not cell.get("href"):
            continue

        instrument = None
        instrument_href = None
        for j in range(i + 1, min(i + 5, len(cells))):
            if INSTRUMENT_RE.match(cells[j].get("text", "")):
                instrument = cells[j]["text"]
                instrument_href = cells[j].get("href")
                break

        doc_type = None
        for j in range(i + 5, min(i + 15, len(cells))):
            if DEED_TYPE_RE.match(cells[j].get("text", "")):
                doc_type = cells[j]["text"]
                break

        if not instrument or not doc_type:
            continue
        if "EXCISE TAX AFFIDAVIT" in doc_type.upper():
            continue
        records.append(
            TransactionRecord(
                instrument_number=instrument,
                document_type=doc_type.upper(),
                view_handle=instrument_href or cell["href"],
            )
        )
    return records


def is_pdf_frame(url: str) -> bool:
    return any(marker in url for marker in PDF_FRAME_MARKERS)


class PierceCountyWAAdapter(JurisdictionAdapter):
    config = AdapterConfig(
        county="Pierce",
        state="WA",
        base_url=SEARCH_URL,
        has_disclaimer=True,
        stealth=StealthPosture.NONE,
        search_modes=frozenset({PARCEL}),
        timezone_id="America/Los_Angeles",
    )

    async def acknowledge_disclaimer(self, session: NavigationSession) -> None:
        browser = session.browser
        await browser.navigate(SEARCH_URL)
        await browser.settle()
        if await browser.run_in_page(ACK_DISCLAIMER_JS, what="disclaimer link"):
            logger.debug("Acknowledged Pierce disclaimer")
            await browser.wait_for_load(timeout_ms=15_000)
            await browser.settle()

    async def search_by_parcel(self, session: NavigationSession, parcel_id: str) -> bool:
        browser = session.browser
        field = await browser.run_in_page(
            PARCEL_FIELD_JS, PARCEL_INPUT, expect_non_empty=True, what="Parcel # input"
        )
        await browser.fill(field, parcel_id)
        await browser.press("Enter")
        await browser.wait_for_load(timeout_ms=30_000)
        await browser.settle()

        if looks_like_no_results(await self.page_text(session)):
            return False
        session.parcel_id = parcel_id
        return True

    async def list_transactions(self, session: NavigationSession) -> list[TransactionRecord]:
        cells = await session.browser.run_in_page(GRID_CELLS_JS, what="document grid") or []
        records = parse_document_grid(cells)
        if cells and not records:
            logger.info("Pierce grid for {} lists only excise tax affidavits", session.parcel_id)
        return records

    async def select_document(self, session: NavigationSession, record: TransactionRecord) -> None:
        if not record.view_handle:
            raise SelectorNotFound(f"No link for instrument {record.instrument_number}")
        await session.browser.navigate(record.view_handle)
        await session.browser.settle()

    async def download_document(self, session: NavigationSession, record: TransactionRecord) -> DeedDocument:
        browser = session.browser

        async def open_image() -> None:
            if not await browser.run_in_page(CLICK_IMAGE_ICON_JS, what="Image icon"):
                raise SelectorNotFound('No "Image" icon on document page')

        popup = await browser.expect_popup(open_image)
        browser.adopt(popup)
        await browser.settle(3)

        viewer = next((f for f in browser.frames() if "Viewer" in f.url or "Image" in f.url), None)
        clicked = await browser.run_in_page(GET_IMAGE_NOW_JS, what='"Get Image Now"', target=viewer)
        if not clicked:
            raise SelectorNotFound('No "Get Image Now" button in image viewer')

        pdf_url = await browser.wait_for(
            lambda: self._find_pdf_url(session),
            timeout=30,
            interval=1.0,
            description="deed PDF frame",
        )
        return await self.fetch_document(session, record, pdf_url)

    async def _find_pdf_url(self, session: NavigationSession) -> str | None:
        browser = session.browser
        for frame in browser.frames():
            if is_pdf_frame(frame.url):
                return frame.url
        for frame in browser.frames():
            try:
                src = await browser.run_in_page(EMBEDDED_PDF_JS, what="embedded PDF", target=frame)
            except (NavigationTimeout, ScriptError) as e:
                # cross-origin frames refuse evaluation
                logger.debug(f"Skipping frame {frame.url}: {e}")
                continue
            if src:
                return src
        return None
