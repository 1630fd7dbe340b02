"""Batch fan-out over the navigation orchestrator."""

from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from loguru import logger

from deedscraper.config import Settings
from deedscraper.exceptions import BatchValidationError
from deedscraper.models import ErrorKind, Failure, Jurisdiction, ScrapeOutcome, SearchRequest
from deedscraper.orchestrator import NavigationOrchestrator
from deedscraper.utils.logging_utils import Timer


def requests_from_addresses(
    addresses: Iterable[str],
    county: str | None = None,
    state: str | None = None,
    parcel_id: str | None = None,
) -> list[SearchRequest]:
    """Build one SearchRequest per address, all pinned to the same county if given."""
    jurisdiction = Jurisdiction(county=county, state=state or "") if county else None
    return [
        SearchRequest(address=address.strip(), parcel_id=parcel_id, jurisdiction=jurisdiction)
        for address in addresses
    ]


class BatchCoordinator:
    def __init__(self, orchestrator: NavigationOrchestrator, settings: Settings) -> None:
        self.orchestrator = orchestrator
        self.settings = settings

    def validate(self, requests: Sequence[SearchRequest]) -> None:
        if not requests:
            raise BatchValidationError("At least one address is required")
        if len(requests) > self.settings.max_batch_size:
            raise BatchValidationError(
                f"Maximum {self.settings.max_batch_size} addresses per request (got {len(requests)})"
            )
        blank = [i for i, r in enumerate(requests) if not r.address.strip()]
        if blank:
            raise BatchValidationError(f"Empty address at position(s) {blank}")

    async def scrape_batch(self, requests: Sequence[SearchRequest]) -> list[ScrapeOutcome]:
        """Scrape every request, at most ``max_concurrency`` at a time.

        Returns one outcome per request in input order.
        """
        self.validate(requests)
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrency))

        async def run_one(index: int, request: SearchRequest) -> ScrapeOutcome:
            async with semaphore:
                logger.info(f"[{index + 1}/{len(requests)}] Scraping {request.address}")
                try:
                    return await self.orchestrator.run(request)
                except Exception as e:
                    logger.exception(f"Unhandled error for {request.address}")
                    return Failure(
                        address=request.address,
                        error_kind=ErrorKind.UNEXPECTED,
                        detail=f"{type(e).__name__}: {e}",
                    )

        with Timer() as timer:
            outcomes = await asyncio.gather(*(run_one(i, r) for i, r in enumerate(requests)))

        succeeded = sum(1 for o in outcomes if o.outcome == "success")
        logger.info(
            "batch_complete",
            total=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            duration_ms=round(timer.elapsed_ms, 1),
        )
        return list(outcomes)

    async def close(self) -> None:
        await self.orchestrator.close()
