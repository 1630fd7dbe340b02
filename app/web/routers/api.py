from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from deedscraper.batch import requests_from_addresses
from deedscraper.exceptions import BatchValidationError

router = APIRouter(tags=["api"])


class ScrapeBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    addresses: List[str]
    county: Optional[str] = None
    state: Optional[str] = None
    parcel_id: Optional[str] = Field(default=None, alias="parcelId")


async def _read_body(request: Request) -> ScrapeBody:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from None
    if not isinstance(payload, dict) or "addresses" not in payload:
        raise HTTPException(status_code=400, detail="addresses is required")
    if not isinstance(payload["addresses"], list):
        raise HTTPException(status_code=400, detail="addresses must be an array")
    try:
        return ScrapeBody.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid request: {e.errors()[0]['msg']}") from None


@router.post("/scrape")
async def scrape(request: Request):
    """Scrape deeds for up to MAX_BATCH_SIZE addresses, one outcome per address."""
    body = await _read_body(request)
    settings = request.app.state.settings
    coordinator = request.app.state.coordinator
    registry = coordinator.orchestrator.registry

    if body.county:
        if registry.get(body.county, body.state) is None:
            raise HTTPException(status_code=400, detail=f"Unsupported county: {body.county}")
        if registry.requires_captcha(body.county, body.state) and not settings.captcha_enabled:
            raise HTTPException(
                status_code=503,
                detail=f"{body.county} requires a CAPTCHA solver but CAPTCHA_SOLVER_TOKEN is not set",
            )

    requests = requests_from_addresses(body.addresses, body.county, body.state, body.parcel_id)
    try:
        outcomes = await coordinator.scrape_batch(requests)
    except BatchValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    successful = sum(1 for o in outcomes if o.outcome == "success")
    logger.info(f"Scraped {len(outcomes)} address(es), {successful} successful")
    return JSONResponse({
        "success": True,
        "data": [o.to_response() for o in outcomes],
        "summary": {
            "total": len(outcomes),
            "successful": successful,
            "failed": len(outcomes) - successful,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@router.get("/counties")
async def counties(request: Request):
    """Supported jurisdictions and what each one can do."""
    registry = request.app.state.coordinator.orchestrator.registry
    return JSONResponse({"success": True, "data": registry.supported()})


@router.get("/health")
async def api_health(request: Request):
    """API health check with CAPTCHA solver status."""
    settings = request.app.state.settings
    return JSONResponse({
        "status": "ok",
        "service": "DeedScraper",
        "captchaSolverConfigured": settings.captcha_enabled,
        "maxBatchSize": settings.max_batch_size,
    })
