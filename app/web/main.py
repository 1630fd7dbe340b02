"""
DeedScraper HTTP API
FastAPI + uvicorn
"""
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.web.routers import api
from deedscraper.batch import BatchCoordinator
from deedscraper.config import Settings
from deedscraper.orchestrator import NavigationOrchestrator
from deedscraper.utils.logging_config import setup_default_logging

# Configure loguru
setup_default_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("DeedScraper API starting up...")
    yield
    await app.state.coordinator.close()
    logger.info("DeedScraper API shutting down...")


# =============================================================================
# Error Handlers
# =============================================================================

def _generate_error_id() -> str:
    """Generate a short error ID for tracking."""
    return str(uuid.uuid4())[:8].upper()


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Return HTTP errors as JSON with an error id."""
    error_id = _generate_error_id()

    if exc.status_code >= 400:
        log_fn = logger.warning if exc.status_code < 500 else logger.error
        log_fn(f"HTTP {exc.status_code} [ID: {error_id}]: {exc.detail} - {request.method} {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
            "error_id": error_id,
            "path": str(request.url.path),
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with detailed logging."""
    error_id = _generate_error_id()

    tb = traceback.format_exc()
    logger.error(
        f"Unhandled exception [ID: {error_id}]\n"
        f"Request: {request.method} {request.url}\n"
        f"Exception: {type(exc).__name__}: {exc}\n"
        f"Traceback:\n{tb}"
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": f"An unexpected error occurred: {type(exc).__name__}",
            "error_id": error_id,
            "path": str(request.url.path),
        },
    )


def create_app(
    settings: Settings | None = None,
    coordinator: BatchCoordinator | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if coordinator is None:
        coordinator = BatchCoordinator(NavigationOrchestrator.from_settings(settings), settings)

    app = FastAPI(
        title="DeedScraper",
        description="County deed and transaction retrieval",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.coordinator = coordinator

    app.include_router(api.router, prefix="/api")
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.web.main:app",
        host="0.0.0.0",
        port=8080,
        reload=True
    )
