"""
Main entry point for DeedScraper.
Supports modes:
  <address> [<address> ...]: Scrape deeds for one or more addresses
  --list-counties: Show supported jurisdictions
  --web: Start the HTTP API server
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from loguru import logger

from deedscraper.batch import BatchCoordinator, requests_from_addresses
from deedscraper.config import Settings
from deedscraper.exceptions import BatchValidationError
from deedscraper.models import ScrapeOutcome
from deedscraper.orchestrator import NavigationOrchestrator
from deedscraper.registry import default_registry
from deedscraper.utils.logging_config import setup_default_logging


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging() -> None:
    """Configure loguru sinks (shared with the web app) and route stdlib logging into them."""
    setup_default_logging()
    # Intercept standard logging (Playwright, httpx, etc.) and route to loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for logger_name in ["playwright", "httpx", "httpcore", "asyncio", "uvicorn"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


setup_logging()


def write_documents(outcomes: list[ScrapeOutcome], out_dir: Path) -> list[Path]:
    """Save every downloaded PDF as ``<instrument>.pdf`` under ``out_dir``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for outcome in outcomes:
        result = getattr(outcome, "result", None)
        document = result.document if result else None
        if document is None or document.content is None:
            continue
        path = out_dir / f"{document.instrument_number}.pdf"
        path.write_bytes(document.content)
        logger.success(f"Saved {document.document_type} ({document.page_count} pages) to {path}")
        written.append(path)
    return written


def handle_list_counties():
    """Print supported jurisdictions."""
    for entry in default_registry().supported():
        modes = ", ".join(entry["searchModes"])
        captcha = " [CAPTCHA]" if entry["requiresCaptcha"] else ""
        print(f"{entry['county']:<10} {entry['state']}  search by: {modes}{captcha}")


async def handle_scrape(
    addresses: list[str],
    county: str | None = None,
    state: str | None = None,
    parcel_id: str | None = None,
    out_dir: Path | None = None,
) -> int:
    """Scrape addresses and print one JSON outcome per address. Returns an exit code."""
    settings = Settings.from_env()
    coordinator = BatchCoordinator(NavigationOrchestrator.from_settings(settings), settings)
    try:
        outcomes = await coordinator.scrape_batch(
            requests_from_addresses(addresses, county, state, parcel_id)
        )
    except BatchValidationError as e:
        logger.error(str(e))
        return 2
    finally:
        await coordinator.close()

    if out_dir is not None:
        write_documents(outcomes, out_dir)

    for outcome in outcomes:
        payload = outcome.to_response()
        if payload.get("document"):
            # Keep terminal output readable
            payload["document"].pop("contentBase64", None)
        print(json.dumps(payload, indent=2))

    return 0 if all(o.outcome == "success" for o in outcomes) else 1


def handle_web(host: str, port: int):
    """Start the FastAPI server (app/web)."""
    import uvicorn

    logger.info(f"Starting DeedScraper API on http://{host}:{port}")
    uvicorn.run(
        "app.web.main:app",
        host=host,
        port=port,
        reload=False,
    )


def main():
    parser = argparse.ArgumentParser(description="DeedScraper - county deed retrieval")
    parser.add_argument("addresses", nargs="*", help="Property address(es) to scrape")
    parser.add_argument("--county", type=str, default=None,
                        help="County name (e.g. Orange). Inferred from the city when omitted.")
    parser.add_argument("--state", type=str, default=None, help="Two-letter state code (e.g. FL)")
    parser.add_argument("--parcel-id", type=str, default=None,
                        help="Parcel number, for counties that search by parcel")
    parser.add_argument("--out-dir", type=Path, default=None,
                        help="Directory to write downloaded deed PDFs into")
    parser.add_argument("--list-counties", action="store_true", help="List supported counties and exit")
    parser.add_argument("--web", action="store_true", help="Start the HTTP API server")
    parser.add_argument("--host", type=str, default=os.getenv("WEB_HOST", "0.0.0.0"),
                        help="Host for web server (default 0.0.0.0 or WEB_HOST env var)")
    parser.add_argument("--port", type=int, default=int(os.getenv("WEB_PORT", "8080")),
                        help="Port for web server (default 8080 or WEB_PORT env var)")

    args = parser.parse_args()

    if args.list_counties:
        handle_list_counties()
    elif args.web:
        handle_web(args.host, args.port)
    elif args.addresses:
        sys.exit(
            asyncio.run(
                handle_scrape(
                    args.addresses,
                    county=args.county,
                    state=args.state,
                    parcel_id=args.parcel_id,
                    out_dir=args.out_dir,
                )
            )
        )
    else:
        parser.error("give at least one address, --list-counties or --web")

if __name__ == "__main__":
    main()
