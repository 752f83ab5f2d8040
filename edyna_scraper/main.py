"""CLI orchestrator for the Edyna portal consumption scraper.

Usage:
    # Scrape and write daily_usage.json
    python -m edyna_scraper.main

    # Scrape and upsert into TimescaleDB
    python -m edyna_scraper.main --db

    # Re-ingest a previously saved JSON batch
    python -m edyna_scraper.main --ingest-file daily_usage.json
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from playwright.async_api import Error as PlaywrightError
from sqlalchemy.exc import SQLAlchemyError

PROJECT_ROOT = Path(__file__).resolve().parent
PARENT_ROOT = PROJECT_ROOT.parent

if str(PARENT_ROOT) not in sys.path:
    sys.path.insert(0, str(PARENT_ROOT))

from edyna_scraper import config  # noqa: E402
from edyna_scraper.config import ConfigurationError, RunSettings  # noqa: E402
from edyna_scraper.io import save_output  # noqa: E402
from edyna_scraper.io.timeseries_store import IngestionStore  # noqa: E402
from edyna_scraper.scraper import playwright_driver  # noqa: E402
from edyna_scraper.scraper.errors import PortalError  # noqa: E402
from edyna_scraper.scraper.models import DailyBatch, PipelineResult, UpsertResult  # noqa: E402
from edyna_scraper.scraper.portal_flow import FlowTimeouts, PortalFlow  # noqa: E402

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


async def scrape_portal(settings: RunSettings) -> PipelineResult:
    """Run the browser flow once and return whatever it could extract."""
    if settings.credentials is None:
        raise ConfigurationError("Portal credentials are required to scrape")

    async with playwright_driver.with_browser(headless=settings.headless) as browser:
        async with playwright_driver.with_context(browser, timezone_id=settings.timezone) as context:
            page = await playwright_driver.new_page(context)
            flow = PortalFlow(
                playwright_driver.PageActions(page),
                settings.credentials,
                timeouts=FlowTimeouts(listing_settle_ms=settings.listing_settle_delay_ms),
                debug_shots=settings.debug_shots,
            )
            return await flow.run()


def persist_batch(store: IngestionStore, batch: DailyBatch) -> UpsertResult:
    store.initialize_schema()
    return store.upsert_batch(batch)


def _store_batch(settings: RunSettings, batch: DailyBatch, store: Optional[IngestionStore]) -> int:
    owns_store = store is None
    try:
        if store is None:
            store = IngestionStore.from_settings(settings.database)
        persist_batch(store, batch)
    except ConfigurationError as exc:
        logger.error(str(exc))
        return 1
    except SQLAlchemyError as exc:
        logger.error(f"Database write failed: {exc}")
        return 1
    finally:
        if owns_store and store is not None:
            store.close()
    return 0


async def run_once(
    settings: RunSettings,
    *,
    use_db: bool = False,
    write_json: bool = True,
    csv_path: Optional[Path] = None,
    store: Optional[IngestionStore] = None,
) -> int:
    """One full scrape; returns the process exit code."""
    try:
        result = await scrape_portal(settings)
    except PortalError as exc:
        logger.error(f"Flow failed: {exc}")
        return 1
    except PlaywrightError as exc:
        logger.error(f"Browser session failed: {exc}")
        return 1

    if not result.has_daily_data:
        logger.info("No daily hourly data found or parsed.")
        return 0

    batch = result.daily
    logger.info(f"Daily hourly data: {len(batch.days)} days for {batch.month} {batch.year}")

    if write_json:
        output_path = save_output.save_daily_json(batch, settings.output_file)
        logger.info(f"Daily usage data saved to: {output_path}")
    if csv_path:
        output_path = save_output.save_hourly_csv(batch, csv_path)
        logger.info(f"Hourly CSV saved to: {output_path}")

    if use_db:
        return _store_batch(settings, batch, store)
    return 0


def ingest_file(settings: RunSettings, path: Path) -> int:
    try:
        batch = save_output.load_daily_json(path)
    except (OSError, ValueError, KeyError) as exc:
        logger.error(f"Could not read batch file {path}: {exc}")
        return 1
    logger.info(f"Loaded {len(batch.days)} days from {path}")
    return _store_batch(settings, batch, None)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape Edyna hourly consumption.")
    parser.add_argument("--db", action="store_true", help="Upsert readings into the database.")
    parser.add_argument("--output", type=Path, help="JSON output path (default: DAILY_OUTPUT_FILE).")
    parser.add_argument("--no-json", action="store_true", help="Do not write the JSON output file.")
    parser.add_argument("--csv", type=Path, help="Also write a flat hourly CSV.")
    parser.add_argument(
        "--ingest-file",
        type=Path,
        help="Skip scraping and ingest a saved JSON batch into the database.",
    )
    parser.add_argument("--headful", action="store_true", help="Show the browser window.")
    parser.add_argument("--env-file", type=Path, help="Load settings from this .env file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = config.load_settings(args.env_file, require_credentials=args.ingest_file is None)
        if args.db or args.ingest_file:
            settings.database.url()
    except ConfigurationError as exc:
        logger.error(str(exc))
        return 1

    overrides = {}
    if args.output:
        overrides["output_file"] = args.output
    if args.headful:
        overrides["headless"] = False
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    if args.ingest_file:
        return ingest_file(settings, args.ingest_file)

    code = asyncio.run(
        run_once(settings, use_db=args.db, write_json=not args.no_json, csv_path=args.csv)
    )
    logger.info("Flow complete." if code == 0 else "Flow failed.")
    return code


if __name__ == "__main__":
    raise SystemExit(main())
