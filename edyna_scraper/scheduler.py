"""Cron-style scheduler that runs the scraper in database mode.

The schedule comes from CRON_SCHEDULE (default: 12:00 daily) in the TZ
timezone. Runs happen in-process and share one IngestionStore, so the
connection pool is reused between runs and closed on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime
from pathlib import Path
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from edyna_scraper import config, main as cli
from edyna_scraper.config import ConfigurationError, RunSettings
from edyna_scraper.io.timeseries_store import IngestionStore

logger = logging.getLogger(__name__)

JOB_ID = "edyna-scrape"


async def scheduled_run(settings: RunSettings, store: IngestionStore) -> int:
    tz = pytz.timezone(settings.timezone)
    logger.info(f"Starting scraper at {datetime.now(tz).isoformat()}")
    try:
        code = await cli.run_once(settings, use_db=True, store=store)
    except Exception:
        logger.exception("Scraper run crashed")
        code = 1
    logger.info(f"Scraper finished with code {code} at {datetime.now(tz).isoformat()}")
    return code


def build_scheduler(settings: RunSettings, store: IngestionStore) -> AsyncIOScheduler:
    """Register the scrape job; overlapping triggers are coalesced, never run twice."""
    tz = pytz.timezone(settings.timezone)
    scheduler = AsyncIOScheduler(timezone=tz)
    job_options = {}
    if settings.run_on_start:
        logger.info("RUN_ON_START enabled, running immediately...")
        job_options["next_run_time"] = datetime.now(tz)

    scheduler.add_job(
        scheduled_run,
        trigger=CronTrigger.from_crontab(settings.cron_schedule, timezone=tz),
        args=[settings, store],
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **job_options,
    )
    return scheduler


async def serve(settings: RunSettings) -> None:
    store = IngestionStore.from_settings(settings.database)
    scheduler = build_scheduler(settings, store)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler.start()
    logger.info(f"Starting with schedule: {settings.cron_schedule} ({settings.timezone})")
    logger.info("Waiting for scheduled time...")
    try:
        await stop.wait()
        logger.info("Received shutdown signal, shutting down...")
    finally:
        scheduler.shutdown(wait=False)
        store.close()


def main(env_file: Optional[Path] = None) -> int:
    logging.basicConfig(level=logging.INFO, format=cli.LOG_FORMAT)
    try:
        settings = config.load_settings(env_file)
        settings.database.url()
        CronTrigger.from_crontab(settings.cron_schedule)
    except (ConfigurationError, ValueError) as exc:
        logger.error(str(exc))
        return 1

    asyncio.run(serve(settings))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
