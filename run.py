# run.py
"""
Scheduler host for the listing analytics scraper.

  python run.py            periodic scraping until Ctrl+C
  python run.py --once     one batch over every scrapeable listing, then exit

Sets the Proactor loop on Windows, which Playwright needs for subprocesses.
"""
import sys
import asyncio

from marketplace_analytics.config import settings
from marketplace_analytics.service import build_service
from marketplace_analytics.utils.logger import get_logger

logger = get_logger("run")


async def _main(once: bool):
    service = build_service(settings)
    await service.store.init_db()
    try:
        if once:
            summary = await service.scheduler.scrape_all()
            print(f"✅  {summary.succeeded} ok, {summary.failed} failed of {summary.listings}")
            return
        service.start_periodic_scraping(settings.scrape_interval_minutes)
        print(f"⏱  Scraping every {settings.scrape_interval_minutes} min, Ctrl+C to stop")
        await asyncio.Event().wait()
    finally:
        await service.shutdown()


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())
    try:
        asyncio.run(_main("--once" in sys.argv))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
