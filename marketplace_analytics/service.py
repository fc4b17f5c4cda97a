# -*- coding: utf-8 -*-
"""
Collaborator-facing surface of the analytics scraper.

Whatever sits in front of this (an API, a CLI, a worker) talks to
``AnalyticsScrapingService``; nothing here raises on a failed scrape.
"""
from __future__ import annotations
from typing import Iterable, Optional, Sequence, Union

from marketplace_analytics.config import Settings, settings as default_settings
from marketplace_analytics.listings.store import ListingStore, SqlListingStore
from marketplace_analytics.platforms.registry import PlatformRegistry
from marketplace_analytics.schemas import (
    BatchReport, CookieRecord, CredentialAuth, ListingRecord, Platform,
    SchedulerStatus, ScrapeResult,
)
from marketplace_analytics.scheduler import ScrapeScheduler
from marketplace_analytics.scraping.batch import BatchScraper
from marketplace_analytics.scraping.playwright_manager import PlaywrightManager
from marketplace_analytics.scraping.retry import RetryController, RetryPolicy
from marketplace_analytics.scraping.stealth import AntiDetectionProfile
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

Credentials = Union[CredentialAuth, dict, None]
Cookies     = Optional[Sequence[Union[CookieRecord, dict]]]


class AnalyticsScrapingService:

    def __init__(
        self,
        store: ListingStore,
        batch: BatchScraper,
        scheduler: ScrapeScheduler,
        manager: Optional[PlaywrightManager] = None,
    ):
        self.store     = store
        self.batch     = batch
        self.scheduler = scheduler
        self.manager   = manager or batch.manager

    async def scrape_listings(
        self,
        listings: Iterable[Union[ListingRecord, dict]],
        credentials: Credentials = None,
        cookies: Cookies = None,
    ) -> BatchReport:
        records = [
            l if isinstance(l, ListingRecord) else ListingRecord.model_validate(l)
            for l in listings
        ]
        async with self.scheduler.lock:
            return await self.batch.scrape_listings(records, credentials, cookies)

    async def scrape_listing_by_id(
        self,
        listing_id: str,
        platform: Union[Platform, str, None] = None,
        credentials: Credentials = None,
        cookies: Cookies = None,
    ) -> ScrapeResult:
        """Scrape one platform of a stored listing and persist the outcome.

        ``platform=None`` takes the first configured platform. Unknown
        listings and missing URLs come back as error results.
        """
        try:
            wanted  = Platform(platform) if platform else None
            listing = await self.store.get(listing_id)
            if listing is None:
                return ScrapeResult.failed(f"Listing {listing_id} not found", "")

            targets = self.batch.build_targets(listing, credentials, cookies)
            if wanted is not None:
                targets = [t for t in targets if t.platform is wanted]
            if not targets:
                which = wanted.value if wanted else "any platform"
                return ScrapeResult.failed(f"No listing URL configured for {which}", "")
            return await self.scheduler.scrape_target(targets[0])
        except Exception as e:
            logger.exception("[%s] Manual scrape failed", listing_id)
            return ScrapeResult.failed(f"{type(e).__name__}: {e}", "")

    # ── Periodic ─────────────────────────────────────────────────────────────

    def start_periodic_scraping(self, interval_minutes: Optional[int] = None) -> bool:
        return self.scheduler.start(interval_minutes)

    def stop_periodic_scraping(self):
        self.scheduler.stop()

    def get_status(self) -> SchedulerStatus:
        return self.scheduler.get_status()

    async def shutdown(self):
        self.scheduler.shutdown()
        await self.manager.stop()
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()
        logger.info("Analytics service shut down")


def build_service(settings: Optional[Settings] = None) -> AnalyticsScrapingService:
    """Wire store, registry, browser, batch and scheduler from settings."""
    s        = settings or default_settings
    registry = PlatformRegistry(s.platforms_dir)
    manager  = PlaywrightManager(
        headless=s.playwright_headless,
        user_data_dir=s.user_data_dir,
        profile=AntiDetectionProfile(enabled=s.anti_detection_enabled),
    )
    batch = BatchScraper(
        registry=registry,
        manager=manager,
        retry=RetryController(RetryPolicy(s.max_attempts, s.backoff_base_seconds)),
        delay_seconds=s.batch_delay_seconds,
    )
    store     = SqlListingStore(s.database_url)
    scheduler = ScrapeScheduler(store, batch, timezone=s.scheduler_timezone)
    return AnalyticsScrapingService(store, batch, scheduler, manager)
