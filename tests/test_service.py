# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio

from marketplace_analytics.config import Settings
from marketplace_analytics.schemas import (
    ListingRecord, MetricCounts, Platform, PlatformListing, ScrapeResult, ScrapeStatus,
)
from marketplace_analytics.scheduler import ScrapeScheduler
from marketplace_analytics.scraping.batch import BatchScraper
from marketplace_analytics.scraping.retry import RetryController, RetryPolicy
from marketplace_analytics.service import AnalyticsScrapingService, build_service

from conftest import FakeManager, FakePage
from test_scheduler import FakeAPScheduler, MemoryStore

FB_URL = "https://www.facebook.com/marketplace/you/selling"
KJ_URL = "https://www.kijiji.ca/v-bikes/city/road-bike/123"


class CountingScraper:
    def __init__(self, platform_key, fail=False):
        self.key = platform_key
        self.fail = fail

    async def scrape_once(self, target, attempt):
        if self.fail:
            raise RuntimeError("crash")
        return ScrapeResult.succeeded(MetricCounts(views=9), target.url)


def _service(registry, no_sleep, listings=(), fail=False):
    store = MemoryStore(listings)
    manager = FakeManager(FakePage)
    batch = BatchScraper(
        registry=registry,
        manager=manager,
        retry=RetryController(RetryPolicy(1, 2.0), sleep=no_sleep),
        delay_seconds=0,
        sleep=no_sleep,
        scraper_factory=lambda cfg: CountingScraper(cfg.key, fail),
    )
    scheduler = ScrapeScheduler(store, batch, scheduler=FakeAPScheduler())
    return AnalyticsScrapingService(store, batch, scheduler), store, manager


def _listing(lid="A", fb=FB_URL, kj=KJ_URL):
    platforms = {}
    if fb:
        platforms[Platform.facebook] = PlatformListing(posted=True, listing_url=fb)
    if kj:
        platforms[Platform.kijiji] = PlatformListing(posted=True, listing_url=kj)
    return ListingRecord(id=lid, title="Road Bike", platforms=platforms)


class TestScrapeListingById:

    def test_defaults_to_first_configured_platform(self, registry, no_sleep):
        svc, store, _ = _service(registry, no_sleep, [_listing()])
        result = asyncio.run(svc.scrape_listing_by_id("A"))
        assert result.status is ScrapeStatus.success
        assert result.listing_url == FB_URL
        assert store.saved == [("A", Platform.facebook, "success")]

    def test_explicit_platform(self, registry, no_sleep):
        svc, store, _ = _service(registry, no_sleep, [_listing()])
        result = asyncio.run(svc.scrape_listing_by_id("A", platform="kijiji"))
        assert result.listing_url == KJ_URL
        assert store.saved == [("A", Platform.kijiji, "success")]

    def test_unknown_listing_is_error_result(self, registry, no_sleep):
        svc, store, _ = _service(registry, no_sleep)
        result = asyncio.run(svc.scrape_listing_by_id("ghost"))
        assert result.status is ScrapeStatus.error
        assert "not found" in result.error_message
        assert store.saved == []

    def test_unconfigured_platform(self, registry, no_sleep):
        svc, _, _ = _service(registry, no_sleep, [_listing(kj=None)])
        result = asyncio.run(svc.scrape_listing_by_id("A", platform=Platform.kijiji))
        assert result.status is ScrapeStatus.error
        assert "kijiji" in result.error_message

    def test_bad_platform_name(self, registry, no_sleep):
        svc, _, _ = _service(registry, no_sleep, [_listing()])
        result = asyncio.run(svc.scrape_listing_by_id("A", platform="craigslist"))
        assert result.status is ScrapeStatus.error

    def test_scrape_failure_persisted_not_raised(self, registry, no_sleep):
        svc, store, _ = _service(registry, no_sleep, [_listing()], fail=True)
        result = asyncio.run(svc.scrape_listing_by_id("A"))
        assert result.status is ScrapeStatus.error
        assert store.saved == [("A", Platform.facebook, "error")]


class TestFacade:

    def test_scrape_listings_accepts_dicts(self, registry, no_sleep):
        svc, _, _ = _service(registry, no_sleep)
        report = asyncio.run(svc.scrape_listings([
            {"id": "X", "title": "Chair", "platforms": {"kijiji": {"posted": True, "listing_url": KJ_URL}}},
        ]))
        assert report[0].results[Platform.kijiji].views == 9

    def test_periodic_controls(self, registry, no_sleep):
        svc, _, _ = _service(registry, no_sleep)
        assert svc.start_periodic_scraping(15) is True
        assert svc.start_periodic_scraping(15) is False
        assert svc.get_status().is_running
        svc.stop_periodic_scraping()
        assert not svc.get_status().is_running

    def test_shutdown_stops_browser(self, registry, no_sleep):
        svc, _, manager = _service(registry, no_sleep)
        svc.start_periodic_scraping(15)
        asyncio.run(svc.shutdown())
        assert manager.stopped
        assert not svc.get_status().is_running


class TestBuildService:

    def test_wires_from_settings(self, tmp_path):
        s = Settings(
            database_url=f"sqlite:///{tmp_path / 'svc.db'}",
            batch_delay_seconds=1.5,
            max_attempts=2,
            anti_detection_enabled=False,
        )
        svc = build_service(s)
        assert svc.batch.delay_seconds == 1.5
        assert svc.batch.retry.policy.max_attempts == 2
        assert svc.store.url.startswith("sqlite+aiosqlite:///")
        assert svc.manager.profile.enabled is False
        assert svc.batch.registry.get("facebook") is not None
