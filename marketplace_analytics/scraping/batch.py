# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio
import importlib
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from marketplace_analytics.config import settings
from marketplace_analytics.platforms.registry import (
    PlatformConfig, PlatformRegistry, platform_registry,
)
from marketplace_analytics.schemas import (
    BatchEntry, BatchReport, CookieRecord, CredentialAuth, ListingRecord,
    PLATFORM_ORDER, ScrapeResult, ScrapeStatus, ScrapeTarget,
)
from marketplace_analytics.scraping.base import BaseScraper
from marketplace_analytics.scraping.playwright_manager import PlaywrightManager, playwright_manager
from marketplace_analytics.scraping.retry import RetryController
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

ScraperFactory = Callable[[PlatformConfig], BaseScraper]


def _class_name(key: str) -> str:
    """facebook → FacebookScraper | some_site → SomeSiteScraper"""
    return "".join(p.capitalize() for p in key.split("_")) + "Scraper"


def load_scraper(config: PlatformConfig, **kwargs) -> BaseScraper:
    module_path = config.scraper_module or f"marketplace_analytics.scraping.{config.key}"
    mod   = importlib.import_module(module_path)
    klass = getattr(mod, _class_name(config.key))
    return klass(config, **kwargs)


def _as_cookies(cookies) -> Optional[List[CookieRecord]]:
    """Malformed records are dropped one by one; the rest still apply."""
    if not cookies:
        return None
    records: List[CookieRecord] = []
    for c in cookies:
        if isinstance(c, CookieRecord):
            records.append(c)
            continue
        try:
            records.append(CookieRecord.model_validate(c))
        except ValidationError as e:
            name = c.get("name") if isinstance(c, dict) else None
            logger.warning("Skipping malformed cookie %r: %d field error(s)", name, e.error_count())
    return records or None


def _as_credentials(credentials) -> Optional[CredentialAuth]:
    if credentials is None or isinstance(credentials, CredentialAuth):
        return credentials
    return CredentialAuth.model_validate(credentials)


class BatchScraper:
    """Scrapes listings one after another, each platform through the retry
    controller, pausing between listings."""

    def __init__(
        self,
        registry: Optional[PlatformRegistry] = None,
        manager: Optional[PlaywrightManager] = None,
        retry: Optional[RetryController] = None,
        delay_seconds: Optional[float] = None,
        sleep=asyncio.sleep,
        scraper_factory: Optional[ScraperFactory] = None,
    ):
        self.registry      = registry or platform_registry
        self.manager       = manager or playwright_manager
        self.retry         = retry or RetryController()
        self.delay_seconds = settings.batch_delay_seconds if delay_seconds is None else delay_seconds
        self._sleep        = sleep
        self._factory      = scraper_factory or (lambda cfg: load_scraper(cfg, manager=self.manager))
        self._scrapers:    Dict[str, BaseScraper] = {}

    # ── Targets ──────────────────────────────────────────────────────────────

    def build_targets(
        self,
        listing: ListingRecord,
        credentials: Union[CredentialAuth, dict, None] = None,
        cookies: Optional[Sequence[Union[CookieRecord, dict]]] = None,
    ) -> List[ScrapeTarget]:
        cookie_auth = _as_cookies(cookies)
        cred_auth   = _as_credentials(credentials)
        targets: List[ScrapeTarget] = []
        for platform in PLATFORM_ORDER:
            url = listing.configured_url(platform)
            if not url:
                continue
            config = self.registry.get(platform)
            if config is None or not config.enabled:
                logger.warning("[%s] %s is not configured, skipping", listing.id, platform.value)
                continue
            auth = None
            if config.accepts_auth_override:
                auth = cookie_auth or cred_auth
            targets.append(ScrapeTarget(
                listing_id=listing.id,
                platform=platform,
                url=url,
                listing_title=listing.title,
                auth=auth,
            ))
        return targets

    # ── Single target ────────────────────────────────────────────────────────

    def scraper_for(self, config: PlatformConfig) -> BaseScraper:
        if config.key not in self._scrapers:
            self._scrapers[config.key] = self._factory(config)
        return self._scrapers[config.key]

    async def scrape_target(self, target: ScrapeTarget) -> ScrapeResult:
        """Retry-wrapped scrape of one target. Never raises."""
        config = self.registry.get(target.platform)
        if config is None:
            return ScrapeResult.failed(
                f"Platform '{target.platform.value}' not found in registry", target.url,
            )
        try:
            scraper = self.scraper_for(config)
        except (ImportError, AttributeError) as e:
            logger.error("[%s] Could not load scraper: %s", config.key, e)
            return ScrapeResult.failed(f"Could not load scraper for {config.name}: {e}", target.url)
        return await self.retry.run(target, scraper.scrape_once)

    # ── Batch ────────────────────────────────────────────────────────────────

    async def scrape_listings(
        self,
        listings: Iterable[ListingRecord],
        credentials: Union[CredentialAuth, dict, None] = None,
        cookies: Optional[Sequence[Union[CookieRecord, dict]]] = None,
    ) -> BatchReport:
        listings = list(listings)
        logger.info("Batch: %d listings", len(listings))
        report: BatchReport = []

        for idx, listing in enumerate(listings):
            if idx > 0 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)

            entry = BatchEntry(listing_id=listing.id)
            try:
                for target in self.build_targets(listing, credentials, cookies):
                    entry.results[target.platform] = await self.scrape_target(target)
                if entry.results and all(
                    r.status is ScrapeStatus.error for r in entry.results.values()
                ):
                    entry.error = "; ".join(
                        f"{p.value}: {r.error_message}" for p, r in entry.results.items()
                    )
            except Exception as e:
                logger.exception("[%s] Batch entry failed", listing.id)
                entry.error = f"{type(e).__name__}: {e}"
            report.append(entry)

        logger.info(
            "Batch done: %d listings, %d with errors",
            len(report), sum(1 for e in report if e.error),
        )
        return report
