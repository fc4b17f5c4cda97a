# -*- coding: utf-8 -*-
"""
APScheduler wiring for the periodic analytics scrape.

One interval job re-scrapes every listing that has a platform URL. Manual
scrapes and the periodic job share one lock, so they queue rather than run
side by side. Uses AsyncIOScheduler to live inside the host's event loop.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from marketplace_analytics.config import settings
from marketplace_analytics.exceptions import ListingNotFoundError
from marketplace_analytics.listings.store import ListingStore
from marketplace_analytics.schemas import (
    BatchEntry, BatchReport, RunSummary, SchedulerStatus, ScrapeResult,
    ScrapeTarget, utcnow,
)
from marketplace_analytics.scraping.batch import BatchScraper
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

PERIODIC_JOB_ID = "listing_analytics_scrape"


@dataclass
class SchedulerState:
    is_running:   bool                 = False
    job_id:       Optional[str]        = None
    last_summary: Optional[RunSummary] = None


class ScrapeScheduler:

    def __init__(
        self,
        store: ListingStore,
        batch: BatchScraper,
        scheduler: Optional[AsyncIOScheduler] = None,
        state: Optional[SchedulerState] = None,
        timezone: Optional[str] = None,
    ):
        self.store     = store
        self.batch     = batch
        self.scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone or settings.scheduler_timezone
        )
        self.state     = state or SchedulerState()
        # Lazy: created inside the running loop, not at construction
        self._lock:    Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Serializes scheduled and manual runs."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, interval_minutes: Optional[int] = None) -> bool:
        """Register the periodic job, first run immediately. False if already running."""
        if self.state.is_running:
            logger.info("Periodic scraping already running")
            return False

        minutes = settings.scrape_interval_minutes if interval_minutes is None else interval_minutes
        if minutes < 1:
            raise ValueError("interval_minutes must be >= 1")

        self.state.is_running = True
        try:
            self.scheduler.add_job(
                func=self._periodic_job,
                trigger="interval",
                minutes=minutes,
                id=PERIODIC_JOB_ID,
                replace_existing=True,
                next_run_time=datetime.now(timezone.utc),
                coalesce=True,
                max_instances=1,  # MANDATORY: prevents overlap
            )
            if not self.scheduler.running:
                self.scheduler.start()
        except Exception:
            self.state.is_running = False
            raise

        self.state.job_id = PERIODIC_JOB_ID
        logger.info("Periodic scraping started: every %d min", minutes)
        return True

    def stop(self):
        if not self.state.is_running:
            return
        try:
            self.scheduler.remove_job(PERIODIC_JOB_ID)
        except JobLookupError:
            logger.debug("Periodic job already gone")
        self.state.is_running = False
        self.state.job_id     = None
        logger.info("Periodic scraping stopped")

    def shutdown(self):
        """Stop the job and the underlying scheduler. Call on host teardown."""
        self.stop()
        try:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
                logger.info("Scheduler shut down")
        except Exception as e:
            logger.warning("Scheduler shutdown error: %s", e)

    def get_status(self) -> SchedulerStatus:
        job = self.scheduler.get_job(PERIODIC_JOB_ID) if self.state.is_running else None
        return SchedulerStatus(
            is_running=self.state.is_running,
            active_jobs=[j.id for j in self.scheduler.get_jobs()],
            next_run_time=getattr(job, "next_run_time", None),
            last_summary=self.state.last_summary,
        )

    # ── Runs ─────────────────────────────────────────────────────────────────

    async def _persist(self, report: BatchReport):
        for entry in report:
            for platform, result in entry.results.items():
                try:
                    await self.store.save(entry.listing_id, platform, result)
                except Exception as e:
                    logger.error(
                        "[%s/%s] Could not save result: %s",
                        entry.listing_id, platform.value, e, exc_info=True,
                    )

    async def scrape_all(self, credentials=None, cookies=None) -> RunSummary:
        async with self.lock:
            summary  = RunSummary()
            listings = await self.store.find_scrapeable()
            logger.info("Scrape run: %d listings", len(listings))

            report = await self.batch.scrape_listings(listings, credentials, cookies)
            await self._persist(report)

            summary.listings    = len(report)
            summary.failed      = sum(1 for e in report if e.error)
            summary.succeeded   = summary.listings - summary.failed
            summary.finished_at = utcnow()
            self.state.last_summary = summary
            logger.info(
                "Scrape run done: %d ok, %d failed",
                summary.succeeded, summary.failed,
            )
            return summary

    async def scrape_one(self, listing_id: str, credentials=None, cookies=None) -> BatchEntry:
        listing = await self.store.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        async with self.lock:
            report = await self.batch.scrape_listings([listing], credentials, cookies)
            await self._persist(report)
            return report[0]

    async def scrape_target(self, target: ScrapeTarget) -> ScrapeResult:
        """One platform of one listing, queued behind any running batch."""
        async with self.lock:
            result = await self.batch.scrape_target(target)
            await self._persist([
                BatchEntry(listing_id=target.listing_id, results={target.platform: result})
            ])
            return result

    async def _periodic_job(self):
        try:
            await self.scrape_all()
        except Exception as e:
            logger.error("Periodic scrape job failed: %s", e, exc_info=True)
