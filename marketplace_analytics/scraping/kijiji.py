# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from typing import List, Optional

from playwright.async_api import Page, TimeoutError as PWTimeout

from marketplace_analytics.exceptions import ExtractionNotFoundError
from marketplace_analytics.schemas import MetricCounts, ScrapeTarget
from marketplace_analytics.scraping import dom
from marketplace_analytics.scraping.authenticator import ScrapeSession
from marketplace_analytics.scraping.base import BaseScraper

VIEWS_WAIT_MS = 8000

_VIEWS_LOADED_JS = "() => /views?/i.test(document.body ? document.body.innerText : '')"


def dashboard_page_urls(current_url: str, page_pattern: Optional[str], max_pages: int) -> List[str]:
    """'.../m-my-ads/active/2?x=1' -> ['.../m-my-ads/active/1', ..., '/<max_pages>']."""
    if not page_pattern:
        return []
    m = re.match(page_pattern, current_url or "", re.I)
    if not m:
        return []
    base = m.group(1).rstrip("/")
    return [base + "/" + str(n) for n in range(1, max_pages + 1)]


def current_page_url(current_url: str, page_pattern: Optional[str]) -> Optional[str]:
    """Numbered form of the landed dashboard URL; no page suffix means page 1."""
    if not page_pattern:
        return None
    m = re.match(page_pattern, current_url or "", re.I)
    if not m:
        return None
    return m.group(1).rstrip("/") + "/" + (m.group(2) or "1")


class KijijiScraper(BaseScraper):
    """The "My Ads" table, paged. Counters for a row come from the views column when
    the table has one, else from the positional number heuristic."""

    async def _find_row(self, page: Page, target: ScrapeTarget) -> Optional[dom.ItemMatch]:
        try:
            await page.wait_for_function(_VIEWS_LOADED_JS, timeout=VIEWS_WAIT_MS)
        except PWTimeout:
            self.logger.debug("No 'views' text on %s yet", page.url)
        return dom.find_dashboard_row(
            await page.content(),
            target.listing_title,
            self.config.dashboard.row_keywords_pattern,
        )

    async def scrape_dashboard(
        self, session: ScrapeSession, target: ScrapeTarget,
    ) -> Optional[MetricCounts]:
        if not target.listing_title:
            raise ExtractionNotFoundError("No listing title to look for on the dashboard")
        page = session.page

        match = await self._find_row(page, target)
        if match:
            return match.metrics

        pattern = self.config.dashboard.page_url_pattern
        visited = {current_page_url(page.url, pattern) or page.url.rstrip("/")}
        for url in dashboard_page_urls(page.url, pattern, self.config.dashboard.max_pages):
            if url in visited:
                continue
            visited.add(url)
            self.logger.info("[%s] Not on this page, trying %s", target.listing_id, url)
            await page.goto(url, wait_until="domcontentloaded")
            await self.profile.human_pause(*self.config.request_delay_ms)
            match = await self._find_row(page, target)
            if match:
                self.logger.debug("Matched row %r on %s", match.title, url)
                return match.metrics

        self.logger.info("No row matching %r", target.listing_title)
        return None
