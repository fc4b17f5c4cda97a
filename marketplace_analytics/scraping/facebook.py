# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import Optional

from marketplace_analytics.schemas import MetricCounts, ScrapeTarget
from marketplace_analytics.scraping import dom
from marketplace_analytics.scraping.authenticator import ScrapeSession
from marketplace_analytics.scraping.base import BaseScraper


class FacebookScraper(BaseScraper):
    """Seller dashboard ("Your listings") cards, with a detour to the item page
    when the card itself shows no numbers."""

    async def scrape_dashboard(
        self, session: ScrapeSession, target: ScrapeTarget,
    ) -> Optional[MetricCounts]:
        page  = session.page
        match = await self.find_card(page, target)
        if match and match.metrics.has_signal:
            return match.metrics

        item_url = match.item_url if match else None
        if not item_url and self.config.dashboard.item_link_selector:
            item_url = dom.find_item_link(
                await page.content(),
                target.listing_title,
                self.config.dashboard.item_link_selector,
                base_url=page.url,
            )
        if not item_url:
            return match.metrics if match else None

        self.logger.info("[%s] No counters on card, opening %s", target.listing_id, item_url)
        await page.goto(item_url, wait_until="domcontentloaded")
        await self.profile.human_pause(*self.config.request_delay_ms)
        return await self.scrape_detail(session, target)
