# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from enum import Enum
from typing import Optional

from playwright.async_api import Page, TimeoutError as PWTimeout

from marketplace_analytics.exceptions import (
    AuthenticationError, CheckpointBlockedError, ExtractionNotFoundError,
    NavigationTimeoutError, ScrapeError, UnexpectedRuntimeError,
)
from marketplace_analytics.platforms.registry import PlatformConfig
from marketplace_analytics.schemas import AuthState, MetricCounts, ScrapeResult, ScrapeTarget
from marketplace_analytics.scraping import dom
from marketplace_analytics.scraping.authenticator import Authenticator, ScrapeSession
from marketplace_analytics.scraping.diagnostics import DiagnosticsRecorder, diagnostics
from marketplace_analytics.scraping.playwright_manager import PlaywrightManager, playwright_manager
from marketplace_analytics.scraping.stealth import AntiDetectionProfile
from marketplace_analytics.utils.logger import get_logger

READY_TIMEOUT_MS = 10000

NO_DATA_MESSAGE = "No analytics data found on page"


class Landing(str, Enum):
    OK             = "ok"
    LOGIN_REQUIRED = "login_required"
    CHECKPOINT     = "checkpoint"


class View(str, Enum):
    DASHBOARD = "dashboard"
    DETAIL    = "detail"


def is_dashboard_url(config: PlatformConfig, url: str) -> bool:
    return any(re.search(p, url or "", re.I) for p in config.dashboard.url_patterns)


def classify_landing(
    config: PlatformConfig,
    landed_url: str,
    requested_url: str = "",
    has_password_field: bool = False,
) -> Landing:
    low = (landed_url or "").lower()
    if any(m.lower() in low for m in config.landing.checkpoint_url_markers):
        return Landing.CHECKPOINT
    if any(m.lower() in low for m in config.landing.login_url_markers):
        return Landing.LOGIN_REQUIRED
    if config.landing.password_field_means_login and has_password_field:
        return Landing.LOGIN_REQUIRED
    # Asked for the seller dashboard but got bounced somewhere else
    if requested_url and is_dashboard_url(config, requested_url) \
            and not is_dashboard_url(config, landed_url):
        return Landing.LOGIN_REQUIRED
    return Landing.OK


def classify_view(config: PlatformConfig, landed_url: str) -> View:
    return View.DASHBOARD if is_dashboard_url(config, landed_url) else View.DETAIL


class BaseScraper:
    """One attempt at one target: navigate, classify, locate, parse, validate.

    Subclasses override ``scrape_dashboard`` (and optionally ``scrape_detail``)
    with the platform's own list heuristics.
    """

    def __init__(
        self,
        config: PlatformConfig,
        manager: Optional[PlaywrightManager] = None,
        authenticator: Optional[Authenticator] = None,
        recorder: Optional[DiagnosticsRecorder] = None,
        profile: Optional[AntiDetectionProfile] = None,
    ):
        self.config        = config
        self.manager       = manager or playwright_manager
        self.authenticator = authenticator or Authenticator()
        self.recorder      = recorder or diagnostics
        self.profile       = profile or self.manager.profile
        self.logger        = get_logger("scraper." + config.key)

    # ------------------------------------------------------------------ #
    #  Public entry point                                                 #
    # ------------------------------------------------------------------ #

    async def scrape_once(self, target: ScrapeTarget, attempt: int = 1) -> ScrapeResult:
        label = self.config.key + "_attempt" + str(attempt)
        async with self.manager.page_session() as page:
            try:
                session = await self.authenticator.authenticate(page, target, self.config)
                metrics = await self._extract(session, target)
            except ScrapeError as err:
                if err.screenshot is None:
                    err.screenshot = await self.recorder.capture(page, label)
                raise
            except PWTimeout as err:
                shot = await self.recorder.capture(page, label + "_timeout")
                raise NavigationTimeoutError(
                    "Navigation timed out: " + str(err), screenshot=shot,
                ) from err
            except Exception as err:
                shot = await self.recorder.capture(page, label + "_error")
                raise UnexpectedRuntimeError(
                    type(err).__name__ + ": " + str(err), screenshot=shot,
                ) from err

        self.logger.info(
            "[%s] %s -> views=%d clicks=%d favorites=%d shares=%d",
            target.listing_id, target.url,
            metrics.views, metrics.clicks, metrics.favorites, metrics.shares,
        )
        return ScrapeResult.succeeded(metrics, target.url)

    async def _extract(self, session: ScrapeSession, target: ScrapeTarget) -> MetricCounts:
        page = session.page
        self.logger.info("GET %s", target.url)
        await page.goto(target.url, wait_until="domcontentloaded")
        await self.profile.human_pause(*self.config.request_delay_ms)

        has_password = False
        if self.config.landing.password_field_means_login:
            has_password = await page.query_selector('input[type="password"]') is not None

        landing = classify_landing(self.config, page.url, target.url, has_password)
        if landing is Landing.CHECKPOINT:
            session.state = AuthState.CHECKPOINT_BLOCKED
            raise CheckpointBlockedError("Checkpoint page blocks navigation: " + page.url)
        if landing is Landing.LOGIN_REQUIRED:
            session.state = AuthState.UNAUTHENTICATED
            raise AuthenticationError("Not logged in: redirected to " + page.url)

        if classify_view(self.config, page.url) is View.DASHBOARD:
            metrics = await self.scrape_dashboard(session, target)
        else:
            metrics = await self.scrape_detail(session, target)

        if metrics is None or not metrics.has_signal:
            raise ExtractionNotFoundError(NO_DATA_MESSAGE)
        return metrics

    # ------------------------------------------------------------------ #
    #  View handlers                                                      #
    # ------------------------------------------------------------------ #

    async def scrape_dashboard(
        self, session: ScrapeSession, target: ScrapeTarget,
    ) -> Optional[MetricCounts]:
        match = await self.find_card(session.page, target)
        return match.metrics if match else None

    async def scrape_detail(
        self, session: ScrapeSession, target: ScrapeTarget,
    ) -> Optional[MetricCounts]:
        page = session.page
        await self.wait_for_ready(page)
        html = await page.content()
        text = await page.inner_text("body")
        return dom.extract_detail_metrics(html, text, self.config.detail_selectors)

    async def find_card(self, page: Page, target: ScrapeTarget) -> Optional[dom.ItemMatch]:
        if not target.listing_title:
            raise ExtractionNotFoundError("No listing title to look for on the dashboard")
        await self.wait_for_ready(page)
        await self.scroll_to_load(page)
        match = dom.find_dashboard_card(
            await page.content(),
            target.listing_title,
            self.config.dashboard.item_link_selector,
            self.config.dashboard.action_button_pattern,
            base_url=page.url,
        )
        if match:
            self.logger.debug("Matched card %r", match.title)
        else:
            self.logger.info("No card matching %r", target.listing_title)
        return match

    # ------------------------------------------------------------------ #
    #  Page helpers                                                        #
    # ------------------------------------------------------------------ #

    async def wait_for_ready(self, page: Page):
        sel = self.config.dashboard.ready_selector
        if not sel:
            return
        try:
            await page.wait_for_selector(sel, timeout=READY_TIMEOUT_MS)
        except PWTimeout:
            self.logger.debug("Ready selector %s not found, continuing", sel)

    async def scroll_to_load(self, page: Page, steps: Optional[int] = None):
        """Scroll until the page stops growing, then return to the top."""
        steps = self.config.dashboard.scroll_steps if steps is None else steps
        last_height = await page.evaluate("document.body.scrollHeight")
        for _ in range(steps):
            await page.evaluate("window.scrollBy(0, window.innerHeight)")
            await self.profile.human_pause(400, 900)
            height = await page.evaluate("document.body.scrollHeight")
            if height == last_height:
                break
            last_height = height
        await page.evaluate("window.scrollTo(0, 0)")
