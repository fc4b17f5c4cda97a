# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from playwright.async_api import (
    async_playwright, Browser, BrowserContext,
    Page, Playwright,
)
from marketplace_analytics.config import settings
from marketplace_analytics.scraping.stealth import AntiDetectionProfile
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

SINGLETON_LOCK = "SingletonLock"


def resolve_profile_dir(raw: str) -> Path:
    """Absolute, existing profile dir with any stale Chromium lock removed."""
    path = Path(raw).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    lock = path / SINGLETON_LOCK
    if lock.exists() or lock.is_symlink():
        try:
            lock.unlink()
            logger.info("Removed stale profile lock: %s", lock)
        except OSError as e:
            logger.warning("Could not remove profile lock %s: %s", lock, e)
    return path


class PlaywrightManager:
    """Owns the browser process. Everything else asks it for pages."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        user_data_dir: Optional[str] = None,
        profile: Optional[AntiDetectionProfile] = None,
        playwright_factory=async_playwright,
    ):
        self.headless       = settings.playwright_headless if headless is None else headless
        self.user_data_dir  = settings.user_data_dir if user_data_dir is None else user_data_dir
        self.profile        = profile or AntiDetectionProfile.from_settings()
        self._factory       = playwright_factory
        self._playwright:   Optional[Playwright]     = None
        self._handle:       Optional[Union[Browser, BrowserContext]] = None
        self._lock:         Optional[asyncio.Lock]   = None

    @property
    def persistent(self) -> bool:
        return bool(self.user_data_dir)

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    async def start(self) -> Union[Browser, BrowserContext]:
        if self._handle is not None:
            return self._handle
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            # A concurrent first caller may have launched while we waited
            if self._handle is not None:
                return self._handle
            self._playwright = await self._factory().start()
            chromium = self._playwright.chromium
            if self.persistent:
                profile_dir  = resolve_profile_dir(self.user_data_dir)
                self._handle = await chromium.launch_persistent_context(
                    str(profile_dir),
                    headless=self.headless,
                    args=self.profile.launch_args,
                    **self.profile.context_options(),
                )
                logger.info(
                    "Playwright started (headless=%s, profile=%s)",
                    self.headless, profile_dir,
                )
            else:
                self._handle = await chromium.launch(
                    headless=self.headless,
                    args=self.profile.launch_args,
                )
                logger.info("Playwright started (headless=%s)", self.headless)
        return self._handle

    async def new_page(self) -> Page:
        handle = await self.start()
        if self.persistent:
            page = await handle.new_page()
        else:
            # Dedicated context per page: separate cookies, separate fingerprint
            ctx  = await handle.new_context(**self.profile.context_options())
            page = await ctx.new_page()
        page.set_default_timeout(settings.navigation_timeout_ms)
        return page

    async def close_page(self, page: Page):
        try:
            await page.close()
        except Exception as e:
            logger.debug("page.close failed: %s", e)
        if not self.persistent:
            try:
                await page.context.close()
            except Exception as e:
                logger.debug("context.close failed: %s", e)

    @asynccontextmanager
    async def page_session(self) -> AsyncIterator[Page]:
        page = await self.new_page()
        try:
            yield page
        finally:
            await self.close_page(page)

    async def stop(self):
        if self._handle is not None:
            try:
                await self._handle.close()
            except Exception as e:
                logger.warning("Browser close failed: %s", e)
            self._handle = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning("Playwright stop failed: %s", e)
            self._playwright = None
            logger.info("Playwright stopped")


playwright_manager = PlaywrightManager()
