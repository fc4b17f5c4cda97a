# -*- coding: utf-8 -*-
"""
Shared fixtures. Playwright is replaced by small in-memory fakes so every test
runs without a browser.
"""
from __future__ import annotations
import os
import tempfile

# Before the package reads its settings
os.environ.setdefault("ANTI_DETECTION_ENABLED", "false")
os.environ.setdefault("DIAGNOSTICS_DIR", tempfile.mkdtemp(prefix="diag_"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PWTimeout

from marketplace_analytics.platforms.registry import PlatformRegistry
from marketplace_analytics.scraping.stealth import AntiDetectionProfile

CONFIGS_DIR = Path(__file__).resolve().parent.parent / "marketplace_analytics" / "platforms" / "configs"


class FakeElement:
    def __init__(self, text: str = "", visible: bool = True):
        self.text    = text
        self.visible = visible
        self.typed   = ""
        self.clicks  = 0
        self.pressed: List[str] = []

    async def click(self):
        self.clicks += 1

    async def type(self, text, delay=0):
        self.typed += text

    async def press(self, key):
        self.pressed.append(key)

    async def is_visible(self):
        return self.visible

    async def inner_text(self):
        return self.text


class FakeContext:
    def __init__(self, reject=()):
        self.cookies: List[dict] = []
        self.reject = set(reject)
        self.closed = False

    async def add_cookies(self, cookies):
        for c in cookies:
            if c["name"] in self.reject:
                raise Exception("Cookie should have a valid expires")
            self.cookies.append(c)

    async def close(self):
        self.closed = True


class FakePage:
    """Routes map a requested URL to (landed_url, html), or to an exception."""

    def __init__(
        self,
        routes: Optional[Dict[str, object]] = None,
        elements: Optional[Dict[str, FakeElement]] = None,
        context: Optional[FakeContext] = None,
        on_click: Optional[Callable[["FakePage"], None]] = None,
    ):
        self.routes      = routes or {}
        self.elements    = elements or {}
        self.context     = context or FakeContext()
        self.url         = "about:blank"
        self.html        = "<html><body></body></html>"
        self.visited:    List[str] = []
        self.closed      = False
        self.screenshots: List[str] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        route = self.routes.get(url)
        if isinstance(route, BaseException):
            raise route
        landed, html = route if route else (url, "<html><body></body></html>")
        self.url, self.html = landed, html

    async def content(self):
        return self.html

    async def inner_text(self, selector):
        return BeautifulSoup(self.html, "lxml").get_text(" ", strip=True)

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def wait_for_selector(self, selector, timeout=None):
        el = self.elements.get(selector)
        if el is None:
            raise PWTimeout("Timeout waiting for " + selector)
        return el

    async def wait_for_load_state(self, state=None, timeout=None):
        return None

    async def wait_for_function(self, js, timeout=None):
        return None

    async def evaluate(self, js):
        if "scrollHeight" in js:
            return 1000
        return None

    async def screenshot(self, path, full_page=False):
        Path(path).write_bytes(b"\x89PNG")
        self.screenshots.append(path)

    async def add_init_script(self, script):
        return None

    async def set_viewport_size(self, size):
        return None

    async def set_extra_http_headers(self, headers):
        return None

    def set_default_timeout(self, ms):
        return None

    async def close(self):
        self.closed = True


class FakeManager:
    """Stands in for PlaywrightManager: hands out FakePages from a factory."""

    def __init__(self, page_factory: Callable[[], FakePage]):
        self.page_factory = page_factory
        self.pages: List[FakePage] = []
        self.profile = AntiDetectionProfile(enabled=False)
        self.stopped = False

    @asynccontextmanager
    async def page_session(self):
        page = self.page_factory()
        self.pages.append(page)
        try:
            yield page
        finally:
            await page.close()

    async def stop(self):
        self.stopped = True


@pytest.fixture
def registry() -> PlatformRegistry:
    return PlatformRegistry(str(CONFIGS_DIR))


@pytest.fixture
def facebook_config(registry):
    return registry.get("facebook")


@pytest.fixture
def kijiji_config(registry):
    return registry.get("kijiji")


@pytest.fixture
def no_sleep():
    calls: List[float] = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
