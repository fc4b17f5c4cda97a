# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from marketplace_analytics.config import settings

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]

VIEWPORTS = [
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1920, "height": 1080},
    {"width": 1280, "height": 800},
]

# Stealth JS: removes webdriver fingerprints
_STEALTH_JS = """
// Remove webdriver flag
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});

// Fake plugins
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        {name:'Chrome PDF Plugin', filename:'internal-pdf-viewer', description:'Portable Document Format', length:1},
        {name:'Chrome PDF Viewer', filename:'mhjfbmdgcfjbbpaeojofohoefgiehjai', description:'', length:1},
        {name:'Native Client', filename:'internal-nacl-plugin', description:'', length:2}
    ]
});

Object.defineProperty(navigator, 'languages', {get: () => %(languages)s});

// ChromeDriver leaves cdc_* globals behind
for (const key of Object.keys(window)) {
    if (key.startsWith('cdc_')) { try { delete window[key]; } catch (e) {} }
}

// Chrome object
window.chrome = window.chrome || {runtime: {}, loadTimes: function() {}, csi: function() {}};

// Permissions
const origQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (p) =>
    p.name === 'notifications'
        ? Promise.resolve({state: Notification.permission})
        : origQuery(p);
"""

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--disable-notifications",
    "--disable-popup-blocking",
]


@dataclass
class AntiDetectionProfile:
    """Fingerprint and pacing applied to pages that log in or scrape.

    A disabled profile is a no-op: no init script, default context options and
    zero delays. Tests and CI run with it disabled.
    """
    enabled:         bool                  = True
    user_agents:     List[str]             = field(default_factory=lambda: list(USER_AGENTS))
    viewports:       List[Dict[str, int]]  = field(default_factory=lambda: list(VIEWPORTS))
    locale:          str                   = "en-US"
    timezone_id:     str                   = "America/Toronto"
    languages:       List[str]             = field(default_factory=lambda: ["en-US", "en"])
    keystroke_ms:    tuple                 = (50, 150)
    pause_ms:        tuple                 = (1000, 2500)

    @classmethod
    def from_settings(cls) -> "AntiDetectionProfile":
        return cls(enabled=settings.anti_detection_enabled)

    @property
    def launch_args(self) -> List[str]:
        return list(LAUNCH_ARGS) if self.enabled else []

    @property
    def init_script(self) -> str:
        langs = "[" + ",".join("'" + lang + "'" for lang in self.languages) + "]"
        return _STEALTH_JS % {"languages": langs}

    def viewport(self) -> Dict[str, int]:
        # Jitter so consecutive sessions don't report identical sizes
        base = random.choice(self.viewports)
        return {
            "width":  base["width"] + random.randint(-40, 40),
            "height": base["height"] + random.randint(-30, 30),
        }

    def headers(self) -> Dict[str, str]:
        return {
            "Accept": (
                "text/html,application/xhtml+xml,"
                "application/xml;q=0.9,image/avif,"
                "image/webp,image/apng,*/*;q=0.8"
            ),
            "Accept-Language": ",".join(self.languages) + ";q=0.9",
            "Upgrade-Insecure-Requests": "1",
        }

    def context_options(self) -> Dict:
        if not self.enabled:
            return {}
        return {
            "viewport":            self.viewport(),
            "user_agent":          random.choice(self.user_agents),
            "locale":              self.locale,
            "timezone_id":         self.timezone_id,
            "extra_http_headers":  self.headers(),
        }

    async def apply_to_page(self, page) -> None:
        if not self.enabled:
            return
        await page.add_init_script(self.init_script)
        await page.set_viewport_size(self.viewport())
        await page.set_extra_http_headers(self.headers())

    def keystroke_delay(self) -> float:
        """Per-character typing delay in milliseconds."""
        if not self.enabled:
            return 0
        return random.uniform(*self.keystroke_ms)

    async def human_pause(self, min_ms: Optional[int] = None, max_ms: Optional[int] = None):
        if not self.enabled:
            return
        lo = self.pause_ms[0] if min_ms is None else min_ms
        hi = self.pause_ms[1] if max_ms is None else max_ms
        await asyncio.sleep(random.uniform(lo / 1000.0, hi / 1000.0))
