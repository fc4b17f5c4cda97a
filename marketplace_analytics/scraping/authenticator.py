# -*- coding: utf-8 -*-
from __future__ import annotations
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from playwright.async_api import Page, TimeoutError as PWTimeout

from marketplace_analytics.config import settings
from marketplace_analytics.exceptions import (
    AuthenticationError, CheckpointBlockedError, LoginRejectedError,
)
from marketplace_analytics.platforms.registry import PlatformConfig
from marketplace_analytics.schemas import (
    AuthState, CookieRecord, CredentialAuth, Platform, ScrapeTarget,
)
from marketplace_analytics.scraping.diagnostics import DiagnosticsRecorder, diagnostics
from marketplace_analytics.scraping.stealth import AntiDetectionProfile
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

EMAIL_WAIT_MS = 3000

_DOMAIN_RE = re.compile(r"^\.?[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)+$")

_SAME_SITE = {
    "no_restriction": "None",
    "none":           "None",
    "unspecified":    None,
    "lax":            "Lax",
    "strict":         "Strict",
}


class LoginOutcome(str, Enum):
    AUTHENTICATED      = "authenticated"
    LOGIN_REJECTED     = "login_rejected"
    CHECKPOINT_BLOCKED = "checkpoint_blocked"
    UNKNOWN            = "unknown"


@dataclass
class ScrapeSession:
    page:     Page
    platform: Platform
    state:    AuthState = AuthState.UNAUTHENTICATED


# ═══════════════════════════════════════════════════════════════════════════════
# PURE HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def classify_login_outcome(
    url: str,
    error_text: str,
    has_success_marker: bool,
    config: PlatformConfig,
) -> LoginOutcome:
    low_err = (error_text or "").lower()
    if low_err and any(k in low_err for k in config.login.error_keywords):
        return LoginOutcome.LOGIN_REJECTED
    low_url = (url or "").lower()
    markers = config.landing.login_url_markers + config.landing.checkpoint_url_markers
    if any(m.lower() in low_url for m in markers):
        return LoginOutcome.CHECKPOINT_BLOCKED
    if has_success_marker:
        return LoginOutcome.AUTHENTICATED
    return LoginOutcome.UNKNOWN


def _expiry(raw) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)):
        return int(math.floor(raw))
    text = str(raw).strip()
    try:
        return int(math.floor(float(text)))
    except ValueError:
        pass
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable cookie expiry %r, treating as session cookie", raw)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(math.floor(dt.timestamp()))


def _domain_allowed(domain: str, cookie_domain: Optional[str]) -> bool:
    if not cookie_domain:
        return True
    bare = domain.lstrip(".")
    return bare == cookie_domain or bare.endswith("." + cookie_domain)


def map_cookie(record: CookieRecord, config: PlatformConfig) -> Optional[Dict]:
    """Loose exported cookie -> Playwright cookie dict, or None to skip it."""
    if not record.name or not record.value:
        logger.warning("Skipping cookie without name/value (%r)", record.name)
        return None

    if record.domain:
        domain = record.domain.strip().lower()
        if not _DOMAIN_RE.match(domain):
            logger.warning("Skipping cookie %s: invalid domain %r", record.name, record.domain)
            return None
        if not _domain_allowed(domain, config.cookie_domain):
            logger.warning(
                "Skipping cookie %s: domain %s is outside %s",
                record.name, domain, config.cookie_domain,
            )
            return None
    elif config.cookie_domain:
        domain = "." + config.cookie_domain
    else:
        logger.warning("Skipping cookie %s: no domain", record.name)
        return None

    cookie: Dict = {
        "name":     record.name,
        "value":    record.value,
        "domain":   domain,
        "path":     record.path or "/",
        "httpOnly": bool(record.http_only),
        "secure":   record.secure is not False,
    }

    expires = _expiry(record.expires_at)
    if expires is not None:
        cookie["expires"] = expires

    if record.same_site:
        key = record.same_site.strip().lower()
        if key not in _SAME_SITE:
            logger.warning(
                "Cookie %s: unknown sameSite %r dropped", record.name, record.same_site,
            )
        elif _SAME_SITE[key]:
            cookie["sameSite"] = _SAME_SITE[key]
    return cookie


# ═══════════════════════════════════════════════════════════════════════════════
# AUTHENTICATORS
# ═══════════════════════════════════════════════════════════════════════════════


class CookieAuthenticator:

    async def inject(
        self, page: Page, cookies: List[CookieRecord], config: PlatformConfig,
    ) -> int:
        # Cookies only stick once the page is on the platform's origin
        await page.goto(config.base_url, wait_until="domcontentloaded")
        applied = 0
        for record in cookies:
            cookie = map_cookie(record, config)
            if cookie is None:
                continue
            try:
                await page.context.add_cookies([cookie])
                applied += 1
            except Exception as e:
                logger.warning("Browser rejected cookie %s: %s", record.name, e)
        logger.info("[%s] %d/%d cookies applied", config.key, applied, len(cookies))
        return applied


class CredentialAuthenticator:

    def __init__(
        self,
        profile: Optional[AntiDetectionProfile] = None,
        recorder: Optional[DiagnosticsRecorder] = None,
    ):
        self.profile  = profile or AntiDetectionProfile.from_settings()
        self.recorder = recorder or diagnostics

    async def _first_present(self, page: Page, selectors: List[str], wait: bool):
        for sel in selectors:
            try:
                if wait:
                    el = await page.wait_for_selector(sel, timeout=EMAIL_WAIT_MS)
                else:
                    el = await page.query_selector(sel)
            except PWTimeout:
                continue
            if el:
                return el
        return None

    async def _type(self, element, text: str):
        await element.click()
        for ch in text:
            await element.type(ch, delay=self.profile.keystroke_delay())

    async def _fail(self, page: Page, config: PlatformConfig, exc_cls, message: str):
        shot = await self.recorder.capture(page, config.key + "_login")
        raise exc_cls(message, screenshot=shot)

    async def _error_text(self, page: Page, config: PlatformConfig) -> str:
        texts = []
        for sel in config.login.error_selectors:
            try:
                el = await page.query_selector(sel)
                if el:
                    texts.append((await el.inner_text()).strip())
            except Exception as e:
                logger.debug("error selector %s failed: %s", sel, e)
        return " ".join(t for t in texts if t)

    async def _has_success_marker(self, page: Page, config: PlatformConfig) -> bool:
        for sel in config.login.success_selectors:
            try:
                if await page.query_selector(sel):
                    return True
            except Exception as e:
                logger.debug("success selector %s failed: %s", sel, e)
        return False

    async def login(
        self, page: Page, credentials: CredentialAuth, config: PlatformConfig,
    ) -> LoginOutcome:
        if not config.login.url:
            raise AuthenticationError(config.name + " has no login URL configured")

        await self.profile.apply_to_page(page)
        logger.info("[%s] Logging in as %s", config.key, credentials.email)
        await page.goto(config.login.url, wait_until="domcontentloaded")
        await self.profile.human_pause()

        email = await self._first_present(page, config.login.email_selectors, wait=True)
        if email is None:
            await self._fail(page, config, AuthenticationError, "Login form not found: no email field")
        password = await self._first_present(page, config.login.password_selectors, wait=False)
        if password is None:
            await self._fail(page, config, AuthenticationError, "Login form not found: no password field")

        await self._type(email, credentials.email)
        await self.profile.human_pause(300, 800)
        await self._type(password, credentials.password)
        await self.profile.human_pause(300, 800)

        submitted = False
        for sel in config.login.submit_selectors:
            btn = await page.query_selector(sel)
            if btn and await btn.is_visible():
                await btn.click()
                submitted = True
                break
        if not submitted:
            await password.press("Enter")

        try:
            await page.wait_for_load_state("networkidle", timeout=settings.login_timeout_ms)
        except PWTimeout:
            logger.debug("[%s] networkidle not reached after login", config.key)
        await self.profile.human_pause()

        outcome = classify_login_outcome(
            page.url,
            await self._error_text(page, config),
            await self._has_success_marker(page, config),
            config,
        )
        logger.info("[%s] Login outcome: %s (%s)", config.key, outcome.value, page.url)

        if outcome is LoginOutcome.LOGIN_REJECTED:
            await self._fail(page, config, LoginRejectedError, "Login failed: credentials rejected")
        if outcome is LoginOutcome.CHECKPOINT_BLOCKED:
            await self._fail(
                page, config, CheckpointBlockedError,
                "Login blocked: still on login or checkpoint page " + page.url,
            )
        if outcome is LoginOutcome.UNKNOWN:
            await self._fail(page, config, AuthenticationError, "Login result could not be confirmed")
        return outcome


class Authenticator:
    """Picks cookie injection, credential login or an anonymous session."""

    def __init__(
        self,
        cookie_auth: Optional[CookieAuthenticator] = None,
        credential_auth: Optional[CredentialAuthenticator] = None,
    ):
        self.cookie_auth     = cookie_auth or CookieAuthenticator()
        self.credential_auth = credential_auth or CredentialAuthenticator()

    async def authenticate(
        self, page: Page, target: ScrapeTarget, config: PlatformConfig,
    ) -> ScrapeSession:
        session = ScrapeSession(page=page, platform=target.platform)
        if target.cookies:
            await self.cookie_auth.inject(page, target.cookies, config)
            session.state = AuthState.AUTHENTICATED
        elif target.credentials:
            await self.credential_auth.login(page, target.credentials, config)
            session.state = AuthState.AUTHENTICATED
        else:
            logger.debug("[%s] No auth supplied, continuing anonymously", config.key)
        return session
