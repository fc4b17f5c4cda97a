# -*- coding: utf-8 -*-
"""
Central Pydantic schemas for targets, results and batch reports.
All scraping modules import from here.

Pydantic v2 compliant: no class Config anywhere.
"""
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, model_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════


class Platform(str, Enum):
    facebook = "facebook"
    kijiji   = "kijiji"


# Platform A is always scraped before platform B
PLATFORM_ORDER = (Platform.facebook, Platform.kijiji)


class ScrapeStatus(str, Enum):
    success = "success"
    error   = "error"
    pending = "pending"


class AuthState(str, Enum):
    UNAUTHENTICATED    = "unauthenticated"
    AUTHENTICATED      = "authenticated"
    CHECKPOINT_BLOCKED = "checkpoint_blocked"


# ═══════════════════════════════════════════════════════════════════════════════
# AUTH
# ═══════════════════════════════════════════════════════════════════════════════


class CredentialAuth(BaseModel):
    email:    str
    password: str = Field(..., repr=False)


class CookieRecord(BaseModel):
    """One cookie as exported by a browser extension. Fields are loose on purpose;
    ``map_cookie`` translates them into the strict Playwright shape."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name:       str                          = ""
    value:      str                          = ""
    domain:     Optional[str]                = None
    path:       Optional[str]                = None
    expires_at: Optional[Union[float, str]]  = Field(
        None, validation_alias=AliasChoices("expires_at", "expiresAt", "expirationDate", "expires"),
    )
    http_only:  bool                         = Field(
        False, validation_alias=AliasChoices("http_only", "httpOnly"),
    )
    secure:     Optional[bool]               = None
    same_site:  Optional[str]                = Field(
        None, validation_alias=AliasChoices("same_site", "sameSite"),
    )


CookieAuth = List[CookieRecord]


# ═══════════════════════════════════════════════════════════════════════════════
# TARGETS
# ═══════════════════════════════════════════════════════════════════════════════


class ScrapeTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    listing_id:    str
    platform:      Platform
    url:           str
    listing_title: str = ""
    auth:          Optional[Union[CredentialAuth, List[CookieRecord]]] = None

    @property
    def cookies(self) -> Optional[List[CookieRecord]]:
        return self.auth if isinstance(self.auth, list) and self.auth else None

    @property
    def credentials(self) -> Optional[CredentialAuth]:
        return self.auth if isinstance(self.auth, CredentialAuth) else None


class PlatformListing(BaseModel):
    posted:      bool          = False
    listing_url: Optional[str] = None


class ListingRecord(BaseModel):
    id:        str
    title:     str = ""
    platforms: Dict[Platform, PlatformListing] = Field(default_factory=dict)

    def configured_url(self, platform: Platform) -> Optional[str]:
        entry = self.platforms.get(platform)
        if not entry or not entry.posted:
            return None
        url = (entry.listing_url or "").strip()
        return url or None


# ═══════════════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════════════


class MetricCounts(BaseModel):
    views:     int = Field(0, ge=0)
    clicks:    int = Field(0, ge=0)
    favorites: int = Field(0, ge=0)
    shares:    int = Field(0, ge=0)

    @property
    def has_signal(self) -> bool:
        return any(v > 0 for v in (self.views, self.clicks, self.favorites, self.shares))


class ScrapeResult(BaseModel):
    views:         int           = Field(0, ge=0)
    clicks:        int           = Field(0, ge=0)
    favorites:     int           = Field(0, ge=0)
    shares:        int           = Field(0, ge=0)
    status:        ScrapeStatus  = ScrapeStatus.pending
    error_message: Optional[str] = None
    last_scraped:  datetime      = Field(default_factory=utcnow)
    listing_url:   str           = ""

    @model_validator(mode="after")
    def _check_status(self) -> "ScrapeResult":
        if self.status is ScrapeStatus.success and not self.metrics.has_signal:
            raise ValueError("a successful scrape needs at least one non-zero metric")
        if self.status is ScrapeStatus.error and not self.error_message:
            raise ValueError("an error result needs an error_message")
        return self

    @property
    def metrics(self) -> MetricCounts:
        return MetricCounts(
            views=self.views, clicks=self.clicks,
            favorites=self.favorites, shares=self.shares,
        )

    @classmethod
    def succeeded(cls, metrics: MetricCounts, listing_url: str) -> "ScrapeResult":
        return cls(
            **metrics.model_dump(),
            status=ScrapeStatus.success,
            listing_url=listing_url,
        )

    @classmethod
    def failed(cls, message: str, listing_url: str) -> "ScrapeResult":
        return cls(
            status=ScrapeStatus.error,
            error_message=message or "Max retries exceeded",
            listing_url=listing_url,
        )

    def to_analytics_patch(self) -> Dict[str, Any]:
        """Fields to merge into stored analytics. Error results leave counters alone."""
        patch: Dict[str, Any] = {
            "scrape_status": self.status.value,
            "last_scraped":  self.last_scraped,
            "listing_url":   self.listing_url,
            "error_message": self.error_message,
        }
        if self.status is ScrapeStatus.success:
            patch.update(self.metrics.model_dump())
        return patch


class BatchEntry(BaseModel):
    listing_id: str
    results:    Dict[Platform, ScrapeResult] = Field(default_factory=dict)
    error:      Optional[str]                = None

    @property
    def result(self) -> Optional[ScrapeResult]:
        for platform in PLATFORM_ORDER:
            if platform in self.results:
                return self.results[platform]
        return None


BatchReport = List[BatchEntry]


# ═══════════════════════════════════════════════════════════════════════════════
# SCHEDULER
# ═══════════════════════════════════════════════════════════════════════════════


class RunSummary(BaseModel):
    listings:    int      = 0
    succeeded:   int      = 0
    failed:      int      = 0
    started_at:  datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


class SchedulerStatus(BaseModel):
    is_running:    bool                 = False
    active_jobs:   List[str]            = Field(default_factory=list)
    next_run_time: Optional[datetime]   = None
    last_summary:  Optional[RunSummary] = None
