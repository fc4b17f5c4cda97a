# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from marketplace_analytics.config import settings
from marketplace_analytics.exceptions import ListingNotFoundError
from marketplace_analytics.listings.models import (
    Base, Listing, ListingAnalytics, async_database_url,
)
from marketplace_analytics.schemas import (
    ListingRecord, Platform, PlatformListing, ScrapeResult, ScrapeStatus,
)
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

_COUNTERS = ("views", "clicks", "favorites", "shares")


class ListingStore(Protocol):
    """What the scheduler needs from persistence."""

    async def find_scrapeable(self) -> List[ListingRecord]: ...

    async def get(self, listing_id: str) -> Optional[ListingRecord]: ...

    async def save(self, listing_id: str, platform: Platform, result: ScrapeResult) -> None: ...


def _non_negative(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


class SqlListingStore:
    """ListingStore over async SQLAlchemy (asyncpg / aiosqlite)."""

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.url     = async_database_url(settings.database_url if database_url is None else database_url)
        self.engine  = create_async_engine(self.url, echo=echo)
        self.session = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def init_db(self):
        """Create tables if they don't exist. Safe to call on every startup."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Listings DB tables created / verified")

    async def close(self):
        await self.engine.dispose()

    # ── Helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    async def _rows(db, listing_id: str) -> Dict[Platform, ListingAnalytics]:
        res = await db.execute(
            select(ListingAnalytics).where(ListingAnalytics.listing_id == listing_id)
        )
        return {Platform(r.platform): r for r in res.scalars().all()}

    @staticmethod
    async def _row(db, listing_id: str, platform: Platform) -> ListingAnalytics:
        res = await db.execute(
            select(ListingAnalytics).where(
                ListingAnalytics.listing_id == listing_id,
                ListingAnalytics.platform == platform.value,
            )
        )
        row = res.scalar_one_or_none()
        if row is None:
            row = ListingAnalytics(
                listing_id=listing_id, platform=platform.value,
                views=0, clicks=0, favorites=0, shares=0,
            )
            db.add(row)
        return row

    @staticmethod
    def _record(listing: Listing, rows: Dict[Platform, ListingAnalytics]) -> ListingRecord:
        return ListingRecord(
            id=listing.id,
            title=listing.title or "",
            platforms={
                p: PlatformListing(posted=bool(r.posted), listing_url=r.listing_url)
                for p, r in rows.items()
            },
        )

    async def _require(self, db, listing_id: str) -> Listing:
        listing = await db.get(Listing, listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    # ── ListingStore ─────────────────────────────────────────────────────────

    async def find_scrapeable(self) -> List[ListingRecord]:
        """Listings with at least one posted platform that has a URL."""
        async with self.session() as db:
            res = await db.execute(
                select(Listing)
                .join(ListingAnalytics, ListingAnalytics.listing_id == Listing.id)
                .where(
                    ListingAnalytics.posted.is_(True),
                    ListingAnalytics.listing_url.is_not(None),
                    ListingAnalytics.listing_url != "",
                )
                .distinct()
                .order_by(Listing.created_at, Listing.id)
            )
            out = []
            for listing in res.scalars().all():
                out.append(self._record(listing, await self._rows(db, listing.id)))
            return out

    async def get(self, listing_id: str) -> Optional[ListingRecord]:
        async with self.session() as db:
            listing = await db.get(Listing, listing_id)
            if listing is None:
                return None
            return self._record(listing, await self._rows(db, listing_id))

    async def save(self, listing_id: str, platform: Platform, result: ScrapeResult) -> None:
        """Field-level merge. Error results keep the previously stored counters."""
        async with self.session() as db:
            await self._require(db, listing_id)
            row = await self._row(db, listing_id, platform)
            for key, value in result.to_analytics_patch().items():
                if key == "listing_url" and not value:
                    continue
                setattr(row, key, value)
            await db.commit()
        logger.debug("Saved %s/%s: %s", listing_id, platform.value, result.status.value)

    # ── Management ───────────────────────────────────────────────────────────

    async def add_listing(
        self,
        title: str,
        facebook_url: Optional[str] = None,
        kijiji_url: Optional[str] = None,
        listing_id: Optional[str] = None,
    ) -> ListingRecord:
        async with self.session() as db:
            listing = Listing(title=title)
            if listing_id:
                listing.id = listing_id
            db.add(listing)
            await db.flush()
            for platform, url in ((Platform.facebook, facebook_url), (Platform.kijiji, kijiji_url)):
                if url:
                    db.add(ListingAnalytics(
                        listing_id=listing.id, platform=platform.value,
                        posted=True, listing_url=url,
                        views=0, clicks=0, favorites=0, shares=0,
                        scrape_status=ScrapeStatus.pending.value,
                    ))
            await db.commit()
            return self._record(listing, await self._rows(db, listing.id))

    async def set_listing_urls(
        self,
        listing_id: str,
        facebook_url: Optional[str] = None,
        kijiji_url: Optional[str] = None,
    ) -> ListingRecord:
        """Attach or replace platform URLs; each touched platform goes back to pending."""
        async with self.session() as db:
            listing = await self._require(db, listing_id)
            for platform, url in ((Platform.facebook, facebook_url), (Platform.kijiji, kijiji_url)):
                if url is None:
                    continue
                row = await self._row(db, listing_id, platform)
                row.listing_url   = url.strip() or None
                row.posted        = bool(row.listing_url)
                row.scrape_status = ScrapeStatus.pending.value
                row.error_message = None
            await db.commit()
            return self._record(listing, await self._rows(db, listing_id))

    async def apply_manual_analytics(
        self,
        listing_id: str,
        facebook_clicks: Optional[int] = None,
        kijiji_views: Optional[int] = None,
    ) -> Dict[Platform, Dict[str, Any]]:
        """Seller-entered counters, for when scraping can't reach the numbers."""
        updates = []
        if facebook_clicks is not None:
            updates.append((Platform.facebook, "clicks", _non_negative("facebook_clicks", facebook_clicks)))
        if kijiji_views is not None:
            updates.append((Platform.kijiji, "views", _non_negative("kijiji_views", kijiji_views)))

        async with self.session() as db:
            await self._require(db, listing_id)
            for platform, field, value in updates:
                row = await self._row(db, listing_id, platform)
                setattr(row, field, value)
                if row.scrape_status in (None, ScrapeStatus.pending.value):
                    row.scrape_status = ScrapeStatus.success.value
            await db.commit()
        return await self.get_analytics(listing_id)

    async def get_analytics(self, listing_id: str) -> Dict[Platform, Dict[str, Any]]:
        async with self.session() as db:
            await self._require(db, listing_id)
            rows = await self._rows(db, listing_id)
            return {
                p: {
                    **{k: getattr(r, k) or 0 for k in _COUNTERS},
                    "posted":        bool(r.posted),
                    "listing_url":   r.listing_url,
                    "scrape_status": r.scrape_status,
                    "error_message": r.error_message,
                    "last_scraped":  r.last_scraped,
                }
                for p, r in rows.items()
            }
