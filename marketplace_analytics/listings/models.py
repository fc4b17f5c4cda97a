# -*- coding: utf-8 -*-
"""
SQLAlchemy ORM models for listings and their per-platform analytics.

Tables: listings, listing_analytics (one row per listing x platform).
"""
from __future__ import annotations

import os
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

Base = declarative_base()

_DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "data")


def async_database_url(raw: str) -> str:
    """Map a plain DSN onto an async driver; fall back to a local SQLite file."""
    url = (raw or "").strip()

    # Convert postgresql:// to postgresql+asyncpg:// for async driver
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url:
        return url

    os.makedirs(_DATA_DIR, exist_ok=True)
    sqlite_path = os.path.abspath(os.path.join(_DATA_DIR, "listings.db"))
    logger.info("Listings using SQLite fallback: %s", sqlite_path)
    return f"sqlite+aiosqlite:///{sqlite_path}"


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE: listings
# ═══════════════════════════════════════════════════════════════════════════════


class Listing(Base):
    __tablename__ = "listings"

    id         = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title      = Column(String(500), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)


# ═══════════════════════════════════════════════════════════════════════════════
# TABLE: listing_analytics
# ═══════════════════════════════════════════════════════════════════════════════


class ListingAnalytics(Base):
    __tablename__ = "listing_analytics"

    id            = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    listing_id    = Column(
        String(36),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    platform      = Column(String(32), nullable=False)
    posted        = Column(Boolean, default=False)
    listing_url   = Column(Text, nullable=True)
    views         = Column(Integer, default=0)
    clicks        = Column(Integer, default=0)
    favorites     = Column(Integer, default=0)
    shares        = Column(Integer, default=0)
    scrape_status = Column(String(16), nullable=True)
    error_message = Column(Text, nullable=True)
    last_scraped  = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("listing_id", "platform", name="uq_listing_platform"),
    )
