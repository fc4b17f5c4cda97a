"""Exceptions raised while scraping listing analytics.

Every ``ScrapeError`` is retryable by the retry controller; none of them
escape the batch layer.
"""
from __future__ import annotations
from pathlib import Path
from typing import Optional


class ScrapeError(Exception):
    """Base exception for a failed scrape attempt."""

    def __init__(self, message: str, screenshot: Optional[Path] = None):
        super().__init__(message)
        self.screenshot = screenshot

    def __str__(self) -> str:
        msg = super().__str__()
        if self.screenshot:
            return f"{msg}. Screenshot: {self.screenshot}"
        return msg


class AuthenticationError(ScrapeError):
    """Not authenticated: bad credentials, login redirect, or unclassifiable login result."""
    pass


class LoginRejectedError(AuthenticationError):
    """The platform showed an explicit login error."""
    pass


class CheckpointBlockedError(AuthenticationError):
    """A verification checkpoint is blocking navigation."""
    pass


class NavigationTimeoutError(ScrapeError):
    """The page did not settle within the navigation bound."""
    pass


class ExtractionNotFoundError(ScrapeError):
    """No matching listing was located, or it carried no analytics signal."""
    pass


class UnexpectedRuntimeError(ScrapeError):
    """Anything else, e.g. DOM evaluation throwing."""
    pass


class ListingNotFoundError(LookupError):
    """Unknown listing id."""
    pass
