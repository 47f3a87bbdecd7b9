"""
Exceptions raised by the scraper.

Expected "not found" outcomes are returned as None; these are reserved for
network and store failures.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for scraper errors."""


class FetchFailure(ScraperError):
    """A page could not be fetched (network error, timeout or non-200 status)."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class PersistenceFailure(ScraperError):
    """Saving a single listing failed."""

    def __init__(self, external_id: str, reason: str):
        self.external_id = external_id
        self.reason = reason
        super().__init__(f"Failed to save {external_id}: {reason}")


class StoreUnavailable(ScraperError):
    """The relational store cannot be reached."""
