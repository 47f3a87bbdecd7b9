"""
Secondary lookup against a vehicle-data site (colour, registration date, MOT).
"""

import re
import time
from typing import Callable, Dict, Optional, Tuple

from .config import ScraperConfig
from .extractor import (
    ColourValidator,
    HtmlPage,
    clean_text,
    first_valid,
    loose_text,
    normalize_fuel_type,
    normalize_registration_date,
    normalize_transmission,
    table_rows,
)


def make_from_identifier(identifier: Optional[str]) -> Optional[str]:
    """
    Guess the make from a slug-style identifier.

    'volvo-v40-2015-...' -> 'volvo'. A plate such as 'WP66UEX' has no hyphen
    and yields None.
    """
    if not identifier or '-' not in identifier:
        return None
    make = identifier.split('-', 1)[0].strip().lower()
    return make or None


def _date_text(value: Optional[str]) -> Optional[str]:
    """Dates on lookup pages are either dd/mm/yyyy or '12 March 2025'."""
    if not value:
        return None
    date = normalize_registration_date(value)
    if date:
        return date
    value = clean_text(value)
    if re.search(r'\d', value) and len(value) <= 40:
        return value
    return None


class LookupEnricher:
    """Fetches auxiliary fields for a vehicle from the lookup site."""

    def __init__(self, config: Optional[ScraperConfig] = None, fetcher=None, logger=None,
                 make_resolver: Callable[[str], Optional[str]] = make_from_identifier,
                 clock: Callable[[], float] = time.time):
        """
        Initialize lookup enricher.

        Args:
            config: Scraper configuration (lookup URL, cache TTL, colours)
            fetcher: Object with fetch_url(url) -> (html, status, error)
            logger: Optional ScraperLogger
            make_resolver: Maps an identifier to a lowercase make when none is given
            clock: Time source for the cache
        """
        self.config = config or ScraperConfig()
        self.fetcher = fetcher
        self.logger = logger
        self.make_resolver = make_resolver
        self.clock = clock
        self.base_url = self.config.lookup_base_url.rstrip('/')
        self.cache_ttl = self.config.lookup_cache_ttl
        self._cache: Dict[Tuple[str, str], Tuple[float, Dict[str, str]]] = {}

        self.fields = {
            'colour': (
                [table_rows(re.compile(r'(?:exterior\s+)?colou?r', re.I)),
                 loose_text(r'(?<!interior\s)colou?r:\s*([a-z]+)')],
                ColourValidator(self.config.valid_colours),
            ),
            'registration_date': (
                [table_rows(re.compile(r'(?:date\s*)?(?:first\s*)?registered|(?:first\s*)?registration(?:\s*date)?|first\s*reg', re.I))],
                _date_text,
            ),
            'mot_expiry': (
                [table_rows(re.compile(r'mot(?:\s*(?:expiry|expires|due))?(?:\s*date)?', re.I))],
                _date_text,
            ),
            'fuel_type': (
                [table_rows(re.compile(r'fuel(?:\s*type)?', re.I))],
                normalize_fuel_type,
            ),
            'transmission': (
                [table_rows(re.compile(r'transmission|gearbox', re.I))],
                normalize_transmission,
            ),
        }

    def build_url(self, make: str, identifier: str) -> str:
        return f"{self.base_url}/{make.lower()}/{identifier}"

    def lookup(self, identifier: Optional[str], make: Optional[str] = None) -> Dict[str, str]:
        """
        Look up a vehicle.

        Args:
            identifier: Registration mark or URL slug
            make: Make to use in the lookup URL; resolved from the identifier when omitted

        Returns:
            Dict with any of colour, registration_date, mot_expiry, fuel_type,
            transmission. Empty when nothing could be found.
        """
        if not identifier:
            return {}

        make = make or self.make_resolver(identifier)
        if not make:
            self._log_empty(identifier, "make could not be derived")
            return {}

        key = (make.lower(), identifier.lower())
        cached = self._cache.get(key)
        if cached:
            if self.clock() - cached[0] < self.cache_ttl:
                return dict(cached[1])
            del self._cache[key]

        result = self._fetch_and_parse(identifier, make)
        if result:
            # Failures and empty pages are retried on the next call
            self._cache[key] = (self.clock(), result)
        return dict(result)

    def _fetch_and_parse(self, identifier: str, make: str) -> Dict[str, str]:
        if self.fetcher is None:
            self._log_empty(identifier, "no fetcher configured")
            return {}

        url = self.build_url(make, identifier)
        html, status, error = self.fetcher.fetch_url(url)
        if not html:
            self._log_empty(identifier, error or f"fetch failed (status {status})")
            return {}

        result = self.parse(html)
        if not result:
            self._log_empty(identifier, "no matching rows")
        return result

    def parse(self, html: str) -> Dict[str, str]:
        """Extract lookup fields from a lookup page."""
        page = HtmlPage(html)
        result = {}
        for name, (strategies, validate) in self.fields.items():
            value = first_valid(page, strategies, validate, logger=self.logger, field_name=name)
            if value is not None:
                result[name] = value
        return result

    def _log_empty(self, identifier: str, reason: str):
        if self.logger:
            self.logger.log_lookup_empty(identifier, reason)
