"""
Detail-page enrichment: the vehicle's own page is authoritative over its card.
"""

from dataclasses import replace
from typing import Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from .config import ScraperConfig
from .extractor import FieldExtractor, HtmlPage, clean_text, plate_code_from_vrm
from .gallery import GalleryParser, merge_image_urls
from .listing import VehicleListing, extract_numeric_mileage, plate_year_from_vrm_code


def truncate_at_markers(text: str, markers: Sequence[str]) -> str:
    """Cut text at the earliest case-insensitive occurrence of any marker."""
    if not text or not markers:
        return text
    lowered = text.lower()
    cut = len(text)
    for marker in markers:
        if not marker:
            continue
        pos = lowered.find(marker.lower())
        if pos != -1 and pos < cut:
            cut = pos
    return text[:cut]


class DetailEnricher:
    """Re-extracts fields from a detail page and merges them into a listing."""

    def __init__(self, config: Optional[ScraperConfig] = None, extractor: Optional[FieldExtractor] = None,
                 fetcher=None, logger=None):
        """
        Initialize enricher.

        Args:
            config: Scraper configuration (cutoff markers, base URL, colours)
            extractor: Field extractor shared with the card parser
            fetcher: Object with fetch_url(url) -> (html, status, error); needed for fetch_and_enrich
            logger: Optional ScraperLogger
        """
        self.config = config or ScraperConfig()
        self.extractor = extractor or FieldExtractor(self.config.valid_colours)
        self.gallery = GalleryParser(self.config.base_url)
        self.fetcher = fetcher
        self.logger = logger

    def enrich(self, listing: VehicleListing, html: Optional[str]) -> VehicleListing:
        """
        Merge detail-page data into a copy of the listing.

        Non-null detail values overwrite card values; a field the detail page
        does not resolve keeps its card value.

        Args:
            listing: Card-derived listing
            html: Detail page HTML

        Returns:
            New VehicleListing (the input is not modified)
        """
        if not html:
            return replace(listing, image_urls=list(listing.image_urls))

        page = HtmlPage(html)
        soup = page.soup
        fields = self.extractor.extract_all(page, FieldExtractor.DETAIL_FIELDS)

        changes = {}
        for name, value in fields.items():
            if value is None:
                continue
            if name == 'mileage':
                changes['mileage_text'] = value
                changes['mileage_numeric'] = extract_numeric_mileage(value)
            else:
                changes[name] = value

        vrm = fields.get('registration_mark')
        if vrm and not listing.plate_code:
            code = plate_code_from_vrm(vrm)
            if code:
                changes['plate_code'] = code
                changes['plate_year'] = plate_year_from_vrm_code(code)

        description = self.extract_description(soup)
        if description:
            changes['description_full'] = description

        detail_images = self.gallery.collect(soup, require_extension=True)
        changes['image_urls'] = merge_image_urls(listing.image_urls, detail_images)

        return replace(listing, **changes)

    def extract_description(self, soup: BeautifulSoup) -> Optional[str]:
        """Meta description, cut at the first configured marker phrase."""
        meta = soup.find('meta', attrs={'name': lambda v: v and v.lower() == 'description'})
        if meta is None or not meta.get('content'):
            return None
        text = truncate_at_markers(meta['content'], self.config.description_cutoff_patterns)
        return clean_text(text) or None

    def fetch_and_enrich(self, listing: VehicleListing) -> Tuple[VehicleListing, bool]:
        """
        Fetch the listing's detail page and enrich from it.

        Returns:
            Tuple of (listing, fetched_ok); on a failed fetch the listing is returned unchanged
        """
        if self.fetcher is None or not listing.detail_page_url:
            return listing, False

        html, status, error = self.fetcher.fetch_url(listing.detail_page_url)
        if not html:
            if self.logger:
                self.logger.log_fetch_failed(listing.detail_page_url, error or f"status {status}")
            return listing, False

        return self.enrich(listing, html), True
