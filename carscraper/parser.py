"""
Card parser for dealer listing pages.
"""

import re
from typing import Iterable, List, Optional, Set

from bs4 import BeautifulSoup, Tag
from urllib.parse import urljoin

from .config import ScraperConfig
from .extractor import FieldExtractor, clean_text, normalize_drive_system, normalize_doors
from .gallery import GalleryParser
from .listing import (
    VehicleListing,
    extract_numeric_mileage,
    extract_numeric_price,
    plate_year_from_code,
)


PRICE_REGEX = re.compile(r'£\s?[\d,]+(?:\.\d{2})?')
DOORS_REGEX = re.compile(r'\b(\d)\s*-?\s*dr\b', re.I)
PLATE_CODE_REGEX = re.compile(r'\((\d{2})\s*(?:plate|reg)\)', re.I)
YEAR_REGEX = re.compile(r'\b(19[5-9]\d|20\d{2})\b')
LOCATION_LINE_REGEX = re.compile(r'^\s*(?:location|branch)\s*:\s*([A-Za-z][A-Za-z\s,.\-]{2,98})$', re.I)

CARD_CLASS_REGEX = re.compile(r'vehicle-listing|vehicle-card', re.I)
ARTICLE_CLASS_REGEX = re.compile(r'vehicle', re.I)
ANCESTOR_CLASS_REGEX = re.compile(r'vehicle|card|listing|item|product', re.I)
DESCRIPTION_CLASS_REGEX = re.compile(r'desc', re.I)
LOCATION_CLASS_REGEX = re.compile(r'\b(?:location|branch)\b', re.I)

MAX_ANCESTOR_DEPTH = 10
MAX_DIV_DEPTH = 5
MAX_TITLE_LENGTH = 500

# Longest first so "M Sport" wins over "Sport".
TRIM_VOCABULARY = (
    'AMG Line', 'M Sport', 'ST-Line', 'R-Line', 'S line', 'N-Connecta', 'GT Line',
    'Titanium', 'Zetec', 'Ghia', 'Tekna', 'Acenta', 'Visia', 'Sportline', 'Sport',
    'Elegance', 'Exclusive', 'Excite', 'Dynamic', 'Premium', 'Limited', 'Luxury',
    'Design', 'Style', 'Active', 'Comfort', 'Trend', 'Elite', 'Icon', 'Vision',
    'GTI', 'GTD', 'SRi', 'SXi', 'GLX', 'SEL', 'SE', 'LX',
)


def _class_string(tag: Tag) -> str:
    classes = tag.get('class') or []
    if isinstance(classes, str):
        return classes
    return ' '.join(classes)


class CardParser:
    """Finds vehicle cards on a listing page and turns each into a VehicleListing."""

    def __init__(self, config: Optional[ScraperConfig] = None, extractor: Optional[FieldExtractor] = None):
        """
        Initialize parser.

        Args:
            config: Scraper configuration (base URL, detail path, colours)
            extractor: Field extractor; built from config when omitted
        """
        self.config = config or ScraperConfig()
        self.base_url = self.config.base_url.rstrip('/')
        self.extractor = extractor or FieldExtractor(self.config.valid_colours)
        self.gallery = GalleryParser(self.base_url)

        detail_path = re.escape(self.config.detail_path.rstrip('/') + '/')
        self.href_regex = re.compile(rf'href=["\']([^"\']*{detail_path}[^"\'#]+)', re.I)
        self.external_id_regex = re.compile(rf'{detail_path}([^/?#]+)', re.I)

    def parse(self, html: str) -> List[VehicleListing]:
        """
        Parse a listing page.

        Args:
            html: HTML content of the listing page

        Returns:
            Listings in page order, at most one per external_id
        """
        if not html:
            return []

        soup = BeautifulSoup(html, 'lxml')
        cards = self.find_cards(soup)

        listings = []
        seen: Set[str] = set()
        for card in cards:
            listing = self.parse_card(card)
            if listing is None or listing.external_id in seen:
                continue
            seen.add(listing.external_id)
            listings.append(listing)

        return listings

    def find_cards(self, soup: BeautifulSoup) -> List[Tag]:
        """Structural card containers first; anchors walked up to their card otherwise."""
        candidates = []
        wrapper_ids = set()
        for card in self._structural_cards(soup):
            links = self._detail_link_count(card)
            if links > 1:
                continue
            candidates.append(card)
            if links == 1:
                wrapper_ids.update(id(parent) for parent in card.parents)

        # A candidate wrapping another linked candidate is a container, not a card
        cards = [c for c in candidates if id(c) not in wrapper_ids]
        if cards:
            return cards
        return list(self._fallback_cards(soup))

    def _structural_cards(self, soup: BeautifulSoup) -> Iterable[Tag]:
        for tag in soup.find_all(['div', 'article']):
            classes = _class_string(tag)
            if not classes:
                continue
            if tag.name == 'div' and CARD_CLASS_REGEX.search(classes):
                yield tag
            elif tag.name == 'article' and ARTICLE_CLASS_REGEX.search(classes):
                yield tag

    def _fallback_cards(self, soup: BeautifulSoup) -> Iterable[Tag]:
        yielded = set()
        for anchor in soup.find_all('a', href=True):
            if not self.external_id_regex.search(anchor['href']):
                continue
            card = self._find_parent_card(anchor)
            if id(card) not in yielded:
                yielded.add(id(card))
                yield card

    def _find_parent_card(self, anchor: Tag) -> Tag:
        """Walk up from a detail link to the element that wraps one vehicle."""
        node = anchor
        for _ in range(MAX_ANCESTOR_DEPTH):
            node = node.parent
            if node is None or node.name in ('body', 'html', '[document]'):
                break
            if self._detail_link_count(node) > 1:
                break
            if node.name in ('article', 'li') or ANCESTOR_CLASS_REGEX.search(_class_string(node)):
                return node

        node = anchor
        for _ in range(MAX_DIV_DEPTH):
            node = node.parent
            if node is None or node.name in ('body', 'html', '[document]'):
                break
            if node.name == 'div' and self._detail_link_count(node) <= 1:
                return node

        return anchor.parent if anchor.parent is not None else anchor

    def _detail_link_count(self, element: Tag) -> int:
        ids = set()
        for anchor in element.find_all('a', href=True):
            match = self.external_id_regex.search(anchor['href'])
            if match:
                ids.add(match.group(1))
        return len(ids)

    def parse_card(self, card: Tag) -> Optional[VehicleListing]:
        """
        Parse one card element.

        Returns:
            VehicleListing, or None when no vehicle URL can be resolved
        """
        url = self._extract_url(card)
        if not url:
            return None
        match = self.external_id_regex.search(url)
        if not match:
            return None
        external_id = match.group(1).strip()
        if not external_id:
            return None

        title = self._extract_title(card)
        price_text = self._extract_price(card)
        fields = self.extractor.extract_all(card, FieldExtractor.CARD_FIELDS)

        plate_code = None
        plate_match = PLATE_CODE_REGEX.search(title)
        if plate_match:
            plate_code = plate_match.group(1)

        year_match = YEAR_REGEX.search(title)

        return VehicleListing(
            external_id=external_id,
            detail_page_url=url,
            title=title,
            price_text=price_text,
            price_numeric=extract_numeric_price(price_text),
            mileage_text=fields['mileage'],
            mileage_numeric=extract_numeric_mileage(fields['mileage']),
            colour=fields['colour'],
            transmission=fields['transmission'],
            fuel_type=fields['fuel_type'],
            body_style=fields['body_style'],
            engine_size_cc=fields['engine_size_cc'],
            first_registration_date=fields['first_registration_date'],
            drive_system=normalize_drive_system(title),
            doors=self._doors_from_title(title),
            plate_code=plate_code,
            plate_year=plate_year_from_code(plate_code),
            trim=self._trim_from_title(title),
            year=int(year_match.group(1)) if year_match else None,
            location=self._extract_location(card),
            description_short=self._extract_short_description(card),
            image_urls=self.gallery.collect(card),
        )

    def _extract_url(self, card: Tag) -> Optional[str]:
        href = None
        if card.name == 'a' and card.get('href') and self.external_id_regex.search(card['href']):
            href = card['href']
        else:
            for anchor in card.find_all('a', href=True):
                if self.external_id_regex.search(anchor['href']):
                    href = anchor['href']
                    break
        if not href:
            match = self.href_regex.search(str(card))
            href = match.group(1) if match else None
        if not href:
            return None
        return urljoin(self.base_url + '/', href.strip())

    def _extract_title(self, card: Tag) -> str:
        """Longest heading or detail-link text under the length cap."""
        candidates = [el.get_text(' ') for el in card.find_all(['h2', 'h3', 'h4'])]
        candidates.extend(
            a.get_text(' ') for a in card.find_all('a', href=True)
            if self.external_id_regex.search(a['href'])
        )
        best = ''
        for text in candidates:
            text = clean_text(text)
            if len(best) < len(text) < MAX_TITLE_LENGTH:
                best = text
        return best

    def _extract_price(self, card: Tag) -> str:
        match = PRICE_REGEX.search(card.get_text(' '))
        return match.group(0).replace(' ', '') if match else ''

    def _extract_location(self, card: Tag) -> Optional[str]:
        for el in card.find_all(class_=LOCATION_CLASS_REGEX):
            text = clean_text(el.get_text(' '))
            text = re.sub(r'^(?:location|branch)\s*:\s*', '', text, flags=re.I)
            if 3 < len(text) < 100:
                return text
        for line in card.get_text('\n').splitlines():
            match = LOCATION_LINE_REGEX.match(clean_text(line))
            if match:
                return clean_text(match.group(1))
        return None

    def _extract_short_description(self, card: Tag) -> str:
        best = ''
        for el in card.find_all(class_=DESCRIPTION_CLASS_REGEX):
            text = clean_text(el.get_text(' '))
            if len(text) > len(best):
                best = text
        return best

    @staticmethod
    def _doors_from_title(title: str) -> Optional[int]:
        match = DOORS_REGEX.search(title)
        return normalize_doors(match.group(1)) if match else None

    @staticmethod
    def _trim_from_title(title: str) -> Optional[str]:
        for trim in TRIM_VOCABULARY:
            if re.search(rf'(?<![\w-]){re.escape(trim)}(?![\w-])', title, re.I):
                return trim
        return None
