"""
Image URL collection for vehicle cards and detail pages.
"""

import re
from typing import Iterable, List, Optional, Union
from urllib.parse import urljoin, urldefrag

from bs4 import BeautifulSoup, Tag


BACKGROUND_IMAGE_REGEX = re.compile(r"background(?:-image)?\s*:[^;]*url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.I)
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp')

# Attribute priority: inline src, then lazy-load attributes.
SRC_ATTRS = ('src',)
LAZY_ATTRS = ('data-src', 'data-lazy-src', 'data-original')


def normalize_image_url(url: Optional[str], base_url: str) -> Optional[str]:
    """
    Make an image URL absolute and strip its fragment.

    Returns:
        Absolute URL, or None for empty values and inline data: URIs
    """
    if not url:
        return None
    url = url.strip()
    if not url or url.startswith('data:') or url.startswith('javascript:'):
        return None
    absolute, _ = urldefrag(urljoin(base_url + '/', url))
    if not absolute.startswith('http'):
        return None
    return absolute


def is_image_url(url: str) -> bool:
    """Check the URL path ends with a known image extension."""
    path = url.lower().split('?', 1)[0]
    return path.endswith(IMAGE_EXTENSIONS)


class GalleryParser:
    """Collects image URLs from an HTML element in discovery order."""

    def __init__(self, base_url: str):
        """
        Initialize gallery parser.

        Args:
            base_url: Site root used to absolutize relative URLs
        """
        self.base_url = base_url.rstrip('/')

    def collect(self, element: Union[str, Tag, None], require_extension: bool = False) -> List[str]:
        """
        Collect image URLs: every src first, then data-src, then CSS background-image.

        Args:
            element: Card element or raw HTML
            require_extension: Only keep URLs ending in an image extension

        Returns:
            Deduplicated list of absolute URLs
        """
        if element is None:
            return []
        if not isinstance(element, Tag):
            element = BeautifulSoup(element, 'lxml')

        images = element.find_all('img')
        raw_urls = []
        for attrs in (SRC_ATTRS, LAZY_ATTRS):
            for img in images:
                for attr in attrs:
                    raw_urls.append(img.get(attr))
        raw_urls.extend(self._background_images(element))

        return self._dedupe(raw_urls, require_extension)

    def _background_images(self, element: Tag) -> Iterable[str]:
        candidates = [element] if element.get('style') else []
        candidates.extend(element.find_all(style=True))
        for el in candidates:
            for match in BACKGROUND_IMAGE_REGEX.finditer(el.get('style', '')):
                yield match.group(1)

    def _dedupe(self, raw_urls: Iterable[Optional[str]], require_extension: bool) -> List[str]:
        seen = set()
        urls = []
        for raw in raw_urls:
            url = normalize_image_url(raw, self.base_url)
            if not url or url in seen:
                continue
            if require_extension and not is_image_url(url):
                continue
            seen.add(url)
            urls.append(url)
        return urls


def merge_image_urls(*groups: Iterable[str]) -> List[str]:
    """Union several URL lists, keeping first-seen order."""
    seen = set()
    merged = []
    for group in groups:
        for url in group or []:
            if url not in seen:
                seen.add(url)
                merged.append(url)
    return merged
