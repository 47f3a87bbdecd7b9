"""
Content store for vehicle images.
"""

import hashlib
import os
from typing import Optional
from urllib.parse import urlparse

from .gallery import IMAGE_EXTENSIONS


class ImageStore:
    """Downloads images into a directory, named by the SHA-1 of their URL."""

    def __init__(self, images_dir: str = "images", fetcher=None, download: bool = True, logger=None):
        """
        Initialize image store.

        Args:
            images_dir: Directory for downloaded files
            fetcher: Object with fetch_bytes(url) -> bytes or None
            download: When False, the URL itself is stored as the file name
            logger: Optional ScraperLogger
        """
        self.images_dir = images_dir
        self.fetcher = fetcher
        self.download = download
        self.logger = logger

    @staticmethod
    def file_name_for(url: str) -> str:
        """'https://x/a.JPG?w=1' -> '<sha1>.jpg'"""
        ext = os.path.splitext(urlparse(url).path)[1].lower()
        if ext not in IMAGE_EXTENSIONS:
            ext = '.jpg'
        return hashlib.sha1(url.encode('utf-8')).hexdigest() + ext

    def store(self, url: str) -> Optional[str]:
        """
        Store one image.

        Returns:
            File name (or the URL in link-only mode), None when the download failed
        """
        if not url:
            return None
        if not self.download:
            return url

        file_name = self.file_name_for(url)
        path = os.path.join(self.images_dir, file_name)
        if os.path.exists(path):
            return file_name

        content = self.fetcher.fetch_bytes(url) if self.fetcher is not None else None
        if not content:
            if self.logger:
                self.logger.warning("Image download failed", url=url)
            return None

        try:
            os.makedirs(self.images_dir, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(content)
        except OSError as e:
            if self.logger:
                self.logger.warning("Image write failed", url=url, error=str(e))
            return None

        return file_name
