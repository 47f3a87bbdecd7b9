"""
Structured logging for scrape runs.

Every entry is one JSON object per line in logs/scrape_YYYYMMDD.log.
"""

import json
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional


class ScraperLogger:
    """JSON-lines run logger with a few scraper-specific helpers."""

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)
        self.log_file = os.path.join(self.log_dir, datetime.now().strftime("scrape_%Y%m%d.log"))

    def _emit(self, level: str, message: str, fields: Dict[str, Any]):
        entry = {'timestamp': datetime.now().isoformat(), 'level': level, 'message': message}
        entry.update({key: value for key, value in fields.items() if value is not None})
        line = json.dumps(entry, default=str)
        try:
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(line + '\n')
        except OSError:
            # Log file unwritable; keep the entry on stdout
            print(line)

    def info(self, message: str, **fields):
        self._emit('INFO', message, fields)

    def warning(self, message: str, **fields):
        self._emit('WARNING', message, fields)

    def error(self, message: str, error: Optional[str] = None, **fields):
        if error is not None:
            fields['error'] = str(error)
        self._emit('ERROR', message, fields)

    def debug(self, message: str, **fields):
        self._emit('DEBUG', message, fields)

    def log_run_start(self, source: str, listing_url: Optional[str] = None):
        self.info("Scrape started", source=source, url=listing_url)

    def log_run_complete(self, stats: Dict[str, Any], success: bool = True, error: Optional[str] = None):
        """Final entry of a run: the statistics, plus the error when it failed."""
        if success:
            self.info("Scrape completed", **stats)
        else:
            self.error("Scrape failed", error=error, **stats)

    def log_listing_saved(self, external_id: str, action: str, vehicle_id: Optional[int] = None):
        self.info("Listing saved", external_id=external_id, action=action, vehicle_id=vehicle_id)

    def log_listing_failed(self, external_id: str, error: str):
        self.error("Listing failed", error=error, external_id=external_id)

    def log_fetch_failed(self, url: str, error: Optional[str]):
        self.warning("Fetch failed", url=url, error=error or 'unknown error')

    def log_lookup_empty(self, identifier: str, reason: str):
        self.info("Lookup returned no data", identifier=identifier, reason=reason)

    def save_html_for_debugging(self, html: str, url: str, error_dir: Optional[str] = None) -> Optional[str]:
        """
        Keep the HTML of a page that could not be parsed.

        Args:
            html: Page content
            url: Page URL, used for the file name
            error_dir: Target directory (default: <log_dir>/errors)

        Returns:
            Path of the saved file, or None when it could not be written
        """
        error_dir = error_dir or os.path.join(self.log_dir, 'errors')
        name = re.sub(r'^https?://', '', url)
        name = re.sub(r'[^A-Za-z0-9._-]', '_', name)[:200]
        path = os.path.join(error_dir, f"{name}.html")

        try:
            os.makedirs(error_dir, exist_ok=True)
            with open(path, 'w', encoding='utf-8', errors='ignore') as f:
                f.write(html or '')
        except OSError:
            return None
        return path
