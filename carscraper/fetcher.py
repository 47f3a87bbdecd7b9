"""
HTTP fetcher with per-host politeness delay and retry handling.
"""

import time
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_USER_AGENT
from .errors import FetchFailure


class Fetcher:
    """Handles HTTP requests with rate limiting and retry logic."""

    def __init__(self, rate_limit: float = 1.5, max_retries: int = 3, timeout: int = 30,
                 user_agent: str = DEFAULT_USER_AGENT, verify_ssl: bool = True):
        """
        Initialize fetcher.

        Args:
            rate_limit: Minimum seconds between requests to the same host
            max_retries: Maximum attempts for failed requests
            timeout: Default request timeout in seconds
            user_agent: User-Agent header sent with every request
            verify_ssl: Verify TLS certificates (disable only for local testing)
        """
        self.rate_limit = rate_limit
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.last_request_time: Dict[str, float] = {}
        self.session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504, 429],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False
        )
        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=10,
            pool_maxsize=10
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-GB,en;q=0.9',
            'Cache-Control': 'no-cache',
        })

    @classmethod
    def from_config(cls, config) -> 'Fetcher':
        """Build a fetcher from a ScraperConfig."""
        return cls(
            rate_limit=config.request_delay,
            max_retries=config.max_retries,
            timeout=config.timeout,
            user_agent=config.user_agent,
            verify_ssl=config.verify_ssl,
        )

    def _wait_for_rate_limit(self, url: str):
        """Wait if necessary so requests to one host stay rate_limit seconds apart."""
        host = urlparse(url).netloc.lower()
        last = self.last_request_time.get(host)
        if last is not None:
            elapsed = time.time() - last
            if elapsed < self.rate_limit:
                time.sleep(self.rate_limit - elapsed)
        self.last_request_time[host] = time.time()

    def _get(self, url: str, timeout: Optional[int]) -> Tuple[Optional[requests.Response], Optional[int], Optional[str]]:
        """GET with manual retries for connection errors; returns (response, status, error)."""
        timeout = timeout or self.timeout
        self._wait_for_rate_limit(url)

        last_error = None
        for attempt in range(self.max_retries):
            try:
                response = self.session.get(
                    url,
                    timeout=timeout,
                    allow_redirects=True,
                    verify=self.verify_ssl
                )
                response.raise_for_status()
                if response.status_code != 200:
                    return None, response.status_code, f"Unexpected status {response.status_code}"
                return response, response.status_code, None

            except requests.exceptions.Timeout:
                last_error = f"Timeout after {timeout}s"

            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection error: {str(e)}"

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else None
                if status_code and 400 <= status_code < 500:
                    # 4xx errors are permanent, don't retry
                    return None, status_code, f"Client error {status_code}: {str(e)}"
                last_error = f"HTTP error {status_code}: {str(e)}"
                if attempt == self.max_retries - 1:
                    return None, status_code, last_error

            except requests.exceptions.RequestException as e:
                last_error = f"Request failed: {str(e)}"

            if attempt < self.max_retries - 1:
                time.sleep(2 ** attempt)

        return None, None, last_error or "Max retries exceeded"

    def fetch_url(self, url: str, timeout: Optional[int] = None) -> Tuple[Optional[str], Optional[int], Optional[str]]:
        """
        Fetch URL with rate limiting, retries, and error handling.

        Args:
            url: URL to fetch
            timeout: Request timeout in seconds (defaults to the fetcher's timeout)

        Returns:
            Tuple of (html_content, status_code, error_message)
            Returns (None, status_code, error) on failure
        """
        response, status, error = self._get(url, timeout)
        if response is None:
            return None, status, error
        return response.text, status, None

    def fetch_or_raise(self, url: str, timeout: Optional[int] = None) -> str:
        """
        Fetch URL and raise FetchFailure instead of returning None.

        Used where a failed fetch must abort the caller (the listing page).
        """
        html, status, error = self.fetch_url(url, timeout=timeout)
        if html is None:
            raise FetchFailure(url, error or "empty response", status_code=status)
        return html

    def fetch_bytes(self, url: str, timeout: Optional[int] = 10) -> Optional[bytes]:
        """
        Fetch binary content (images).

        Returns:
            Response body or None on failure
        """
        response, _, _ = self._get(url, timeout)
        if response is None or not response.content:
            return None
        return response.content
