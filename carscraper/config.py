"""
Run configuration for the dealer scraper.

Configuration is an immutable value built once per run and handed to each
component at construction.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from dotenv import load_dotenv


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

VALID_COLOURS = (
    'black', 'white', 'silver', 'grey', 'gray', 'red', 'blue', 'green',
    'brown', 'beige', 'cream', 'ivory', 'orange', 'yellow', 'pink',
    'purple', 'gold', 'gunmetal', 'charcoal', 'bronze', 'burgundy',
    'champagne', 'tan', 'khaki', 'taupe', 'sage', 'navy', 'midnight',
    'maroon', 'turquoise', 'magenta', 'multicolour',
    'forest', 'emerald', 'cobalt', 'azure', 'teal', 'olive', 'copper',
    'rust', 'sand', 'ash', 'smoke', 'slate', 'pewter', 'graphite', 'lime', 'mint',
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if not value:
        return default
    return tuple(part.strip() for part in value.split('|') if part.strip())


@dataclass(frozen=True)
class ScraperConfig:
    """Settings for one scrape run."""

    source: str = 'systonautosltd'
    vendor_id: int = 432
    base_url: str = 'https://systonautosltd.co.uk'
    listing_url: str = 'https://systonautosltd.co.uk/vehicle/search/min_price/0/order/price/dir/DESC/limit/250/'
    detail_path: str = '/vehicle/name/'

    request_delay: float = 1.5
    timeout: int = 30
    max_retries: int = 3
    user_agent: str = DEFAULT_USER_AGENT
    verify_ssl: bool = True

    fetch_detail_pages: bool = True
    lookup_enabled: bool = True
    lookup_base_url: str = 'https://www.carcheck.co.uk'
    lookup_cache_ttl: int = 1800

    save_json: bool = True
    json_path: str = os.path.join('data', 'vehicles.json')
    log_dir: str = 'logs'
    images_dir: str = 'images'
    download_images: bool = True

    database_url: str = 'sqlite:///data/vehicles.db'
    force_refresh: bool = False

    valid_colours: Tuple[str, ...] = VALID_COLOURS
    # Phrases where a detail-page description is cut off (finance boilerplate).
    description_cutoff_patterns: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'ScraperConfig':
        """
        Build a config from environment variables (and an optional .env file).

        Args:
            env_file: Path to a .env file; defaults to python-dotenv's lookup

        Returns:
            ScraperConfig with environment overrides applied
        """
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            source=os.getenv('SCRAPER_SOURCE', defaults.source),
            vendor_id=_env_int('SCRAPER_VENDOR_ID', defaults.vendor_id),
            base_url=os.getenv('SCRAPER_BASE_URL', defaults.base_url).rstrip('/'),
            listing_url=os.getenv('SCRAPER_LISTING_URL', defaults.listing_url),
            detail_path=os.getenv('SCRAPER_DETAIL_PATH', defaults.detail_path),
            request_delay=_env_float('SCRAPER_REQUEST_DELAY', defaults.request_delay),
            timeout=_env_int('SCRAPER_TIMEOUT', defaults.timeout),
            max_retries=_env_int('SCRAPER_MAX_RETRIES', defaults.max_retries),
            user_agent=os.getenv('SCRAPER_USER_AGENT', defaults.user_agent),
            verify_ssl=_env_bool('SCRAPER_VERIFY_SSL', defaults.verify_ssl),
            fetch_detail_pages=_env_bool('SCRAPER_FETCH_DETAILS', defaults.fetch_detail_pages),
            lookup_enabled=_env_bool('SCRAPER_LOOKUP_ENABLED', defaults.lookup_enabled),
            lookup_base_url=os.getenv('SCRAPER_LOOKUP_URL', defaults.lookup_base_url).rstrip('/'),
            lookup_cache_ttl=_env_int('SCRAPER_LOOKUP_CACHE_TTL', defaults.lookup_cache_ttl),
            save_json=_env_bool('SCRAPER_SAVE_JSON', defaults.save_json),
            json_path=os.getenv('SCRAPER_JSON_PATH', defaults.json_path),
            log_dir=os.getenv('SCRAPER_LOG_DIR', defaults.log_dir),
            images_dir=os.getenv('SCRAPER_IMAGES_DIR', defaults.images_dir),
            download_images=_env_bool('SCRAPER_DOWNLOAD_IMAGES', defaults.download_images),
            database_url=os.getenv('DATABASE_URL', defaults.database_url),
            force_refresh=_env_bool('SCRAPER_FORCE_REFRESH', defaults.force_refresh),
            valid_colours=_env_list('SCRAPER_VALID_COLOURS', defaults.valid_colours),
            description_cutoff_patterns=_env_list(
                'SCRAPER_DESCRIPTION_CUTOFFS', defaults.description_cutoff_patterns
            ),
        )

    def with_overrides(self, **overrides) -> 'ScraperConfig':
        """Return a copy with the given fields replaced (None values are ignored)."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)
