#!/usr/bin/env python3
"""
End-to-end tests for a scrape run: listing page -> details -> lookup -> store -> snapshot.
All HTTP is served from canned pages; the store is a throwaway SQLite file.
"""

import json
import os

import pytest

from carscraper.config import ScraperConfig
from carscraper.errors import FetchFailure, PersistenceFailure, StoreUnavailable
from carscraper.logger import ScraperLogger
from carscraper.main import Scraper
from carscraper.models import ScrapeLog
from carscraper.saver import Saver
from carscraper.store import SaveResult

BASE_URL = "https://dealer.test"
LISTING_URL = f"{BASE_URL}/vehicles/"
LOOKUP_URL = "https://lookup.test"


class FakeFetcher:
    """Serves canned pages by URL."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def fetch_url(self, url, timeout=None):
        self.calls.append(url)
        if url in self.pages:
            return self.pages[url], 200, None
        return None, 404, "Client error 404"

    def fetch_or_raise(self, url, timeout=None):
        html, status, error = self.fetch_url(url, timeout)
        if html is None:
            raise FetchFailure(url, error, status)
        return html

    def fetch_bytes(self, url, timeout=None):
        return None


def create_mock_card(slug, title, price, extra=""):
    return f"""
    <div class="vehicle-card">
        <a href="/vehicle/name/{slug}/"><img src="/images/{slug}-1.jpg"></a>
        <h3><a href="/vehicle/name/{slug}/">{title}</a></h3>
        <div class="price">{price}</div>
        {extra}
    </div>
    """


def create_mock_listing_html(include_kia=True):
    """Create mock HTML for the dealer's listing page."""
    cards = [create_mock_card("ford-focus-2019", "2019 Ford Focus 5dr (19 plate)", "£12,500",
                              extra='<ul class="specs"><li>Colour: Silver</li></ul>')]
    if include_kia:
        cards.append(create_mock_card("kia-ceed-2020", "2020 Kia Ceed 5dr", "£13,995"))
    return f"<html><body><div class=\"results\">{''.join(cards)}</div></body></html>"


def create_mock_detail_html():
    """Create mock HTML for the Ford's detail page."""
    return """
    <html>
    <head><meta name="description" content="One owner from new. Finance available today."></head>
    <body>
        <input type="hidden" name="vrm" value="KX19ABC">
        <img src="/images/ford-focus-2019-1.jpg">
        <img src="/images/ford-focus-2019-2.jpg">
    </body>
    </html>
    """


def create_mock_lookup_html():
    """Create mock HTML for the lookup site's page on the Ford."""
    return """
    <html><body><table>
        <tr><td>Colour</td><td>Blue</td></tr>
        <tr><td>MOT Expiry</td><td>01/06/2026</td></tr>
        <tr><td>Fuel Type</td><td>Diesel</td></tr>
    </table></body></html>
    """


def create_mock_pages(include_kia=True):
    return {
        LISTING_URL: create_mock_listing_html(include_kia),
        f"{BASE_URL}/vehicle/name/ford-focus-2019/": create_mock_detail_html(),
        f"{LOOKUP_URL}/ford/KX19ABC": create_mock_lookup_html(),
    }


@pytest.fixture
def config(tmp_path):
    return ScraperConfig(
        source='test',
        vendor_id=1,
        base_url=BASE_URL,
        listing_url=LISTING_URL,
        lookup_base_url=LOOKUP_URL,
        database_url=f"sqlite:///{tmp_path / 'vehicles.db'}",
        json_path=str(tmp_path / 'out' / 'vehicles.json'),
        log_dir=str(tmp_path / 'logs'),
        images_dir=str(tmp_path / 'images'),
        download_images=False,
        description_cutoff_patterns=("finance available",),
    )


def run_scraper(config, pages):
    return Scraper(config, fetcher=FakeFetcher(pages)).run()


def vehicles_by_external_id(scraper):
    return {v.external_id: v for v in scraper.store.get_active_vehicles()}


def test_full_run_then_idempotent_rerun(config):
    pages = create_mock_pages()
    scraper = Scraper(config, fetcher=FakeFetcher(pages))
    result = scraper.run()

    assert result.success, result.error
    stats = result.stats
    assert stats['found'] == 2
    assert stats['inserted'] == 2
    assert stats['errors'] == 0
    assert stats['detail_failures'] == 1, "The Kia has no detail page"
    assert stats['images_stored'] == 3
    assert stats['lookups_applied'] == 1

    vehicles = vehicles_by_external_id(scraper)
    ford = vehicles['ford-focus-2019']
    assert ford.reg_no == "KX19ABC"
    assert ford.colour == "Silver", "Lookup only fills missing fields"
    assert ford.mot_expiry == "01/06/2026"
    assert ford.fuel_type == "Diesel"
    assert ford.description_full == "One owner from new."
    assert vehicles['kia-ceed-2020'].reg_no == "kia-ceed-2020"

    snapshot = Saver(config.json_path).load_snapshot()
    assert snapshot['count'] == 2
    assert snapshot['source'] == 'test'
    assert snapshot['statistics']['total_images'] == 3

    second = run_scraper(config, pages)
    assert second.success
    assert second.stats['skipped'] == 2
    assert second.stats['inserted'] == 0
    assert second.stats['updated'] == 0


def test_vehicle_missing_from_listing_is_deactivated(config):
    assert run_scraper(config, create_mock_pages()).success

    result = run_scraper(config, create_mock_pages(include_kia=False))
    assert result.success
    assert result.stats['skipped'] == 1
    assert result.stats['deactivated'] == 1

    snapshot = Saver(config.json_path).load_snapshot()
    assert [v['external_id'] for v in snapshot['vehicles']] == ['ford-focus-2019']


def test_run_is_logged(config):
    scraper = Scraper(config, fetcher=FakeFetcher(create_mock_pages()))
    assert scraper.run().success

    with scraper.store.session_factory() as session:
        log = session.query(ScrapeLog).one()
        assert log.status == "completed"
        assert log.inserted == 2

    with open(scraper.logger.log_file, encoding='utf-8') as f:
        entries = [json.loads(line) for line in f]
    assert entries[0]['message'] == "Scrape started"
    assert entries[-1]['message'] == "Scrape completed"
    assert entries[-1]['inserted'] == 2


def test_listing_fetch_failure(config):
    result = run_scraper(config, {})
    assert not result.success
    assert "Failed to fetch" in result.error


def test_empty_listing_page_keeps_vehicles_active(config):
    scraper = Scraper(config, fetcher=FakeFetcher(create_mock_pages()))
    assert scraper.run().success

    pages = {LISTING_URL: "<html><body><p>No vehicles in stock</p></body></html>"}
    scraper = Scraper(config, fetcher=FakeFetcher(pages))
    result = scraper.run()

    assert not result.success
    assert result.stats['found'] == 0
    assert result.stats['deactivated'] == 0
    assert scraper.store.count_vehicles(active_only=True) == 2
    assert os.listdir(os.path.join(config.log_dir, 'errors')), "Listing HTML should be saved for debugging"


def test_skip_details_and_lookup(config):
    config = config.with_overrides(fetch_detail_pages=False, lookup_enabled=False, save_json=False)
    fetcher = FakeFetcher(create_mock_pages())
    result = Scraper(config, fetcher=fetcher).run()

    assert result.success
    assert fetcher.calls == [LISTING_URL]
    assert not os.path.exists(config.json_path)


class FakeStore:
    """In-memory store; fails for the external ids it is told to."""

    def __init__(self, failing=(), available=True):
        self.failing = set(failing)
        self.available = available
        self.saved = []
        self.deactivated_with = None

    def ping(self):
        if not self.available:
            raise StoreUnavailable("Database unavailable: connection refused")

    def start_run(self):
        return None

    def finish_run(self, run_id, stats, success, error=None):
        pass

    def save(self, listing, force_refresh=False):
        if listing.external_id in self.failing:
            raise PersistenceFailure(listing.external_id, "disk full")
        self.saved.append(listing)
        return SaveResult(len(self.saved), "inserted", len(listing.image_urls))

    def deactivate_missing(self, active_ids):
        self.deactivated_with = list(active_ids)
        return 0

    def get_active_vehicles(self):
        return []


def make_scraper(config, store):
    config = config.with_overrides(save_json=False)
    return Scraper(config, fetcher=FakeFetcher(create_mock_pages()), store=store,
                   logger=ScraperLogger(log_dir=config.log_dir))


def test_store_unavailable_fails_run(config):
    result = make_scraper(config, FakeStore(available=False)).run()
    assert not result.success
    assert "Database unavailable" in result.error


def test_one_failed_save_does_not_stop_batch(config):
    store = FakeStore(failing=["ford-focus-2019"])
    result = make_scraper(config, store).run()

    assert result.success
    assert result.stats['errors'] == 1
    assert result.stats['inserted'] == 1
    assert [l.external_id for l in store.saved] == ["kia-ceed-2020"]
    assert store.deactivated_with == [1]
