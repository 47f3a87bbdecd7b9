"""
Main scraper orchestration - ties all components together.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .config import ScraperConfig
from .detail import DetailEnricher
from .errors import PersistenceFailure
from .extractor import FieldExtractor
from .fetcher import Fetcher
from .listing import VehicleListing
from .logger import ScraperLogger
from .lookup import LookupEnricher, make_from_identifier
from .parser import CardParser
from .saver import Saver
from .store import INSERTED, SKIPPED, UPDATED, VehicleStore
from .validator import Validator

# Lookup result key -> listing attribute
LOOKUP_FIELDS = {
    'colour': 'colour',
    'registration_date': 'first_registration_date',
    'mot_expiry': 'mot_expiry',
    'fuel_type': 'fuel_type',
    'transmission': 'transmission',
}


def new_stats() -> Dict[str, int]:
    return {
        'found': 0,
        'inserted': 0,
        'updated': 0,
        'skipped': 0,
        'deactivated': 0,
        'errors': 0,
        'images_stored': 0,
        'detail_failures': 0,
        'lookups_applied': 0,
    }


@dataclass
class RunResult:
    success: bool
    stats: Dict[str, int] = field(default_factory=new_stats)
    error: Optional[str] = None


class Scraper:
    """Main scraper that orchestrates all components."""

    def __init__(self, config: Optional[ScraperConfig] = None, fetcher=None, store: Optional[VehicleStore] = None,
                 logger: Optional[ScraperLogger] = None, lookup: Optional[LookupEnricher] = None):
        """
        Initialize scraper.

        Args:
            config: Run configuration
            fetcher: Page fetcher (defaults to a Fetcher built from config)
            store: Persistence adapter (defaults to a VehicleStore on config.database_url)
            logger: Run logger (defaults to a ScraperLogger in config.log_dir)
            lookup: Secondary lookup enricher (defaults to one sharing the fetcher)
        """
        self.config = config or ScraperConfig()
        self.logger = logger or ScraperLogger(log_dir=self.config.log_dir)
        self.fetcher = fetcher or Fetcher.from_config(self.config)
        self.extractor = FieldExtractor(self.config.valid_colours, logger=self.logger)
        self.parser = CardParser(self.config, extractor=self.extractor)
        self.detail_enricher = DetailEnricher(self.config, extractor=self.extractor,
                                              fetcher=self.fetcher, logger=self.logger)
        self.lookup = lookup or LookupEnricher(self.config, fetcher=self.fetcher, logger=self.logger)
        self.store = store or VehicleStore.from_config(self.config, fetcher=self.fetcher, logger=self.logger)
        self.saver = Saver(json_path=self.config.json_path)

    def run(self) -> RunResult:
        """
        Run one full scrape.

        Returns:
            RunResult with success flag, statistics and error message on failure
        """
        stats = new_stats()
        run_id = None
        self.logger.log_run_start(self.config.source, self.config.listing_url)

        try:
            self.store.ping()
            run_id = self.store.start_run()

            print(f"🌐 Fetching listing page: {self.config.listing_url}")
            html = self.fetcher.fetch_or_raise(self.config.listing_url)

            listings = self.parser.parse(html)
            stats['found'] = len(listings)
            print(f"🚗 Found {len(listings)} vehicles")
            if not listings:
                path = self.logger.save_html_for_debugging(html, self.config.listing_url)
                self.logger.warning("No vehicle cards found", url=self.config.listing_url, html_saved_to=path)

            if self.config.fetch_detail_pages:
                listings = self._enrich_details(listings, stats)

            if self.config.lookup_enabled:
                listings = self._apply_lookups(listings, stats)

            active_ids = self._save_listings(listings, stats)

            if not active_ids:
                error = "No vehicles were persisted; skipping deactivation"
                return self._finish(run_id, stats, False, error)

            stats['deactivated'] = self.store.deactivate_missing(active_ids)
            if stats['deactivated']:
                print(f"💤 Deactivated {stats['deactivated']} vehicles no longer listed")

            if self.config.save_json:
                path = self.saver.save_snapshot(self.store.get_active_vehicles(), self.config.source)
                print(f"💾 Snapshot saved to {path}")

            return self._finish(run_id, stats, True)

        except Exception as e:
            return self._finish(run_id, stats, False, str(e))

    def _enrich_details(self, listings: List[VehicleListing], stats: Dict[str, int]) -> List[VehicleListing]:
        """Fetch detail pages one at a time; the fetcher enforces the per-host delay."""
        enriched = []
        for idx, listing in enumerate(listings, 1):
            if idx % 10 == 0 or idx == len(listings):
                print(f"  [{idx}/{len(listings)}] Fetching details...")
            listing, ok = self.detail_enricher.fetch_and_enrich(listing)
            if not ok:
                stats['detail_failures'] += 1
            enriched.append(listing)
        return enriched

    def _apply_lookups(self, listings: List[VehicleListing], stats: Dict[str, int]) -> List[VehicleListing]:
        """Fill fields still missing after detail enrichment from the lookup site."""
        enriched = []
        for listing in listings:
            identifier = listing.registration_mark or listing.external_id
            data = self.lookup.lookup(identifier, make=make_from_identifier(listing.external_id))
            changes = {}
            for key, attr in LOOKUP_FIELDS.items():
                if data.get(key) and getattr(listing, attr) is None:
                    changes[attr] = data[key]
            if changes:
                stats['lookups_applied'] += 1
                listing = replace(listing, **changes)
            enriched.append(listing)
        return enriched

    def _save_listings(self, listings: List[VehicleListing], stats: Dict[str, int]) -> List[int]:
        """Persist each listing; one failure never stops the batch."""
        active_ids = []
        for listing in listings:
            is_valid, errors = Validator.validate_listing(listing)
            if not is_valid:
                stats['errors'] += 1
                self.logger.log_listing_failed(listing.external_id, "; ".join(errors))
                continue

            try:
                result = self.store.save(listing, force_refresh=self.config.force_refresh)
            except PersistenceFailure as e:
                stats['errors'] += 1
                self.logger.log_listing_failed(listing.external_id, e.reason)
                continue
            except Exception as e:
                stats['errors'] += 1
                self.logger.log_listing_failed(listing.external_id, str(e))
                continue

            active_ids.append(result.vehicle_id)
            stats['images_stored'] += result.images_stored
            if result.action == INSERTED:
                stats['inserted'] += 1
            elif result.action == UPDATED:
                stats['updated'] += 1
            elif result.action == SKIPPED:
                stats['skipped'] += 1
            self.logger.log_listing_saved(listing.external_id, result.action, result.vehicle_id)

        return active_ids

    def _finish(self, run_id: Optional[int], stats: Dict[str, int], success: bool,
                error: Optional[str] = None) -> RunResult:
        self.logger.log_run_complete(stats, success=success, error=error)
        if run_id is not None:
            try:
                self.store.finish_run(run_id, stats, success, error)
            except Exception as e:
                self.logger.error("Could not record run result", error=str(e))
        return RunResult(success=success, stats=stats, error=error)
