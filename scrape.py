#!/usr/bin/env python3
"""
CLI interface for the dealer scraper.
Main entry point for running scrapes.
"""

import argparse
import sys

from carscraper.config import ScraperConfig
from carscraper.main import Scraper


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Used-car dealer scraper',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full run: listing page, detail pages, lookups, database and JSON snapshot
  python scrape.py

  # Quick run without detail pages or snapshot
  python scrape.py --no-details --no-json

  # Rewrite every vehicle even if nothing changed
  python scrape.py --force-refresh --vendor 432
        """
    )

    parser.add_argument('--no-details', action='store_true',
                        help='Skip fetching vehicle detail pages')
    parser.add_argument('--no-json', action='store_true',
                        help='Skip writing the JSON snapshot')
    parser.add_argument('--no-lookup', action='store_true',
                        help='Skip the secondary lookup site')
    parser.add_argument('--force-refresh', action='store_true',
                        help='Write every vehicle, ignoring change detection')
    parser.add_argument('--vendor', type=int,
                        help='Dealer/vendor id written on vehicle rows')
    parser.add_argument('--source', type=str,
                        help='Source tag vehicles are scoped to')
    parser.add_argument('--listing-url', type=str,
                        help='Listing page URL to scrape')
    parser.add_argument('--database-url', type=str,
                        help='SQLAlchemy database URL (default: sqlite:///data/vehicles.db)')
    parser.add_argument('--log-dir', type=str,
                        help='Log directory (default: logs)')
    parser.add_argument('--rate-limit', type=float,
                        help='Seconds between requests to the same host (default: 1.5)')
    parser.add_argument('--env-file', type=str,
                        help='Path to a .env file with SCRAPER_* settings')
    return parser


def config_from_args(args: argparse.Namespace) -> ScraperConfig:
    """Environment settings first, command-line flags on top."""
    config = ScraperConfig.from_env(args.env_file)
    return config.with_overrides(
        fetch_detail_pages=False if args.no_details else None,
        save_json=False if args.no_json else None,
        lookup_enabled=False if args.no_lookup else None,
        force_refresh=True if args.force_refresh else None,
        vendor_id=args.vendor,
        source=args.source,
        listing_url=args.listing_url,
        database_url=args.database_url,
        log_dir=args.log_dir,
        request_delay=args.rate_limit,
    )


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    try:
        scraper = Scraper(config)
    except Exception as e:
        print(f"❌ Failed to initialize scraper: {e}", file=sys.stderr)
        return 1

    print(f"🚗 Scraping {config.source} (vendor {config.vendor_id})...")
    try:
        result = scraper.run()
    except KeyboardInterrupt:
        print("\n\n⚠️  Scrape interrupted by user")
        return 130

    stats = result.stats
    print("\n" + "=" * 60)
    print("Scrape Complete!" if result.success else "Scrape Failed!")
    print("=" * 60)
    print(f"Found: {stats.get('found', 0)}")
    print(f"Inserted: {stats.get('inserted', 0)}")
    print(f"Updated: {stats.get('updated', 0)}")
    print(f"Skipped: {stats.get('skipped', 0)}")
    print(f"Deactivated: {stats.get('deactivated', 0)}")
    print(f"Images stored: {stats.get('images_stored', 0)}")
    print(f"Errors: {stats.get('errors', 0)}")
    print("=" * 60)

    if not result.success:
        print(f"\n❌ {result.error}", file=sys.stderr)
        return 1

    if stats.get('errors', 0) > 0:
        print(f"\n⚠️  {stats['errors']} vehicles failed to save. Check logs for details.")
    else:
        print("\n✅ All vehicles processed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
