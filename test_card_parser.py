#!/usr/bin/env python3
"""
Offline tests for the listing-page card parser.
Tests card discovery, dedup, title-derived fields and image collection.
"""

import pytest

from carscraper.config import ScraperConfig
from carscraper.gallery import GalleryParser, merge_image_urls, normalize_image_url
from carscraper.listing import extract_numeric_mileage, extract_numeric_price, plate_year_from_code
from carscraper.parser import CardParser

BASE_URL = "https://systonautosltd.co.uk"


def create_mock_card(slug, title, price="£12,500", extra=""):
    """Create mock HTML for one structural vehicle card."""
    return f"""
    <div class="vehicle-card">
        <a href="{BASE_URL}/vehicle/name/{slug}/">
            <img src="/images/{slug}-1.jpg" data-src="/images/{slug}-1.jpg" alt="">
        </a>
        <h3><a href="/vehicle/name/{slug}/">{title}</a></h3>
        <div class="price">{price}</div>
        {extra}
    </div>
    """


def create_mock_listing_html(*cards):
    """Create mock HTML for a listing page wrapping the given cards."""
    return f"""
    <html>
    <body>
        <div class="vehicle-listings">
            {''.join(cards)}
        </div>
    </body>
    </html>
    """


def create_mock_fallback_listing_html():
    """Listing page without card classes; only detail links."""
    return """
    <html>
    <body>
        <ul class="results">
            <li><a href="/vehicle/name/vw-golf-2018/">2018 Volkswagen Golf 1.5 TSI Match 5dr</a> <span>£9,995</span></li>
            <li><a href="/vehicle/name/bmw-x3-2016/">2016 BMW X3 xDrive20d M Sport 5dr (66 plate)</a> <span>£14,250</span></li>
        </ul>
        <a href="/contact/">Contact</a>
    </body>
    </html>
    """


@pytest.fixture
def parser():
    return CardParser(ScraperConfig(base_url=BASE_URL))


def test_end_to_end_card(parser):
    html = create_mock_listing_html(
        create_mock_card("ford-focus-2019-5dr-manual-diesel-silver", "2019 Ford Focus 5dr (19 plate)")
    )
    listings = parser.parse(html)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.external_id == "ford-focus-2019-5dr-manual-diesel-silver"
    assert listing.detail_page_url == f"{BASE_URL}/vehicle/name/ford-focus-2019-5dr-manual-diesel-silver/"
    assert listing.title == "2019 Ford Focus 5dr (19 plate)"
    assert listing.price_text == "£12,500"
    assert listing.price_numeric == 12500.0
    assert listing.doors == 5
    assert listing.plate_code == "19"
    assert listing.plate_year == 2019
    assert listing.year == 2019
    assert listing.drive_system is None
    assert listing.transmission is None, "Slug words must not leak into extracted fields"
    assert listing.fuel_type is None
    assert listing.colour is None
    assert listing.image_urls == [f"{BASE_URL}/images/ford-focus-2019-5dr-manual-diesel-silver-1.jpg"]


def test_duplicate_cards_first_wins(parser):
    html = create_mock_listing_html(
        create_mock_card("audi-a3-2017", "2017 Audi A3 Sportback", price="£11,000"),
        create_mock_card("audi-a3-2017", "2017 Audi A3 Sportback (repeat)", price="£10,000"),
        create_mock_card("kia-ceed-2020", "2020 Kia Ceed 5dr", price="£13,995"),
    )
    listings = parser.parse(html)

    assert [l.external_id for l in listings] == ["audi-a3-2017", "kia-ceed-2020"]
    assert listings[0].price_numeric == 11000.0, "First occurrence should be kept, not merged"


def test_card_fields_from_text(parser):
    extra = """
        <ul class="specs">
            <li>Mileage: 42,100 miles</li>
            <li>Colour: Metallic Blue</li>
            <li>Transmission: Automatic</li>
            <li>Fuel Type: Petrol</li>
        </ul>
        <p class="vehicle-desc">One owner, full service history.</p>
        <span class="location">Syston, Leicester</span>
    """
    html = create_mock_listing_html(
        create_mock_card("mini-cooper-2015", "2015 MINI Cooper ALL4 Countryman 5dr (15 plate)", extra=extra)
    )
    listing = parser.parse(html)[0]

    assert listing.mileage_text == "42100 miles"
    assert listing.mileage_numeric == 42100
    assert listing.colour == "Blue"
    assert listing.transmission == "Automatic"
    assert listing.fuel_type == "Petrol"
    assert listing.drive_system == "AWD"
    assert listing.description_short == "One owner, full service history."
    assert listing.location == "Syston, Leicester"


def test_fallback_anchor_walk(parser):
    listings = parser.parse(create_mock_fallback_listing_html())

    assert [l.external_id for l in listings] == ["vw-golf-2018", "bmw-x3-2016"]
    golf, bmw = listings
    assert golf.price_numeric == 9995.0
    assert golf.doors == 5
    assert bmw.drive_system == "AWD"
    assert bmw.trim == "M Sport"
    assert bmw.plate_year == 1966, "Codes above 49 map to 19xx"


def test_cards_without_url_are_skipped(parser):
    html = create_mock_listing_html(
        '<div class="vehicle-card"><h3>Coming soon</h3><div class="price">£0</div></div>',
        create_mock_card("seat-ibiza-2019", "2019 SEAT Ibiza"),
    )
    assert [l.external_id for l in parser.parse(html)] == ["seat-ibiza-2019"]


def test_empty_page(parser):
    assert parser.parse("") == []
    assert parser.parse("<html><body><p>No vehicles</p></body></html>") == []


def test_image_priority_and_dedup():
    html = """
    <div class="vehicle-card" style="background-image: url('/img/bg.jpg')">
        <img data-src="/img/lazy.jpg">
        <img src="/img/main.jpg#zoom" data-src="/img/main.jpg">
        <img src="data:image/gif;base64,R0lGOD">
        <div style="background: #fff url(/img/main.jpg) no-repeat"></div>
    </div>
    """
    urls = GalleryParser(BASE_URL).collect(html)
    assert urls == [
        f"{BASE_URL}/img/main.jpg",
        f"{BASE_URL}/img/lazy.jpg",
        f"{BASE_URL}/img/bg.jpg",
    ]


def test_gallery_helpers():
    assert normalize_image_url("//cdn.example.com/a.jpg", BASE_URL) == "https://cdn.example.com/a.jpg"
    assert normalize_image_url("data:image/png;base64,xx", BASE_URL) is None
    assert merge_image_urls(["a", "b"], ["b", "c"]) == ["a", "b", "c"]


def test_numeric_helpers():
    assert extract_numeric_price("£12,500") == 12500.0
    assert extract_numeric_price("POA") is None
    assert extract_numeric_mileage("75,000 miles") == 75000
    assert extract_numeric_mileage(None) is None


@pytest.mark.parametrize("code,year", [("09", 2009), ("99", 1999), ("19", 2019), ("64", 1964), ("49", 2049), ("50", 1950)])
def test_plate_year_from_code(code, year):
    assert plate_year_from_code(code) == year


def test_plate_year_invalid():
    assert plate_year_from_code(None) is None
    assert plate_year_from_code("ab") is None
    assert plate_year_from_code("123") is None


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-v"]))
