#!/usr/bin/env python3
"""
Offline tests for field extraction.
Tests strategy order, per-field validation and registration mark patterns.
"""

import pytest

from carscraper.extractor import (
    ColourValidator,
    FieldExtractor,
    normalize_drive_system,
    normalize_engine_size,
    normalize_vrm,
    plate_code_from_vrm,
)


def create_mock_spec_html():
    """Create mock HTML for a detail page with every strategy represented."""
    return """
    <html>
    <body>
        <div class="vd-details">
            <span class="vd-detail-name">Colour</span><span class="vd-detail-value">Red</span>
        </div>
        <table class="specifications">
            <tr><th>Colour</th><td>Blue</td></tr>
            <tr><th>Engine Size</th><td>1,969cc</td></tr>
            <tr><th>First Registration</th><td>12/03/2019</td></tr>
            <tr><th>Doors</th><td>5</td></tr>
        </table>
        <ul>
            <li>Gearbox: 6 speed Manual</li>
            <li>Fuel Type: Diesel</li>
            <li>Mileage: 75,000 miles</li>
            <li>Body Style: Hatchback</li>
        </ul>
    </body>
    </html>
    """


@pytest.fixture
def extractor():
    return FieldExtractor()


def test_colour_validation():
    validate = ColourValidator()
    assert validate("Silver") == "Silver"
    assert validate("silver metallic (used)") == "Silver", "Parenthetical and trailing words should be dropped"
    assert validate("xyz123") is None
    assert validate("Metallic Grey") == "Grey", "Leading finish word should be skipped"
    assert validate("gray") == "Grey"
    assert validate("Blue | Extra info") == "Blue"
    assert validate("N/A") is None
    assert validate("") is None
    assert validate(None) is None


def test_span_pairs_win_over_table_rows(extractor):
    html = create_mock_spec_html()
    assert extractor.extract('colour', html) == "Red", "First strategy should short-circuit later ones"


def test_invalid_candidate_falls_through(extractor):
    html = """
    <div><span class="spec-label">Colour</span><span>N/A</span></div>
    <ul><li>Colour: Blue</li></ul>
    """
    assert extractor.extract('colour', html) == "Blue"


def test_table_and_list_fields(extractor):
    fields = extractor.extract_all(create_mock_spec_html())
    assert fields['engine_size_cc'] == 1969
    assert fields['first_registration_date'] == "12/03/2019"
    assert fields['doors'] == 5
    assert fields['transmission'] == "Manual"
    assert fields['fuel_type'] == "Diesel"
    assert fields['mileage'] == "75000 miles"
    assert fields['body_style'] == "Hatchback"
    assert fields['drive_system'] is None
    assert fields['registration_mark'] is None


def test_engine_size_range(extractor):
    html = "<table><tr><th>Engine Size</th><td>99999cc</td></tr></table>"
    assert extractor.extract('engine_size_cc', html) is None, "Out-of-range engine size must be discarded"
    assert normalize_engine_size("2.0 litre") == 2000
    assert normalize_engine_size("1598cc (1.6L)") == 1598
    assert normalize_engine_size("500cc") is None
    assert normalize_engine_size("8000") == 8000


def test_loose_text_uses_visible_text_only(extractor):
    html = '<div><a href="/vehicle/name/ford-focus-manual-diesel/">2019 Ford Focus</a></div>'
    assert extractor.extract('transmission', html) is None
    assert extractor.extract('fuel_type', html) is None

    html = "<div>Mileage75,000\n  ColourSilver\n  Transmission Automatic</div>"
    assert extractor.extract('mileage', html) == "75000 miles"
    assert extractor.extract('colour', html) == "Silver"
    assert extractor.extract('transmission', html) == "Automatic"


def test_drive_system_synonyms():
    assert normalize_drive_system("xDrive") == "AWD"
    assert normalize_drive_system("ALL4") == "AWD"
    assert normalize_drive_system("4x4") == "AWD"
    assert normalize_drive_system("quattro") == "AWD"
    assert normalize_drive_system("Front wheel drive") == "FWD"
    assert normalize_drive_system("RWD") == "RWD"
    assert normalize_drive_system("Diesel") is None


def test_registration_mark_patterns(extractor):
    assert extractor.extract('registration_mark', '<input type="hidden" name="vrm" value="WP66 UEX">') == "WP66UEX"
    assert extractor.extract('registration_mark', '<input value="AB12CDE" name="vrm" type="hidden">') == "AB12CDE"
    assert extractor.extract('registration_mark', "<script>var vrm = 'KX19ABC';</script>") == "KX19ABC"
    assert extractor.extract('registration_mark', '<div data-plate="LD18 XYZ"></div>') == "LD18XYZ"

    html = '<div data-plate="LD18XYZ"></div><input type="hidden" name="vrm" value="KX19ABC">'
    assert extractor.extract('registration_mark', html) == "KX19ABC", "Hidden input outranks a quoted plate"

    assert extractor.strategy_names('registration_mark') == [
        'vrm_input', 'vrm_input_reversed', 'vrm_script', 'vrm_quoted_plate'
    ]


def test_vrm_helpers():
    assert normalize_vrm("kx19 abc") == "KX19ABC"
    assert normalize_vrm("A123BCD") == "A123BCD"
    assert normalize_vrm("not a plate") is None
    assert plate_code_from_vrm("KX19ABC") == "19"
    assert plate_code_from_vrm("A123BCD") is None


def test_table_labels_match_whole_cell(extractor):
    html = """
    <table>
        <tr><th>Miles per gallon</th><td>55.4</td></tr>
        <tr><th>Mileage</th><td>32,000</td></tr>
        <tr><th>Interior colour</th><td>Black</td></tr>
        <tr><th>Colour:</th><td>Silver</td></tr>
    </table>
    """
    assert extractor.extract('mileage', html) == "32000 miles", "MPG row must not be read as mileage"
    assert extractor.extract('colour', html) == "Silver", "Interior colour must not be read as the body colour"


def test_unrelated_rows_are_not_found(extractor):
    html = "<table><tr><th>Boot capacity</th><td>1,200 litres</td></tr></table>"
    assert extractor.extract('engine_size_cc', html) is None

    html = "<table><tr><th>Interior colour</th><td>Black</td></tr></table>"
    assert extractor.extract('colour', html) is None


@pytest.mark.parametrize("html", [None, "", "<<<>>>", "<table><tr><td>Colour</td></tr>", "<li>Colour:</li>"])
def test_never_raises(extractor, html):
    fields = extractor.extract_all(html)
    assert set(fields) == set(extractor.field_names)
    assert all(value is None for value in fields.values())


def test_unknown_field(extractor):
    with pytest.raises(KeyError):
        extractor.extract('wheel_count', "<div></div>")


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-v"]))
