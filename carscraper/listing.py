"""
In-flight vehicle listing record and numeric helpers.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional


@dataclass
class VehicleListing:
    """A vehicle scraped from the dealer site, not yet persisted."""

    external_id: str
    detail_page_url: str = ''
    title: str = ''
    price_text: str = ''
    price_numeric: Optional[float] = None
    mileage_text: Optional[str] = None
    mileage_numeric: Optional[int] = None
    colour: Optional[str] = None
    transmission: Optional[str] = None
    fuel_type: Optional[str] = None
    body_style: Optional[str] = None
    engine_size_cc: Optional[int] = None
    drive_system: Optional[str] = None
    registration_mark: Optional[str] = None
    first_registration_date: Optional[str] = None
    mot_expiry: Optional[str] = None
    doors: Optional[int] = None
    plate_code: Optional[str] = None
    plate_year: Optional[int] = None
    trim: Optional[str] = None
    year: Optional[int] = None
    location: Optional[str] = None
    description_short: str = ''
    description_full: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)

    @property
    def identity_key(self) -> str:
        """Canonical identity: the VRM once known, otherwise the URL slug."""
        return self.registration_mark or self.external_id

    @property
    def description(self) -> str:
        """Best available description (full beats short)."""
        return self.description_full or self.description_short or ''

    def to_dict(self) -> Dict:
        return asdict(self)


def extract_numeric_price(price: Optional[str]) -> Optional[float]:
    """'£12,500' -> 12500.0"""
    if not price:
        return None
    numeric = re.sub(r'[^0-9.]', '', price)
    try:
        return float(numeric) if numeric else None
    except ValueError:
        return None


def extract_numeric_mileage(mileage: Optional[str]) -> Optional[int]:
    """'75,000 miles' -> 75000"""
    if not mileage:
        return None
    numeric = re.sub(r'[^0-9]', '', mileage)
    return int(numeric) if numeric else None


def plate_year_from_code(code: Optional[str]) -> Optional[int]:
    """
    Convert a 2-digit plate-age code to a calendar year.

    Codes up to 49 map to 2000+code, codes above 49 map to 1900+code.
    """
    if code is None:
        return None
    code = str(code).strip()
    if not re.fullmatch(r'\d{1,2}', code):
        return None
    value = int(code)
    if value > 49:
        return 1900 + value
    return 2000 + value


def plate_year_from_vrm_code(code: Optional[str]) -> Optional[int]:
    """
    Registration year from the age identifier of a current-format plate.

    01-50 are March plates (2000+code), 51-99 are September plates
    (1950+code): 'WP66UEX' -> 2016.
    """
    if code is None or not re.fullmatch(r'\d{2}', str(code).strip()):
        return None
    value = int(code)
    if value == 0:
        return None
    if value > 50:
        return 1950 + value
    return 2000 + value
