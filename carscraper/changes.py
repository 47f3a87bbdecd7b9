"""
Change detection over the fields that matter for a listing update.
"""

import hashlib
import re
from typing import Dict, Optional

HASH_FIELDS = ('title', 'price', 'mileage', 'description', 'model', 'year', 'fuel_type', 'transmission')
SEPARATOR = '|'


def _normalize(value) -> str:
    if value is None:
        return ''
    return re.sub(r'\s+', ' ', str(value)).strip()


def hash_fields(record: Dict) -> str:
    """
    Digest the fixed field list of a record.

    Args:
        record: Mapping with any of HASH_FIELDS (missing keys hash as empty)

    Returns:
        Hex MD5 digest
    """
    joined = SEPARATOR.join(_normalize(record.get(name)) for name in HASH_FIELDS)
    return hashlib.md5(joined.encode('utf-8')).hexdigest()


def listing_record(listing, model: Optional[str] = None, year: Optional[int] = None) -> Dict:
    """The hashed fields of a VehicleListing; model defaults to its title, year to its plate/title year."""
    return {
        'title': listing.title,
        'price': listing.price_numeric if listing.price_numeric is not None else listing.price_text,
        'mileage': listing.mileage_numeric,
        'description': listing.description,
        'model': model if model is not None else listing.title,
        'year': year if year is not None else (listing.year or listing.plate_year),
        'fuel_type': listing.fuel_type,
        'transmission': listing.transmission,
    }


def has_changed(record: Dict, previous_hash: Optional[str]) -> bool:
    """True for new records (no previous hash) or when the digest differs."""
    if not previous_hash:
        return True
    return hash_fields(record) != previous_hash
