"""
Validator for listings before they are persisted.
"""

from typing import List, Tuple

from .extractor import (
    BODY_TOKENS,
    DRIVE_TOKENS,
    ENGINE_MAX_CC,
    ENGINE_MIN_CC,
    FUEL_TOKENS,
    TRANSMISSION_TOKENS,
)
from .listing import VehicleListing

TRANSMISSIONS = {canonical for _, canonical in TRANSMISSION_TOKENS}
FUEL_TYPES = {canonical for _, canonical in FUEL_TOKENS}
BODY_STYLES = {canonical for _, canonical in BODY_TOKENS}
DRIVE_SYSTEMS = {canonical for _, canonical in DRIVE_TOKENS}


class Validator:
    """Validates listings against the record invariants."""

    @staticmethod
    def validate_listing(listing: VehicleListing) -> Tuple[bool, List[str]]:
        """
        Validate a listing.

        Rules:
        - external_id is required
        - engine_size_cc, if present, is within the valid range
        - transmission, fuel_type, body_style and drive_system are None or canonical
        - prices and mileages are non-negative

        Args:
            listing: Listing to validate

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if not isinstance(listing, VehicleListing):
            return False, ["Listing must be a VehicleListing"]

        if not listing.external_id or not listing.external_id.strip():
            errors.append("Missing required field: 'external_id'")

        if listing.engine_size_cc is not None and not (ENGINE_MIN_CC <= listing.engine_size_cc <= ENGINE_MAX_CC):
            errors.append(f"Field 'engine_size_cc' out of range: {listing.engine_size_cc}")

        for field_name, allowed in (
            ('transmission', TRANSMISSIONS),
            ('fuel_type', FUEL_TYPES),
            ('body_style', BODY_STYLES),
            ('drive_system', DRIVE_SYSTEMS),
        ):
            value = getattr(listing, field_name)
            if value is not None and value not in allowed:
                errors.append(f"Field '{field_name}' has unrecognised value: {value!r}")

        if listing.price_numeric is not None and listing.price_numeric < 0:
            errors.append("Field 'price_numeric' must be non-negative")
        if listing.mileage_numeric is not None and listing.mileage_numeric < 0:
            errors.append("Field 'mileage_numeric' must be non-negative")

        errors.extend(Validator.validate_images(listing.image_urls))

        return len(errors) == 0, errors

    @staticmethod
    def validate_images(image_urls: List[str]) -> List[str]:
        """
        Validate the image URL list.

        Returns:
            List of error messages
        """
        errors = []
        if not isinstance(image_urls, list):
            return ["Field 'image_urls' must be a list"]

        if len(image_urls) != len(set(image_urls)):
            errors.append("Field 'image_urls' contains duplicates")
        for i, url in enumerate(image_urls):
            if not isinstance(url, str) or not url.startswith('http'):
                errors.append(f"image_urls[{i}] is not an absolute URL")

        return errors
