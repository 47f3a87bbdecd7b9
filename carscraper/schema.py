"""
Mapping of persisted vehicle rows to the JSON snapshot format.
"""

from typing import Any, Dict, List


class SchemaMapper:
    """Maps stored vehicles to snapshot dicts."""

    VEHICLE_FIELDS = (
        'external_id', 'reg_no', 'registration_mark', 'title', 'price_text', 'price_numeric',
        'mileage_text', 'mileage_numeric', 'colour', 'transmission', 'fuel_type', 'body_style',
        'engine_size_cc', 'drive_system', 'doors', 'plate_code', 'plate_year', 'trim',
        'first_registration_date', 'mot_expiry', 'location', 'description_short',
        'description_full', 'vehicle_url',
    )

    @staticmethod
    def vehicle_to_dict(vehicle) -> Dict[str, Any]:
        """
        Transform a Vehicle row (with images and attribute loaded) into a snapshot entry.

        Returns:
            Dict like:
            {
                "id": 12,
                "external_id": "ford-focus-2019-...",
                "make": "ford",
                "model": "2019 Ford Focus 5dr (19 plate)",
                "year": 2019,
                ...
                "images": [{"serial": 1, "file_name": "...", "url": "..."}],
                "image_count": 1
            }
        """
        record = {'id': vehicle.id}
        for name in SchemaMapper.VEHICLE_FIELDS:
            record[name] = getattr(vehicle, name)

        attribute = vehicle.attribute
        record['make'] = attribute.make if attribute else None
        record['model'] = attribute.model if attribute else None
        record['year'] = attribute.year if attribute else None

        record['images'] = [
            {'serial': image.serial, 'file_name': image.file_name, 'url': image.source_url}
            for image in sorted(vehicle.images, key=lambda image: image.serial)
        ]
        record['image_count'] = len(record['images'])
        record['last_seen_at'] = vehicle.last_seen_at.isoformat() if vehicle.last_seen_at else None
        return record

    @staticmethod
    def statistics(records: List[Dict[str, Any]]) -> Dict[str, int]:
        """Field coverage counts across snapshot entries."""
        def count(name):
            return sum(1 for r in records if r.get(name))

        return {
            'with_colour': count('colour'),
            'with_transmission': count('transmission'),
            'with_fuel_type': count('fuel_type'),
            'with_body_style': count('body_style'),
            'with_doors': count('doors'),
            'with_images': sum(1 for r in records if r.get('image_count', 0) > 0),
            'total_images': sum(r.get('image_count', 0) for r in records),
        }
