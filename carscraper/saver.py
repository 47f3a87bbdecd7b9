"""
JSON snapshot sink for active vehicles.
"""

import json
import os
from datetime import datetime
from typing import Dict, Iterable, Optional

from .schema import SchemaMapper


class Saver:
    """Writes the active-vehicle snapshot to disk."""

    def __init__(self, json_path: str = os.path.join("data", "vehicles.json")):
        """
        Initialize saver.

        Args:
            json_path: Snapshot file path
        """
        self.json_path = json_path

    def build_snapshot(self, vehicles: Iterable, source: str,
                       generated_at: Optional[datetime] = None) -> Dict:
        """
        Build the snapshot document.

        Args:
            vehicles: Vehicle rows with images and attribute loaded
            source: Source tag
            generated_at: Timestamp (defaults to now)

        Returns:
            Dict with generated_at, source, count, statistics and vehicles
        """
        records = [SchemaMapper.vehicle_to_dict(v) for v in vehicles]
        return {
            'generated_at': (generated_at or datetime.now()).isoformat(),
            'source': source,
            'count': len(records),
            'statistics': SchemaMapper.statistics(records),
            'vehicles': records,
        }

    def save_snapshot(self, vehicles: Iterable, source: str) -> str:
        """
        Write the snapshot, replacing the previous file atomically.

        Returns:
            Path to saved file
        """
        snapshot = self.build_snapshot(vehicles, source)

        directory = os.path.dirname(self.json_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = self.json_path + '.tmp'
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_path, self.json_path)
            return self.json_path
        except IOError as e:
            raise IOError(f"Failed to save snapshot to {self.json_path}: {e}")

    def load_snapshot(self) -> Optional[Dict]:
        """
        Load the current snapshot.

        Returns:
            Snapshot dict or None if the file doesn't exist or is invalid
        """
        if not os.path.exists(self.json_path):
            return None
        try:
            with open(self.json_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
