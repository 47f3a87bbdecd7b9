"""Persistence of scraped listings.

Maps VehicleListing records onto the attribute/vehicle/image tables,
reconciles them with what is already stored and keeps the active flag in
step with the latest run. Each public operation runs in its own
transaction.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from .changes import has_changed, hash_fields, listing_record
from .db import create_db_engine, init_db, make_session_factory
from .errors import PersistenceFailure, StoreUnavailable
from .image_store import ImageStore
from .listing import VehicleListing
from .lookup import make_from_identifier
from .models import ProductImage, ScrapeLog, Vehicle, VehicleAttribute

UNKNOWN = "Unknown"
MODEL_SEARCH_LENGTH = 30
TITLE_YEAR_REGEX = re.compile(r'\b(\d{4})\b')

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"

# Fields only some runs manage to resolve; a missing value keeps what is stored.
COALESCE_FIELDS = ('description_full', 'registration_mark', 'mot_expiry', 'first_registration_date')


def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _now() -> datetime:
    return datetime.now()


@dataclass
class SaveResult:
    vehicle_id: int
    action: str
    images_stored: int = 0


class VehicleStore:
    """Reconciles listings with the relational store for one source."""

    def __init__(self, engine: Engine, source: str, vendor_id: Optional[int] = None,
                 image_store: Optional[ImageStore] = None, logger=None):
        """
        Initialize store.

        Args:
            engine: SQLAlchemy engine
            source: Source tag every vehicle row is scoped to
            vendor_id: Dealer id written on vehicle rows
            image_store: Content store for images; image rows are skipped without one
            logger: Optional ScraperLogger
        """
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self.source = source
        self.vendor_id = vendor_id
        self.image_store = image_store
        self.logger = logger

    @classmethod
    def from_config(cls, config, fetcher=None, logger=None) -> 'VehicleStore':
        image_store = ImageStore(
            images_dir=config.images_dir,
            fetcher=fetcher,
            download=config.download_images,
            logger=logger,
        )
        return cls(
            create_db_engine(config.database_url),
            source=config.source,
            vendor_id=config.vendor_id,
            image_store=image_store,
            logger=logger,
        )

    def ping(self):
        """
        Check the store is reachable and the schema exists.

        Raises:
            StoreUnavailable: if the database cannot be reached
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            init_db(self.engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Database unavailable: {e}") from e

    # --- listing persistence -------------------------------------------------

    def save(self, listing: VehicleListing, force_refresh: bool = False) -> SaveResult:
        """
        Persist one listing: attribute row, vehicle row, then images.

        Raises:
            PersistenceFailure: if the listing could not be written
        """
        try:
            attr_id = self.find_or_create_attribute(listing)
            vehicle_id, action = self.upsert_vehicle(listing, attr_id, force_refresh=force_refresh)
        except SQLAlchemyError as e:
            raise PersistenceFailure(listing.external_id, str(e)) from e

        images_stored = 0
        if action in (INSERTED, UPDATED) and listing.image_urls:
            try:
                images_stored = self.persist_images(vehicle_id, listing.image_urls)
            except SQLAlchemyError as e:
                # The vehicle row is already committed; only its images are lost
                if self.logger:
                    self.logger.error("Image persistence failed", error=str(e), external_id=listing.external_id)

        return SaveResult(vehicle_id, action, images_stored)

    def find_or_create_attribute(self, listing: VehicleListing) -> int:
        """
        Find an active attribute row matching the listing's model, transmission
        and fuel type, or create one.

        Returns:
            Attribute row id
        """
        title = (listing.title or '').strip()
        transmission = listing.transmission or UNKNOWN
        fuel_type = listing.fuel_type or UNKNOWN

        with self.session_factory.begin() as session:
            query = session.query(VehicleAttribute).filter(
                VehicleAttribute.transmission == transmission,
                VehicleAttribute.fuel_type == fuel_type,
                VehicleAttribute.active_status.is_(True),
            )
            if title:
                pattern = '%' + _escape_like(title[:MODEL_SEARCH_LENGTH]) + '%'
                query = query.filter(VehicleAttribute.model.like(pattern, escape='\\'))
            else:
                query = query.filter(VehicleAttribute.model == UNKNOWN)

            existing = query.order_by(VehicleAttribute.id).first()
            if existing is not None:
                return existing.id

            year_match = TITLE_YEAR_REGEX.search(title)
            attribute = VehicleAttribute(
                make=make_from_identifier(listing.external_id),
                model=title[:255] or UNKNOWN,
                year=int(year_match.group(1)) if year_match else _now().year,
                fuel_type=fuel_type,
                transmission=transmission,
                body_style=listing.body_style,
                engine_size=str(listing.engine_size_cc) if listing.engine_size_cc else None,
                drive_system=listing.drive_system,
                trim=listing.trim,
                active_status=True,
            )
            session.add(attribute)
            session.flush()
            return attribute.id

    def upsert_vehicle(self, listing: VehicleListing, attr_id: Optional[int],
                       force_refresh: bool = False) -> Tuple[int, str]:
        """
        Insert or update the vehicle row for a listing.

        The row is found by canonical identity (VRM when known, else the slug)
        and then by slug. A slug-keyed row is migrated to the VRM once one is
        known, so a vehicle never has two rows.

        Returns:
            Tuple of (vehicle_id, action) with action one of inserted/updated/skipped
        """
        identity = listing.identity_key
        record = listing_record(listing)
        new_hash = hash_fields(record)
        now = _now()

        with self.session_factory.begin() as session:
            row = self._find_vehicle(session, identity, listing.external_id)

            if row is None:
                row = Vehicle(
                    source=self.source,
                    vendor_id=self.vendor_id,
                    external_id=listing.external_id,
                    reg_no=identity,
                    created_at=now,
                )
                self._apply_listing(row, listing, attr_id)
                row.data_hash = new_hash
                row.is_active = True
                row.last_seen_at = now
                row.updated_at = now
                session.add(row)
                session.flush()
                return row.id, INSERTED

            if not listing.registration_mark:
                # No VRM this run; never re-key a row back to its slug
                identity = row.reg_no
            migrated = row.reg_no != identity or row.external_id != listing.external_id
            if migrated:
                self._migrate_identity(session, row, identity, listing.external_id)

            row.last_seen_at = now
            if not force_refresh and not migrated and not has_changed(record, row.data_hash):
                if not row.is_active:
                    row.is_active = True
                    row.updated_at = now
                return row.id, SKIPPED

            self._apply_listing(row, listing, attr_id)
            row.data_hash = new_hash
            row.is_active = True
            row.updated_at = now
            return row.id, UPDATED

    def _find_vehicle(self, session, identity: str, external_id: str) -> Optional[Vehicle]:
        row = session.query(Vehicle).filter(
            Vehicle.source == self.source,
            Vehicle.reg_no == identity,
        ).first()
        if row is None:
            row = session.query(Vehicle).filter(
                Vehicle.source == self.source,
                Vehicle.external_id == external_id,
            ).first()
        return row

    def _migrate_identity(self, session, row: Vehicle, identity: str, external_id: str):
        """Re-key a row; a second row still holding the slug is merged into it."""
        if row.external_id != external_id:
            duplicate = session.query(Vehicle).filter(
                Vehicle.source == self.source,
                Vehicle.external_id == external_id,
                Vehicle.id != row.id,
            ).first()
            if duplicate is not None:
                if not row.description_full and duplicate.description_full:
                    row.description_full = duplicate.description_full
                session.delete(duplicate)
                session.flush()
            row.external_id = external_id

        if self.logger and row.reg_no != identity:
            self.logger.info("Vehicle identity migrated", vehicle_id=row.id,
                             old_reg_no=row.reg_no, new_reg_no=identity)
        row.reg_no = identity

    @staticmethod
    def _apply_listing(row: Vehicle, listing: VehicleListing, attr_id: Optional[int]):
        row.attr_id = attr_id
        row.title = listing.title
        row.price_text = listing.price_text
        row.price_numeric = listing.price_numeric
        row.mileage_text = listing.mileage_text
        row.mileage_numeric = listing.mileage_numeric
        row.colour = listing.colour
        row.transmission = listing.transmission
        row.fuel_type = listing.fuel_type
        row.body_style = listing.body_style
        row.engine_size_cc = listing.engine_size_cc
        row.drive_system = listing.drive_system
        row.plate_code = listing.plate_code
        row.plate_year = listing.plate_year
        row.doors = listing.doors
        row.trim = listing.trim
        row.location = listing.location
        row.description_short = listing.description_short
        row.vehicle_url = listing.detail_page_url
        for name in COALESCE_FIELDS:
            value = getattr(listing, name)
            if value is not None:
                setattr(row, name, value)

    def persist_images(self, vehicle_id: int, image_urls: Iterable[str]) -> int:
        """
        Replace a vehicle's image rows with the images that could be stored.

        Failed downloads are skipped; serial numbers start at 1 and follow
        the order of successfully stored images.

        Returns:
            Number of image rows written
        """
        if self.image_store is None:
            return 0

        stored = []
        for url in image_urls:
            file_name = self.image_store.store(url)
            if file_name:
                stored.append((url, file_name))

        with self.session_factory.begin() as session:
            vehicle = session.get(Vehicle, vehicle_id)
            if vehicle is None:
                return 0
            vehicle.images.clear()
            session.flush()
            for serial, (url, file_name) in enumerate(stored, start=1):
                vehicle.images.append(ProductImage(file_name=file_name, source_url=url, serial=serial))

        return len(stored)

    # --- lifecycle ------------------------------------------------------------

    def deactivate_missing(self, active_ids: Iterable[int]) -> int:
        """
        Mark this source's active vehicles not in active_ids as inactive.

        An empty active_ids is a no-op, so a run that found nothing never
        deactivates the whole source.

        Returns:
            Number of rows deactivated
        """
        active_ids = list(active_ids or [])
        if not active_ids:
            return 0

        with self.session_factory.begin() as session:
            count = session.query(Vehicle).filter(
                Vehicle.source == self.source,
                Vehicle.is_active.is_(True),
                Vehicle.id.notin_(active_ids),
            ).update({Vehicle.is_active: False, Vehicle.updated_at: _now()}, synchronize_session=False)
        return count

    def delete_vehicle(self, vehicle_id: int) -> bool:
        """Delete a vehicle and its image rows."""
        with self.session_factory.begin() as session:
            row = session.get(Vehicle, vehicle_id)
            if row is None:
                return False
            session.delete(row)
        return True

    def cleanup_orphaned_attributes(self, dry_run: bool = True) -> List[int]:
        """
        Find attribute rows no vehicle references; delete them unless dry_run.

        Returns:
            Ids of the orphaned attribute rows
        """
        with self.session_factory.begin() as session:
            orphans = (
                session.query(VehicleAttribute)
                .outerjoin(Vehicle, Vehicle.attr_id == VehicleAttribute.id)
                .filter(Vehicle.id.is_(None))
                .order_by(VehicleAttribute.id)
                .all()
            )
            ids = [attribute.id for attribute in orphans]
            if not dry_run:
                for attribute in orphans:
                    session.delete(attribute)
        return ids

    # --- reads ----------------------------------------------------------------

    def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        with self.session_factory() as session:
            return (
                session.query(Vehicle)
                .options(selectinload(Vehicle.images), joinedload(Vehicle.attribute))
                .filter(Vehicle.id == vehicle_id)
                .first()
            )

    def get_active_vehicles(self) -> List[Vehicle]:
        """Active vehicles of this source with images and attribute loaded."""
        with self.session_factory() as session:
            return (
                session.query(Vehicle)
                .options(selectinload(Vehicle.images), joinedload(Vehicle.attribute))
                .filter(Vehicle.source == self.source, Vehicle.is_active.is_(True))
                .order_by(Vehicle.id)
                .all()
            )

    def count_vehicles(self, active_only: bool = False) -> int:
        with self.session_factory() as session:
            query = session.query(Vehicle).filter(Vehicle.source == self.source)
            if active_only:
                query = query.filter(Vehicle.is_active.is_(True))
            return query.count()

    # --- run log --------------------------------------------------------------

    def start_run(self) -> int:
        with self.session_factory.begin() as session:
            log = ScrapeLog(source=self.source, status="running", started_at=_now())
            session.add(log)
            session.flush()
            return log.id

    def finish_run(self, run_id: Optional[int], stats: Dict[str, int], success: bool,
                   error: Optional[str] = None):
        if run_id is None:
            return
        with self.session_factory.begin() as session:
            log = session.get(ScrapeLog, run_id)
            if log is None:
                return
            log.status = "completed" if success else "failed"
            for name in ('found', 'inserted', 'updated', 'skipped', 'deactivated', 'errors', 'images_stored'):
                setattr(log, name, stats.get(name, 0))
            log.error_message = error
            log.finished_at = _now()
