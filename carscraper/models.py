"""SQLAlchemy ORM models for persisted entities.

Vehicles reference a shared attribute row (make/model/year/spec) and own
their image rows.
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base


class VehicleAttribute(Base):
    __tablename__ = "vehicle_attributes"
    id = Column(Integer, primary_key=True, index=True)
    make = Column(String(100))
    model = Column(String(255), nullable=False)
    year = Column(Integer)
    fuel_type = Column(String(50), nullable=False, default="Unknown")
    transmission = Column(String(50), nullable=False, default="Unknown")
    body_style = Column(String(50))
    engine_size = Column(String(20))
    drive_system = Column(String(10))
    trim = Column(String(100))
    active_status = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vehicles = relationship("Vehicle", back_populates="attribute")


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_vehicles_source_external_id"),
        UniqueConstraint("source", "reg_no", name="uq_vehicles_source_reg_no"),
    )

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(100), nullable=False)
    vendor_id = Column(Integer)
    external_id = Column(String(255), nullable=False)
    # Canonical identity: the VRM once known, otherwise the URL slug
    reg_no = Column(String(255), nullable=False)
    attr_id = Column(Integer, ForeignKey("vehicle_attributes.id"))

    title = Column(Text)
    price_text = Column(String(50))
    price_numeric = Column(Float)
    mileage_text = Column(String(50))
    mileage_numeric = Column(Integer)
    colour = Column(String(50))
    transmission = Column(String(50))
    fuel_type = Column(String(50))
    body_style = Column(String(50))
    engine_size_cc = Column(Integer)
    drive_system = Column(String(10))
    registration_mark = Column(String(20))
    plate_code = Column(String(2))
    plate_year = Column(Integer)
    doors = Column(Integer)
    trim = Column(String(100))
    first_registration_date = Column(String(50))
    mot_expiry = Column(String(50))
    location = Column(String(255))
    description_short = Column(Text)
    description_full = Column(Text)
    vehicle_url = Column(Text)

    is_active = Column(Boolean, nullable=False, default=True)
    data_hash = Column(String(32))
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    attribute = relationship("VehicleAttribute", back_populates="vehicles")
    images = relationship(
        "ProductImage",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="ProductImage.serial",
    )


class ProductImage(Base):
    __tablename__ = "product_images"
    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(Text, nullable=False)
    source_url = Column(Text)
    serial = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vehicle = relationship("Vehicle", back_populates="images")


class ScrapeLog(Base):
    __tablename__ = "scrape_logs"
    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="running")
    found = Column(Integer, default=0)
    inserted = Column(Integer, default=0)
    updated = Column(Integer, default=0)
    skipped = Column(Integer, default=0)
    deactivated = Column(Integer, default=0)
    errors = Column(Integer, default=0)
    images_stored = Column(Integer, default=0)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True))


Index("idx_vehicles_source_active", Vehicle.source, Vehicle.is_active)
Index("idx_attributes_model", VehicleAttribute.model)
