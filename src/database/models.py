"""
UCASA — SQLAlchemy ORM Models

Tables are created with create_all() at startup.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, String
from sqlalchemy.sql import func

from src.database.session import Base


# ── Trackers ───────────────────────────────────────────────────────────────────

class TrackerRecord(Base):
    __tablename__ = "trackers"

    phone_number = Column(String, primary_key=True)
    vehicle_id = Column(String, nullable=False)
    full_name = Column(String, nullable=False)
    vehicle_type = Column(String, nullable=False, default="car")   # bike | car | auto | truck | bus
    registered_at = Column(DateTime(timezone=True), server_default=func.now())

    # Most recent fix (all nullable: no fix yet)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    fix_timestamp = Column(DateTime(timezone=True), nullable=True)
    accuracy = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)                         # degrees 0-360
    is_simulated = Column(Boolean, default=False)

    is_active = Column(Boolean, default=True)
    is_driving = Column(Boolean, default=True)
    location_tracking_enabled = Column(Boolean, default=False, index=True)
