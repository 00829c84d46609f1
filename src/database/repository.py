"""
UCASA — Tracker Repository

Durable store for tracker registrations, flags and the latest fix.
The in-memory registry writes through to it on every change and loads
from it once at startup.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from src.common.schemas import PositionFix, Tracker, VehicleType
from src.database.models import TrackerRecord

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def record_to_tracker(record: TrackerRecord) -> Tracker:
    location = None
    if record.fix_timestamp is not None:
        location = PositionFix(
            latitude=record.latitude,
            longitude=record.longitude,
            timestamp=_aware(record.fix_timestamp),
            accuracy=record.accuracy,
            speed=record.speed,
            heading=record.heading,
            is_simulated=bool(record.is_simulated),
        )
    fields = dict(
        phone_number=record.phone_number,
        vehicle_id=record.vehicle_id,
        full_name=record.full_name,
        vehicle_type=VehicleType(record.vehicle_type),
        current_location=location,
        is_active=bool(record.is_active),
        is_driving=bool(record.is_driving),
        location_tracking_enabled=bool(record.location_tracking_enabled),
    )
    if record.registered_at is not None:
        fields["registered_at"] = _aware(record.registered_at)
    return Tracker(**fields)


def apply_tracker(record: TrackerRecord, tracker: Tracker) -> None:
    record.vehicle_id = tracker.vehicle_id
    record.full_name = tracker.full_name
    record.vehicle_type = tracker.vehicle_type.value
    record.registered_at = tracker.registered_at
    record.is_active = tracker.is_active
    record.is_driving = tracker.is_driving
    record.location_tracking_enabled = tracker.location_tracking_enabled

    fix = tracker.current_location
    record.latitude = fix.latitude if fix else None
    record.longitude = fix.longitude if fix else None
    record.fix_timestamp = fix.timestamp if fix else None
    record.accuracy = fix.accuracy if fix else None
    record.speed = fix.speed if fix else None
    record.heading = fix.heading if fix else None
    record.is_simulated = fix.is_simulated if fix else False


class TrackerRepository:
    """Load / upsert trackers through a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def load_all(self) -> List[Tracker]:
        db = self.session_factory()
        try:
            return [record_to_tracker(r) for r in db.query(TrackerRecord).all()]
        finally:
            db.close()

    def get(self, phone_number: str) -> Optional[Tracker]:
        db = self.session_factory()
        try:
            record = db.query(TrackerRecord).filter_by(phone_number=phone_number).first()
            return record_to_tracker(record) if record else None
        finally:
            db.close()

    def save(self, tracker: Tracker) -> None:
        db = self.session_factory()
        try:
            record = db.query(TrackerRecord).filter_by(phone_number=tracker.phone_number).first()
            if record is None:
                record = TrackerRecord(phone_number=tracker.phone_number)
                db.add(record)
            apply_tracker(record, tracker)
            db.commit()
        except Exception:
            db.rollback()
            logger.error(f"Failed to persist tracker {tracker.phone_number}", exc_info=True)
            raise
        finally:
            db.close()
