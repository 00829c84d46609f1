"""
UCASA — Pydantic Domain Schemas

Strict type-safe data models for every data boundary (API, store, alerts).
Models are built with the Python field names; on the wire they are dumped
with ``by_alias=True`` so clients see camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from src.common.utils import utc_now


# ─── Enums ────────────────────────────────────────────────────────────────────

class VehicleType(str, Enum):
    BIKE = "bike"
    CAR = "car"
    AUTO = "auto"
    TRUCK = "truck"
    BUS = "bus"


class AlertLevel(str, Enum):
    COLLISION = "COLLISION"
    WARNING = "WARNING"


class MovementStatus(str, Enum):
    APPROACHING = "approaching"
    RECEDING = "receding"
    UNKNOWN = "unknown"


# ─── Value Objects ────────────────────────────────────────────────────────────

class PositionFix(BaseModel):
    """One reported position sample. A missing lat/lon means "no fix"."""

    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    timestamp: datetime = Field(default_factory=utc_now)
    accuracy: Optional[float] = Field(default=None, ge=0.0)
    speed: Optional[float] = Field(default=None, ge=0.0)
    heading: Optional[float] = Field(default=None, ge=0.0, lt=360.0)
    is_simulated: bool = Field(default=False, serialization_alias="isSimulated")

    @property
    def has_fix(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class RelativeDirection(BaseModel):
    """Coarse direction label; angle is the signed relative angle when heading is known."""

    name: str
    angle: Optional[float] = None


class Movement(BaseModel):
    status: MovementStatus = MovementStatus.UNKNOWN
    speed: float = Field(default=0.0, ge=0.0)   # m/s change in separation

    @property
    def text(self) -> Optional[str]:
        if self.status is MovementStatus.APPROACHING:
            return "Coming Closer"
        if self.status is MovementStatus.RECEDING:
            return "Going Away"
        return None


# ─── Domain Models ────────────────────────────────────────────────────────────

class Tracker(BaseModel):
    phone_number: str = Field(..., min_length=1, serialization_alias="phoneNumber")
    vehicle_id: str = Field(..., serialization_alias="vehicleId")
    full_name: str = Field(..., serialization_alias="fullName")
    vehicle_type: VehicleType = Field(default=VehicleType.CAR, serialization_alias="vehicleType")
    registered_at: datetime = Field(default_factory=utc_now, serialization_alias="registeredAt")
    current_location: Optional[PositionFix] = Field(default=None, serialization_alias="currentLocation")
    is_active: bool = Field(default=True, serialization_alias="isActive")
    is_driving: bool = Field(default=True, serialization_alias="isDriving")
    location_tracking_enabled: bool = Field(
        default=False, serialization_alias="locationTrackingEnabled"
    )

    @property
    def has_fix(self) -> bool:
        return self.current_location is not None and self.current_location.has_fix

    def public_profile(self) -> dict:
        return {
            "phoneNumber": self.phone_number,
            "vehicleId": self.vehicle_id,
            "name": self.full_name,
            "vehicleType": self.vehicle_type.value,
            "registeredAt": self.registered_at.isoformat(),
        }


class ProximityPeer(BaseModel):
    """One nearby tracker as seen from the subject of an evaluation."""

    phone_number: str = Field(..., serialization_alias="phoneNumber")
    vehicle_id: str = Field(..., serialization_alias="vehicleId")
    full_name: str = Field(..., serialization_alias="fullName")
    vehicle_type: VehicleType = Field(..., serialization_alias="vehicleType")
    distance: float = Field(..., ge=0.0)
    bearing: Optional[float] = None            # None when co-located
    direction: RelativeDirection
    movement: Movement
    location: PositionFix


class ProximityAlert(BaseModel):
    """Combined alert for one tracker; never empty, buckets disjoint."""

    type: str = "COMBINED_ALERT"
    alert_level: AlertLevel = Field(..., serialization_alias="alertLevel")
    collision_vehicles: List[ProximityPeer] = Field(
        default_factory=list, serialization_alias="collisionVehicles"
    )
    warning_vehicles: List[ProximityPeer] = Field(
        default_factory=list, serialization_alias="warningVehicles"
    )
    timestamp: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_buckets(self) -> "ProximityAlert":
        if not self.collision_vehicles and not self.warning_vehicles:
            raise ValueError("ProximityAlert requires at least one peer")
        collision_ids = [p.phone_number for p in self.collision_vehicles]
        warning_ids = [p.phone_number for p in self.warning_vehicles]
        all_ids = collision_ids + warning_ids
        if len(set(all_ids)) != len(all_ids):
            raise ValueError("A peer may appear at most once per alert")
        expected = AlertLevel.COLLISION if collision_ids else AlertLevel.WARNING
        if self.alert_level is not expected:
            raise ValueError(f"alert_level must be {expected.value} for these buckets")
        return self
