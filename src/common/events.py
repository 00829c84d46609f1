"""
UCASA — Channel Event Schemas

Pydantic models for every message exchanged over a tracker's live channel.
Messages travel as ``{"event": <name>, "data": <payload>}`` envelopes.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.schemas import VehicleType


class ChannelMessage(BaseModel):
    """Common envelope for all live-channel messages."""
    event: str
    data: Any = None


# ── Inbound (client → server) ────────────────────────────────────────────────

class InboundPayload(BaseModel):
    """Accepts both the camelCase wire names and the Python field names."""
    model_config = ConfigDict(populate_by_name=True)


class RegisterVehiclePayload(InboundPayload):
    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    vehicle_id: str = Field(..., alias="vehicleId")
    full_name: str = Field(..., alias="fullName")
    vehicle_type: VehicleType = Field(default=VehicleType.CAR, alias="vehicleType")


class RemoveVehiclePayload(InboundPayload):
    phone_number: str = Field(..., alias="phoneNumber")


class ToggleDrivingPayload(InboundPayload):
    phone_number: str = Field(..., alias="phoneNumber")
    is_driving: bool = Field(..., alias="isDriving")


class ToggleTrackingPayload(InboundPayload):
    phone_number: str = Field(..., alias="phoneNumber")
    location_tracking_enabled: bool = Field(..., alias="locationTrackingEnabled")


class LocationUpdatePayload(InboundPayload):
    phone_number: str = Field(..., alias="phoneNumber")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0.0)
    speed: Optional[float] = Field(default=None, ge=0.0)
    heading: Optional[float] = Field(default=None, ge=0.0, lt=360.0)
    is_simulated: bool = Field(default=False, alias="isSimulated")


# ── Outbound (server → client) ───────────────────────────────────────────────

class TrackingToggleResult(BaseModel):
    """
    Single resolution of a tracking-mode toggle: success or typed failure.
    After a timeout the stored state is not known yet, so
    ``location_tracking_enabled`` is None.
    """
    phone_number: str = Field(..., serialization_alias="phoneNumber")
    location_tracking_enabled: Optional[bool] = Field(
        ..., serialization_alias="locationTrackingEnabled"
    )
    success: bool
    error: Optional[str] = None


INBOUND_PAYLOADS: dict[str, type[BaseModel]] = {
    "register-vehicle": RegisterVehiclePayload,
    "remove-vehicle": RemoveVehiclePayload,
    "toggle-driving": ToggleDrivingPayload,
    "toggle-location-tracking": ToggleTrackingPayload,
    "location-update": LocationUpdatePayload,
}
