"""Builders shared by the UCASA test modules."""

from __future__ import annotations

import math
from typing import List, Optional, Tuple

from src.common.schemas import PositionFix, ProximityAlert, Tracker
from src.common.utils import EARTH_RADIUS_M

# Lower Manhattan, the simulator's default base point
BASE_LAT, BASE_LON = 40.71280, -74.00600


def shifted(lat: float, lon: float, north_m: float, east_m: float) -> Tuple[float, float]:
    """Move a coordinate a few meters north / east on the haversine sphere."""
    meters_per_deg = EARTH_RADIUS_M * math.pi / 180
    return (
        lat + north_m / meters_per_deg,
        lon + east_m / (meters_per_deg * math.cos(math.radians(lat))),
    )


def make_tracker(
    phone_number: str,
    lat: Optional[float] = BASE_LAT,
    lon: Optional[float] = BASE_LON,
    heading: Optional[float] = None,
    **overrides,
) -> Tracker:
    fields = dict(
        phone_number=phone_number,
        vehicle_id=f"VEH-{phone_number[-4:]}",
        full_name=f"Driver {phone_number[-4:]}",
        current_location=PositionFix(latitude=lat, longitude=lon, heading=heading),
        is_active=True,
        is_driving=True,
        location_tracking_enabled=True,
    )
    fields.update(overrides)
    return Tracker(**fields)


class RecordingEmitter:
    """Captures every (tracker_id, alert) pair instead of pushing it anywhere."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, ProximityAlert]] = []

    def emit(self, tracker_id: str, alert: ProximityAlert) -> None:
        self.sent.append((tracker_id, alert))

    def for_tracker(self, tracker_id: str) -> List[ProximityAlert]:
        return [alert for tid, alert in self.sent if tid == tracker_id]
