"""
Tests — Pydantic Schema Validation

Tier 1: Ensures all domain models enforce type constraints correctly.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.common.schemas import (
    AlertLevel,
    Movement,
    MovementStatus,
    PositionFix,
    ProximityAlert,
    ProximityPeer,
    RelativeDirection,
    Tracker,
    VehicleType,
)


def _peer(phone_number: str, distance: float) -> ProximityPeer:
    return ProximityPeer(
        phone_number=phone_number,
        vehicle_id="KA01AB1234",
        full_name="Asha",
        vehicle_type=VehicleType.BIKE,
        distance=distance,
        bearing=45.0,
        direction=RelativeDirection(name="NE"),
        movement=Movement(),
        location=PositionFix(latitude=12.97, longitude=77.59),
    )


class TestPositionFix:
    def test_missing_coordinates_mean_no_fix(self) -> None:
        assert PositionFix().has_fix is False
        assert PositionFix(latitude=12.97).has_fix is False
        assert PositionFix(latitude=12.97, longitude=77.59).has_fix is True

    def test_invalid_latitude(self) -> None:
        with pytest.raises(ValidationError):
            PositionFix(latitude=91.0, longitude=0.0)

    def test_heading_must_be_below_360(self) -> None:
        with pytest.raises(ValidationError):
            PositionFix(latitude=0.0, longitude=0.0, heading=360.0)


class TestTracker:
    def test_registration_defaults(self) -> None:
        tracker = Tracker(phone_number="+919800000001", vehicle_id="KA01", full_name="Ravi")
        assert tracker.vehicle_type == VehicleType.CAR
        assert tracker.is_active and tracker.is_driving
        assert tracker.location_tracking_enabled is False
        assert tracker.has_fix is False

    def test_public_profile(self) -> None:
        tracker = Tracker(phone_number="+919800000001", vehicle_id="KA01", full_name="Ravi")
        profile = tracker.public_profile()
        assert profile["phoneNumber"] == "+919800000001"
        assert profile["name"] == "Ravi"
        assert profile["vehicleType"] == "car"


class TestMovement:
    def test_text_only_for_a_trend(self) -> None:
        assert Movement(status=MovementStatus.APPROACHING, speed=1.0).text == "Coming Closer"
        assert Movement(status=MovementStatus.RECEDING, speed=1.0).text == "Going Away"
        assert Movement().text is None


class TestProximityAlert:
    def test_collision_alert_with_warning_peers(self) -> None:
        alert = ProximityAlert(
            alert_level=AlertLevel.COLLISION,
            collision_vehicles=[_peer("+1", 2.0)],
            warning_vehicles=[_peer("+2", 4.0)],
        )
        assert alert.type == "COMBINED_ALERT"
        assert alert.alert_level is AlertLevel.COLLISION

    def test_never_empty(self) -> None:
        with pytest.raises(ValidationError):
            ProximityAlert(alert_level=AlertLevel.WARNING)

    def test_peer_appears_once(self) -> None:
        with pytest.raises(ValidationError):
            ProximityAlert(
                alert_level=AlertLevel.COLLISION,
                collision_vehicles=[_peer("+1", 2.0)],
                warning_vehicles=[_peer("+1", 4.0)],
            )

    def test_level_must_match_buckets(self) -> None:
        with pytest.raises(ValidationError):
            ProximityAlert(alert_level=AlertLevel.COLLISION, warning_vehicles=[_peer("+2", 4.0)])

    def test_negative_distance_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _peer("+1", -0.5)
