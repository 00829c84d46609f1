"""
UCASA — Alert Aggregator

Folds the COLLISION and WARNING buckets of one evaluation into a single
combined alert and hands it to the delivery channel.

Delivery modes:
  - subject_only   (default) alert goes to the tracker whose update
                   triggered the evaluation
  - bidirectional  additionally, every peer in the alert receives a
                   mirrored alert naming the subject, with direction
                   resolved from the peer's own heading

No deduplication window is applied here; rate limiting belongs to the
delivery layer.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional, Protocol

from src.common.schemas import AlertLevel, ProximityAlert, ProximityPeer, Tracker
from src.common.utils import utc_now
from src.config import DeliveryMode
from src.services import direction
from src.services.proximity_engine import ProximityResult

logger = logging.getLogger(__name__)


class AlertEmitter(Protocol):
    def emit(self, tracker_id: str, alert: ProximityAlert) -> None:
        """Push one alert to one tracker's live channel (fire-and-forget)."""


def build_alert(
    result: ProximityResult, timestamp: Optional[datetime] = None
) -> Optional[ProximityAlert]:
    """Combined alert for the subject, or None when no peer is close enough."""
    if result.is_empty:
        return None
    return ProximityAlert(
        alert_level=AlertLevel.COLLISION if result.collision else AlertLevel.WARNING,
        collision_vehicles=list(result.collision),
        warning_vehicles=list(result.warning),
        timestamp=timestamp or utc_now(),
    )


def _mirror_entry(subject: Tracker, entry: ProximityPeer, peer_heading: Optional[float]) -> ProximityPeer:
    if entry.bearing is None:
        bearing = None
        label = direction.co_located()
    else:
        # Rhumb lines are reversible: the way back is exactly opposite
        bearing = (entry.bearing + 180.0) % 360.0
        label = direction.resolve(peer_heading, bearing)
    return ProximityPeer(
        phone_number=subject.phone_number,
        vehicle_id=subject.vehicle_id,
        full_name=subject.full_name,
        vehicle_type=subject.vehicle_type,
        distance=entry.distance,
        bearing=bearing,
        direction=label,
        movement=entry.movement,
        location=subject.current_location,
    )


def build_mirrored_alerts(
    result: ProximityResult, timestamp: Optional[datetime] = None
) -> Dict[str, ProximityAlert]:
    """One alert per peer in `result`, each naming only the subject."""
    timestamp = timestamp or utc_now()
    mirrored: Dict[str, ProximityAlert] = {}
    for level, bucket in (
        (AlertLevel.COLLISION, result.collision),
        (AlertLevel.WARNING, result.warning),
    ):
        for entry in bucket:
            seen_as = _mirror_entry(result.subject, entry, entry.location.heading)
            mirrored[entry.phone_number] = ProximityAlert(
                alert_level=level,
                collision_vehicles=[seen_as] if level is AlertLevel.COLLISION else [],
                warning_vehicles=[seen_as] if level is AlertLevel.WARNING else [],
                timestamp=timestamp,
            )
    return mirrored


class AlertAggregator:
    """Builds the combined alert for an evaluation and delivers it."""

    def __init__(
        self,
        emitter: AlertEmitter,
        mode: DeliveryMode = DeliveryMode.SUBJECT_ONLY,
    ) -> None:
        self.emitter = emitter
        self.mode = mode

    def dispatch(self, result: ProximityResult) -> Optional[ProximityAlert]:
        """Emit the combined alert (if any) and return it."""
        timestamp = utc_now()
        alert = build_alert(result, timestamp)
        if alert is None:
            return None

        subject = result.subject
        logger.info(
            f"📢 COMBINED ALERT for {subject.vehicle_id}: "
            f"{len(alert.collision_vehicles)} collision risks, "
            f"{len(alert.warning_vehicles)} warnings"
        )
        self.emitter.emit(subject.phone_number, alert)

        if self.mode is DeliveryMode.BIDIRECTIONAL:
            for peer_id, mirrored in build_mirrored_alerts(result, timestamp).items():
                self.emitter.emit(peer_id, mirrored)

        return alert
