"""
UCASA — Proximity Engine

For each position update of a subject tracker, measures every eligible
peer and buckets it by separation.

Algorithm:
  1. Skip entirely unless the subject is eligible (tracking on, fix, driving)
  2. For each eligible peer: distance (haversine) + rhumb bearing
  3. Direction relative to the subject's heading ("Nearby" when co-located)
  4. Movement trend for the pair (approaching / receding / unknown)
  5. d <= collision → COLLISION bucket; d <= warning → WARNING bucket
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from src.common.schemas import ProximityPeer, Tracker
from src.common.utils import haversine_distance_m, pair_key, rhumb_bearing_degrees
from src.config import ProximityThresholds
from src.services import direction
from src.services.eligibility import eligible_peers, is_eligible_subject
from src.services.movement_tracker import MovementTracker

logger = logging.getLogger(__name__)


@dataclass
class ProximityResult:
    subject: Tracker
    collision: List[ProximityPeer] = field(default_factory=list)
    warning: List[ProximityPeer] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.collision and not self.warning


class ProximityEngine:
    """Measures one subject against its peers and buckets them by distance."""

    def __init__(
        self,
        thresholds: Optional[ProximityThresholds] = None,
        movement_tracker: Optional[MovementTracker] = None,
    ) -> None:
        self.thresholds = thresholds or ProximityThresholds()
        self.movement_tracker = movement_tracker or MovementTracker()

    def evaluate(
        self,
        subject: Tracker,
        trackers: Iterable[Tracker],
        now: Optional[float] = None,
    ) -> ProximityResult:
        result = ProximityResult(subject=subject)
        if not is_eligible_subject(subject):
            logger.info(
                f"Tracker {subject.vehicle_id} not eligible (tracking off, "
                f"no fix or stopped), skipping collision check"
            )
            return result

        now = time.monotonic() if now is None else now
        peers = eligible_peers(subject, trackers)
        logger.debug(f"Checking {subject.vehicle_id} against {len(peers)} peers")

        for peer in peers:
            entry = self._measure(subject, peer, now)
            if entry.distance <= self.thresholds.collision_meters:
                result.collision.append(entry)
                logger.warning(
                    f"🚨 COLLISION RISK: {entry.distance:.1f}m - {peer.vehicle_id} "
                    f"{entry.direction.name} of {subject.vehicle_id} "
                    f"({entry.movement.status.value})"
                )
            elif entry.distance <= self.thresholds.warning_meters:
                result.warning.append(entry)
                logger.info(
                    f"⚠️ WARNING: {entry.distance:.1f}m - {peer.vehicle_id} "
                    f"{entry.direction.name} of {subject.vehicle_id} "
                    f"({entry.movement.status.value})"
                )

        result.collision.sort(key=_by_distance)
        result.warning.sort(key=_by_distance)
        return result

    def _measure(self, subject: Tracker, peer: Tracker, now: float) -> ProximityPeer:
        here, there = subject.current_location, peer.current_location
        distance = haversine_distance_m(
            here.latitude, here.longitude, there.latitude, there.longitude
        )

        if distance == 0:
            bearing = None
            label = direction.co_located()
        else:
            bearing = rhumb_bearing_degrees(
                here.latitude, here.longitude, there.latitude, there.longitude
            )
            label = direction.resolve(here.heading, bearing)

        movement = self.movement_tracker.classify(
            pair_key(subject.phone_number, peer.phone_number), distance, now
        )

        return ProximityPeer(
            phone_number=peer.phone_number,
            vehicle_id=peer.vehicle_id,
            full_name=peer.full_name,
            vehicle_type=peer.vehicle_type,
            distance=distance,
            bearing=bearing,
            direction=label,
            movement=movement,
            location=there,
        )


def _by_distance(entry: ProximityPeer) -> tuple:
    return entry.distance, entry.phone_number
