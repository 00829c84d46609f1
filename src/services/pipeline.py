"""
UCASA — Position Update Pipeline

Wires together: position report → tracker registry (ordered per tracker)
                → proximity engine → alert aggregator → live channel

Synchronous and CPU-bound; called from a worker thread by the transport.
The tracker's lock is held from storing the fix until its alert is
dispatched, so evaluations of one tracker happen in arrival order.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from src.common.schemas import PositionFix, ProximityAlert, Tracker
from src.config import UcasaSettings
from src.services.alert_aggregator import AlertAggregator, AlertEmitter
from src.services.movement_tracker import MovementTracker, PairStateStore
from src.services.proximity_engine import ProximityEngine
from src.services.tracker_registry import TrackerRegistry

logger = logging.getLogger(__name__)


@dataclass
class PositionUpdateOutcome:
    tracker: Optional[Tracker] = None
    alert: Optional[ProximityAlert] = None

    @property
    def accepted(self) -> bool:
        return self.tracker is not None


class PositionPipeline:
    """Runs one evaluation cycle per inbound position update."""

    def __init__(
        self,
        registry: TrackerRegistry,
        engine: ProximityEngine,
        aggregator: AlertAggregator,
    ) -> None:
        self.registry = registry
        self.engine = engine
        self.aggregator = aggregator

    def on_position_update(
        self,
        phone_number: str,
        latitude: Optional[float],
        longitude: Optional[float],
        accuracy: Optional[float] = None,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
        is_simulated: bool = False,
        now: Optional[float] = None,
    ) -> PositionUpdateOutcome:
        fix = PositionFix(
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            speed=speed,
            heading=heading,
            is_simulated=is_simulated,
        )
        now = time.monotonic() if now is None else now

        with self.registry.lock_for(phone_number):
            tracker = self.registry.apply_position(phone_number, fix)
            if tracker is None:
                return PositionUpdateOutcome()

            logger.debug(
                f"Tracker {tracker.vehicle_id} at {latitude}, {longitude} "
                f"(accuracy: {accuracy}m)"
            )
            result = self.engine.evaluate(tracker, self.registry.snapshot(), now=now)
            alert = self.aggregator.dispatch(result)

        return PositionUpdateOutcome(tracker=tracker, alert=alert)

    def deactivate(self, phone_number: str) -> Optional[Tracker]:
        """Soft-delete a tracker and drop the pair history that involves it."""
        tracker = self.registry.deactivate(phone_number)
        if tracker is not None:
            dropped = self.engine.movement_tracker.store.forget_tracker(phone_number)
            logger.info(f"Tracker {phone_number} deactivated ({dropped} pair states dropped)")
        return tracker


def build_pipeline(
    settings: UcasaSettings,
    registry: TrackerRegistry,
    emitter: AlertEmitter,
) -> PositionPipeline:
    """Assemble a pipeline whose stores are owned by the returned object."""
    store = PairStateStore(
        ttl_s=settings.pair_state_ttl_s,
        max_entries=settings.pair_state_max_entries,
    )
    tracker = MovementTracker(
        store=store,
        min_sample_interval_s=settings.min_sample_interval_s,
        hysteresis_m=settings.movement_hysteresis_m,
    )
    engine = ProximityEngine(thresholds=settings.thresholds, movement_tracker=tracker)
    aggregator = AlertAggregator(emitter, mode=settings.alert_delivery_mode)
    logger.info(
        f"Proximity pipeline ready: collision={settings.collision_meters}m "
        f"warning={settings.warning_meters}m delivery={settings.alert_delivery_mode.value}"
    )
    return PositionPipeline(registry, engine, aggregator)
