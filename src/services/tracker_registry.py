"""
UCASA — Tracker Registry

In-memory collection of every tracker's registration, flags and latest fix,
written through to the durable repository when one is attached.

Updates for one tracker are serialized with a per-tracker lock held by the
caller (see ``lock_for``), so a later fix is never overwritten by an earlier
one processed concurrently. Updates for different trackers run in parallel.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from src.common.schemas import PositionFix, Tracker, VehicleType
from src.database.repository import TrackerRepository

logger = logging.getLogger(__name__)


class TrackerExistsError(Exception):
    """Raised when creating a tracker whose identity is already registered."""


class TrackerRegistry:
    """Owns the current state of all trackers."""

    def __init__(self, repository: Optional[TrackerRepository] = None) -> None:
        self.repository = repository
        self._trackers: Dict[str, Tracker] = {}
        self._guard = threading.RLock()
        self._tracker_locks: Dict[str, threading.RLock] = {}

    # ── Loading ───────────────────────────────────────────────────────────────

    def load(self) -> int:
        """Replace the in-memory state with the repository contents."""
        if self.repository is None:
            return 0
        trackers = self.repository.load_all()
        with self._guard:
            self._trackers = {t.phone_number: t for t in trackers}
        logger.info(f"Loaded {len(trackers)} trackers from store")
        return len(trackers)

    # ── Locking ───────────────────────────────────────────────────────────────

    @contextmanager
    def lock_for(self, phone_number: str) -> Iterator[None]:
        """Serialize all work on one tracker identity."""
        with self._guard:
            lock = self._tracker_locks.setdefault(phone_number, threading.RLock())
        with lock:
            yield

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get(self, phone_number: str) -> Optional[Tracker]:
        with self._guard:
            return self._trackers.get(phone_number)

    def snapshot(self) -> List[Tracker]:
        with self._guard:
            return list(self._trackers.values())

    def active(self) -> List[Tracker]:
        return [t for t in self.snapshot() if t.is_active]

    def with_location(self) -> List[Tracker]:
        """Tracking-enabled trackers with a fix, most recently updated first."""
        located = [t for t in self.snapshot() if t.location_tracking_enabled and t.has_fix]
        located.sort(key=lambda t: t.current_location.timestamp, reverse=True)
        return located

    # ── Writes ────────────────────────────────────────────────────────────────

    def _store(self, tracker: Tracker) -> Tracker:
        with self._guard:
            self._trackers[tracker.phone_number] = tracker
        if self.repository is not None:
            self.repository.save(tracker)
        return tracker

    def _update(self, phone_number: str, **changes) -> Optional[Tracker]:
        with self.lock_for(phone_number):
            current = self.get(phone_number)
            if current is None:
                return None
            return self._store(current.model_copy(update=changes))

    def create(self, tracker: Tracker) -> Tracker:
        with self.lock_for(tracker.phone_number):
            if self.get(tracker.phone_number) is not None:
                raise TrackerExistsError(tracker.phone_number)
            return self._store(tracker)

    def register(
        self,
        phone_number: str,
        vehicle_id: str,
        full_name: str,
        vehicle_type: VehicleType = VehicleType.CAR,
    ) -> Tracker:
        """
        Register a tracker, or reactivate an existing one.
        Tracking always starts disabled until the owner switches it on.
        """
        with self.lock_for(phone_number):
            existing = self.get(phone_number)
            if existing is not None:
                logger.info(f"Tracker {phone_number} re-registered")
                return self._store(
                    existing.model_copy(
                        update={"is_active": True, "location_tracking_enabled": False}
                    )
                )
            logger.info(f"Tracker {phone_number} registered ({vehicle_type.value})")
            return self._store(
                Tracker(
                    phone_number=phone_number,
                    vehicle_id=vehicle_id,
                    full_name=full_name,
                    vehicle_type=vehicle_type,
                )
            )

    def deactivate(self, phone_number: str) -> Optional[Tracker]:
        """Soft delete: the tracker stays stored with is_active=False."""
        return self._update(phone_number, is_active=False)

    def set_driving(self, phone_number: str, is_driving: bool) -> Optional[Tracker]:
        return self._update(phone_number, is_driving=is_driving)

    def set_tracking_enabled(self, phone_number: str, enabled: bool) -> Optional[Tracker]:
        return self._update(phone_number, location_tracking_enabled=enabled)

    def apply_position(self, phone_number: str, fix: PositionFix) -> Optional[Tracker]:
        """
        Record a new fix. Returns the updated tracker, or None when the
        tracker is unknown or has location tracking disabled.
        """
        with self.lock_for(phone_number):
            current = self.get(phone_number)
            if current is None:
                logger.info(f"Location update dropped for unknown tracker {phone_number}")
                return None
            if not current.location_tracking_enabled:
                logger.info(
                    f"Location update ignored for {phone_number} - location tracking disabled"
                )
                return None
            return self._store(current.model_copy(update={"current_location": fix}))
