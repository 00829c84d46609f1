"""
UCASA — Movement Tracker (approaching / receding classification)

Keeps the last measured separation of every unordered tracker pair and
classifies the trend of each new measurement against it:

  1. First sight of a pair            → store, report UNKNOWN
  2. Sample closer than the interval  → report UNKNOWN, keep stored state
  3. Otherwise store the new sample, then compare the change against the
     hysteresis band: closer → APPROACHING, farther → RECEDING, else UNKNOWN

Classification of one pair is serialized; different pairs run in parallel.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from src.common.schemas import Movement, MovementStatus
from src.common.utils import PairKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairState:
    distance: float     # meters
    timestamp: float    # seconds


class PairStateStore:
    """
    Thread-safe pair-state map, bounded by a TTL and an LRU size cap.

    Mutual exclusion per pair uses a fixed set of striped locks, so a lock
    never has to be created or destroyed alongside the state it protects.
    """

    _STRIPES = 64
    _SWEEP_EVERY = 256

    def __init__(self, ttl_s: float = 600.0, max_entries: int = 10_000) -> None:
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._states: "OrderedDict[PairKey, PairState]" = OrderedDict()
        self._guard = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(self._STRIPES)]
        self._puts_since_sweep = 0

    def __len__(self) -> int:
        with self._guard:
            return len(self._states)

    def __contains__(self, key: PairKey) -> bool:
        with self._guard:
            return key in self._states

    @contextmanager
    def locked(self, key: PairKey) -> Iterator[None]:
        """Hold the lock that serializes all work on `key`."""
        lock = self._stripes[hash(key) % self._STRIPES]
        with lock:
            yield

    def get(self, key: PairKey, now: float) -> Optional[PairState]:
        with self._guard:
            state = self._states.get(key)
            if state is None:
                return None
            if now - state.timestamp > self.ttl_s:
                del self._states[key]
                return None
            self._states.move_to_end(key)
            return state

    def put(self, key: PairKey, state: PairState) -> None:
        with self._guard:
            self._states[key] = state
            self._states.move_to_end(key)
            while len(self._states) > self.max_entries:
                evicted, _ = self._states.popitem(last=False)
                logger.debug(f"Pair state evicted (LRU): {evicted}")
            self._puts_since_sweep += 1
            sweep = self._puts_since_sweep >= self._SWEEP_EVERY
            if sweep:
                self._puts_since_sweep = 0
        if sweep:
            self.evict_expired(state.timestamp)

    def evict_expired(self, now: float) -> int:
        """Drop every pair whose last sample is older than the TTL."""
        with self._guard:
            stale = [k for k, s in self._states.items() if now - s.timestamp > self.ttl_s]
            for key in stale:
                del self._states[key]
        if stale:
            logger.debug(f"Pair state evicted (TTL): {len(stale)} pairs")
        return len(stale)

    def forget_tracker(self, tracker_id: str) -> int:
        """Drop every pair that involves `tracker_id` (e.g. on deactivation)."""
        with self._guard:
            doomed = [k for k in self._states if tracker_id in k]
            for key in doomed:
                del self._states[key]
        return len(doomed)


class MovementTracker:
    """Classifies the distance trend of tracker pairs over time."""

    def __init__(
        self,
        store: Optional[PairStateStore] = None,
        min_sample_interval_s: float = 1.0,
        hysteresis_m: float = 0.3,
    ) -> None:
        self.store = store if store is not None else PairStateStore()
        self.min_sample_interval_s = min_sample_interval_s
        self.hysteresis_m = hysteresis_m

    def classify(self, key: PairKey, current_distance: float, now: float) -> Movement:
        with self.store.locked(key):
            previous = self.store.get(key, now)
            if previous is None:
                self.store.put(key, PairState(current_distance, now))
                return Movement()

            dt = now - previous.timestamp
            # Too soon (or out of order): keep the stored sample as the baseline
            if dt <= 0 or dt < self.min_sample_interval_s:
                return Movement()

            self.store.put(key, PairState(current_distance, now))

        delta = current_distance - previous.distance
        speed = abs(delta) / dt
        if delta < -self.hysteresis_m:
            return Movement(status=MovementStatus.APPROACHING, speed=speed)
        if delta > self.hysteresis_m:
            return Movement(status=MovementStatus.RECEDING, speed=speed)
        return Movement()
