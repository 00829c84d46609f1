"""
UCASA — Eligibility Filter

Decides which trackers take part in proximity checks. Stopped vehicles,
vehicles with tracking disabled and vehicles without a fix are exempt.
"""

from __future__ import annotations

from typing import Iterable, List

from src.common.schemas import Tracker


def is_eligible_subject(tracker: Tracker) -> bool:
    """A tracker whose update should trigger an evaluation."""
    return (
        tracker.location_tracking_enabled
        and tracker.has_fix
        and tracker.is_driving
    )


def is_eligible_peer(subject: Tracker, candidate: Tracker) -> bool:
    return (
        candidate.is_active
        and candidate.is_driving
        and candidate.location_tracking_enabled
        and candidate.has_fix
        and candidate.phone_number != subject.phone_number
    )


def eligible_peers(subject: Tracker, trackers: Iterable[Tracker]) -> List[Tracker]:
    """Peers of `subject` drawn from a tracker snapshot, input order preserved."""
    return [t for t in trackers if is_eligible_peer(subject, t)]
