"""
UCASA — Direction Resolver

Turns a bearing toward a peer into a coarse direction label.

  - Heading unknown  → absolute 8-point compass label (N, NE, ... NW)
  - Heading known    → label relative to the direction of travel
                       (Front, Front-Right, ... Front-Left) plus the
                       signed relative angle in (-180, 180]

Every sector is 45° wide and half-open: [center - 22.5, center + 22.5).
"""

from __future__ import annotations

import math
from typing import Optional

from src.common.schemas import RelativeDirection
from src.common.utils import normalize_signed_angle

COMPASS_LABELS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")
RELATIVE_LABELS = (
    "Front", "Front-Right", "Right", "Back-Right",
    "Back", "Back-Left", "Left", "Front-Left",
)
NEARBY = "Nearby"

_SECTOR_DEG = 45.0


def _sector(angle: float) -> int:
    """Index of the 45° sector containing `angle` (sector 0 centered on 0°)."""
    return int(math.floor(((angle + _SECTOR_DEG / 2) % 360.0) / _SECTOR_DEG)) % 8


def resolve(heading: Optional[float], bearing_to_target: float) -> RelativeDirection:
    """Label the direction of a target given the observer's heading (if any)."""
    if heading is None:
        return RelativeDirection(name=COMPASS_LABELS[_sector(bearing_to_target)])

    relative = normalize_signed_angle(bearing_to_target - heading)
    return RelativeDirection(name=RELATIVE_LABELS[_sector(relative)], angle=relative)


def co_located() -> RelativeDirection:
    """Direction for a peer at zero distance, where bearing is undefined."""
    return RelativeDirection(name=NEARBY)
