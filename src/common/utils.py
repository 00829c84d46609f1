"""
UCASA — Shared Utilities

Pure, stateless helper functions used across multiple services:
great-circle distance, rhumb-line bearing, angle normalization and
the canonical pair key.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

EARTH_RADIUS_M = 6_371_000

# Mercator stretch is infinite at the poles; latitudes are held just inside them
_MAX_MERCATOR_LAT_RAD = math.pi / 2 - 1e-9


def haversine_distance_m(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """
    Calculate the great-circle distance in **meters** between two
    GPS coordinates using the Haversine formula.

    NaN inputs propagate to a NaN result.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _clamp_latitude(phi: float) -> float:
    if phi > _MAX_MERCATOR_LAT_RAD:
        return _MAX_MERCATOR_LAT_RAD
    if phi < -_MAX_MERCATOR_LAT_RAD:
        return -_MAX_MERCATOR_LAT_RAD
    return phi


def rhumb_bearing_degrees(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """
    Constant-heading (rhumb-line) bearing from point 1 to point 2.
    Returns a value in [0, 360).
    """
    phi1 = _clamp_latitude(math.radians(lat1))
    phi2 = _clamp_latitude(math.radians(lat2))
    d_lambda = math.radians(lon2 - lon1)

    # Take the short way round the antimeridian
    if abs(d_lambda) > math.pi:
        d_lambda = d_lambda - 2 * math.pi if d_lambda > 0 else d_lambda + 2 * math.pi

    d_psi = math.log(
        math.tan(math.pi / 4 + phi2 / 2) / math.tan(math.pi / 4 + phi1 / 2)
    )
    bearing = (math.degrees(math.atan2(d_lambda, d_psi)) + 360) % 360
    return 0.0 if bearing >= 360 else bearing


def normalize_signed_angle(angle: float) -> float:
    """Wrap an angle in degrees into (-180, 180]."""
    wrapped = math.fmod(angle, 360.0)
    if wrapped > 180:
        wrapped -= 360
    elif wrapped <= -180:
        wrapped += 360
    return wrapped


PairKey = tuple[str, str]


def pair_key(id_a: str, id_b: str) -> PairKey:
    """Order-independent key for an unordered pair of tracker identities."""
    first, second = sorted((id_a, id_b))
    return first, second


def utc_now() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(tz=timezone.utc)
