"""
UCASA — REST Fleet Seeder

Creates a small fleet through the REST API, switches tracking on and
posts one round of positions around a base point, printing the alert
level each update produced.

Usage:
  python scripts/seed_fleet.py
  python scripts/seed_fleet.py --vehicles 6 --spread 8
"""

from __future__ import annotations

import argparse
import math
import sys
from datetime import datetime

import requests

API = "http://localhost:5000"
BASE = (40.7128, -74.0060)
METERS_PER_DEG_LAT = 111_320
VEHICLE_TYPES = ["car", "bike", "auto", "truck", "bus"]


def log(tag: str, msg: str) -> None:
    ts = datetime.now().strftime("%H:%M:%S")
    colours = {"SEED": "\033[92m", "ALERT": "\033[91m", "ERROR": "\033[90m"}
    print(f"  {colours.get(tag, '')}[{ts}] [{tag}]\033[0m {msg}")


def post(path: str, payload: dict) -> dict | None:
    try:
        r = requests.post(f"{API}{path}", json=payload, timeout=5)
        if r.status_code in (200, 201):
            return r.json()
        log("ERROR", f"POST {path} → {r.status_code}: {r.text[:80]}")
    except requests.exceptions.ConnectionError:
        log("ERROR", f"Backend not reachable at {API}. Is it running?")
    return None


def put(path: str, payload: dict) -> dict | None:
    try:
        r = requests.put(f"{API}{path}", json=payload, timeout=5)
        if r.status_code == 200:
            return r.json()
        log("ERROR", f"PUT {path} → {r.status_code}: {r.text[:80]}")
    except requests.exceptions.ConnectionError:
        log("ERROR", f"Backend not reachable at {API}. Is it running?")
    return None


def check_backend() -> bool:
    try:
        r = requests.get(f"{API}/health", timeout=3)
        return r.status_code == 200
    except requests.RequestException:
        return False


def ring_position(index: int, count: int, spread_m: float) -> tuple[float, float]:
    """Place vehicle ``index`` on a ring of radius ``spread_m`` around the base."""
    lat0, lon0 = BASE
    if index == 0:
        return lat0, lon0
    angle = 2 * math.pi * index / max(count - 1, 1)
    north, east = spread_m * math.cos(angle), spread_m * math.sin(angle)
    meters_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(lat0))
    return lat0 + north / METERS_PER_DEG_LAT, lon0 + east / meters_per_deg_lon


def seed(count: int, spread_m: float) -> None:
    phones = [f"+1555100{i:04d}" for i in range(count)]
    for i, phone in enumerate(phones):
        created = post("/api/vehicles", {
            "phone_number": phone,
            "vehicle_id": f"SEED-{i + 1:02d}",
            "full_name": f"Seeded Driver {i + 1}",
            "vehicle_type": VEHICLE_TYPES[i % len(VEHICLE_TYPES)],
        })
        if created:
            log("SEED", f"{created['vehicleId']} registered as {phone}")
        put(f"/api/v1/trackers/{phone}/tracking", {"location_tracking_enabled": True})

    for i, phone in enumerate(phones):
        lat, lon = ring_position(i, count, spread_m)
        reply = put(f"/api/v1/trackers/{phone}/location", {
            "latitude": lat,
            "longitude": lon,
            "accuracy": 5,
            "heading": (i * 45) % 360,
            "is_simulated": True,
        })
        if reply and reply.get("alertLevel"):
            log("ALERT", f"{phone}: {reply['alertLevel']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="UCASA REST fleet seeder")
    parser.add_argument("--vehicles", type=int, default=4)
    parser.add_argument("--spread", type=float, default=4.0, help="ring radius in meters")
    args = parser.parse_args()

    if not check_backend():
        log("ERROR", f"Backend not reachable at {API}. Start it with: python -m src.services.main")
        sys.exit(1)
    seed(args.vehicles, args.spread)


if __name__ == "__main__":
    main()
