"""
UCASA — GPS Simulation Client

Registers a few simulated vehicles over their live channels, enables
tracking and replays position scenarios so the proximity engine fires.

Scenarios:
  near      second vehicle placed --offset meters NE of the first
  exact     first two vehicles at the very same spot (co-located)
  approach  second vehicle closes in on the first, one step per second
  random    vehicles scattered within ~500 m of the base point

Usage:
  python scripts/simulate_trackers.py                       # near, 2 vehicles
  python scripts/simulate_trackers.py --scenario approach
  python scripts/simulate_trackers.py --scenario random --vehicles 5

Requires the backend to be running: python -m src.services.main
"""

import argparse
import asyncio
import json
import math
import random

import websockets

WS = "ws://localhost:5000/ws/tracker"
BASE = (40.7128, -74.0060)
METERS_PER_DEG_LAT = 111_320


def offset(lat, lon, north_m, east_m):
    """Shift a coordinate by a small number of meters north / east."""
    meters_per_deg_lon = METERS_PER_DEG_LAT * math.cos(math.radians(lat))
    return lat + north_m / METERS_PER_DEG_LAT, lon + east_m / meters_per_deg_lon


async def send(ws, event, data):
    await ws.send(json.dumps({"event": event, "data": data}))


async def drain(ws, label):
    """Print every pushed collision alert until the socket closes."""
    try:
        async for raw in ws:
            msg = json.loads(raw)
            if msg.get("event") == "collision-alert":
                alert = msg["data"]
                peers = alert["collisionVehicles"] + alert["warningVehicles"]
                summary = ", ".join(
                    f"{p['vehicleId']} {p['distance']:.1f}m {p['direction']['name']} "
                    f"({p['movement']['status']})"
                    for p in peers
                )
                print(f"   [{label}] {alert['alertLevel']}: {summary}")
    except websockets.ConnectionClosed:
        pass


async def report(ws, phone, lat, lon, heading):
    await send(ws, "location-update", {
        "phoneNumber": phone,
        "latitude": lat,
        "longitude": lon,
        "accuracy": 5,
        "heading": heading,
        "isSimulated": True,
    })


async def run(scenario, count, offset_m, steps):
    phones = [f"+1555000{i:04d}" for i in range(count)]
    sockets = []
    for i, phone in enumerate(phones):
        ws = await websockets.connect(f"{WS}/{phone}")
        sockets.append(ws)
        await send(ws, "register-vehicle", {
            "phoneNumber": phone,
            "vehicleId": f"SIM-{i + 1:02d}",
            "fullName": f"Simulated Driver {i + 1}",
            "vehicleType": "car",
        })
        await send(ws, "toggle-location-tracking", {
            "phoneNumber": phone, "locationTrackingEnabled": True,
        })
    readers = [asyncio.create_task(drain(ws, phones[i])) for i, ws in enumerate(sockets)]
    await asyncio.sleep(0.5)

    print(f"--- UCASA simulation: {scenario} ({count} vehicles) ---")
    lat0, lon0 = BASE

    if scenario == "near":
        await report(sockets[0], phones[0], lat0, lon0, 0)
        lat, lon = offset(lat0, lon0, offset_m / math.sqrt(2), offset_m / math.sqrt(2))
        await report(sockets[1], phones[1], lat, lon, 180)
        await report(sockets[0], phones[0], lat0, lon0, 0)

    elif scenario == "exact":
        await report(sockets[0], phones[0], lat0, lon0, 90)
        await report(sockets[1], phones[1], lat0, lon0, 270)

    elif scenario == "approach":
        await report(sockets[0], phones[0], lat0, lon0, 0)
        for step in range(steps):
            north = max(0.5, 12.0 - step * 1.5)
            lat, lon = offset(lat0, lon0, north, 0.0)
            await report(sockets[1], phones[1], lat, lon, 180)
            await report(sockets[0], phones[0], lat0, lon0, 0)
            print(f"   step {step + 1}: SIM-02 ~{north:.1f} m north of SIM-01")
            await asyncio.sleep(1.1)

    elif scenario == "random":
        for i, (ws, phone) in enumerate(zip(sockets, phones)):
            lat, lon = (lat0, lon0) if i == 0 else offset(
                lat0, lon0, random.uniform(-500, 500), random.uniform(-500, 500)
            )
            await report(ws, phone, lat, lon, random.randrange(360))

    # Other vehicles spread out from the base point
    if scenario in ("near", "exact", "approach"):
        for i in range(2, count):
            lat, lon = offset(lat0, lon0, i * 11.0, i * 11.0)
            await report(sockets[i], phones[i], lat, lon, (i * 90) % 360)

    await asyncio.sleep(1.0)
    for ws in sockets:
        await ws.close()
    await asyncio.gather(*readers)
    print("\n--- Simulation Complete ---")


def main():
    parser = argparse.ArgumentParser(description="UCASA GPS simulation client")
    parser.add_argument("--scenario", choices=["near", "exact", "approach", "random"], default="near")
    parser.add_argument("--vehicles", type=int, default=2)
    parser.add_argument("--offset", type=float, default=2.5, help="meters, for the near scenario")
    parser.add_argument("--steps", type=int, default=8, help="updates, for the approach scenario")
    args = parser.parse_args()

    if args.vehicles < 2:
        parser.error("need at least 2 vehicles")
    asyncio.run(run(args.scenario, args.vehicles, args.offset, args.steps))


if __name__ == "__main__":
    main()
