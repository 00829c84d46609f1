"""
UCASA — FastAPI Application

REST + WebSocket transport around the proximity alert engine.

Endpoints:
  GET    /health                                  — liveness + environment
  GET    /api/vehicles                            — active trackers
  POST   /api/vehicles                            — create a tracker
  GET    /api/all-users                           — trackers with a live fix
  GET    /api/user/{phone_number}                 — public tracker profile
  PUT    /api/v1/trackers/{phone_number}/location — ingest one position update
  PUT    /api/v1/trackers/{phone_number}/tracking — toggle location tracking (acknowledged)
  WS     /ws/tracker/{phone_number}               — tracker live channel

Live channel events (``{"event": ..., "data": ...}``):
  in:  register-vehicle, remove-vehicle, toggle-driving,
       toggle-location-tracking, get-vehicles, get-all-users, location-update
  out: registration-success, registration-error, vehicles-update, all-users-update,
       location-tracking-updated, collision-alert, error
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from src.common.events import (
    INBOUND_PAYLOADS,
    ChannelMessage,
    LocationUpdatePayload,
    RegisterVehiclePayload,
    RemoveVehiclePayload,
    ToggleDrivingPayload,
    ToggleTrackingPayload,
    TrackingToggleResult,
)
from src.common.logger import configure_logging
from src.common.schemas import Tracker, VehicleType
from src.config import get_settings
from src.database.repository import TrackerRepository
from src.database.session import Base, SessionLocal, engine
from src.services.pipeline import build_pipeline
from src.services.tracker_registry import TrackerExistsError, TrackerRegistry
from src.services.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)
settings = get_settings()

# ── Service graph (explicitly owned, no module-level mutable maps) ───────────

ws_manager = ConnectionManager()
tracker_registry = TrackerRegistry(TrackerRepository(SessionLocal))
position_pipeline = build_pipeline(settings, tracker_registry, ws_manager)

# ── App ───────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level.value)
    Base.metadata.create_all(bind=engine)
    tracker_registry.load()
    # Give WebSocket manager access to the running event loop
    ws_manager.set_event_loop(asyncio.get_running_loop())
    logger.info("UCASA started: store loaded, WebSocket loop captured.")
    yield


app = FastAPI(
    title="UCASA Proximity Alert Service",
    description="Real-time vehicle proximity and collision alerts.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)


# ── Request models ────────────────────────────────────────────────────────────

class CreateTrackerRequest(BaseModel):
    phone_number: str = Field(..., min_length=1)
    vehicle_id: str
    full_name: str
    vehicle_type: VehicleType = VehicleType.CAR
    is_driving: bool = True
    location_tracking_enabled: bool = False


class UpdateLocationRequest(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0.0)
    speed: Optional[float] = Field(default=None, ge=0.0)
    heading: Optional[float] = Field(default=None, ge=0.0, lt=360.0)
    is_simulated: bool = False


class ToggleTrackingRequest(BaseModel):
    location_tracking_enabled: bool


# ── Fleet snapshots ───────────────────────────────────────────────────────────

def _vehicles() -> List[Dict[str, Any]]:
    return [t.model_dump(mode="json", by_alias=True) for t in tracker_registry.active()]


def _all_users() -> List[Dict[str, Any]]:
    return [t.model_dump(mode="json", by_alias=True) for t in tracker_registry.with_location()]


async def _broadcast_fleet(include_users: bool = True) -> None:
    await ws_manager.broadcast("vehicles-update", _vehicles())
    if include_users:
        await ws_manager.broadcast("all-users-update", _all_users())


def _settle_late_toggle(phone_number: str, future: "asyncio.Future[Optional[Tracker]]") -> None:
    """A timed-out toggle finished anyway: publish the state it produced."""
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Late tracking toggle for {phone_number} failed: {exc}")
        return
    tracker = future.result()
    if tracker is not None:
        logger.info(
            f"Late tracking toggle for {phone_number} settled: "
            f"{tracker.location_tracking_enabled}"
        )
        asyncio.ensure_future(_broadcast_fleet())


async def toggle_tracking(phone_number: str, enabled: bool) -> TrackingToggleResult:
    """
    Apply a tracking toggle and resolve once: success, not found, or timeout.
    A timeout leaves the outcome unknown; if the write completes later the
    fleet broadcast carries the state it produced.
    """
    loop = asyncio.get_running_loop()
    write = loop.run_in_executor(
        None, tracker_registry.set_tracking_enabled, phone_number, enabled
    )
    try:
        tracker = await asyncio.wait_for(
            asyncio.shield(write), timeout=settings.toggle_ack_timeout_s
        )
    except asyncio.TimeoutError:
        logger.error(f"Tracking toggle for {phone_number} timed out")
        write.add_done_callback(partial(_settle_late_toggle, phone_number))
        return TrackingToggleResult(
            phone_number=phone_number,
            location_tracking_enabled=None,
            success=False,
            error="timeout",
        )
    except Exception as exc:
        logger.error(f"Tracking toggle for {phone_number} failed: {exc}", exc_info=True)
        return TrackingToggleResult(
            phone_number=phone_number,
            location_tracking_enabled=None,
            success=False,
            error=str(exc),
        )

    if tracker is None:
        return TrackingToggleResult(
            phone_number=phone_number,
            location_tracking_enabled=False,
            success=False,
            error="Tracker not found",
        )
    logger.info(f"Vehicle {tracker.vehicle_id} location tracking updated to: {enabled}")
    return TrackingToggleResult(
        phone_number=phone_number,
        location_tracking_enabled=tracker.location_tracking_enabled,
        success=True,
    )


# ── Health ────────────────────────────────────────────────────────────────────

@app.get("/health", tags=["System"])
async def health() -> Dict[str, str]:
    return {"status": "ok", "environment": settings.environment.value}


# ── Trackers ──────────────────────────────────────────────────────────────────

@app.get("/api/vehicles", tags=["Trackers"])
def list_vehicles() -> List[Dict[str, Any]]:
    return _vehicles()


@app.post("/api/vehicles", status_code=status.HTTP_201_CREATED, tags=["Trackers"])
def create_vehicle(req: CreateTrackerRequest) -> Dict[str, Any]:
    try:
        tracker = tracker_registry.create(Tracker(**req.model_dump()))
    except TrackerExistsError:
        raise HTTPException(status_code=409, detail="Tracker already registered")
    ws_manager.broadcast_sync("vehicles-update", _vehicles())
    return tracker.model_dump(mode="json", by_alias=True)


@app.get("/api/all-users", tags=["Trackers"])
def list_all_users() -> List[Dict[str, Any]]:
    return _all_users()


@app.get("/api/user/{phone_number}", tags=["Trackers"])
def get_user(phone_number: str) -> Dict[str, Any]:
    tracker = tracker_registry.get(phone_number)
    if tracker is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": tracker.public_profile()}


@app.put("/api/v1/trackers/{phone_number}/location", tags=["Trackers"])
def update_location(phone_number: str, req: UpdateLocationRequest) -> Dict[str, Any]:
    """Ingest one position report and run a proximity evaluation for it."""
    if tracker_registry.get(phone_number) is None:
        raise HTTPException(status_code=404, detail="Tracker not found")

    outcome = position_pipeline.on_position_update(phone_number, **req.model_dump())
    if not outcome.accepted:
        return {"phoneNumber": phone_number, "status": "ignored", "alertLevel": None}

    ws_manager.broadcast_sync("vehicles-update", _vehicles())
    ws_manager.broadcast_sync("all-users-update", _all_users())
    return {
        "phoneNumber": phone_number,
        "status": "updated",
        "alertLevel": outcome.alert.alert_level.value if outcome.alert else None,
    }


@app.put("/api/v1/trackers/{phone_number}/tracking", tags=["Trackers"])
async def update_tracking(phone_number: str, req: ToggleTrackingRequest) -> Dict[str, Any]:
    result = await toggle_tracking(phone_number, req.location_tracking_enabled)
    if result.success:
        await _broadcast_fleet()
    return result.model_dump(by_alias=True)


# ── Live channel handlers ─────────────────────────────────────────────────────

async def _on_register(websocket: WebSocket, data: RegisterVehiclePayload) -> None:
    try:
        tracker = await run_in_threadpool(
            tracker_registry.register,
            data.phone_number,
            data.vehicle_id,
            data.full_name,
            data.vehicle_type,
        )
    except Exception as exc:
        logger.error(f"Registration of {data.phone_number} failed: {exc}", exc_info=True)
        await websocket.send_json(ChannelMessage(
            event="registration-error", data={"error": "Failed to register vehicle."}
        ).model_dump(mode="json"))
        return
    await _broadcast_fleet(include_users=False)
    await websocket.send_json(ChannelMessage(
        event="registration-success",
        data={
            "phoneNumber": tracker.phone_number,
            "vehicleId": tracker.vehicle_id,
            "fullName": tracker.full_name,
            "user": tracker.public_profile(),
        },
    ).model_dump(mode="json"))


async def _on_remove(websocket: WebSocket, data: RemoveVehiclePayload) -> None:
    await run_in_threadpool(position_pipeline.deactivate, data.phone_number)
    await _broadcast_fleet(include_users=False)


async def _on_toggle_driving(websocket: WebSocket, data: ToggleDrivingPayload) -> None:
    tracker = await run_in_threadpool(
        tracker_registry.set_driving, data.phone_number, data.is_driving
    )
    if tracker:
        logger.info(f"Vehicle {tracker.vehicle_id} driving status updated to: {data.is_driving}")
        await _broadcast_fleet(include_users=False)


async def _on_toggle_tracking(websocket: WebSocket, data: ToggleTrackingPayload) -> None:
    result = await toggle_tracking(data.phone_number, data.location_tracking_enabled)
    if result.success:
        await _broadcast_fleet()
    await websocket.send_json(ChannelMessage(
        event="location-tracking-updated", data=result.model_dump(by_alias=True)
    ).model_dump(mode="json"))


async def _on_location(websocket: WebSocket, data: LocationUpdatePayload) -> None:
    outcome = await run_in_threadpool(
        position_pipeline.on_position_update,
        data.phone_number,
        data.latitude,
        data.longitude,
        data.accuracy,
        data.speed,
        data.heading,
        data.is_simulated,
    )
    if outcome.accepted:
        await _broadcast_fleet()


HANDLERS = {
    "register-vehicle": _on_register,
    "remove-vehicle": _on_remove,
    "toggle-driving": _on_toggle_driving,
    "toggle-location-tracking": _on_toggle_tracking,
    "location-update": _on_location,
}


async def handle_message(websocket: WebSocket, raw: str) -> None:
    """Parse, validate and dispatch one inbound channel frame."""
    try:
        message = ChannelMessage.model_validate_json(raw)
        if message.event == "get-vehicles":
            await websocket.send_json({"event": "vehicles-update", "data": _vehicles()})
            return
        if message.event == "get-all-users":
            await websocket.send_json({"event": "all-users-update", "data": _all_users()})
            return
        handler = HANDLERS.get(message.event)
        if handler is None:
            logger.warning(f"Unknown channel event: {message.event}")
            return
        payload = INBOUND_PAYLOADS[message.event].model_validate(message.data or {})
    except ValidationError as exc:
        logger.warning(f"Malformed channel message: {exc}")
        await websocket.send_json({
            "event": "error",
            "data": {"detail": "Malformed message", "errors": [e["msg"] for e in exc.errors()]},
        })
        return

    await handler(websocket, payload)


# ── WebSocket Endpoint ────────────────────────────────────────────────────────

@app.websocket("/ws/tracker/{phone_number}")
async def tracker_websocket(websocket: WebSocket, phone_number: str) -> None:
    """
    Persistent live channel for one tracker. Receives collision alerts
    pushed by the engine and fleet updates; sends registration, toggles
    and position reports.
    """
    await ws_manager.connect(websocket, phone_number)
    try:
        while True:
            raw = await websocket.receive_text()
            await handle_message(websocket, raw)
    except WebSocketDisconnect:
        logger.info(f"Tracker {phone_number} disconnected")
    finally:
        ws_manager.disconnect(phone_number, websocket)


# ── Entry point ───────────────────────────────────────────────────────────────

def run_server() -> None:
    uvicorn.run(
        "src.services.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment.value == "dev",
    )


if __name__ == "__main__":
    run_server()
