"""
UCASA — WebSocket Connection Manager

Manages one live channel per tracker (keyed by phone number) for
collision alerts and fleet updates.

Provides both async methods (for WebSocket endpoints) and
sync-safe methods (for calling from worker threads running the engine).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import WebSocket

from src.common.events import ChannelMessage
from src.common.schemas import ProximityAlert

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Central hub for all active tracker channels."""

    def __init__(self) -> None:
        self.connections: Dict[str, WebSocket] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Called at startup to capture the running event loop."""
        self._loop = loop

    # ── Connection lifecycle ──────────────────────────────────────────────────

    async def connect(self, websocket: WebSocket, phone_number: str) -> None:
        await websocket.accept()
        self.connections[phone_number] = websocket
        logger.info(f"Tracker {phone_number} connected via WebSocket")

    def disconnect(self, phone_number: str, websocket: WebSocket) -> None:
        """Drop the registration only if it still belongs to this socket."""
        if self.connections.get(phone_number) is websocket:
            del self.connections[phone_number]

    def is_connected(self, phone_number: str) -> bool:
        return phone_number in self.connections

    # ── Async send (for use inside async endpoint handlers) ──────────────────

    async def send(self, phone_number: str, event: str, data: Any) -> None:
        ws = self.connections.get(phone_number)
        if ws:
            try:
                await ws.send_json(ChannelMessage(event=event, data=data).model_dump(mode="json"))
            except Exception as exc:
                logger.warning(f"Tracker WS send failed ({phone_number}): {exc}")
                self.disconnect(phone_number, ws)

    async def broadcast(self, event: str, data: Any) -> None:
        for phone_number in list(self.connections.keys()):
            await self.send(phone_number, event, data)

    # ── Sync-safe sends (called from worker threads) ─────────────────────────

    def send_sync(self, phone_number: str, event: str, data: Any) -> None:
        """Fire-and-forget from a sync thread."""
        if self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(
                self.send(phone_number, event, data), self._loop
            )

    def broadcast_sync(self, event: str, data: Any) -> None:
        """Fire-and-forget from a sync thread."""
        if self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(self.broadcast(event, data), self._loop)

    # ── Alert delivery ───────────────────────────────────────────────────────

    def emit(self, tracker_id: str, alert: ProximityAlert) -> None:
        """Push one combined alert to one tracker's channel, if it is connected."""
        if not self.is_connected(tracker_id):
            logger.debug(f"No live channel for {tracker_id}, alert not delivered")
            return
        self.send_sync(tracker_id, "collision-alert", alert.model_dump(mode="json", by_alias=True))
