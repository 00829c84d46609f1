"""
Tests — FastAPI Transport

Tier 3: REST endpoints and the tracker live channel, run against the
in-memory store configured in conftest.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from src.services.main import app


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def _phone() -> str:
    return f"+1{uuid.uuid4().int % 10**10:010d}"


def _create(client: TestClient, phone: str, **extra) -> Dict[str, Any]:
    body = {"phone_number": phone, "vehicle_id": f"V-{phone[-4:]}", "full_name": "Test Driver"}
    body.update(extra)
    response = client.post("/api/vehicles", json=body)
    assert response.status_code == 201
    return response.json()


def _receive_until(ws, event: str, limit: int = 10) -> Dict[str, Any]:
    for _ in range(limit):
        message = ws.receive_json()
        if message["event"] == event:
            return message
    raise AssertionError(f"no {event!r} message received")


class TestRest:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_create_and_list(self, client: TestClient) -> None:
        phone = _phone()
        created = _create(client, phone, vehicle_type="truck")
        assert created["vehicleType"] == "truck"
        assert created["locationTrackingEnabled"] is False
        phones = [v["phoneNumber"] for v in client.get("/api/vehicles").json()]
        assert phone in phones

    def test_duplicate_create_conflicts(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone)
        response = client.post(
            "/api/vehicles",
            json={"phone_number": phone, "vehicle_id": "X", "full_name": "Y"},
        )
        assert response.status_code == 409

    def test_user_profile(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone)
        body = client.get(f"/api/user/{phone}").json()
        assert body["success"] is True
        assert body["user"]["phoneNumber"] == phone

    def test_unknown_user_404(self, client: TestClient) -> None:
        assert client.get("/api/user/+00000").status_code == 404

    def test_location_updates_raise_collision(self, client: TestClient) -> None:
        a, b = _phone(), _phone()
        _create(client, a, location_tracking_enabled=True)
        _create(client, b, location_tracking_enabled=True)

        first = client.put(
            f"/api/v1/trackers/{a}/location",
            json={"latitude": 40.71280, "longitude": -74.00600, "heading": 0.0},
        ).json()
        assert first == {"phoneNumber": a, "status": "updated", "alertLevel": None}

        second = client.put(
            f"/api/v1/trackers/{b}/location",
            json={"latitude": 40.712817, "longitude": -74.005978, "heading": 180.0},
        ).json()
        assert second["alertLevel"] == "COLLISION"

        users = [u["phoneNumber"] for u in client.get("/api/all-users").json()]
        assert a in users and b in users

    def test_location_ignored_while_tracking_disabled(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone)
        body = client.put(
            f"/api/v1/trackers/{phone}/location", json={"latitude": 1.0, "longitude": 1.0}
        ).json()
        assert body["status"] == "ignored"

    def test_location_for_unknown_tracker_404(self, client: TestClient) -> None:
        response = client.put(
            "/api/v1/trackers/+00000/location", json={"latitude": 1.0, "longitude": 1.0}
        )
        assert response.status_code == 404

    def test_invalid_coordinates_rejected(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone, location_tracking_enabled=True)
        response = client.put(
            f"/api/v1/trackers/{phone}/location", json={"latitude": 95.0, "longitude": 1.0}
        )
        assert response.status_code == 422

    def test_tracking_toggle_acknowledged(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone)
        body = client.put(
            f"/api/v1/trackers/{phone}/tracking", json={"location_tracking_enabled": True}
        ).json()
        assert body == {
            "phoneNumber": phone,
            "locationTrackingEnabled": True,
            "success": True,
            "error": None,
        }

    def test_tracking_toggle_unknown_tracker(self, client: TestClient) -> None:
        body = client.put(
            "/api/v1/trackers/+00000/tracking", json={"location_tracking_enabled": True}
        ).json()
        assert body["success"] is False
        assert body["error"] == "Tracker not found"


class TestLiveChannel:
    def test_register_and_toggle(self, client: TestClient) -> None:
        phone = _phone()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_json({
                "event": "register-vehicle",
                "data": {"phoneNumber": phone, "vehicleId": "KA01", "fullName": "Ravi", "vehicleType": "bike"},
            })
            registered = _receive_until(ws, "registration-success")
            assert registered["data"]["user"]["vehicleType"] == "bike"

            ws.send_json({
                "event": "toggle-location-tracking",
                "data": {"phoneNumber": phone, "locationTrackingEnabled": True},
            })
            ack = _receive_until(ws, "location-tracking-updated")
            assert ack["data"]["success"] is True
            assert ack["data"]["locationTrackingEnabled"] is True

            ws.send_json({"event": "get-vehicles"})
            fleet = _receive_until(ws, "vehicles-update")
            mine = [v for v in fleet["data"] if v["phoneNumber"] == phone]
            assert mine and mine[0]["locationTrackingEnabled"] is True

    def test_location_update_over_channel(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone, location_tracking_enabled=True)
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_json({
                "event": "location-update",
                "data": {"phoneNumber": phone, "latitude": 12.97, "longitude": 77.59, "isSimulated": True},
            })
            users = _receive_until(ws, "all-users-update")
            mine = [u for u in users["data"] if u["phoneNumber"] == phone]
            assert mine[0]["currentLocation"]["isSimulated"] is True

    def test_remove_vehicle(self, client: TestClient) -> None:
        phone = _phone()
        _create(client, phone)
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_json({"event": "remove-vehicle", "data": {"phoneNumber": phone}})
            fleet = _receive_until(ws, "vehicles-update")
            assert phone not in [v["phoneNumber"] for v in fleet["data"]]

    def test_malformed_message_answered_with_error(self, client: TestClient) -> None:
        phone = _phone()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_json({"event": "location-update", "data": {"latitude": 200}})
            error = _receive_until(ws, "error")
            assert error["data"]["detail"] == "Malformed message"
            # Connection survives
            ws.send_json({"event": "get-all-users"})
            assert _receive_until(ws, "all-users-update")["event"] == "all-users-update"
    def test_non_json_frame_answered_with_error(self, client: TestClient) -> None:
        phone = _phone()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_text("not json")
            error = _receive_until(ws, "error")
            assert error["data"]["detail"] == "Malformed message"
            ws.send_json({"event": "get-vehicles"})
            assert _receive_until(ws, "vehicles-update")["event"] == "vehicles-update"

    def test_closed_socket_is_unregistered(self, client: TestClient) -> None:
        from src.services import main

        phone = _phone()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_text("[1, 2")
            _receive_until(ws, "error")
            assert main.ws_manager.is_connected(phone)
        assert not main.ws_manager.is_connected(phone)

    def test_reconnect_survives_old_socket_closing(self, client: TestClient) -> None:
        from src.services import main

        phone = _phone()
        old = client.websocket_connect(f"/ws/tracker/{phone}")
        old.__enter__()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            old.__exit__(None, None, None)
            ws.send_json({"event": "get-vehicles"})
            _receive_until(ws, "vehicles-update")
            assert main.ws_manager.is_connected(phone)

    def test_collision_alert_uses_camel_case(self, client: TestClient) -> None:
        a, b = _phone(), _phone()
        _create(client, a, location_tracking_enabled=True)
        _create(client, b, location_tracking_enabled=True)
        with client.websocket_connect(f"/ws/tracker/{b}") as ws:
            client.put(
                f"/api/v1/trackers/{a}/location",
                json={"latitude": 40.71280, "longitude": -74.00600, "heading": 0.0},
            )
            client.put(
                f"/api/v1/trackers/{b}/location",
                json={"latitude": 40.712817, "longitude": -74.005978, "heading": 180.0},
            )
            alert = _receive_until(ws, "collision-alert")["data"]
            assert alert["type"] == "COMBINED_ALERT"
            assert alert["alertLevel"] == "COLLISION"
            assert alert["warningVehicles"] == []
            peer = alert["collisionVehicles"][0]
            assert peer["phoneNumber"] == a
            assert peer["vehicleId"] == f"V-{a[-4:]}"

    def test_registration_failure_reported(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from src.services import main

        def broken_register(*args, **kwargs):
            raise RuntimeError("store offline")

        monkeypatch.setattr(main.tracker_registry, "register", broken_register)
        phone = _phone()
        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            ws.send_json({
                "event": "register-vehicle",
                "data": {"phoneNumber": phone, "vehicleId": "KA02", "fullName": "Asha"},
            })
            failed = _receive_until(ws, "registration-error")
            assert failed["data"] == {"error": "Failed to register vehicle."}
            ws.send_json({"event": "get-vehicles"})
            assert _receive_until(ws, "vehicles-update")["event"] == "vehicles-update"



class TestToggleTimeout:
    def test_slow_store_resolves_as_timeout(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from src.services import main

        def slow_toggle(phone_number: str, enabled: bool):
            time.sleep(0.5)

        monkeypatch.setattr(main.settings, "toggle_ack_timeout_s", 0.05)
        monkeypatch.setattr(main.tracker_registry, "set_tracking_enabled", slow_toggle)

        body = client.put(
            "/api/v1/trackers/+15550009999/tracking", json={"location_tracking_enabled": True}
        ).json()
        assert body["success"] is False
        assert body["error"] == "timeout"
        assert body["locationTrackingEnabled"] is None

    def test_late_write_is_published_to_the_fleet(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from src.services import main

        phone = _phone()
        _create(client, phone)
        store_toggle = main.tracker_registry.set_tracking_enabled

        def slow_toggle(phone_number: str, enabled: bool):
            time.sleep(0.3)
            return store_toggle(phone_number, enabled)

        monkeypatch.setattr(main.settings, "toggle_ack_timeout_s", 0.05)
        monkeypatch.setattr(main.tracker_registry, "set_tracking_enabled", slow_toggle)

        with client.websocket_connect(f"/ws/tracker/{phone}") as ws:
            body = client.put(
                f"/api/v1/trackers/{phone}/tracking", json={"location_tracking_enabled": True}
            ).json()
            assert body["error"] == "timeout"
            assert body["locationTrackingEnabled"] is None

            for _ in range(10):
                fleet = _receive_until(ws, "vehicles-update")
                mine = [v for v in fleet["data"] if v["phoneNumber"] == phone]
                if mine and mine[0]["locationTrackingEnabled"]:
                    break
            else:
                raise AssertionError("late toggle never reached the fleet")

        assert main.tracker_registry.get(phone).location_tracking_enabled is True
