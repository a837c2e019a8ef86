import json

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import near_site


CONNECTED = {"type": "connection_established", "message": "Connected to notification system"}


def test_socket_requires_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws"):
            pass
    assert exc.value.code == 1008


def test_socket_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=not-a-session"):
            pass
    assert exc.value.code == 1008


def test_logged_out_token_is_rejected(client, admin_token, admin_headers):
    client.post("/api/admin/logout", headers=admin_headers)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws?token={admin_token}"):
            pass


def test_admin_receives_checkin_and_checkout(client, admin_token, employee, employee_headers):
    with client.websocket_connect(f"/ws?token={admin_token}") as ws:
        assert ws.receive_json() == CONNECTED

        client.post("/api/employee/attendance/checkin", json=near_site(100), headers=employee_headers)
        frame = ws.receive_json()
        assert frame["type"] == "employee_checkin"
        assert frame["message"] == "Wes Porter checked in at Main Yard"
        assert frame["employee"]["id"] == employee.id
        assert frame["site"]["name"] == "Main Yard"
        assert frame["timestamp"].endswith("Z")
        assert set(frame["location"]) == {"latitude", "longitude"}

        client.post("/api/employee/attendance/checkout", json=near_site(100), headers=employee_headers)
        frame = ws.receive_json()
        assert frame["type"] == "employee_checkout"
        assert frame["message"] == "Wes Porter checked out from Main Yard"


def test_refused_checkin_sends_nothing(client, app, admin, admin_token, employee_headers):
    with client.websocket_connect(f"/ws?token={admin_token}") as ws:
        ws.receive_json()
        response = client.post("/api/employee/attendance/checkin", json=near_site(900), headers=employee_headers)
        assert response.status_code == 400
    assert app.state.hub.recent(admin.id) == []


def test_recent_notifications_are_replayed_on_connect(client, admin_token, employee_headers):
    client.post("/api/employee/attendance/checkin", json=near_site(10), headers=employee_headers)
    client.post("/api/employee/attendance/checkout", json=near_site(10), headers=employee_headers)

    with client.websocket_connect(f"/ws?token={admin_token}") as ws:
        assert ws.receive_json() == CONNECTED
        # Oldest first
        assert ws.receive_json()["type"] == "employee_checkin"
        assert ws.receive_json()["type"] == "employee_checkout"


def test_every_admin_socket_gets_notifications(client, app, admin, admin_token, employee_headers):
    with client.websocket_connect(f"/ws?token={admin_token}") as first:
        first.receive_json()
        with client.websocket_connect(f"/ws?token={admin_token}") as second:
            second.receive_json()
            assert app.state.hub.admin_connection_count(admin.id) == 2

            client.post("/api/employee/attendance/checkin", json=near_site(10), headers=employee_headers)
            assert first.receive_json()["type"] == "employee_checkin"
            assert second.receive_json()["type"] == "employee_checkin"


def test_other_admins_are_not_notified(client, app, make_admin, employee_headers):
    rival = make_admin(email="rival@example.com", company="Rival Co")
    token = client.post(
        "/api/admin/login", json={"email": rival.email, "password": "secret123"}
    ).json()["token"]

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.receive_json()
        client.post("/api/employee/attendance/checkin", json=near_site(10), headers=employee_headers)
    assert app.state.hub.recent(rival.id) == []


def test_location_updates_are_relayed(client, admin_token, employee, employee_token):
    with client.websocket_connect(f"/ws?token={admin_token}") as admin_ws:
        admin_ws.receive_json()

        with client.websocket_connect(f"/ws?token={employee_token}") as employee_ws:
            employee_ws.send_text("this is not json")
            employee_ws.send_json(["not", "an", "object"])
            employee_ws.send_json({"type": "location_update", **near_site(120)})

            frame = admin_ws.receive_json()
            assert frame["type"] == "employee_location"
            assert frame["employeeId"] == employee.id
            assert frame["employee"]["name"] == "Wes Porter"
            location = frame["location"]
            assert location["isOnSite"] is True
            assert location["distanceFromSite"] == 120
            assert location["timestamp"].endswith("Z")

            employee_ws.send_json({"type": "location_update", **near_site(450)})
            assert admin_ws.receive_json()["location"]["isOnSite"] is False


def test_rest_location_reports_are_relayed(client, admin_token, employee, employee_headers):
    with client.websocket_connect(f"/ws?token={admin_token}") as ws:
        ws.receive_json()
        client.post("/api/employee/location", json=near_site(80), headers=employee_headers)
        frame = ws.receive_json()
        assert frame["type"] == "employee_location"
        assert frame["location"]["distanceFromSite"] == 80


def test_invalid_location_update_is_ignored(client, app, admin_token, employee, employee_token, db):
    with client.websocket_connect(f"/ws?token={admin_token}") as admin_ws:
        admin_ws.receive_json()
        with client.websocket_connect(f"/ws?token={employee_token}") as employee_ws:
            employee_ws.send_json({"type": "location_update", "latitude": "abc", "longitude": 1})
            employee_ws.send_json({"type": "location_update", **near_site(5)})
            # The bad frame produced nothing; the next good one still arrives
            assert admin_ws.receive_json()["location"]["distanceFromSite"] == 5


def test_binary_frames_are_decoded_or_dropped(client, admin_token, employee, employee_token):
    with client.websocket_connect(f"/ws?token={admin_token}") as admin_ws:
        admin_ws.receive_json()
        with client.websocket_connect(f"/ws?token={employee_token}") as employee_ws:
            employee_ws.send_bytes(b"\xff\xfe not utf-8")
            employee_ws.send_bytes(b'{"type": "location_update"}')
            employee_ws.send_bytes(json.dumps({"type": "location_update", **near_site(60)}).encode())

            # The socket survived the bad frames and relayed the good one
            frame = admin_ws.receive_json()
            assert frame["type"] == "employee_location"
            assert frame["location"]["distanceFromSite"] == 60


def test_newer_employee_socket_replaces_older(client, app, employee, employee_token):
    hub = app.state.hub
    with client.websocket_connect(f"/ws?token={employee_token}") as old:
        with client.websocket_connect(f"/ws?token={employee_token}") as new:
            new.send_json({"type": "ping"})
            with pytest.raises(WebSocketDisconnect) as exc:
                old.receive_json()
            assert exc.value.code == 1000
            assert hub.is_employee_connected(employee.id)
