import asyncio

import pytest

from sitetrack.client.live_map import LiveMapView, is_stale, parse_timestamp
from sitetrack.client.realtime import RealtimeClient


SITES = [{"id": 1, "name": "Main Yard", "latitude": -33.8688, "longitude": 151.2093, "geofenceRadius": 200}]


def row(employee_id, latitude, timestamp, **location):
    return {
        "employee": {"id": employee_id, "name": f"Employee {employee_id}", "isCheckedIn": True},
        "location": {
            "employeeId": employee_id,
            "latitude": latitude,
            "longitude": 151.2093,
            "isOnSite": True,
            "isWithinGeofence": True,
            "geofenceRadius": 200,
            "timestamp": timestamp,
            **location,
        },
    }


def delta(employee_id, latitude, timestamp, on_site=True):
    return {
        "type": "employee_location",
        "employeeId": employee_id,
        "employee": {"id": employee_id, "name": f"Employee {employee_id}"},
        "location": {
            "latitude": latitude,
            "longitude": 151.2093,
            "isOnSite": on_site,
            "distanceFromSite": 10,
            "timestamp": timestamp,
        },
    }


class StubApi:
    def __init__(self, snapshot=None):
        self.snapshot = snapshot or []
        self.calls = 0
        self.fail = False

    async def sites(self):
        if self.fail:
            raise ConnectionError("offline")
        return SITES

    async def live_locations(self):
        self.calls += 1
        return self.snapshot


@pytest.fixture
def api():
    return StubApi()


@pytest.fixture
def live_map(token_store, connector, api):
    realtime = RealtimeClient(token_store, "http://track.example.com", connector=connector)
    return LiveMapView(realtime, api, refresh_interval=0.01)


def test_parse_timestamp():
    assert parse_timestamp("2025-03-01T08:00:00Z").tzinfo is not None
    assert parse_timestamp("2025-03-01T08:00:00") == parse_timestamp("2025-03-01T08:00:00+00:00")
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_is_stale():
    older = {"timestamp": "2025-03-01T08:00:00Z"}
    newer = {"timestamp": "2025-03-01T08:01:00Z"}
    assert is_stale(older, newer)
    assert not is_stale(newer, older)
    assert not is_stale({"timestamp": None}, newer)
    assert not is_stale(older, None)


def test_snapshot_replaces_entries(live_map):
    live_map.apply_snapshot([row(1, -33.868, "2025-03-01T08:00:00Z"), row(2, -33.867, "2025-03-01T08:00:00Z")])
    assert [e["employee"]["id"] for e in live_map.entries] == [1, 2]

    live_map.apply_snapshot([row(2, -33.866, "2025-03-01T08:01:00Z")])
    assert [e["employee"]["id"] for e in live_map.entries] == [2]
    assert live_map.entry_for(1) is None


def test_delta_patches_in_place(live_map):
    live_map.apply_snapshot([row(1, -33.868, "2025-03-01T08:00:00Z")])

    assert live_map.apply_delta(delta(1, -33.869, "2025-03-01T08:02:00Z", on_site=False))
    assert len(live_map.entries) == 1
    location = live_map.entry_for(1)["location"]
    assert location["latitude"] == -33.869
    assert location["isWithinGeofence"] is False
    assert location["geofenceRadius"] == 200
    # The employee record from the snapshot is kept
    assert live_map.entry_for(1)["employee"]["isCheckedIn"] is True


def test_delta_for_unknown_employee_appends(live_map):
    live_map.handle_frame(delta(9, -33.86, "2025-03-01T08:00:00Z"))
    assert live_map.entry_for(9)["employee"]["name"] == "Employee 9"
    assert live_map.entry_for(9)["location"]["isWithinGeofence"] is True


def test_stale_delta_is_rejected(live_map):
    live_map.apply_snapshot([row(1, -33.868, "2025-03-01T08:05:00Z")])
    assert not live_map.apply_delta(delta(1, -33.800, "2025-03-01T08:00:00Z"))
    assert live_map.entry_for(1)["location"]["latitude"] == -33.868


def test_slow_snapshot_does_not_roll_back_delta(live_map):
    live_map.apply_snapshot([row(1, -33.868, "2025-03-01T08:00:00Z")])
    live_map.apply_delta(delta(1, -33.869, "2025-03-01T08:03:00Z"))

    # Snapshot fetched before the delta arrived
    live_map.apply_snapshot([row(1, -33.868, "2025-03-01T08:01:00Z")])
    assert live_map.entry_for(1)["location"]["latitude"] == -33.869

    live_map.apply_snapshot([row(1, -33.870, "2025-03-01T08:04:00Z")])
    assert live_map.entry_for(1)["location"]["latitude"] == -33.870


def test_malformed_delta_is_ignored(live_map):
    assert not live_map.apply_delta({"type": "employee_location", "location": {"latitude": 1}})
    assert not live_map.apply_delta({"type": "employee_location", "employeeId": 1})
    assert live_map.entries == []


def test_other_frames_are_ignored(live_map):
    live_map.handle_frame({"type": "employee_checkin", "employee": {"id": 1}, "location": {}})
    assert live_map.entries == []


async def test_center_is_set_once(live_map, api):
    api.snapshot = [row(1, -33.860, "2025-03-01T08:00:00Z")]
    assert await live_map.refresh()
    assert live_map.center == (-33.860, 151.2093)
    assert live_map.sites == SITES

    api.snapshot = [row(1, -33.700, "2025-03-01T08:10:00Z")]
    await live_map.refresh()
    assert live_map.center == (-33.860, 151.2093)

    live_map.set_center(-34.0, 151.0)
    assert live_map.center == (-34.0, 151.0)


async def test_center_falls_back_to_first_site(live_map):
    await live_map.refresh()
    assert live_map.entries == []
    assert live_map.center == (-33.8688, 151.2093)


async def test_failed_refresh_keeps_state(live_map, api):
    api.snapshot = [row(1, -33.860, "2025-03-01T08:00:00Z")]
    await live_map.refresh()

    api.fail = True
    api.snapshot = []
    assert not await live_map.refresh()
    assert len(live_map.entries) == 1


async def test_refresh_runs_on_interval_until_closed(live_map, api, eventually):
    changes = []
    live_map.on_change(lambda: changes.append(len(live_map.entries)))

    await live_map.start()
    await eventually(lambda: api.calls >= 3)

    await live_map.close()
    calls = api.calls
    await asyncio.sleep(0.05)
    assert api.calls == calls
    assert len(changes) >= 3
