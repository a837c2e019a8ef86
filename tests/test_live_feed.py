import httpx

from scripts.live_feed import mount
from sitetrack.client import ApiClient


RECENT = [
    {
        "type": "employee_checkout",
        "message": "Wes Porter checked out from Main Yard",
        "employee": {"id": 3, "name": "Wes Porter"},
        "site": {"id": 1, "name": "Main Yard"},
        "timestamp": "2025-03-01T17:00:00Z",
    },
    {
        "type": "employee_checkin",
        "message": "Wes Porter checked in at Main Yard",
        "employee": {"id": 3, "name": "Wes Porter"},
        "site": {"id": 1, "name": "Main Yard"},
        "timestamp": "2025-03-01T08:00:00Z",
    },
]


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/admin/notifications/recent":
        return httpx.Response(200, json=RECENT)
    if request.url.path == "/api/admin/sites":
        return httpx.Response(200, json=[{"id": 1, "latitude": -33.8688, "longitude": 151.2093, "geofenceRadius": 200}])
    if request.url.path == "/api/admin/locations":
        return httpx.Response(200, json=[])
    return httpx.Response(404)


async def test_mount_seeds_recent_notifications(token_store, connector):
    token_store.set_role("admin")
    token_store.set("tok-admin")

    async with ApiClient("http://localhost:8000", token_store, transport=httpx.MockTransport(handler)) as api:
        realtime, feed, live_map = await mount(token_store, api, connector=connector)
        try:
            assert [n.type for n in feed.notifications] == ["employee_checkout", "employee_checkin"]
            assert feed.unread_count == 2
            assert realtime.is_connected
            assert connector.last.url == "ws://localhost:8000/ws?token=tok-admin"
            assert live_map.center == (-33.8688, 151.2093)
        finally:
            feed.close()
            await live_map.close()
