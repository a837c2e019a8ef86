import json

import httpx
import pytest

from sitetrack.client.api import ApiClient


class Recorder:
    """MockTransport handler that records requests and answers from a table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"detail": "Not Found"}))
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


def make_api(token_store, routes):
    recorder = Recorder(routes)
    api = ApiClient("http://track.example.com", token_store, transport=httpx.MockTransport(recorder))
    return api, recorder


async def test_login_persists_user_and_role_before_token(token_store):
    api, _ = make_api(token_store, {
        ("POST", "/api/employee/login"): (200, {"token": "tok-emp", "employee": {"id": 3}}),
    })
    seen = []
    token_store.subscribe(lambda token: seen.append((token, token_store.get_role(), token_store.get_user())))

    async with api:
        await api.login_employee("wes@example.com", "worker123")

    assert token_store.get() == "tok-emp"
    assert seen == [("tok-emp", "employee", {"id": 3})]


async def test_requests_carry_bearer_token(token_store):
    token_store.set("tok-admin")
    api, recorder = make_api(token_store, {("GET", "/api/admin/sites"): (200, [])})

    async with api:
        assert await api.sites() == []

    assert recorder.requests[0].headers["Authorization"] == "Bearer tok-admin"


async def test_no_header_without_token(token_store):
    api, recorder = make_api(token_store, {("GET", "/api/config"): (200, {"GOOGLE_MAPS_API_KEY": "k"})})

    async with api:
        assert (await api.config())["GOOGLE_MAPS_API_KEY"] == "k"

    assert "Authorization" not in recorder.requests[0].headers


async def test_errors_propagate(token_store):
    api, _ = make_api(token_store, {
        ("POST", "/api/employee/attendance/checkin"): (400, {"detail": {"message": "too far"}}),
    })

    async with api:
        with pytest.raises(httpx.HTTPStatusError) as exc:
            await api.check_in(-33.86, 151.2)

    assert exc.value.response.json()["detail"]["message"] == "too far"


async def test_coordinates_are_posted(token_store):
    token_store.set("tok-emp")
    api, recorder = make_api(token_store, {("POST", "/api/employee/location"): (201, {"location": {}})})

    async with api:
        await api.report_location(-33.86, 151.2)

    assert json.loads(recorder.requests[0].content) == {"latitude": -33.86, "longitude": 151.2}


async def test_empty_response_is_none(token_store):
    api, _ = make_api(token_store, {("DELETE", "/api/admin/sites/1"): (204, None)})

    async with api:
        assert await api.request("DELETE", "/api/admin/sites/1") is None


async def test_logout_clears_store_even_when_server_fails(token_store):
    token_store.set_role("admin")
    token_store.set("tok-admin")
    api, recorder = make_api(token_store, {("POST", "/api/admin/logout"): (500, {"detail": "boom"})})

    async with api:
        await api.logout()

    assert recorder.requests[0].url.path == "/api/admin/logout"
    assert token_store.get() is None
    assert token_store.get_role() is None
