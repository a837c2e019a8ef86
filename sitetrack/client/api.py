# SiteTrack Client - REST Helper
# httpx wrapper that authenticates with the stored bearer token

import logging
from typing import Any, Optional

import httpx

from sitetrack.client.token_store import TokenStore


logger = logging.getLogger(__name__)


class ApiClient:
    """
    Async REST client for the SiteTrack API.

    The Authorization header is rebuilt from the token store on every
    request. Login helpers persist the token, user and role; HTTP errors
    propagate as httpx.HTTPStatusError.

    Usage:
        async with ApiClient("http://localhost:8000", store) as api:
            await api.login_admin("boss@example.com", "secret")
            snapshot = await api.live_locations()
    """

    def __init__(
        self,
        base_url: str,
        store: TokenStore,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.store = store
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        token = self.store.get()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login_admin(self, email: str, password: str) -> dict:
        data = await self.request("POST", "/api/admin/login", json={"email": email, "password": password})
        self._persist(data["token"], data["admin"], "admin")
        return data

    async def login_employee(self, email: str, password: str) -> dict:
        data = await self.request("POST", "/api/employee/login", json={"email": email, "password": password})
        self._persist(data["token"], data["employee"], "employee")
        return data

    def _persist(self, token: str, user: dict, role: str) -> None:
        # Token last: listeners woken by it see the user and role already stored
        self.store.set_user(user)
        self.store.set_role(role)
        self.store.set(token)

    async def logout(self) -> None:
        """End the server session (best effort) and clear local storage."""
        role = self.store.get_role() or "admin"
        try:
            if self.store.get():
                await self.request("POST", f"/api/{role}/logout")
        except httpx.HTTPError as e:
            logger.warning("Server logout failed: %s", e)
        finally:
            self.store.logout()

    # ------------------------------------------------------------------
    # Admin reads
    # ------------------------------------------------------------------

    async def config(self) -> dict:
        return await self.request("GET", "/api/config")

    async def sites(self) -> list[dict]:
        return await self.request("GET", "/api/admin/sites")

    async def live_locations(self) -> list[dict]:
        return await self.request("GET", "/api/admin/locations")

    async def recent_notifications(self) -> list[dict]:
        return await self.request("GET", "/api/admin/notifications/recent")

    async def dashboard(self) -> dict:
        return await self.request("GET", "/api/admin/dashboard")

    # ------------------------------------------------------------------
    # Employee actions
    # ------------------------------------------------------------------

    async def check_in(self, latitude: float, longitude: float) -> dict:
        return await self.request(
            "POST", "/api/employee/attendance/checkin",
            json={"latitude": latitude, "longitude": longitude},
        )

    async def check_out(self, latitude: float, longitude: float) -> dict:
        return await self.request(
            "POST", "/api/employee/attendance/checkout",
            json={"latitude": latitude, "longitude": longitude},
        )

    async def report_location(self, latitude: float, longitude: float) -> dict:
        return await self.request(
            "POST", "/api/employee/location",
            json={"latitude": latitude, "longitude": longitude},
        )

    async def employee_status(self) -> dict:
        return await self.request("GET", "/api/employee/status")
