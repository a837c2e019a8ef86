# SiteTrack - Test fixtures
# In-memory SQLite database, a fresh app per test, and fakes for the client side

import asyncio
import json
import os

# Must be set before anything imports sitetrack.config
os.environ["SITETRACK_DB_URL"] = "sqlite://"
os.environ["SITETRACK_BCRYPT_ROUNDS"] = "4"
os.environ["SITETRACK_MAPS_API_KEY"] = "test-maps-key"
os.environ["SITETRACK_DEBUG"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from sitetrack.database import SessionLocal, drop_db, init_db
from sitetrack.main import create_app
from sitetrack.models.admin import Admin
from sitetrack.models.employee import Employee
from sitetrack.models.work_site import WorkSite
from sitetrack.services.auth import AuthService
from sitetrack.services.geofence import offset_point


SITE_LAT = -33.8688
SITE_LON = 151.2093

ADMIN_PASSWORD = "secret123"
EMPLOYEE_PASSWORD = "worker123"


def near_site(meters: float, bearing: float = 0.0) -> dict:
    """Coordinates payload `meters` from the default site center."""
    lat, lon = offset_point(SITE_LAT, SITE_LON, meters, bearing)
    return {"latitude": lat, "longitude": lon}


# =============================================================================
# Database and app
# =============================================================================

@pytest.fixture(autouse=True)
def database():
    init_db()
    yield
    drop_db()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    # Entering the client shares one event loop between HTTP calls and sockets
    with TestClient(app) as c:
        yield c


# =============================================================================
# Records
# =============================================================================

@pytest.fixture
def make_admin(db):
    auth = AuthService(db)

    def make(email="ada@example.com", company="Acme Builders", **overrides):
        values = dict(
            first_name="Ada",
            last_name="Lovelace",
            company_name=company,
            email=email,
            password_hash=auth.hash_password(ADMIN_PASSWORD),
            role=Admin.ROLE_ADMIN,
            is_verified=True,
            is_active=True,
        )
        values.update(overrides)
        admin = Admin(**values)
        db.add(admin)
        db.commit()
        return admin

    return make


@pytest.fixture
def admin(make_admin):
    return make_admin()


@pytest.fixture
def site(db, admin):
    site = WorkSite(
        admin_id=admin.id,
        name="Main Yard",
        address="1 Main Street",
        latitude=Decimal(str(SITE_LAT)),
        longitude=Decimal(str(SITE_LON)),
        geofence_radius=200,
    )
    db.add(site)
    db.commit()
    return site


@pytest.fixture
def make_employee(db):
    auth = AuthService(db)

    def make(admin, site=None, email="wes@example.com", **overrides):
        values = dict(
            admin_id=admin.id,
            employee_code="EMP001",
            first_name="Wes",
            last_name="Porter",
            email=email,
            phone="555-0100",
            password_hash=auth.hash_password(EMPLOYEE_PASSWORD),
            site_id=site.id if site else None,
        )
        values.update(overrides)
        employee = Employee(**values)
        db.add(employee)
        db.commit()
        return employee

    return make


@pytest.fixture
def employee(make_employee, admin, site):
    return make_employee(admin, site)


def login(client, role, email, password):
    response = client.post(f"/api/{role}/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


@pytest.fixture
def admin_token(client, admin):
    return login(client, "admin", admin.email, ADMIN_PASSWORD)


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def employee_token(client, employee):
    return login(client, "employee", employee.email, EMPLOYEE_PASSWORD)


@pytest.fixture
def employee_headers(employee_token):
    return {"Authorization": f"Bearer {employee_token}"}


# =============================================================================
# Client-side fakes
# =============================================================================

class FakeSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, url):
        self.url = url
        self.sent = []
        self.closed = False
        self._inbox = asyncio.Queue()

    def push(self, frame):
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self):
        """Server-side close: ends the receive loop."""
        self._inbox.put_nowait(None)

    async def send(self, data):
        if self.closed:
            raise ConnectionError("socket is closed")
        self.sent.append(data)

    async def close(self):
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Connector callable recording every socket it opens."""

    def __init__(self):
        self.sockets = []
        self.urls = []
        self.failures = 0
        self.gate = None

    @property
    def last(self):
        return self.sockets[-1] if self.sockets else None

    async def __call__(self, url):
        self.urls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def token_store(tmp_path):
    from sitetrack.client.token_store import TokenStore
    return TokenStore(tmp_path / "storage.json")


@pytest.fixture
def eventually():
    """Await until a predicate holds (or fail after `timeout` seconds)."""

    async def wait(predicate, timeout=1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return wait
