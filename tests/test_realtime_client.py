import asyncio
import json

import pytest

from sitetrack.client.realtime import Backoff, RealtimeClient, socket_url
from sitetrack.client.token_store import TokenStore


ORIGIN = "http://track.example.com"


@pytest.fixture
def make_client(token_store, connector):
    def make(**overrides):
        options = dict(
            connector=connector,
            poll_interval=0.01,
            poll_timeout=1.0,
            reconnect_base_delay=0.01,
            reconnect_max_delay=0.05,
            rng=lambda: 0.0,
        )
        options.update(overrides)
        return RealtimeClient(token_store, ORIGIN, **options)

    return make


def test_socket_url():
    assert socket_url("http://localhost:8000", "abc") == "ws://localhost:8000/ws?token=abc"
    assert socket_url("https://track.example.com", "a b/c") == "wss://track.example.com/ws?token=a%20b%2Fc"


def test_backoff_is_capped_and_jittered():
    backoff = Backoff(base=1, cap=8, rng=lambda: 1.0)
    assert [backoff.next_delay() for _ in range(6)] == [1, 2, 4, 8, 8, 8]

    backoff.reset()
    assert backoff.ceiling() == 1

    half = Backoff(base=1, cap=8, rng=lambda: 0.5)
    assert half.next_delay() == 0.5


async def test_start_connects_with_stored_token(token_store, connector, make_client):
    token_store.set("tok-1")
    client = make_client()
    statuses = []
    client.on_status(statuses.append)

    await client.start()

    assert client.is_connected
    assert connector.urls == ["ws://track.example.com/ws?token=tok-1"]
    assert statuses == [True]
    await client.close()


async def test_start_without_token_polls_until_login(token_store, connector, make_client, eventually):
    client = make_client()
    await client.start()
    assert client.is_polling
    assert not client.is_connected

    # Written by another process: no change event, only the poll sees it
    TokenStore(token_store.path).set("tok-1")
    await eventually(lambda: client.is_connected)
    assert not client.is_polling
    await client.close()


async def test_polling_gives_up_after_timeout(token_store, connector, make_client, eventually):
    client = make_client(poll_timeout=0.03)
    await client.start()
    await eventually(lambda: not client.is_polling)

    TokenStore(token_store.path).set("tok-1")
    await asyncio.sleep(0.05)
    assert not client.is_connected

    assert await client.reconnect()
    assert client.is_connected
    await client.close()


async def test_login_event_connects_immediately(token_store, connector, make_client, eventually):
    client = make_client(poll_timeout=0.0)
    await client.start()

    token_store.set("tok-1")
    await eventually(lambda: client.is_connected)
    assert connector.urls[-1].endswith("token=tok-1")
    await client.close()


async def test_token_change_reconnects(token_store, connector, make_client, eventually):
    token_store.set("tok-1")
    client = make_client()
    await client.start()
    first = connector.last

    token_store.set("tok-2")
    await eventually(lambda: len(connector.sockets) == 2 and client.is_connected)

    assert first.closed
    assert connector.last.url.endswith("token=tok-2")
    await client.close()


async def test_same_token_does_not_reconnect(token_store, connector, make_client):
    token_store.set("tok-1")
    client = make_client()
    await client.start()

    token_store.set("tok-1")
    await asyncio.sleep(0.02)
    assert len(connector.sockets) == 1
    await client.close()


async def test_logout_disconnects_and_stays_down(token_store, connector, make_client, eventually):
    token_store.set("tok-1")
    client = make_client()
    statuses = []
    client.on_status(statuses.append)
    await client.start()

    token_store.logout()
    await eventually(lambda: not client.is_connected)
    await asyncio.sleep(0.05)

    assert connector.last.closed
    assert len(connector.sockets) == 1
    assert not client.reconnect_pending
    assert statuses == [True, False]
    await client.close()


async def test_unexpected_close_reconnects(token_store, connector, make_client, eventually):
    token_store.set("tok-1")
    client = make_client()
    statuses = []
    client.on_status(statuses.append)
    await client.start()

    connector.last.drop()
    await eventually(lambda: len(connector.sockets) == 2 and client.is_connected)
    assert statuses == [True, False, True]
    await client.close()


async def test_failed_open_retries_with_backoff(token_store, connector, make_client, eventually):
    token_store.set("tok-1")
    connector.failures = 2
    errors = []
    client = make_client()
    client.on_error(errors.append)

    await client.start()
    assert not client.is_connected

    await eventually(lambda: client.is_connected)
    assert len(connector.urls) == 3
    assert len(errors) == 2
    assert client._backoff.attempt == 0
    await client.close()


async def test_connect_without_token_makes_no_attempt(connector, make_client):
    client = make_client()
    statuses, errors = [], []
    client.on_status(statuses.append)
    client.on_error(errors.append)

    assert await client.connect() is False

    assert connector.urls == []
    assert not client.is_connected
    assert not client.reconnect_pending
    assert statuses == []
    assert errors == []


async def test_no_reconnect_without_token(token_store, connector, make_client):
    token_store.set("tok-1")
    client = make_client()
    await client.start()

    TokenStore(token_store.path).clear()  # removed behind the client's back
    connector.last.drop()
    await asyncio.sleep(0.05)

    assert not client.is_connected
    assert not client.reconnect_pending
    assert len(connector.sockets) == 1
    await client.close()


async def test_frames_are_decoded_and_bad_ones_dropped(token_store, connector, make_client, eventually):
    token_store.set("tok-1")
    client = make_client()
    received = []

    def broken(frame):
        raise RuntimeError("listener bug")

    client.subscribe(broken)
    client.subscribe(received.append)
    await client.start()

    socket = connector.last
    socket.push("not json")
    socket.push("[1, 2, 3]")
    socket.push({"type": "employee_checkin", "message": "hello"})

    await eventually(lambda: len(received) == 2)
    assert received[0] == {"type": "employee_checkin", "message": "hello"}
    assert client.is_connected
    await client.close()


async def test_send(token_store, connector, make_client):
    client = make_client()
    assert await client.send({"type": "location_update"}) is False

    token_store.set("tok-1")
    await client.start()
    assert await client.send({"type": "location_update", "latitude": 1.5}) is True
    assert json.loads(connector.last.sent[0]) == {"type": "location_update", "latitude": 1.5}
    await client.close()


async def test_superseded_handshake_is_discarded(token_store, connector, make_client):
    token_store.set("tok-1")
    client = make_client()
    connector.gate = asyncio.Event()

    attempt = asyncio.ensure_future(client.connect())
    await asyncio.sleep(0)
    await client.disconnect()

    connector.gate.set()
    assert await attempt is False
    assert connector.last.closed
    assert not client.is_connected


async def test_close_cancels_everything(token_store, connector, make_client):
    client = make_client()
    await client.start()
    assert client.is_polling

    await client.close()
    assert not client.is_polling

    token_store.set("tok-1")
    await asyncio.sleep(0.05)
    assert connector.urls == []
    assert await client.connect() is False


async def test_close_stops_pending_reconnect(token_store, connector, make_client):
    token_store.set("tok-1")
    connector.failures = 1
    client = make_client(reconnect_base_delay=10, reconnect_max_delay=10, rng=lambda: 1.0)

    await client.start()
    assert client.reconnect_pending

    await client.close()
    assert not client.reconnect_pending
    assert len(connector.urls) == 1
