# SiteTrack Client - Realtime Connection
# Single reconnecting socket to /ws, driven by the token store

import asyncio
import json
import logging
import random
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import websockets

from sitetrack.client.token_store import TokenStore


logger = logging.getLogger(__name__)

MessageListener = Callable[[dict], None]
StatusListener = Callable[[bool], None]
ErrorListener = Callable[[BaseException], None]
Connector = Callable[[str], Awaitable[Any]]


def socket_url(origin: str, token: str) -> str:
    """
    ws(s)://host/ws?token=... for an http(s) origin.

    >>> socket_url("https://track.example.com", "abc")
    'wss://track.example.com/ws?token=abc'
    """
    parts = urlsplit(origin)
    scheme = {"https": "wss", "wss": "wss"}.get(parts.scheme, "ws")
    return urlunsplit((scheme, parts.netloc, "/ws", f"token={quote(token, safe='')}", ""))


class Backoff:
    """
    Capped exponential backoff with full jitter.

    The n-th delay is uniform in [0, min(cap, base * factor**n)).
    """

    def __init__(
        self,
        base: float = 1.0,
        cap: float = 30.0,
        factor: float = 2.0,
        rng: Callable[[], float] = random.random,
    ):
        self.base = base
        self.cap = cap
        self.factor = factor
        self.rng = rng
        self.attempt = 0

    def ceiling(self) -> float:
        return min(self.cap, self.base * self.factor ** self.attempt)

    def next_delay(self) -> float:
        delay = self.rng() * self.ceiling()
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0


class RealtimeClient:
    """
    One logical connection to the server's realtime socket.

    Lifecycle:
        - start(): connect if a token is stored, otherwise poll the store
          at a fixed interval for a bounded window (after which only an
          explicit reconnect() or a token-change event connects)
        - token set/changed in the store: reconnect with the new token
        - token removed: disconnect, and stay disconnected
        - unexpected close or failed open: reconnect with capped,
          jittered exponential backoff (reset after a successful open)
        - close(): disconnect, cancel every timer/task, unsubscribe

    Inbound frames are JSON-decoded and handed to every message listener
    as a dict. Malformed or non-object frames are logged and dropped;
    the connection stays open. Transport errors go to the error
    listeners and the log, never to the caller.

    Usage:
        client = RealtimeClient(store, "http://localhost:8000")
        client.subscribe(lambda frame: print(frame["type"]))
        await client.start()
        ...
        await client.close()
    """

    def __init__(
        self,
        store: TokenStore,
        origin: str,
        *,
        connector: Optional[Connector] = None,
        poll_interval: float = 1.0,
        poll_timeout: float = 30.0,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        rng: Callable[[], float] = random.random,
    ):
        self.store = store
        self.origin = origin
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._connector = connector or websockets.connect
        self._backoff = Backoff(reconnect_base_delay, reconnect_max_delay, rng=rng)

        self._listeners: list[MessageListener] = []
        self._status_listeners: list[StatusListener] = []
        self._error_listeners: list[ErrorListener] = []

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._ws: Any = None
        self._token: Optional[str] = None
        self._reader: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

        # Bumped by every disconnect; a reader or open from an older
        # generation must not touch current state
        self._generation = 0
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """Receive every decoded frame; returns the unsubscribe callable."""
        return _add(self._listeners, listener)

    def on_status(self, listener: StatusListener) -> Callable[[], None]:
        """Called with True on open and False on close."""
        return _add(self._status_listeners, listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        return _add(self._error_listeners, listener)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Mount: connect now, or wait (bounded) for a token to appear."""
        if self._started:
            return
        self._started = True
        self._closed = False
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.store.subscribe(self._on_token_changed)

        if self.store.get():
            await self.connect()
        else:
            logger.info("No auth token yet; polling for %.0fs", self.poll_timeout)
            self._poll_task = self._loop.create_task(self._poll_for_token())

    async def connect(self) -> bool:
        """
        (Re)open the socket with the stored token.

        Any existing connection is closed first. Returns True when the
        socket is open; without a token no attempt is made.
        """
        await self.disconnect()

        if self._closed:
            return False

        token = self.store.get()
        if not token:
            logger.info("Not connecting: no auth token")
            return False

        generation = self._generation
        try:
            ws = await self._connector(socket_url(self.origin, token))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Realtime connection failed: %s", e)
            self._emit_error(e)
            if generation == self._generation:
                self._schedule_reconnect()
            return False

        if generation != self._generation or self._closed:
            # Superseded while the handshake was in flight
            await _close_quietly(ws)
            return False

        self._ws = ws
        self._token = token
        self._backoff.reset()
        self._stop_polling()
        self._reader = asyncio.get_running_loop().create_task(self._read(ws, generation))

        logger.info("Realtime connected")
        self._emit_status(True)
        return True

    async def reconnect(self) -> bool:
        """Explicit reconnect (e.g. after the token poll window expired)."""
        return await self.connect()

    async def disconnect(self) -> None:
        """Close the current connection, if any. Safe to call repeatedly."""
        self._generation += 1
        self._cancel_reconnect()

        reader, ws = self._reader, self._ws
        self._reader = None
        self._ws = None
        self._token = None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader

        if ws is not None:
            await _close_quietly(ws)
            logger.info("Realtime disconnected")
            self._emit_status(False)

    async def close(self) -> None:
        """Unmount: disconnect, cancel every timer and task, unsubscribe."""
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        current = asyncio.current_task()
        pending = [
            task for task in (self._poll_task, self._reconnect_task, *self._tasks)
            if task is not None and task is not current
        ]
        self._poll_task = None
        self._reconnect_task = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        await self.disconnect()
        self._started = False

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, message: dict) -> bool:
        """
        JSON-encode and send while open.

        Returns False (and sends nothing) when not connected; there is
        no outbound queue.
        """
        ws = self._ws
        if ws is None:
            return False

        try:
            await ws.send(json.dumps(message))
        except Exception as e:
            logger.warning("Realtime send failed: %s", e)
            self._emit_error(e)
            return False
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _read(self, ws: Any, generation: int) -> None:
        try:
            async for raw in ws:
                self._dispatch(raw)
            logger.info("Realtime connection closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Realtime connection lost: %s", e)
            self._emit_error(e)

        if generation != self._generation:
            return

        # Unexpected close: drop the dead connection and retry with backoff
        self._reader = None
        self._ws = None
        self._token = None
        self._emit_status(False)
        self._schedule_reconnect()

    def _dispatch(self, raw: Any) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed frame: %.200r", raw)
            return

        if not isinstance(message, dict):
            logger.warning("Dropping non-object frame: %.200r", raw)
            return

        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Realtime listener %r failed", listener)

    def _schedule_reconnect(self) -> None:
        if self._closed or self.reconnect_pending:
            return
        if not self.store.get():
            # Without a token there is nothing to retry; a token-change event restarts us
            return

        delay = self._backoff.next_delay()
        logger.info("Realtime reconnect in %.2fs (attempt %d)", delay, self._backoff.attempt)
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if not self._closed:
            await self.connect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _poll_for_token(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_timeout

        while loop.time() < deadline:
            await asyncio.sleep(self.poll_interval)
            if self.store.get():
                self._poll_task = None
                await self.connect()
                return

        self._poll_task = None
        logger.info("Gave up waiting for an auth token; call reconnect() after login")

    def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _on_token_changed(self, token: Optional[str]) -> None:
        """Token store listener; may be invoked from any thread."""
        loop = self._loop
        if loop is None or self._closed or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._handle_token(token)
        else:
            loop.call_soon_threadsafe(self._handle_token, token)

    def _handle_token(self, token: Optional[str]) -> None:
        if self._closed:
            return

        if token is None:
            logger.info("Auth token removed; disconnecting")
            self._spawn(self.disconnect())
        elif token != self._token or not self.is_connected:
            logger.info("Auth token changed; reconnecting")
            self._spawn(self.connect())

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _emit_status(self, connected: bool) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("Status listener %r failed", listener)

    def _emit_error(self, error: BaseException) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener %r failed", listener)


def _add(listeners: list, listener: Callable) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe() -> None:
        if listener in listeners:
            listeners.remove(listener)

    return unsubscribe


async def _close_quietly(ws: Any) -> None:
    try:
        await ws.close()
    except Exception as e:
        logger.debug("Ignoring error while closing socket: %s", e)
