# SiteTrack - Realtime Hub
# WebSocket connection registry, admin notification stacks, event fan-out

import logging
from collections import defaultdict, deque
from typing import Any, Optional

from fastapi import WebSocket

from sitetrack.services.tracking import EMPLOYEE_CHECKIN, EMPLOYEE_CHECKOUT, EMPLOYEE_LOCATION


logger = logging.getLogger(__name__)

CONNECTION_ESTABLISHED = "connection_established"
NOTIFICATION_TYPES = (EMPLOYEE_CHECKIN, EMPLOYEE_CHECKOUT)


class ConnectionManager:
    """
    In-process registry of open sockets.

    Admins may hold several sockets at once (tabs, devices); every one
    of them receives every event for that admin. Employees hold at most
    one socket: a newer connection replaces the older one.

    The last `stack_size` check-in/check-out notifications per admin are
    kept in memory so a freshly connected admin can catch up.

    Usage:
        hub = ConnectionManager(stack_size=5)
        await hub.connect_admin(admin_id, websocket)
        await hub.notify_admin(admin_id, {"type": "employee_checkin", ...})
        hub.disconnect_admin(admin_id, websocket)

    All methods run on the server's event loop; none of them blocks.
    """

    def __init__(self, stack_size: int = 5):
        self.stack_size = stack_size
        self.admin_connections: dict[int, list[WebSocket]] = defaultdict(list)
        self.employee_connections: dict[int, WebSocket] = {}
        self._stacks: dict[int, deque] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def connect_admin(self, admin_id: int, websocket: WebSocket) -> None:
        """
        Register an accepted admin socket.

        Sends connection_established, then replays the notification
        stack oldest first when this is the admin's only open socket.
        """
        connections = self.admin_connections[admin_id]
        connections.append(websocket)
        logger.info("Admin %s connected (%d open)", admin_id, len(connections))

        await self._send(websocket, {
            "type": CONNECTION_ESTABLISHED,
            "message": "Connected to notification system",
        })

        if len(connections) == 1:
            for notification in self._stack(admin_id):
                await self._send(websocket, notification)

    def disconnect_admin(self, admin_id: int, websocket: WebSocket) -> None:
        connections = self.admin_connections.get(admin_id)
        if not connections:
            return

        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            del self.admin_connections[admin_id]
        logger.info("Admin %s disconnected", admin_id)

    async def connect_employee(self, employee_id: int, websocket: WebSocket) -> None:
        """Register an accepted employee socket, replacing any older one."""
        previous = self.employee_connections.get(employee_id)
        self.employee_connections[employee_id] = websocket

        if previous is not None and previous is not websocket:
            logger.info("Employee %s reconnected; closing previous socket", employee_id)
            try:
                await previous.close(code=1000)
            except RuntimeError:
                # Already closed by the peer
                pass

    def disconnect_employee(self, employee_id: int, websocket: WebSocket) -> None:
        # A replaced socket must not evict its successor
        if self.employee_connections.get(employee_id) is websocket:
            del self.employee_connections[employee_id]

    def admin_connection_count(self, admin_id: int) -> int:
        return len(self.admin_connections.get(admin_id, ()))

    def is_employee_connected(self, employee_id: int) -> bool:
        return employee_id in self.employee_connections

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def notify_admin(self, admin_id: int, notification: dict[str, Any]) -> int:
        """
        Stack a check-in/check-out notification and push it to the admin.

        Other notification types are logged and dropped.

        Returns:
            Number of sockets the notification was delivered to
        """
        kind = notification.get("type") if isinstance(notification, dict) else None
        if kind not in NOTIFICATION_TYPES:
            logger.error("Refusing notification with invalid type %r for admin %s", kind, admin_id)
            return 0

        self._stack(admin_id).append(notification)
        return await self._fan_out(admin_id, notification)

    async def broadcast_location(self, admin_id: int, event: dict[str, Any]) -> int:
        """Relay an employee_location frame to every socket of the admin (not stacked)."""
        if event.get("type") != EMPLOYEE_LOCATION:
            logger.error("Refusing location event with type %r", event.get("type"))
            return 0
        return await self._fan_out(admin_id, event)

    def recent(self, admin_id: int) -> list[dict[str, Any]]:
        """Stacked notifications for an admin, newest first."""
        stack = self._stacks.get(admin_id)
        return list(reversed(stack)) if stack else []

    def _stack(self, admin_id: int) -> deque:
        stack = self._stacks.get(admin_id)
        if stack is None:
            stack = self._stacks[admin_id] = deque(maxlen=self.stack_size)
        return stack

    async def _fan_out(self, admin_id: int, frame: dict[str, Any]) -> int:
        delivered = 0
        for websocket in list(self.admin_connections.get(admin_id, ())):
            if await self._send(websocket, frame):
                delivered += 1
            else:
                self.disconnect_admin(admin_id, websocket)
        return delivered

    @staticmethod
    async def _send(websocket: WebSocket, frame: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(frame)
            return True
        except Exception as exc:
            # Starlette raises RuntimeError or WebSocketDisconnect, transports may raise OSError
            logger.warning("Dropping socket after failed send: %s", exc)
            return False

    def clear(self, admin_id: Optional[int] = None) -> None:
        """Forget stacked notifications (all admins when admin_id is None)."""
        if admin_id is None:
            self._stacks.clear()
        else:
            self._stacks.pop(admin_id, None)
