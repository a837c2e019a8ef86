# SiteTrack - Realtime Socket Route
# GET /ws?token=... : admin notification feed and employee location uplink

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from sitetrack.database import get_db_context
from sitetrack.models.employee import Employee
from sitetrack.models.user_session import UserSession
from sitetrack.services.auth import AuthService
from sitetrack.services.tracking import TrackingError, TrackingService


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

LOCATION_UPDATE = "location_update"


def authenticate_socket(token: str) -> Optional[tuple[str, int, int]]:
    """
    Resolve a socket token to (user_type, user_id, admin_id).

    admin_id is the tenant the connection belongs to: the admin's own id,
    or the employee's owning admin.
    """
    with get_db_context() as db:
        principal = AuthService(db).validate_session(token)
        if principal is None:
            return None

        user = principal.user
        admin_id = user.id if principal.is_admin else user.admin_id
        return principal.user_type, user.id, admin_id


def record_socket_location(employee_id: int, latitude, longitude) -> Optional[dict]:
    """Store a location_update frame; returns the employee_location event to relay."""
    with get_db_context() as db:
        employee = db.get(Employee, employee_id)
        if employee is None or not employee.is_active:
            return None

        service = TrackingService(db)
        try:
            recorded = service.record_location(employee, latitude, longitude)
        except TrackingError as e:
            logger.warning("Ignoring location update from employee %s: %s", employee_id, e.message)
            return None

        return service.location_event(employee, recorded)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """
    Bidirectional JSON channel.

    Admins receive connection_established, a replay of their recent
    notifications, then employee_checkin / employee_checkout /
    employee_location frames. Employees send location_update frames.

    A missing or invalid token closes the socket with 1008 before accept.
    """
    hub = websocket.app.state.hub

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Token required")
        return

    identity = await run_in_threadpool(authenticate_socket, token)
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return

    user_type, user_id, admin_id = identity
    await websocket.accept()

    if user_type == UserSession.USER_ADMIN:
        await hub.connect_admin(admin_id, websocket)
    else:
        await hub.connect_employee(user_id, websocket)

    try:
        while True:
            received = await websocket.receive()
            if received["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(received.get("code", status.WS_1000_NORMAL_CLOSURE))

            raw = received.get("text")
            if raw is None:
                try:
                    raw = (received.get("bytes") or b"").decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning("Dropping non-UTF-8 binary frame from %s %s", user_type, user_id)
                    continue

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Dropping malformed frame from %s %s: %.200s", user_type, user_id, raw)
                continue

            if not isinstance(message, dict):
                logger.warning("Dropping non-object frame from %s %s", user_type, user_id)
                continue

            if message.get("type") == LOCATION_UPDATE and user_type == UserSession.USER_EMPLOYEE:
                event = await run_in_threadpool(
                    record_socket_location, user_id, message.get("latitude"), message.get("longitude")
                )
                if event is not None:
                    await hub.broadcast_location(admin_id, event)
            else:
                logger.debug("Ignoring %r frame from %s %s", message.get("type"), user_type, user_id)

    except WebSocketDisconnect as e:
        logger.info("%s %s socket closed (%s)", user_type.capitalize(), user_id, e.code)

    finally:
        if user_type == UserSession.USER_ADMIN:
            hub.disconnect_admin(admin_id, websocket)
        else:
            hub.disconnect_employee(user_id, websocket)
