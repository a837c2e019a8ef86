# SiteTrack Client - Notification Feed
# Turns realtime check-in/check-out frames into a newest-first feed

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from sitetrack.client.realtime import RealtimeClient

if TYPE_CHECKING:
    from sitetrack.client.api import ApiClient


logger = logging.getLogger(__name__)

EMPLOYEE_CHECKIN = "employee_checkin"
EMPLOYEE_CHECKOUT = "employee_checkout"
RECOGNIZED = (EMPLOYEE_CHECKIN, EMPLOYEE_CHECKOUT)


@dataclass
class Notification:
    type: str
    message: str
    employee: dict = field(default_factory=dict)
    site: Optional[dict] = None
    timestamp: Optional[str] = None
    location: Optional[dict] = None

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> "Notification":
        employee = frame.get("employee") or {}
        site = frame.get("site")
        message = frame.get("message") or _describe(frame["type"], employee, site)
        return cls(
            type=frame["type"],
            message=message,
            employee=employee,
            site=site,
            timestamp=frame.get("timestamp"),
            location=frame.get("location"),
        )

    @property
    def title(self) -> str:
        return "Employee Check-in" if self.type == EMPLOYEE_CHECKIN else "Employee Check-out"


def _describe(kind: str, employee: dict, site: Optional[dict]) -> str:
    name = employee.get("name") or " ".join(
        part for part in (employee.get("firstName"), employee.get("lastName")) if part
    ) or "An employee"
    site_name = (site or {}).get("name") or "work site"
    if kind == EMPLOYEE_CHECKIN:
        return f"{name} checked in at {site_name}"
    return f"{name} checked out from {site_name}"


class NotificationFeed:
    """
    In-memory notification list fed by a RealtimeClient.

    Only employee_checkin and employee_checkout frames are recognized;
    anything else is ignored. New notifications are prepended, so the
    list is newest first in arrival order. There is no deduplication.

    Usage:
        feed = NotificationFeed(realtime, limit=50)
        feed.on_change(lambda: redraw(feed.notifications))
        ...
        feed.unread_count       # badge
        feed.mark_as_read(0)    # dismiss the newest
        feed.clear_notifications()
        feed.close()

    Clearing and dismissing are local read-state only; the server's
    recent-notification stack is not touched.
    """

    def __init__(self, realtime: RealtimeClient, limit: Optional[int] = None):
        self.realtime = realtime
        self.limit = limit
        self.notifications: list[Notification] = []
        self._listeners: list[Callable[[], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = realtime.subscribe(self.handle_frame)

    @property
    def is_connected(self) -> bool:
        """Lets the UI tell an empty feed apart from a disconnected one."""
        return self.realtime.is_connected

    @property
    def unread_count(self) -> int:
        return len(self.notifications)

    def handle_frame(self, frame: dict[str, Any]) -> Optional[Notification]:
        if frame.get("type") not in RECOGNIZED:
            return None

        notification = Notification.from_frame(frame)
        self.notifications.insert(0, notification)
        if self.limit is not None:
            del self.notifications[self.limit:]

        logger.info("%s: %s", notification.title, notification.message)
        self._changed()
        return notification

    def clear_notifications(self) -> None:
        self.notifications.clear()
        self._changed()

    def mark_as_read(self, index: int) -> None:
        """Remove one entry by position; out-of-range indexes are ignored."""
        if 0 <= index < len(self.notifications):
            del self.notifications[index]
            self._changed()

    async def load_recent(self, api: "ApiClient") -> None:
        """
        Seed the feed from /api/admin/notifications/recent (newest first).

        Fetch failures are logged; the feed keeps what it has.
        """
        try:
            recent = await api.recent_notifications()
        except Exception as e:
            logger.warning("Could not load recent notifications: %s", e)
            return

        seeded = [
            Notification.from_frame(item)
            for item in recent
            if isinstance(item, dict) and item.get("type") in RECOGNIZED
        ]
        self.notifications = seeded[: self.limit] if self.limit is not None else seeded
        self._changed()

    def on_change(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Notification listener %r failed", listener)

    def close(self) -> None:
        """Stop listening to the realtime client."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
