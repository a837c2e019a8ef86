# SiteTrack Client - Live Map View
# Reconciles polled location snapshots with realtime employee_location deltas

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from sitetrack.client.realtime import RealtimeClient

if TYPE_CHECKING:
    from sitetrack.client.api import ApiClient


logger = logging.getLogger(__name__)

EMPLOYEE_LOCATION = "employee_location"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string to an aware UTC datetime; None when missing or unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stale(incoming: Optional[dict], current: Optional[dict]) -> bool:
    """
    True when `incoming` carries an older timestamp than `current`.

    Updates without a timestamp on either side are never stale.
    """
    if not incoming or not current:
        return False
    new = parse_timestamp(incoming.get("timestamp"))
    old = parse_timestamp(current.get("timestamp"))
    return new is not None and old is not None and new < old


def _employee_id(entry: dict) -> Any:
    return (entry.get("employee") or {}).get("id")


class LiveMapView:
    """
    State behind the admin's live map.

    entries is a list of {"employee": {...}, "location": {...} | None},
    one per checked-in employee, keyed by employee id. It changes in two
    ways, each a single synchronous transition on the event loop:

        - snapshot: every refresh_interval seconds the list is replaced
          wholesale with GET /api/admin/locations
        - delta: an employee_location frame patches the matching entry
          in place, or appends one for an employee not seen yet

    Every location carries a timestamp; an update older than the one
    already applied for that employee is rejected, so a slow snapshot
    cannot roll back a fresher delta.

    The viewport center is set on the first successful load and by
    set_center(); refreshes and deltas never move it.
    """

    def __init__(
        self,
        realtime: RealtimeClient,
        api: "ApiClient",
        refresh_interval: float = 10.0,
    ):
        self.realtime = realtime
        self.api = api
        self.refresh_interval = refresh_interval

        self.entries: list[dict] = []
        self.sites: list[dict] = []
        self.center: Optional[tuple[float, float]] = None

        self._listeners: list[Callable[[], None]] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = realtime.subscribe(self.handle_frame)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Initial load, then refresh on a fixed interval."""
        await self.refresh()
        if self._refresh_task is None:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def close(self) -> None:
        """Stop the refresh timer, stop listening and close the realtime client."""
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        await self.realtime.close()

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    async def refresh(self) -> bool:
        """
        Fetch sites and the location snapshot and apply them.

        A failed fetch leaves the current state alone; the next interval
        simply tries again.
        """
        try:
            sites = await self.api.sites()
            snapshot = await self.api.live_locations()
        except Exception as e:
            logger.warning("Live map refresh failed: %s", e)
            return False

        self.sites = list(sites)
        self.apply_snapshot(snapshot)
        return True

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def apply_snapshot(self, rows: list[dict]) -> None:
        """Replace every entry, keeping a fresher already-applied location."""
        current = {_employee_id(entry): entry for entry in self.entries}

        entries = []
        for row in rows:
            employee_id = _employee_id(row)
            if employee_id is None:
                continue

            location = row.get("location")
            existing = current.get(employee_id)
            if existing is not None and is_stale(location, existing.get("location")):
                logger.debug("Snapshot row for employee %s is older than applied delta", employee_id)
                location = existing["location"]

            entries.append({"employee": row["employee"], "location": location})

        self.entries = entries

        if self.center is None:
            self.center = self._initial_center()

        self._changed()

    def handle_frame(self, frame: dict[str, Any]) -> None:
        if frame.get("type") == EMPLOYEE_LOCATION:
            self.apply_delta(frame)

    def apply_delta(self, frame: dict[str, Any]) -> bool:
        """
        Patch or append one employee's location.

        Returns False when the frame is rejected (no employee id, no
        location, or older than what is already shown).
        """
        employee = frame.get("employee") or {}
        employee_id = frame.get("employeeId", employee.get("id"))
        location = frame.get("location")
        if employee_id is None or not isinstance(location, dict):
            logger.warning("Ignoring employee_location frame without employee/location")
            return False

        for entry in self.entries:
            if _employee_id(entry) == employee_id:
                previous = entry.get("location")
                if is_stale(location, previous):
                    logger.debug("Dropping stale location for employee %s", employee_id)
                    return False
                entry["location"] = _merge_location(location, previous)
                self._changed()
                return True

        self.entries.append({
            "employee": {"id": employee_id, **employee},
            "location": _merge_location(location, None),
        })
        self._changed()
        return True

    def set_center(self, latitude: float, longitude: float) -> None:
        """Explicit viewport move (user action)."""
        self.center = (latitude, longitude)
        self._changed()

    def _initial_center(self) -> Optional[tuple[float, float]]:
        for entry in self.entries:
            location = entry.get("location")
            if location and location.get("latitude") is not None:
                return float(location["latitude"]), float(location["longitude"])
        for site in self.sites:
            if site.get("latitude") is not None:
                return float(site["latitude"]), float(site["longitude"])
        return None

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

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
                logger.exception("Map listener %r failed", listener)

    def entry_for(self, employee_id: Any) -> Optional[dict]:
        for entry in self.entries:
            if _employee_id(entry) == employee_id:
                return entry
        return None


def _merge_location(location: dict, previous: Optional[dict]) -> dict:
    """
    Delta locations carry isOnSite; snapshot rows also carry
    isWithinGeofence and geofenceRadius. Keep the map fields consistent.
    """
    merged = dict(location)
    if "isWithinGeofence" not in merged and "isOnSite" in merged:
        merged["isWithinGeofence"] = merged["isOnSite"]
    if previous and "geofenceRadius" not in merged and "geofenceRadius" in previous:
        merged["geofenceRadius"] = previous["geofenceRadius"]
    return merged
