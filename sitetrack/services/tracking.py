# SiteTrack - Tracking Service
# Check-in/check-out, location recording and live snapshots

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from sitetrack.config import get_settings
from sitetrack.models.admin import Admin
from sitetrack.models.attendance import Attendance
from sitetrack.models.employee import Employee
from sitetrack.models.location_tracking import LocationTracking
from sitetrack.models.work_site import WorkSite
from sitetrack.services import geofence


logger = logging.getLogger(__name__)

settings = get_settings()

EMPLOYEE_CHECKIN = "employee_checkin"
EMPLOYEE_CHECKOUT = "employee_checkout"
EMPLOYEE_LOCATION = "employee_location"

HISTORY_DAYS = 30


class TrackingError(Exception):
    """
    Raised when a check-in, check-out or location report is refused.

    status_code is the HTTP status the route should answer with; any
    extra keyword arguments (distance, requiredRadius) travel with it
    into the response body.
    """

    def __init__(self, message: str, status_code: int = 400, **extra: Any):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.extra = extra

    def detail(self) -> dict:
        return {"message": self.message, **self.extra}


@dataclass
class RecordedLocation:
    """A stored location row plus its distance from the assigned site."""

    location: LocationTracking
    distance: Optional[float]


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class TrackingService:
    """
    Attendance and location tracking for employees.

    Usage:
        service = TrackingService(db)

        attendance, notification = service.check_in(employee, 28.6139, 77.2090)
        hub.notify_admin(employee.admin_id, notification)

        recorded = service.record_location(employee, 28.6140, 77.2091)

    Check-in and check-out are gated on the site radius plus
    checkin_accuracy_buffer meters of GPS slack. The is_on_site flag
    written on location rows uses the bare radius.
    """

    def __init__(self, db: Session):
        self.db = db
        self.buffer = settings.checkin_accuracy_buffer

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def current_attendance(self, employee_id: int) -> Optional[Attendance]:
        """The employee's open attendance session, if any."""
        return self.db.execute(
            select(Attendance)
            .where(Attendance.employee_id == employee_id)
            .where(Attendance.check_out_time.is_(None))
            .order_by(Attendance.check_in_time.desc(), Attendance.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def attendance_history(
        self,
        employee_id: int,
        since: Optional[datetime] = None,
    ) -> list[Attendance]:
        """Attendance since a cutoff, newest first (default: last 30 days)."""
        if since is None:
            since = datetime.utcnow() - timedelta(days=HISTORY_DAYS)

        return list(self.db.execute(
            select(Attendance)
            .where(Attendance.employee_id == employee_id)
            .where(Attendance.check_in_time >= since)
            .order_by(Attendance.check_in_time.desc(), Attendance.id.desc())
        ).scalars().all())

    def latest_location(self, employee_id: int) -> Optional[LocationTracking]:
        return self.db.execute(
            select(LocationTracking)
            .where(LocationTracking.employee_id == employee_id)
            .order_by(LocationTracking.timestamp.desc(), LocationTracking.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def location_history(self, employee_id: int, limit: int = 100) -> list[LocationTracking]:
        return list(self.db.execute(
            select(LocationTracking)
            .where(LocationTracking.employee_id == employee_id)
            .order_by(LocationTracking.timestamp.desc(), LocationTracking.id.desc())
            .limit(limit)
        ).scalars().all())

    def assigned_site(self, employee: Employee) -> Optional[WorkSite]:
        """The employee's active site within their tenant, or None."""
        if not employee.site_id:
            return None

        site = self.db.get(WorkSite, employee.site_id)
        if not site or not site.is_active or site.admin_id != employee.admin_id:
            return None
        return site

    def _active_site(self, employee: Employee) -> WorkSite:
        """The employee's assigned site, or a TrackingError explaining why not."""
        if not employee.site_id:
            raise TrackingError("No work site assigned")

        site = self.assigned_site(employee)
        if site is None:
            raise TrackingError("Work site not found")
        return site

    @staticmethod
    def _coordinates(latitude: Any, longitude: Any, message: str) -> tuple[float, float]:
        lat = geofence.parse_coordinate(latitude)
        lon = geofence.parse_coordinate(longitude)
        if lat is None or lon is None:
            raise TrackingError(message)

        lat, lon, _ = geofence.correct_swapped(lat, lon)
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise TrackingError(message)
        return lat, lon

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def record_location(self, employee: Employee, latitude: Any, longitude: Any) -> RecordedLocation:
        """
        Append a location row for the employee.

        is_on_site is the geofence evaluation against the assigned site
        at write time, and False when no (active) site is assigned.

        Raises:
            TrackingError: If the coordinates are not numeric
        """
        lat, lon = self._coordinates(latitude, longitude, "Invalid coordinates provided")

        site = self.assigned_site(employee)
        distance = None
        is_on_site = False
        if site is not None:
            result = geofence.evaluate(lat, lon, site.latitude, site.longitude, site.geofence_radius)
            is_on_site = result.is_within
            distance = result.distance

        location = LocationTracking(
            employee_id=employee.id,
            latitude=_decimal(lat),
            longitude=_decimal(lon),
            is_on_site=is_on_site,
            timestamp=datetime.utcnow(),
        )
        self.db.add(location)
        self.db.commit()

        return RecordedLocation(location, distance)

    def location_event(self, employee: Employee, recorded: RecordedLocation) -> dict:
        """employee_location frame relayed to the owning admin."""
        location = recorded.location
        return {
            "type": EMPLOYEE_LOCATION,
            "employeeId": employee.id,
            "employee": employee.summary(),
            "location": {
                "latitude": float(location.latitude),
                "longitude": float(location.longitude),
                "isOnSite": location.is_on_site,
                "distanceFromSite": _rounded(recorded.distance) if recorded.distance is not None else None,
                "timestamp": _iso(location.timestamp),
            },
        }

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------

    def check_in(self, employee: Employee, latitude: Any, longitude: Any) -> tuple[Attendance, dict]:
        """
        Start a work session at the employee's assigned site.

        An attendance session left open from earlier is closed silently
        (no notification) at the new check-in coordinates.

        Returns:
            (attendance, employee_checkin notification)

        Raises:
            TrackingError: 400 for bad coordinates, no site, or a position
                outside the site radius plus accuracy buffer
        """
        lat, lon = self._coordinates(latitude, longitude, "Invalid coordinates provided")
        site = self._active_site(employee)

        result = geofence.evaluate(
            lat, lon, site.latitude, site.longitude, site.geofence_radius, self.buffer
        )
        if not result.is_within:
            logger.info(
                "Check-in denied for employee %s: %sm from site %s (radius %sm)",
                employee.id, _rounded(result.distance), site.id, site.geofence_radius,
            )
            raise TrackingError(
                f"You must be within {site.geofence_radius}m of the work site to check in. "
                f"You are {_rounded(result.distance)}m away.",
                distance=_rounded(result.distance),
                requiredRadius=site.geofence_radius,
            )

        stale = self.current_attendance(employee.id)
        if stale is not None:
            logger.info("Closing stale attendance %s for employee %s", stale.id, employee.id)
            stale.close(_decimal(lat), _decimal(lon))

        attendance = Attendance(
            employee_id=employee.id,
            site_id=site.id,
            check_in_time=datetime.utcnow(),
            check_in_latitude=_decimal(lat),
            check_in_longitude=_decimal(lon),
        )
        self.db.add(attendance)
        self.db.add(LocationTracking(
            employee_id=employee.id,
            latitude=_decimal(lat),
            longitude=_decimal(lon),
            is_on_site=geofence.is_within_geofence(
                lat, lon, site.latitude, site.longitude, site.geofence_radius
            ),
            timestamp=datetime.utcnow(),
        ))
        self.db.commit()

        logger.info("Employee %s checked in at site %s", employee.id, site.id)
        notification = self._notification(
            EMPLOYEE_CHECKIN,
            f"{employee.full_name} checked in at {site.name}",
            employee, site, lat, lon,
        )
        return attendance, notification

    def check_out(self, employee: Employee, latitude: Any, longitude: Any) -> tuple[Attendance, dict]:
        """
        Close the employee's open work session.

        The geofence gate applies only while the employee has an active
        assigned site. An employee unassigned after checking in, or whose
        site was deactivated, can still check out from anywhere.

        Returns:
            (attendance, employee_checkout notification)

        Raises:
            TrackingError: 400 for bad coordinates or when not checked in,
                403 when outside the site geofence
        """
        lat, lon = self._coordinates(
            latitude, longitude, "Valid latitude and longitude are required for checkout."
        )
        site = self.assigned_site(employee)

        if site is not None:
            result = geofence.evaluate(
                lat, lon, site.latitude, site.longitude, site.geofence_radius, self.buffer
            )
            if not result.is_within:
                raise TrackingError(
                    "You must be within the work site geofence to check out.",
                    status_code=403,
                    distance=_rounded(result.distance),
                    requiredRadius=site.geofence_radius,
                )

        attendance = self.current_attendance(employee.id)
        if attendance is None:
            raise TrackingError("Not currently checked in")

        attendance.close(_decimal(lat), _decimal(lon))
        self.db.add(LocationTracking(
            employee_id=employee.id,
            latitude=_decimal(lat),
            longitude=_decimal(lon),
            is_on_site=site is not None and geofence.is_within_geofence(
                lat, lon, site.latitude, site.longitude, site.geofence_radius
            ),
            timestamp=datetime.utcnow(),
        ))
        self.db.commit()

        if site is None:
            logger.info("Employee %s checked out without an active site", employee.id)
            message = f"{employee.full_name} checked out"
        else:
            logger.info("Employee %s checked out from site %s", employee.id, site.id)
            message = f"{employee.full_name} checked out from {site.name}"

        notification = self._notification(EMPLOYEE_CHECKOUT, message, employee, site, lat, lon)
        return attendance, notification

    @staticmethod
    def _notification(
        kind: str,
        message: str,
        employee: Employee,
        site: Optional[WorkSite],
        latitude: float,
        longitude: float,
    ) -> dict:
        return {
            "type": kind,
            "message": message,
            "employee": employee.summary(),
            "site": site.summary() if site is not None else None,
            "timestamp": _iso(datetime.utcnow()),
            "location": {"latitude": latitude, "longitude": longitude},
        }

    # ------------------------------------------------------------------
    # Admin views
    # ------------------------------------------------------------------

    def live_locations(self, admin: Admin) -> list[dict]:
        """
        Snapshot for the live map: one entry per checked-in employee.

        Each entry is {employee, location}; location is None when the
        employee has not reported a position yet.
        """
        employees = self.db.execute(
            select(Employee)
            .where(Employee.admin_id == admin.id)
            .where(Employee.is_active == True)
            .order_by(Employee.id)
        ).scalars().all()

        fetched = _iso(datetime.utcnow())
        snapshot = []
        for employee in employees:
            if self.current_attendance(employee.id) is None:
                continue

            location = self.latest_location(employee.id)
            entry = {
                "employee": {**employee.summary(), "isCheckedIn": True, "isActive": True},
                "location": None,
            }
            if location is not None:
                site = self.assigned_site(employee)
                within, distance, radius = False, None, None
                if site is not None:
                    result = geofence.evaluate(
                        location.latitude, location.longitude,
                        site.latitude, site.longitude, site.geofence_radius,
                    )
                    within = result.is_within
                    distance = _rounded(result.distance) if _finite(result.distance) else None
                    radius = site.geofence_radius

                entry["location"] = {
                    "id": location.id,
                    "employeeId": employee.id,
                    "latitude": float(location.latitude),
                    "longitude": float(location.longitude),
                    "isOnSite": location.is_on_site,
                    "timestamp": _iso(location.timestamp),
                    "isWithinGeofence": within,
                    "distanceFromSite": distance,
                    "geofenceRadius": radius,
                    "lastFetched": fetched,
                }
            snapshot.append(entry)

        return snapshot

    def dashboard_stats(self, admin: Admin) -> dict:
        """Counts for the admin dashboard."""
        active_employees = self.db.execute(
            select(func.count(Employee.id))
            .where(Employee.admin_id == admin.id)
            .where(Employee.is_active == True)
        ).scalar_one()

        work_sites = self.db.execute(
            select(func.count(WorkSite.id))
            .where(WorkSite.admin_id == admin.id)
            .where(WorkSite.is_active == True)
        ).scalar_one()

        snapshot = self.live_locations(admin)
        checked_in = len(snapshot)
        on_site = sum(
            1 for entry in snapshot
            if entry["location"] and entry["location"]["isWithinGeofence"]
        )

        return {
            "activeEmployees": active_employees,
            "workSites": work_sites,
            "checkedIn": checked_in,
            "onSiteNow": on_site,
            "alerts": checked_in - on_site,
        }


def _finite(value: Optional[float]) -> bool:
    return value is not None and value != float("inf")


def _rounded(value: float) -> Optional[int]:
    return round(value) if _finite(value) else None
