# SiteTrack - Employee Routes
# Profile, assigned site, attendance (check-in/check-out) and location reports

import logging
import math
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from sitetrack.database import get_db
from sitetrack.dependencies import get_current_employee, get_hub
from sitetrack.models.employee import Employee
from sitetrack.models.work_site import WorkSite
from sitetrack.schemas import (
    AttendanceOut,
    CoordinatesIn,
    EmployeeOut,
    EmployeeProfileUpdate,
    EmployeeStatus,
    LocationOut,
    LocationRecorded,
    WorkSiteOut,
)
from sitetrack.services.realtime import ConnectionManager
from sitetrack.services.tracking import TrackingError, TrackingService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/employee", tags=["employee"])


def assigned_site(db: Session, employee: Employee) -> Optional[WorkSite]:
    return TrackingService(db).assigned_site(employee)


# =============================================================================
# Profile
# =============================================================================

@router.get("/profile", response_model=EmployeeOut)
def employee_profile(employee: Employee = Depends(get_current_employee)):
    return employee


@router.put("/profile", response_model=EmployeeOut)
def update_employee_profile(
    payload: EmployeeProfileUpdate,
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(employee, field, value if value is not None else "")
    db.commit()
    return employee


@router.get("/site", response_model=Optional[WorkSiteOut])
def employee_site(
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """The employee's assigned work site, or null."""
    return assigned_site(db, employee)


@router.get("/status", response_model=EmployeeStatus)
def employee_status(
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    service = TrackingService(db)
    attendance = service.current_attendance(employee.id)
    return EmployeeStatus(
        is_checked_in=attendance is not None,
        attendance=AttendanceOut.model_validate(attendance) if attendance else None,
        site=_site_out(assigned_site(db, employee)),
        last_location=_location_out(service.latest_location(employee.id)),
    )


def _site_out(site: Optional[WorkSite]) -> Optional[WorkSiteOut]:
    return WorkSiteOut.model_validate(site) if site else None


def _location_out(location) -> Optional[LocationOut]:
    return LocationOut.model_validate(location) if location else None


def _distance(value: Optional[float]) -> Optional[int]:
    if value is None or math.isinf(value):
        return None
    return round(value)


# =============================================================================
# Attendance
# =============================================================================

@router.get("/attendance/current", response_model=Optional[AttendanceOut])
def current_attendance(
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """The open attendance session, or null when not checked in."""
    return TrackingService(db).current_attendance(employee.id)


@router.get("/attendance/history", response_model=list[AttendanceOut])
def attendance_history(
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Attendance from the last 30 days, newest first."""
    return TrackingService(db).attendance_history(employee.id)


@router.post("/attendance/checkin", response_model=AttendanceOut)
def check_in(
    payload: CoordinatesIn,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
    hub: ConnectionManager = Depends(get_hub),
):
    """
    Check in at the assigned site.

    Refused with 400 when the position is outside the site geofence
    (plus GPS accuracy buffer); the body then carries distance and
    requiredRadius. The owning admin is notified after the response.
    """
    try:
        attendance, notification = TrackingService(db).check_in(
            employee, payload.latitude, payload.longitude
        )
    except TrackingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    background_tasks.add_task(hub.notify_admin, employee.admin_id, notification)
    return attendance


@router.post("/attendance/checkout", response_model=AttendanceOut)
def check_out(
    payload: CoordinatesIn,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
    hub: ConnectionManager = Depends(get_hub),
):
    """Check out; 403 outside the geofence, 400 when not checked in."""
    try:
        attendance, notification = TrackingService(db).check_out(
            employee, payload.latitude, payload.longitude
        )
    except TrackingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    background_tasks.add_task(hub.notify_admin, employee.admin_id, notification)
    return attendance


# =============================================================================
# Location
# =============================================================================

@router.post("/location", response_model=LocationRecorded, status_code=201)
def report_location(
    payload: CoordinatesIn,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
    hub: ConnectionManager = Depends(get_hub),
):
    """
    Record a position report (REST alternative to the socket's
    location_update frame) and relay it to the admin's live map.
    """
    service = TrackingService(db)
    try:
        recorded = service.record_location(employee, payload.latitude, payload.longitude)
    except TrackingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail())

    background_tasks.add_task(
        hub.broadcast_location, employee.admin_id, service.location_event(employee, recorded)
    )
    return LocationRecorded(
        location=LocationOut.model_validate(recorded.location),
        distance_from_site=_distance(recorded.distance),
    )
