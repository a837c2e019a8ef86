# SiteTrack - Admin Routes
# Tenant-scoped management of departments, areas, sites and employees,
# plus the live views (dashboard, locations, recent notifications)

import logging
from typing import Optional, Type, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from sitetrack.database import get_db
from sitetrack.dependencies import get_current_admin, get_hub
from sitetrack.models.admin import Admin
from sitetrack.models.employee import Employee
from sitetrack.models.organization import Area, Department
from sitetrack.models.user_session import UserSession
from sitetrack.models.work_site import WorkSite
from sitetrack.schemas import (
    AttendanceOut,
    DashboardStats,
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    LocationOut,
    OrgUnitCreate,
    OrgUnitOut,
    OrgUnitUpdate,
    WorkSiteCreate,
    WorkSiteOut,
    WorkSiteUpdate,
)
from sitetrack.services.auth import AuthService
from sitetrack.services.realtime import ConnectionManager
from sitetrack.services.tracking import TrackingService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

T = TypeVar("T")


# Helper functions

def get_owned(db: Session, model: Type[T], record_id: int, admin: Admin) -> T:
    """
    Fetch an active record owned by the admin or raise 404.

    Records of other admins answer exactly like missing ones.
    """
    record = db.get(model, record_id)
    if record is None or record.admin_id != admin.id or not record.is_active:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")
    return record


def list_owned(db: Session, model: Type[T], admin: Admin) -> list[T]:
    return list(db.execute(
        select(model)
        .where(model.admin_id == admin.id)
        .where(model.is_active == True)
        .order_by(model.id)
    ).scalars().all())


def check_reference(db: Session, model: Type[T], record_id: Optional[int], admin: Admin) -> None:
    """Foreign keys submitted by an admin must point at their own active records."""
    if record_id is None:
        return
    record = db.get(model, record_id)
    if record is None or record.admin_id != admin.id or not record.is_active:
        raise HTTPException(status_code=400, detail=f"Invalid {model.__name__} reference")


def next_employee_code(db: Session, admin: Admin) -> str:
    """EMP001-style code from the admin's employee count."""
    count = db.execute(
        select(func.count(Employee.id)).where(Employee.admin_id == admin.id)
    ).scalar_one()
    return f"EMP{count + 1:03d}"


# =============================================================================
# Dashboard & live views
# =============================================================================

@router.get("/dashboard", response_model=DashboardStats)
def dashboard(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return TrackingService(db).dashboard_stats(admin)


@router.get("/locations")
def live_locations(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Snapshot of checked-in employees and their latest position.

    Polled by the live map; realtime employee_location frames patch it
    between polls.
    """
    return TrackingService(db).live_locations(admin)


@router.get("/notifications/recent")
def recent_notifications(
    admin: Admin = Depends(get_current_admin),
    hub: ConnectionManager = Depends(get_hub),
):
    """The admin's last check-in/check-out notifications, newest first."""
    return hub.recent(admin.id)


# =============================================================================
# Departments
# =============================================================================

@router.get("/departments", response_model=list[OrgUnitOut])
def list_departments(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return list_owned(db, Department, admin)


@router.post("/departments", response_model=OrgUnitOut, status_code=201)
def create_department(
    payload: OrgUnitCreate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    department = Department(admin_id=admin.id, name=payload.name.strip(), description=payload.description)
    db.add(department)
    db.commit()
    return department


@router.get("/departments/{department_id}", response_model=OrgUnitOut)
def get_department(
    department_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return get_owned(db, Department, department_id, admin)


@router.put("/departments/{department_id}", response_model=OrgUnitOut)
def update_department(
    department_id: int,
    payload: OrgUnitUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    department = get_owned(db, Department, department_id, admin)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field == "name":
            continue
        setattr(department, field, value)
    db.commit()
    return department


@router.delete("/departments/{department_id}", status_code=204)
def delete_department(
    department_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Deactivate a department. Refused while active employees are assigned."""
    department = get_owned(db, Department, department_id, admin)

    assigned = db.execute(
        select(func.count(Employee.id))
        .where(Employee.department_id == department.id)
        .where(Employee.is_active == True)
    ).scalar_one()
    if assigned:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete department: {assigned} employee(s) are still assigned to it",
        )

    department.deactivate()
    db.commit()
    return Response(status_code=204)


# =============================================================================
# Areas
# =============================================================================

@router.get("/areas", response_model=list[OrgUnitOut])
def list_areas(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return list_owned(db, Area, admin)


@router.post("/areas", response_model=OrgUnitOut, status_code=201)
def create_area(
    payload: OrgUnitCreate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    area = Area(admin_id=admin.id, name=payload.name.strip(), description=payload.description)
    db.add(area)
    db.commit()
    return area


@router.get("/areas/{area_id}", response_model=OrgUnitOut)
def get_area(
    area_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return get_owned(db, Area, area_id, admin)


@router.put("/areas/{area_id}", response_model=OrgUnitOut)
def update_area(
    area_id: int,
    payload: OrgUnitUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    area = get_owned(db, Area, area_id, admin)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field == "name":
            continue
        setattr(area, field, value)
    db.commit()
    return area


@router.delete("/areas/{area_id}", status_code=204)
def delete_area(
    area_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Deactivate an area. Refused while active sites belong to it."""
    area = get_owned(db, Area, area_id, admin)

    assigned = db.execute(
        select(func.count(WorkSite.id))
        .where(WorkSite.area_id == area.id)
        .where(WorkSite.is_active == True)
    ).scalar_one()
    if assigned:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete area: {assigned} work site(s) are still assigned to it",
        )

    area.deactivate()
    db.commit()
    return Response(status_code=204)


# =============================================================================
# Work sites
# =============================================================================

@router.get("/sites", response_model=list[WorkSiteOut])
def list_sites(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Active sites with center coordinates and geofence radius (meters)."""
    return list_owned(db, WorkSite, admin)


@router.post("/sites", response_model=WorkSiteOut, status_code=201)
def create_site(
    payload: WorkSiteCreate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    check_reference(db, Area, payload.area_id, admin)

    site = WorkSite(
        admin_id=admin.id,
        name=payload.name.strip(),
        address=payload.address.strip(),
        latitude=payload.latitude,
        longitude=payload.longitude,
        geofence_radius=payload.geofence_radius,
        area_id=payload.area_id,
    )
    db.add(site)
    db.commit()

    logger.info("Admin %s created site %s (r=%sm)", admin.id, site.id, site.geofence_radius)
    return site


@router.get("/sites/{site_id}", response_model=WorkSiteOut)
def get_site(
    site_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return get_owned(db, WorkSite, site_id, admin)


@router.put("/sites/{site_id}", response_model=WorkSiteOut)
def update_site(
    site_id: int,
    payload: WorkSiteUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    site = get_owned(db, WorkSite, site_id, admin)
    changes = payload.model_dump(exclude_unset=True)

    if "area_id" in changes:
        check_reference(db, Area, changes["area_id"], admin)

    for field, value in changes.items():
        if value is None and field != "area_id":
            continue
        setattr(site, field, value)
    db.commit()
    return site


@router.delete("/sites/{site_id}", status_code=204)
def delete_site(
    site_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    site = get_owned(db, WorkSite, site_id, admin)
    site.deactivate()
    db.commit()
    return Response(status_code=204)


# =============================================================================
# Employees
# =============================================================================

@router.get("/employees", response_model=list[EmployeeOut])
def list_employees(
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return list_owned(db, Employee, admin)


@router.post("/employees", response_model=EmployeeOut, status_code=201)
def create_employee(
    payload: EmployeeCreate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Create an employee owned by the current admin.

    employeeCode defaults to the next EMP### code for this admin.
    """
    auth = AuthService(db)
    if auth.email_exists(payload.email):
        raise HTTPException(
            status_code=400,
            detail="Email address already exists. Please use a different email address.",
        )

    check_reference(db, WorkSite, payload.site_id, admin)
    check_reference(db, Department, payload.department_id, admin)

    employee = Employee(
        admin_id=admin.id,
        employee_code=payload.employee_code or next_employee_code(db, admin),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=payload.email.strip().lower(),
        phone=payload.phone,
        address=payload.address,
        password_hash=auth.hash_password(payload.password),
        site_id=payload.site_id,
        department_id=payload.department_id,
    )
    db.add(employee)
    db.commit()

    logger.info("Admin %s created employee %s (%s)", admin.id, employee.id, employee.employee_code)
    return employee


@router.get("/employees/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return get_owned(db, Employee, employee_id, admin)


@router.put("/employees/{employee_id}", response_model=EmployeeOut)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """
    Update an employee.

    Only provided fields change. siteId/departmentId may be set to null
    to unassign.
    """
    employee = get_owned(db, Employee, employee_id, admin)
    auth = AuthService(db)
    changes = payload.model_dump(exclude_unset=True)

    email = changes.pop("email", None)
    if email and email.strip().lower() != employee.email:
        if auth.email_exists(email):
            raise HTTPException(
                status_code=400,
                detail="Email address already exists. Please use a different email address.",
            )
        employee.email = email.strip().lower()

    password = changes.pop("password", None)
    if password:
        employee.password_hash = auth.hash_password(password)

    if "site_id" in changes:
        check_reference(db, WorkSite, changes["site_id"], admin)
    if "department_id" in changes:
        check_reference(db, Department, changes["department_id"], admin)

    for field, value in changes.items():
        if value is None and field not in ("site_id", "department_id", "address"):
            continue
        setattr(employee, field, value)

    db.commit()
    return employee


@router.delete("/employees/{employee_id}", status_code=204)
def delete_employee(
    employee_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Deactivate an employee and end their sessions. History is kept."""
    employee = get_owned(db, Employee, employee_id, admin)
    employee.deactivate()
    db.commit()

    AuthService(db).logout_all_sessions(UserSession.USER_EMPLOYEE, employee.id)
    logger.info("Admin %s deactivated employee %s", admin.id, employee.id)
    return Response(status_code=204)


@router.get("/employees/{employee_id}/attendance", response_model=list[AttendanceOut])
def employee_attendance(
    employee_id: int,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Attendance sessions from the last 30 days, newest first."""
    employee = get_owned(db, Employee, employee_id, admin)
    return TrackingService(db).attendance_history(employee.id)


@router.get("/employees/{employee_id}/locations", response_model=list[LocationOut])
def employee_locations(
    employee_id: int,
    limit: int = Query(100, ge=1, le=1000),
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    employee = get_owned(db, Employee, employee_id, admin)
    return TrackingService(db).location_history(employee.id, limit=limit)
