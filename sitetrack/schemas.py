# SiteTrack - API Schemas
# Pydantic request/response models; JSON field names are camelCase

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every API schema: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Auth
# =============================================================================

class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AdminSignup(CamelModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    company_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(min_length=6)


class VerifyEmailRequest(CamelModel):
    token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class AdminActivation(CamelModel):
    admin_id: int
    is_active: bool


class MessageResponse(CamelModel):
    message: str


# =============================================================================
# Admins
# =============================================================================

class AdminOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    company_name: str
    email: str
    role: str
    profile_image: Optional[str] = None
    is_verified: bool
    is_active: bool
    created_at: datetime


class AdminUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    company_name: Optional[str] = Field(None, min_length=1, max_length=200)


class AdminLoginResponse(CamelModel):
    token: str
    admin: AdminOut


class SignupResponse(CamelModel):
    message: str
    admin: AdminOut


# =============================================================================
# Organization
# =============================================================================

class OrgUnitCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class OrgUnitUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class OrgUnitOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    admin_id: int
    is_active: bool
    created_at: datetime


# =============================================================================
# Work sites
# =============================================================================

class WorkSiteCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    address: str = Field(min_length=1, max_length=500)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    geofence_radius: int = Field(200, gt=0, le=100000)
    area_id: Optional[int] = None


class WorkSiteUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    geofence_radius: Optional[int] = Field(None, gt=0, le=100000)
    area_id: Optional[int] = None


class WorkSiteOut(CamelModel):
    id: int
    name: str
    address: str
    latitude: float
    longitude: float
    geofence_radius: int
    area_id: Optional[int] = None
    site_image: Optional[str] = None
    admin_id: int
    is_active: bool
    created_at: datetime


# =============================================================================
# Employees
# =============================================================================

class EmployeeCreate(CamelModel):
    employee_code: Optional[str] = Field(None, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field("", max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    password: str = Field(min_length=6)
    site_id: Optional[int] = None
    department_id: Optional[int] = None


class EmployeeUpdate(CamelModel):
    employee_code: Optional[str] = Field(None, max_length=50)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    password: Optional[str] = Field(None, min_length=6)
    site_id: Optional[int] = None
    department_id: Optional[int] = None


class EmployeeProfileUpdate(CamelModel):
    """Fields an employee may change on their own profile."""
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)


class EmployeeOut(CamelModel):
    id: int
    employee_code: Optional[str] = None
    first_name: str
    last_name: str
    email: str
    phone: str
    address: Optional[str] = None
    site_id: Optional[int] = None
    department_id: Optional[int] = None
    profile_image: Optional[str] = None
    admin_id: int
    is_active: bool
    created_at: datetime


class EmployeeLoginResponse(CamelModel):
    token: str
    employee: EmployeeOut


# =============================================================================
# Tracking
# =============================================================================

class CoordinatesIn(CamelModel):
    """
    Submitted position. Kept loose (numbers or numeric strings) so the
    service can answer with its own validation message.
    """
    latitude: Optional[Union[float, str]] = None
    longitude: Optional[Union[float, str]] = None


class AttendanceOut(CamelModel):
    id: int
    employee_id: int
    site_id: int
    check_in_time: datetime
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None


class LocationOut(CamelModel):
    id: int
    employee_id: int
    latitude: float
    longitude: float
    is_on_site: bool
    timestamp: datetime


class LocationRecorded(CamelModel):
    location: LocationOut
    distance_from_site: Optional[int] = None


class EmployeeStatus(CamelModel):
    is_checked_in: bool
    attendance: Optional[AttendanceOut] = None
    site: Optional[WorkSiteOut] = None
    last_location: Optional[LocationOut] = None


class DashboardStats(CamelModel):
    active_employees: int
    work_sites: int
    checked_in: int
    on_site_now: int
    alerts: int
