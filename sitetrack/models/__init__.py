# SiteTrack - SQLAlchemy Models

from .base import Base, TimestampMixin, TenantMixin
from .admin import Admin
from .organization import Department, Area
from .work_site import WorkSite, DEFAULT_GEOFENCE_RADIUS
from .employee import Employee
from .location_tracking import LocationTracking
from .attendance import Attendance
from .user_session import UserSession

__all__ = [
    "Base",
    "TimestampMixin",
    "TenantMixin",
    "Admin",
    "Department",
    "Area",
    "WorkSite",
    "DEFAULT_GEOFENCE_RADIUS",
    "Employee",
    "LocationTracking",
    "Attendance",
    "UserSession",
]
