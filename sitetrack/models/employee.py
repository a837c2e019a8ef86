# SiteTrack - Employee Model

from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Integer, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantMixin, fk

if TYPE_CHECKING:
    from .admin import Admin
    from .work_site import WorkSite
    from .organization import Department
    from .attendance import Attendance
    from .location_tracking import LocationTracking


class Employee(TenantMixin, Base):
    """
    Field employee who checks in/out and reports positions.

    Created by an admin and deactivated (is_active=False) rather than
    destroyed, so attendance and location history keep their owner.
    """

    __tablename__ = "employees"

    __table_args__ = (
        Index("ix_employees_admin_active", "admin_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    # Optional external employee code (e.g. "EMP001")
    employee_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )

    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Assigned work site (drives the geofence evaluation)
    site_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(fk("work_sites.id")),
        nullable=True,
        index=True
    )

    department_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(fk("departments.id")),
        nullable=True,
        index=True
    )

    profile_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    admin: Mapped["Admin"] = relationship(
        "Admin",
        back_populates="employees"
    )

    site: Mapped[Optional["WorkSite"]] = relationship(
        "WorkSite",
        back_populates="employees"
    )

    department: Mapped[Optional["Department"]] = relationship(
        "Department",
        back_populates="employees"
    )

    attendance_records: Mapped[List["Attendance"]] = relationship(
        "Attendance",
        back_populates="employee",
        order_by="Attendance.check_in_time.desc()"
    )

    locations: Mapped[List["LocationTracking"]] = relationship(
        "LocationTracking",
        back_populates="employee",
        order_by="LocationTracking.timestamp.desc()"
    )

    def __repr__(self) -> str:
        status = "" if self.is_active else " [INACTIVE]"
        return f"<Employee {self.id} {self.full_name}{status}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def summary(self) -> dict:
        """Compact identity used inside realtime event frames."""
        return {
            "id": self.id,
            "name": self.full_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "siteId": self.site_id,
        }
