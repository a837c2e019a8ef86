# SiteTrack - Location Tracking Model

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Integer, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, fk

if TYPE_CHECKING:
    from .employee import Employee


class LocationTracking(Base):
    """
    One reported position of one employee.

    Append-only: rows are never updated or deleted in normal operation.
    is_on_site is the geofence evaluation against the employee's
    assigned work site at the moment the row was written.
    """

    __tablename__ = "location_tracking"

    # Common query pattern: latest position for an employee
    __table_args__ = (
        Index("ix_location_tracking_employee_time", "employee_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(fk("employees.id")),
        nullable=False
    )

    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(11, 8), nullable=False)

    is_on_site: Mapped[bool] = mapped_column(Boolean, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False
    )

    employee: Mapped["Employee"] = relationship(
        "Employee",
        back_populates="locations"
    )

    def __repr__(self) -> str:
        where = "on site" if self.is_on_site else "off site"
        return f"<LocationTracking employee={self.employee_id} {self.latitude},{self.longitude} {where}>"
