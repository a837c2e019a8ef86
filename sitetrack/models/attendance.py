# SiteTrack - Attendance Model

from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Integer, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, fk

if TYPE_CHECKING:
    from .employee import Employee
    from .work_site import WorkSite


class Attendance(Base):
    """
    One work session: check-in at a site, optionally closed by a check-out.

    The row is created on check-in and mutated exactly once, when the
    check-out time and coordinates are filled in. An open session is
    one with check_out_time IS NULL.
    """

    __tablename__ = "attendance"

    __table_args__ = (
        Index("ix_attendance_employee_open", "employee_id", "check_out_time"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(fk("employees.id")),
        nullable=False,
        index=True
    )

    site_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(fk("work_sites.id")),
        nullable=False,
        index=True
    )

    check_in_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True
    )

    check_in_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8), nullable=True)
    check_in_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8), nullable=True)

    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    check_out_latitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 8), nullable=True)
    check_out_longitude: Mapped[Optional[Decimal]] = mapped_column(Numeric(11, 8), nullable=True)

    # Relationships
    employee: Mapped["Employee"] = relationship(
        "Employee",
        back_populates="attendance_records"
    )

    site: Mapped["WorkSite"] = relationship("WorkSite")

    def __repr__(self) -> str:
        status = "open" if self.is_open else f"closed {self.check_out_time:%H:%M}"
        return f"<Attendance {self.id} employee={self.employee_id} {self.check_in_time:%Y-%m-%d %H:%M} {status}>"

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    def close(self, latitude: Decimal, longitude: Decimal) -> None:
        """Record the check-out. Only valid on an open session."""
        self.check_out_time = datetime.utcnow()
        self.check_out_latitude = latitude
        self.check_out_longitude = longitude
