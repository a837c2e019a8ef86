# SiteTrack - Department and Area Models
# Simple named groupings owned by an admin

from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantMixin

if TYPE_CHECKING:
    from .employee import Employee
    from .work_site import WorkSite


class Department(TenantMixin, Base):
    """Grouping of employees."""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="department"
    )

    def __repr__(self) -> str:
        return f"<Department {self.id} {self.name}>"


class Area(TenantMixin, Base):
    """Grouping of work sites (e.g. a city district)."""

    __tablename__ = "areas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    work_sites: Mapped[List["WorkSite"]] = relationship(
        "WorkSite",
        back_populates="area"
    )

    def __repr__(self) -> str:
        return f"<Area {self.id} {self.name}>"
