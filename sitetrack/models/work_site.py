# SiteTrack - Work Site Model

from decimal import Decimal
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Integer, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantMixin, fk

if TYPE_CHECKING:
    from .admin import Admin
    from .employee import Employee
    from .organization import Area


DEFAULT_GEOFENCE_RADIUS = 200  # meters


class WorkSite(TenantMixin, Base):
    """
    A physical work location with a circular geofence.

    Coordinates are stored as fixed-precision decimals:
        - latitude  Numeric(10, 8)  e.g. 28.61390000
        - longitude Numeric(11, 8)  e.g. 77.20900000

    geofence_radius is in meters; an employee is on site when their
    great-circle distance to (latitude, longitude) is <= the radius.
    """

    __tablename__ = "work_sites"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)

    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(11, 8), nullable=False)

    geofence_radius: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_GEOFENCE_RADIUS
    )

    site_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    area_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(fk("areas.id")),
        nullable=True,
        index=True
    )

    # Relationships
    admin: Mapped["Admin"] = relationship(
        "Admin",
        back_populates="work_sites"
    )

    area: Mapped[Optional["Area"]] = relationship(
        "Area",
        back_populates="work_sites"
    )

    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="site"
    )

    def __repr__(self) -> str:
        return f"<WorkSite {self.id} {self.name} r={self.geofence_radius}m>"

    def summary(self) -> dict:
        """Compact identity used inside realtime event frames."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
        }
