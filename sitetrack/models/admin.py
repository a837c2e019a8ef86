# SiteTrack - Admin Model

from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .employee import Employee
    from .work_site import WorkSite


class Admin(TimestampMixin, Base):
    """
    Administrator account; the tenant that owns employees, sites,
    departments and areas.

    Lifecycle:
        - Created at signup: unverified and inactive
        - Email verified through verification_token
        - Activated by a super admin before the first login
    """

    __tablename__ = "admins"

    ROLE_ADMIN = "admin"
    ROLE_SUPER_ADMIN = "super_admin"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    profile_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # "admin" or "super_admin"
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ROLE_ADMIN
    )

    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    verification_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Set by a super admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="admin"
    )

    work_sites: Mapped[List["WorkSite"]] = relationship(
        "WorkSite",
        back_populates="admin"
    )

    def __repr__(self) -> str:
        return f"<Admin {self.email} ({self.role})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_super_admin(self) -> bool:
        return self.role == self.ROLE_SUPER_ADMIN
