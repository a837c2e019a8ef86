# SiteTrack - User Session Model
# Database-backed session storage for authentication

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class UserSession(Base):
    """
    Database-backed bearer-token sessions for admins and employees.

    Storing sessions in the database (rather than self-contained signed
    tokens) allows:
        - Easy session invalidation (logout, forced logout)
        - Single-device login for employees (older sessions are closed)
        - The same token to authenticate REST calls and the /ws socket

    user_type is "admin" or "employee"; user_id points into the
    matching table, so there is no foreign key constraint here.
    """

    __tablename__ = "user_sessions"

    __table_args__ = (
        Index("ix_user_sessions_user_active", "user_type", "user_id", "is_active"),
    )

    USER_ADMIN = "admin"
    USER_EMPLOYEE = "employee"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    user_type: Mapped[str] = mapped_column(String(20), nullable=False)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # The bearer token handed to the client
    session_token: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True
    )

    # When does this session expire?
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False
    )

    # Is this session still valid?
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False
    )

    last_activity_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    logged_out_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    # Optional metadata
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True
    )

    user_agent: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True
    )

    def __repr__(self) -> str:
        status = "active" if self.is_active else "inactive"
        return f"<UserSession {self.id} ({status}) for {self.user_type} {self.user_id}>"

    @property
    def is_expired(self) -> bool:
        """Check if session has expired."""
        return datetime.utcnow() > self.expires_at

    @property
    def is_valid(self) -> bool:
        """Check if session is valid (active and not expired)."""
        return self.is_active and not self.is_expired

    def invalidate(self) -> None:
        self.is_active = False
        self.logged_out_at = datetime.utcnow()
