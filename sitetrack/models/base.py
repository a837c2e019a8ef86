# SiteTrack - Base Model and Mixins

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, ForeignKey, MetaData
from sitetrack.config import get_settings
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, declared_attr


settings = get_settings()
SCHEMA = settings.db_schema

# Use a metadata instance with a default schema so models and Alembic agree
_metadata = MetaData(schema=SCHEMA) if SCHEMA else MetaData()


def fk(target: str) -> str:
    """Qualify a "table.column" foreign key target with the configured schema."""
    return f"{SCHEMA}.{target}" if SCHEMA else target


class Base(DeclarativeBase):
    """Base class for all models."""
    metadata = _metadata


class TimestampMixin:
    """Mixin that adds created_at timestamp to models."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False
    )


class TenantMixin(TimestampMixin):
    """
    Mixin for records owned by exactly one admin (the tenant).

    Adds admin_id, is_active and created_at. Every query that lists
    tenant records must filter on admin_id; there is no cross-admin
    visibility. Records are deactivated rather than deleted.
    """

    @declared_attr
    def admin_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            ForeignKey(fk("admins.id")),
            nullable=False,
            index=True
        )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    def deactivate(self) -> None:
        """Soft-delete this record."""
        self.is_active = False
