"""
Base SQLAlchemy models and common utilities for the Flight Training Tracker.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import DateTime, MetaData
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from ftt.utils.clock import ensure_utc, utcnow

# Naming convention for constraints and indexes
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


class SyncState(StrEnum):
    """
    Per-record synchronization lifecycle.

    UNSYNCED -> PUSHED -> ACKNOWLEDGED, and back to UNSYNCED on any local
    mutation. Conflicts are never a state of their own.
    """

    UNSYNCED = "unsynced"
    PUSHED = "pushed"
    ACKNOWLEDGED = "acknowledged"


class UTCDateTime(TypeDecorator):
    """
    DateTime column that always round-trips as aware UTC.

    PostgreSQL keeps the offset; SQLite drops it, so values are normalized to
    UTC on the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Provides common metadata and utilities.
    """

    metadata = metadata

    # Type annotation for better IDE support
    __tablename__: str

    def to_dict(self) -> dict[str, Any]:
        """
        Convert model instance to dictionary.

        Useful for debugging and serialization.
        """
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class TimestampMixin:
    """
    Mixin for models that need created_at and updated_at timestamps.

    Usage:
        class MyModel(Base, TimestampMixin):
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
