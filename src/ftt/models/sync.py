"""
Sync bookkeeping models for the Flight Training Tracker.

Tombstones, pull cursors and deferred inbound records. None of these are
user-visible; they exist so that deletes are explicit and nothing received
from the shared store is lost before it can be applied.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ftt.utils.clock import utcnow

from .base import Base, UTCDateTime

# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class Tombstone(BaseModel):
    """Explicit record of a deletion."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    record_type: str
    record_id: str
    student_id: str | None = None
    deleted_at: datetime
    remote_pending: bool


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class TombstoneModel(Base):
    """
    SQLAlchemy model for tombstones table.

    remote_pending is true while the delete still has to reach the shared store.
    """

    __tablename__ = "tombstones"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    record_type: Mapped[str] = mapped_column(String, nullable=False)
    record_id: Mapped[str] = mapped_column(String, nullable=False)
    student_id: Mapped[str | None] = mapped_column(String, nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    remote_pending: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (Index("idx_tombstones_pending", "remote_pending", "student_id"),)


class SyncCursorModel(Base):
    """SQLAlchemy model for sync_cursors table (last pull token per scope)."""

    __tablename__ = "sync_cursors"

    scope: Mapped[str] = mapped_column(String, primary_key=True)
    token: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )


class DeferredRecordModel(Base):
    """SQLAlchemy model for deferred_records table (inbound records awaiting a parent)."""

    __tablename__ = "deferred_records"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
