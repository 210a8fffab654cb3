"""
Assignment and ItemProgress models for the Flight Training Tracker.

This is the INSTANCE LAYER that pairs with Template (template layer).
An Assignment references its template by id only; only the reference and
the mutable fields ever travel over the wire, never the lesson text.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, Float, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ftt.utils.clock import utcnow

from .base import Base, SyncState, UTCDateTime

if TYPE_CHECKING:
    from .student import StudentModel

# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class ItemProgress(BaseModel):
    """Completion state of one checklist line for one assignment."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    assignment_id: str
    template_item_id: str
    is_complete: bool = False
    notes: str | None = None
    completed_at: datetime | None = None
    last_modified: datetime
    sync_state: SyncState = SyncState.UNSYNCED


class ItemProgressUpdate(BaseModel):
    """One buffered item edit."""

    template_item_id: str
    is_complete: bool
    notes: str | None = None


class AssignmentUpdate(BaseModel):
    """Instructor-owned assignment fields. All optional."""

    instructor_comments: str | None = None
    dual_given_hours: float | None = Field(default=None, ge=0)


class Assignment(BaseModel):
    """A student's instance of working one template."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    template_id: str
    template_identifier: str | None = None
    is_custom_checklist: bool = False
    instructor_comments: str | None = None
    dual_given_hours: float = 0.0
    assigned_at: datetime
    last_modified: datetime
    template_resolved: bool = True
    sync_state: SyncState = SyncState.UNSYNCED
    item_progress: list[ItemProgress] = Field(default_factory=list)

    def progress_for(self, template_item_id: str) -> ItemProgress | None:
        """Return the progress record for a template item, if any."""
        for progress in self.item_progress:
            if progress.template_item_id == template_item_id:
                return progress
        return None


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class AssignmentModel(Base):
    """
    SQLAlchemy model for assignments table.

    template_id is a plain column, not a foreign key: templates live in the
    bundled library, not in the database.
    """

    __tablename__ = "assignments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    student_id: Mapped[str] = mapped_column(
        String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[str] = mapped_column(String, nullable=False)
    template_identifier: Mapped[str | None] = mapped_column(String, nullable=True)
    is_custom_checklist: Mapped[bool] = mapped_column(Boolean, default=False)

    # Instructor-owned fields
    instructor_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    dual_given_hours: Mapped[float] = mapped_column(Float, default=0.0)

    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    last_modified: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    template_resolved: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_state: Mapped[str] = mapped_column(String, default=SyncState.UNSYNCED.value)

    # Relationships
    student: Mapped["StudentModel"] = relationship("StudentModel", back_populates="assignments")
    item_progress: Mapped[list["ItemProgressModel"]] = relationship(
        "ItemProgressModel",
        back_populates="assignment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "template_id", name="uq_student_template_assignment"),
        Index("idx_assignments_student", "student_id"),
        Index("idx_assignments_sync_state", "sync_state"),
    )


class ItemProgressModel(Base):
    """SQLAlchemy model for item_progress table."""

    __tablename__ = "item_progress"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    assignment_id: Mapped[str] = mapped_column(
        String, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False
    )
    template_item_id: Mapped[str] = mapped_column(String, nullable=False)

    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_modified: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    sync_state: Mapped[str] = mapped_column(String, default=SyncState.UNSYNCED.value)

    # Relationships
    assignment: Mapped["AssignmentModel"] = relationship(
        "AssignmentModel", back_populates="item_progress"
    )

    __table_args__ = (
        UniqueConstraint("assignment_id", "template_item_id", name="uq_assignment_template_item"),
        Index("idx_item_progress_sync_state", "sync_state"),
    )
