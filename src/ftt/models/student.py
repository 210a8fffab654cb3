"""
Student models for the Flight Training Tracker.

The student owns its assignments and carries the inputs the weighted
progress calculation needs: goal flags, milestone booleans, personal
information and uploaded documents.
"""

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ftt.utils.clock import utcnow

from .assignment import Assignment
from .base import Base, SyncState, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from .assignment import AssignmentModel


class DocumentType(StrEnum):
    """Documents a student uploads during training."""

    STUDENT_PILOT_CERTIFICATE = "Student Pilot Certificate"
    MEDICAL_CERTIFICATE = "Medical Certificate"
    PASSPORT_BIRTH_CERTIFICATE = "Passport/Birth Certificate"
    LOGBOOK = "LogBook"

    @property
    def is_optional(self) -> bool:
        return self is DocumentType.LOGBOOK


REQUIRED_DOCUMENT_TYPES = tuple(doc for doc in DocumentType if not doc.is_optional)

ModifiedBy = Literal["instructor", "student"]


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class StudentBase(BaseModel):
    """Personal information, goals and milestones."""

    first_name: str = Field(default="")
    last_name: str = Field(default="")
    email: str = Field(default="")
    telephone: str = Field(default="")
    home_address: str = Field(default="")
    ftn_number: str = Field(default="")
    assigned_category: str | None = Field(default=None, description="Manual category assignment")

    # Training goals
    goal_ppl: bool = False
    goal_instrument: bool = False
    goal_commercial: bool = False
    goal_cfi: bool = False

    # Milestones
    ppl_ground_school_completed: bool = False
    ppl_written_test_completed: bool = False
    instrument_ground_school_completed: bool = False
    instrument_written_test_completed: bool = False
    commercial_ground_school_completed: bool = False
    commercial_written_test_completed: bool = False
    cfi_ground_school_completed: bool = False
    cfi_written_test_completed: bool = False


class StudentCreate(StudentBase):
    """Schema for creating a student."""

    id: str | None = Field(default=None, description="Client-generated id if provided")
    documents: list[DocumentType] | None = None


class StudentUpdate(BaseModel):
    """Schema for updating a student. All fields optional."""

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    telephone: str | None = None
    home_address: str | None = None
    ftn_number: str | None = None
    assigned_category: str | None = None

    goal_ppl: bool | None = None
    goal_instrument: bool | None = None
    goal_commercial: bool | None = None
    goal_cfi: bool | None = None

    ppl_ground_school_completed: bool | None = None
    ppl_written_test_completed: bool | None = None
    instrument_ground_school_completed: bool | None = None
    instrument_written_test_completed: bool | None = None
    commercial_ground_school_completed: bool | None = None
    commercial_written_test_completed: bool | None = None
    cfi_ground_school_completed: bool | None = None
    cfi_written_test_completed: bool | None = None


class Student(StudentBase):
    """Complete student entity with its assignments."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    documents: list[DocumentType] | None = None
    share_record_id: str | None = None
    share_active: bool = False
    share_terminated: bool = False
    last_modified: datetime
    last_modified_by: ModifiedBy = "instructor"
    sync_state: SyncState = SyncState.UNSYNCED
    created_at: datetime
    assignments: list[Assignment] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class StudentModel(Base, TimestampMixin):
    """SQLAlchemy model for students table."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    # Personal information
    first_name: Mapped[str] = mapped_column(String(200), default="")
    last_name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(320), default="")
    telephone: Mapped[str] = mapped_column(String(50), default="")
    home_address: Mapped[str] = mapped_column(Text, default="")
    ftn_number: Mapped[str] = mapped_column(String(50), default="")
    assigned_category: Mapped[str | None] = mapped_column(String, nullable=True)

    # Goals
    goal_ppl: Mapped[bool] = mapped_column(Boolean, default=False)
    goal_instrument: Mapped[bool] = mapped_column(Boolean, default=False)
    goal_commercial: Mapped[bool] = mapped_column(Boolean, default=False)
    goal_cfi: Mapped[bool] = mapped_column(Boolean, default=False)

    # Milestones
    ppl_ground_school_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    ppl_written_test_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    instrument_ground_school_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    instrument_written_test_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    commercial_ground_school_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    commercial_written_test_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    cfi_ground_school_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    cfi_written_test_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Uploaded document types; NULL when the document subsystem is not set up
    documents: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Share state
    share_record_id: Mapped[str | None] = mapped_column(String, nullable=True)
    share_active: Mapped[bool] = mapped_column(Boolean, default=False)
    share_terminated: Mapped[bool] = mapped_column(Boolean, default=False)

    # Sync
    last_modified: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    last_modified_by: Mapped[str] = mapped_column(String, default="instructor")
    sync_state: Mapped[str] = mapped_column(String, default=SyncState.UNSYNCED.value)

    # Relationships
    assignments: Mapped[list["AssignmentModel"]] = relationship(
        "AssignmentModel",
        back_populates="student",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
