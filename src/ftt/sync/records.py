"""
Wire records exchanged with the shared store.

Each record is a frozen pydantic model serialized as camelCase JSON and
discriminated by its `kind`. Assignments carry template references only.
Bundled templates ship with every build, so only user-created templates
travel as content, in their own TemplateRecord.

Keys have the form "<record_type>:<id>", e.g. "item_progress:3f2b8c1e-...".
"""

from collections.abc import Iterable
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from ftt.errors import ValidationError
from ftt.models import (
    AssignmentModel,
    CustomTemplateModel,
    DocumentType,
    ItemProgressModel,
    StudentModel,
    Template,
    TemplateItem,
)
from ftt.models.student import ModifiedBy
from ftt.utils.clock import ensure_utc


class RecordType(StrEnum):
    """Types of record that live in the shared store."""

    STUDENT = "student"
    ASSIGNMENT = "assignment"
    ITEM_PROGRESS = "item_progress"
    TEMPLATE = "template"


def record_key(record_type: RecordType | str, record_id: str) -> str:
    """
    Build the shared-store key of a record.

    Examples:
        >>> record_key(RecordType.ASSIGNMENT, "abc")
        'assignment:abc'
    """
    return f"{RecordType(record_type).value}:{record_id}"


def parse_record_key(key: str) -> tuple[RecordType, str]:
    """
    Split a key into (record type, id).

    Raises:
        ValidationError: If the key is not "<record_type>:<id>"
    """
    record_type, sep, record_id = key.partition(":")
    if not sep or not record_id:
        raise ValidationError(f"Malformed record key {key!r}")
    try:
        return RecordType(record_type), record_id
    except ValueError as e:
        raise ValidationError(f"Unknown record type in key {key!r}") from e


# ============================================================================
# Record models
# ============================================================================


class WireRecord(BaseModel):
    """Common configuration for every wire record."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    kind: str
    id: str = Field(..., min_length=1)
    last_modified: datetime

    @field_validator("last_modified", "assigned_at", "completed_at", check_fields=False)
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @property
    def record_type(self) -> RecordType:
        """Type of the record this entry describes."""
        return RecordType(self.kind)

    @property
    def key(self) -> str:
        return record_key(self.record_type, self.id)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON form."""
        return self.model_dump(mode="json", by_alias=True)


class StudentRecord(WireRecord):
    """Student identity, personal info, goals and milestones."""

    kind: Literal["student"] = "student"

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    telephone: str = ""
    home_address: str = ""
    ftn_number: str = ""
    assigned_category: str | None = None

    goal_ppl: bool = False
    goal_instrument: bool = False
    goal_commercial: bool = False
    goal_cfi: bool = False

    ppl_ground_school_completed: bool = False
    ppl_written_test_completed: bool = False
    instrument_ground_school_completed: bool = False
    instrument_written_test_completed: bool = False
    commercial_ground_school_completed: bool = False
    commercial_written_test_completed: bool = False
    cfi_ground_school_completed: bool = False
    cfi_written_test_completed: bool = False

    documents: list[DocumentType] | None = None
    share_terminated: bool = False
    last_modified_by: ModifiedBy = "instructor"

    @property
    def student_id(self) -> str:
        return self.id


class AssignmentRecord(WireRecord):
    """Reference to a template plus the instructor-owned fields."""

    kind: Literal["assignment"] = "assignment"

    student_id: str
    template_id: str
    template_identifier: str | None = None
    is_custom_checklist: bool = False
    instructor_comments: str | None = None
    dual_given_hours: float = Field(default=0.0, ge=0)
    assigned_at: datetime


class ItemProgressRecord(WireRecord):
    """Completion state of one checklist line."""

    kind: Literal["item_progress"] = "item_progress"

    assignment_id: str
    student_id: str | None = None
    template_item_id: str
    is_complete: bool = False
    notes: str | None = None
    completed_at: datetime | None = None


class TemplateRecord(WireRecord):
    """Content of a user-created template."""

    kind: Literal["template"] = "template"

    name: str = Field(..., min_length=1)
    category: str
    phase: str | None = None
    relevant_data: str | None = None
    source_template_id: str | None = None
    items: tuple[TemplateItem, ...] = ()

    def to_template(self) -> Template:
        return Template(
            id=self.id,
            name=self.name,
            category=self.category,
            phase=self.phase,
            relevant_data=self.relevant_data,
            is_user_created=True,
            items=self.items,
        )


class TombstoneRecord(WireRecord):
    """
    Deletion marker. id and record_type name the deleted record;
    last_modified is the deletion time.
    """

    kind: Literal["tombstone"] = "tombstone"

    deleted_type: RecordType = Field(alias="recordType")
    student_id: str | None = None

    @property
    def record_type(self) -> RecordType:
        return self.deleted_type


SyncRecord = Annotated[
    StudentRecord | AssignmentRecord | ItemProgressRecord | TemplateRecord | TombstoneRecord,
    Field(discriminator="kind"),
]

_record_adapter: TypeAdapter[SyncRecord] = TypeAdapter(SyncRecord)

STUDENT_RECORD_FIELDS = tuple(
    name for name in StudentRecord.model_fields if name not in {"kind", "id", "documents"}
)


def parse_record(payload: dict[str, Any]) -> SyncRecord:
    """
    Validate one wire payload into a record.

    Raises:
        ValidationError: If the payload is malformed or of unknown kind
    """
    try:
        return _record_adapter.validate_python(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Malformed sync record: {e}") from e


# ============================================================================
# Conversion from database models
# ============================================================================


def student_record(student: StudentModel) -> StudentRecord:
    """Serialize a student for the shared store."""
    data = {name: getattr(student, name) for name in STUDENT_RECORD_FIELDS}
    return StudentRecord(id=student.id, documents=student.documents, **data)


def assignment_record(assignment: AssignmentModel) -> AssignmentRecord:
    """Serialize an assignment for the shared store (never the template content)."""
    return AssignmentRecord(
        id=assignment.id,
        student_id=assignment.student_id,
        template_id=assignment.template_id,
        template_identifier=assignment.template_identifier,
        is_custom_checklist=assignment.is_custom_checklist,
        instructor_comments=assignment.instructor_comments,
        dual_given_hours=assignment.dual_given_hours,
        assigned_at=assignment.assigned_at,
        last_modified=assignment.last_modified,
    )


def item_progress_record(
    progress: ItemProgressModel, student_id: str | None = None
) -> ItemProgressRecord:
    """Serialize one item progress record for the shared store."""
    return ItemProgressRecord(
        id=progress.id,
        assignment_id=progress.assignment_id,
        student_id=student_id,
        template_item_id=progress.template_item_id,
        is_complete=progress.is_complete,
        notes=progress.notes,
        completed_at=progress.completed_at,
        last_modified=progress.last_modified,
    )


def template_record(template: CustomTemplateModel) -> TemplateRecord:
    """Serialize a user-created template for the shared store."""
    return TemplateRecord(
        id=template.id,
        name=template.name,
        category=template.category,
        phase=template.phase,
        relevant_data=template.relevant_data,
        source_template_id=template.source_template_id,
        items=tuple(TemplateItem.model_validate(item) for item in template.items),
        last_modified=template.last_modified,
    )


def assignment_payload(
    assignment: AssignmentModel,
    item_progress: Iterable[ItemProgressModel] | None = None,
    template: CustomTemplateModel | None = None,
) -> list[SyncRecord]:
    """
    An assignment record followed by its item progress records.

    Args:
        assignment: Assignment to serialize
        item_progress: Items to include (defaults to all of them)
        template: User-created template to send ahead of the assignment
    """
    records: list[SyncRecord] = [template_record(template)] if template is not None else []
    records.append(assignment_record(assignment))
    if item_progress is None:
        item_progress = assignment.item_progress
    records.extend(
        item_progress_record(progress, assignment.student_id) for progress in item_progress
    )
    return records
