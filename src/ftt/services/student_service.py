"""
Student Management Service for the Flight Training Tracker.

CRUD for students plus the share lifecycle (activate, terminate). Every
mutation bumps last_modified and marks the student UNSYNCED so the next push
carries it.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.db import commit_or_rollback
from ftt.errors import ValidationError
from ftt.models import (
    DocumentType,
    Student,
    StudentCreate,
    StudentModel,
    StudentUpdate,
    SyncState,
)
from ftt.models.student import ModifiedBy
from ftt.services.tombstone_service import record_deletion
from ftt.sync.records import RecordType
from ftt.utils.clock import utcnow
from ftt.utils.ids import generate_entity_id

logger = logging.getLogger(__name__)

# Fields that may be explicitly cleared with None
NULLABLE_FIELDS = {"assigned_category"}


class StudentNotFoundError(ValidationError):
    """Raised when a student cannot be found."""

    pass


def touch_student(student: StudentModel, modified_by: ModifiedBy = "instructor") -> None:
    """Mark a student as locally modified."""
    student.last_modified = utcnow()
    student.last_modified_by = modified_by
    student.sync_state = SyncState.UNSYNCED.value


async def get_student_model(session: AsyncSession, student_id: str) -> StudentModel:
    """
    Load a student with its assignments and their item progress.

    The graph is re-read from the database even if it is already in the
    session's identity map.

    Raises:
        StudentNotFoundError: If student does not exist
    """
    result = await session.execute(
        select(StudentModel)
        .where(StudentModel.id == student_id)
        .execution_options(populate_existing=True)
    )
    student = result.scalar_one_or_none()
    if student is None:
        raise StudentNotFoundError(f"Student {student_id} does not exist")
    return student


async def create_student(
    session: AsyncSession, student_data: StudentCreate, modified_by: ModifiedBy = "instructor"
) -> Student:
    """
    Create a new student.

    Args:
        session: Database session
        student_data: Student creation data
        modified_by: Which side created the student

    Returns:
        Created student

    Raises:
        ValidationError: If a student with the given id already exists
    """
    student_id = student_data.id or generate_entity_id()
    if await session.get(StudentModel, student_id) is not None:
        raise ValidationError(f"Student {student_id} already exists")

    data = student_data.model_dump(exclude={"id", "documents"})
    documents = (
        [DocumentType(d).value for d in student_data.documents]
        if student_data.documents is not None
        else None
    )
    now = utcnow()
    student = StudentModel(
        id=student_id,
        documents=documents,
        last_modified=now,
        last_modified_by=modified_by,
        sync_state=SyncState.UNSYNCED.value,
        share_active=False,
        share_terminated=False,
        **data,
    )

    session.add(student)
    await commit_or_rollback(session, "create_student")
    await session.refresh(student)

    logger.info("student.created student_id=%s", student.id)
    return Student.model_validate(student)


async def get_student(session: AsyncSession, student_id: str) -> Student:
    """
    Retrieve a student with assignments and item progress.

    Raises:
        StudentNotFoundError: If student does not exist
    """
    return Student.model_validate(await get_student_model(session, student_id))


async def list_students(session: AsyncSession) -> list[Student]:
    """All students, ordered by last then first name."""
    result = await session.execute(
        select(StudentModel)
        .order_by(StudentModel.last_name, StudentModel.first_name)
        .execution_options(populate_existing=True)
    )
    return [Student.model_validate(s) for s in result.scalars().all()]


async def update_student(
    session: AsyncSession,
    student_id: str,
    updates: StudentUpdate,
    modified_by: ModifiedBy = "instructor",
) -> Student:
    """
    Update personal info, goals or milestones.

    Args:
        session: Database session
        student_id: Student ID
        updates: Fields to update
        modified_by: Which side made the change

    Returns:
        Updated student

    Raises:
        StudentNotFoundError: If student does not exist
    """
    student = await get_student_model(session, student_id)

    changed = False
    for field, value in updates.model_dump(exclude_unset=True).items():
        if value is None and field not in NULLABLE_FIELDS:
            continue
        if getattr(student, field) != value:
            setattr(student, field, value)
            changed = True

    if changed:
        touch_student(student, modified_by)
        await commit_or_rollback(session, "update_student")
        logger.info("student.updated student_id=%s", student_id)

    return Student.model_validate(student)


async def set_documents(
    session: AsyncSession,
    student_id: str,
    documents: list[DocumentType] | None,
    modified_by: ModifiedBy = "instructor",
) -> Student:
    """
    Replace the set of uploaded document types.

    None means the document subsystem is not in use for this student.
    """
    student = await get_student_model(session, student_id)
    student.documents = (
        sorted({DocumentType(d).value for d in documents}) if documents is not None else None
    )
    touch_student(student, modified_by)
    await commit_or_rollback(session, "set_documents")
    return Student.model_validate(student)


async def activate_share(
    session: AsyncSession,
    student_id: str,
    share_record_id: str | None = None,
    modified_by: ModifiedBy = "instructor",
) -> Student:
    """
    Start sharing a student with the companion application.

    Args:
        session: Database session
        student_id: Student ID
        share_record_id: Identifier of the share in the shared store

    Returns:
        Updated student
    """
    student = await get_student_model(session, student_id)
    student.share_record_id = share_record_id or student.share_record_id or generate_entity_id()
    student.share_active = True
    student.share_terminated = False
    touch_student(student, modified_by)
    await commit_or_rollback(session, "activate_share")

    logger.info(
        "share.activated student_id=%s share_record_id=%s", student_id, student.share_record_id
    )
    return Student.model_validate(student)


async def terminate_share(
    session: AsyncSession, student_id: str, modified_by: ModifiedBy = "instructor"
) -> Student:
    """
    Stop sharing a student.

    The student record is still pushed once more afterwards so the companion
    sees share_terminated.
    """
    student = await get_student_model(session, student_id)
    student.share_active = False
    student.share_terminated = True
    touch_student(student, modified_by)
    await commit_or_rollback(session, "terminate_share")

    logger.info("share.terminated student_id=%s", student_id)
    return Student.model_validate(student)


async def delete_student(session: AsyncSession, student_id: str) -> list[str]:
    """
    Delete a student and everything it owns (cascade).

    When the share is active, one pending tombstone is written per deleted
    record in the same transaction.

    Returns:
        Keys of the pending remote deletes

    Raises:
        StudentNotFoundError: If student does not exist
    """
    student = await get_student_model(session, student_id)

    keys: list[str] = []
    if student.share_active:
        for assignment in student.assignments:
            for progress in assignment.item_progress:
                keys.append(
                    await record_deletion(
                        session, RecordType.ITEM_PROGRESS, progress.id, student_id, True
                    )
                )
            keys.append(
                await record_deletion(
                    session, RecordType.ASSIGNMENT, assignment.id, student_id, True
                )
            )
        keys.append(
            await record_deletion(session, RecordType.STUDENT, student_id, student_id, True)
        )

    await session.delete(student)
    await commit_or_rollback(session, "delete_student")

    logger.info("student.deleted student_id=%s pending_remote_deletes=%d", student_id, len(keys))
    return keys
