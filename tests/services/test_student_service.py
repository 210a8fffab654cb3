"""
Tests for student management service.
"""

import pytest

from ftt.errors import ValidationError
from ftt.models import DocumentType, StudentCreate, StudentUpdate, SyncState
from ftt.services.assignment_service import assign_template
from ftt.services.student_service import (
    StudentNotFoundError,
    activate_share,
    create_student,
    delete_student,
    get_student,
    list_students,
    set_documents,
    terminate_share,
    update_student,
)
from ftt.services.tombstone_service import list_tombstones, pending_tombstones


@pytest.mark.asyncio
async def test_create_student(async_session):
    """Test creating a student with generated id."""
    student = await create_student(
        async_session, StudentCreate(first_name="Bessie", last_name="Coleman")
    )

    assert student.id
    assert student.first_name == "Bessie"
    assert student.sync_state == SyncState.UNSYNCED
    assert student.share_active is False
    assert student.assignments == []
    assert student.last_modified.tzinfo is not None


@pytest.mark.asyncio
async def test_create_student_with_client_id(async_session):
    """Test that a client-generated id is kept and cannot be reused."""
    data = StudentCreate(id="3f2b8c1e-9a4d-4c55-8f0e-2d6b7a1c9e44", first_name="Jean")
    student = await create_student(async_session, data)
    assert student.id == data.id

    with pytest.raises(ValidationError):
        await create_student(async_session, data)


@pytest.mark.asyncio
async def test_get_student_not_found(async_session):
    """Test that getting a missing student raises."""
    with pytest.raises(StudentNotFoundError):
        await get_student(async_session, "missing")


@pytest.mark.asyncio
async def test_list_students_ordered(async_session):
    """Test listing orders by last then first name."""
    await create_student(async_session, StudentCreate(first_name="Wilbur", last_name="Wright"))
    await create_student(async_session, StudentCreate(first_name="Orville", last_name="Wright"))
    await create_student(async_session, StudentCreate(first_name="Amy", last_name="Johnson"))

    students = await list_students(async_session)

    assert [s.first_name for s in students] == ["Amy", "Orville", "Wilbur"]


@pytest.mark.asyncio
async def test_update_student(async_session, student):
    """Test partial update bumps last_modified and records the modifier."""
    updated = await update_student(
        async_session,
        student.id,
        StudentUpdate(goal_ppl=True, ppl_ground_school_completed=True),
        modified_by="student",
    )

    assert updated.goal_ppl is True
    assert updated.ppl_ground_school_completed is True
    assert updated.first_name == "Amelia"
    assert updated.last_modified > student.last_modified
    assert updated.last_modified_by == "student"


@pytest.mark.asyncio
async def test_update_student_no_change(async_session, student):
    """Test that an update with identical values does not touch the student."""
    updated = await update_student(async_session, student.id, StudentUpdate(first_name="Amelia"))

    assert updated.last_modified == student.last_modified


@pytest.mark.asyncio
async def test_update_student_clears_category(async_session, student):
    """Test that assigned_category can be cleared explicitly."""
    await update_student(async_session, student.id, StudentUpdate(assigned_category="IFR"))
    cleared = await update_student(
        async_session, student.id, StudentUpdate(assigned_category=None)
    )

    assert cleared.assigned_category is None


@pytest.mark.asyncio
async def test_set_documents(async_session, student):
    """Test replacing the uploaded document set."""
    updated = await set_documents(
        async_session,
        student.id,
        [DocumentType.MEDICAL_CERTIFICATE, DocumentType.MEDICAL_CERTIFICATE, DocumentType.LOGBOOK],
    )

    assert sorted(updated.documents) == [DocumentType.LOGBOOK, DocumentType.MEDICAL_CERTIFICATE]


@pytest.mark.asyncio
async def test_share_lifecycle(async_session, student):
    """Test activating and terminating a share."""
    shared = await activate_share(async_session, student.id)
    assert shared.share_active is True
    assert shared.share_record_id

    ended = await terminate_share(async_session, student.id)
    assert ended.share_active is False
    assert ended.share_terminated is True
    assert ended.share_record_id == shared.share_record_id


@pytest.mark.asyncio
async def test_delete_unshared_student(async_session, student, p1_l1):
    """Test that deleting an unshared student leaves no pending deletes."""
    await assign_template(async_session, p1_l1, student.id)

    keys = await delete_student(async_session, student.id)

    assert keys == []
    with pytest.raises(StudentNotFoundError):
        await get_student(async_session, student.id)
    assert await list_tombstones(async_session) == []


@pytest.mark.asyncio
async def test_delete_shared_student(async_session, student, p1_l1):
    """Test that deleting a shared student tombstones every record."""
    await assign_template(async_session, p1_l1, student.id)
    await activate_share(async_session, student.id)

    keys = await delete_student(async_session, student.id)

    # 4 items + 1 assignment + 1 student
    assert len(keys) == 6
    assert keys[-1] == f"student:{student.id}"
    pending = await pending_tombstones(async_session, student.id)
    assert {t.key for t in pending} == set(keys)
