"""
Tests for integrity verification and repair.
"""

import pytest
from sqlalchemy import delete

from ftt.errors import DataIntegrityError
from ftt.models import AssignmentModel, ItemProgressModel, SyncState
from ftt.services.assignment_service import assign_template, get_assignment, new_item_progress
from ftt.services.integrity_service import verify_and_repair
from ftt.utils.clock import utcnow


@pytest.mark.asyncio
async def test_clean_database(async_session, student, p1_l1, library):
    """Test that freshly assigned templates verify clean."""
    await assign_template(async_session, p1_l1, student.id)

    report = await verify_and_repair(async_session, library)

    assert report.checked_assignments == 1
    assert report.is_clean
    assert not report.repaired
    report.raise_if_unresolved()


@pytest.mark.asyncio
async def test_repoints_and_creates_missing_items(async_session, student, p1_l1, library):
    """Test repair of a stale template id and a lost progress record."""
    assigned = await assign_template(async_session, p1_l1, student.id)
    assignment_id = assigned.assignment.id
    model = await async_session.get(AssignmentModel, assignment_id)
    model.template_id = "stale-template-id"
    await async_session.execute(
        delete(ItemProgressModel).where(ItemProgressModel.template_item_id == p1_l1.items[0].id)
    )
    await async_session.commit()
    async_session.expunge_all()

    report = await verify_and_repair(async_session, library, student.id)

    assert report.repointed_assignments == [assignment_id]
    assert len(report.created_items) == 1
    assert report.repaired

    after = await get_assignment(async_session, assignment_id)
    assert after.template_id == p1_l1.id
    assert {p.template_item_id for p in after.item_progress} == p1_l1.item_ids
    created = after.progress_for(p1_l1.items[0].id)
    assert created.is_complete is False
    assert created.sync_state == SyncState.UNSYNCED


@pytest.mark.asyncio
async def test_orphans_are_reported_not_deleted(async_session, student, p1_l1, library):
    """Test that progress for an item no longer in the template is kept."""
    assigned = await assign_template(async_session, p1_l1, student.id)
    model = await async_session.get(AssignmentModel, assigned.assignment.id)
    orphan = new_item_progress(model.id, "retired-item", utcnow())
    model.item_progress.append(orphan)
    await async_session.commit()

    report = await verify_and_repair(async_session, library)

    assert report.orphaned_items == [orphan.id]
    after = await get_assignment(async_session, model.id)
    assert after.progress_for("retired-item") is not None


@pytest.mark.asyncio
async def test_unresolved_assignments_are_reported(async_session, student, p1_l1, library):
    """Test that an assignment whose template is gone is flagged."""
    assigned = await assign_template(async_session, p1_l1, student.id)
    model = await async_session.get(AssignmentModel, assigned.assignment.id)
    model.template_id = "gone"
    model.template_identifier = None
    await async_session.commit()

    report = await verify_and_repair(async_session, library)

    assert report.unresolved_assignments == [model.id]
    with pytest.raises(DataIntegrityError, match="1 unresolved assignments"):
        report.raise_if_unresolved()
    after = await get_assignment(async_session, model.id)
    assert after.template_resolved is False
