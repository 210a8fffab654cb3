"""
Tests for the TrainingTracker facade and buffered checklist edits.
"""

import logging

import pytest
import pytest_asyncio

from ftt.errors import TransportError, ValidationError
from ftt.services.template_library import TemplateNotFoundError
from ftt.models import AssignmentUpdate, StudentCreate, StudentUpdate, SyncState
from ftt.services.template_library import TemplateLibrary
from ftt.sync.engine import SyncEngine
from ftt.sync.transport import InMemoryShareTransport
from ftt.tracker import TrainingTracker


@pytest.fixture
def store():
    return InMemoryShareTransport()


@pytest_asyncio.fixture
async def tracker(session_factory, library, store):
    tracker = TrainingTracker(session_factory, library, SyncEngine(store, session_factory, library))
    yield tracker
    await tracker.engine.drain()


@pytest.fixture
def offline_tracker(session_factory, library):
    return TrainingTracker(session_factory, library)


async def _shared(tracker):
    student = await tracker.create_student(
        StudentCreate(first_name="Amelia", last_name="Earhart")
    )
    await tracker.activate_share(student.id)
    await tracker.engine.drain()
    return student


# ============================================================================
# Facade
# ============================================================================


@pytest.mark.asyncio
async def test_assign_pushes_in_background(tracker, store, p1_l1):
    """Test that assigning to a shared student reaches the store after drain."""
    student = await _shared(tracker)

    result = await tracker.assign(student.id, p1_l1.id)
    await tracker.engine.drain()

    assert result.created
    assert f"assignment:{result.assignment.id}" in store.keys()
    again = await tracker.assign(student.id, p1_l1.id)
    assert again.created is False
    assert again.assignment.id == result.assignment.id


@pytest.mark.asyncio
async def test_assign_unknown_template(tracker):
    """Test that an unknown template id is rejected before touching the database."""
    student = await _shared(tracker)

    with pytest.raises(TemplateNotFoundError):
        await tracker.assign(student.id, "no-such-template")


@pytest.mark.asyncio
async def test_set_item_complete_pushes_item(tracker, store, p1_l1):
    """Test that an item toggle is saved locally and pushed."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    item_id = p1_l1.items[0].id

    result = await tracker.set_item_complete(assignment.id, item_id, True, notes="Solid")
    await tracker.engine.drain()

    assert result.changed
    assert result.item.is_complete is True
    assert result.item.completed_at is not None
    assert store.get(f"item_progress:{result.item.id}")["isComplete"] is True

    same = await tracker.set_item_complete(assignment.id, item_id, True, notes="Solid")
    assert same.changed is False


@pytest.mark.asyncio
async def test_remove_pushes_deletes(tracker, store, p1_l1):
    """Test that removal deletes the shared records in the background."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    await tracker.engine.drain()

    removal = await tracker.remove(student.id, p1_l1.id)
    await tracker.engine.drain()

    assert removal.assignment_id == assignment.id
    assert f"assignment:{assignment.id}" in store.deleted_keys
    assert not any(key.startswith("item_progress:") for key in store.keys())
    assert await tracker.remove(student.id, p1_l1.id) is None


@pytest.mark.asyncio
async def test_update_student_pushes_student(tracker, store):
    """Test that editing a shared student pushes the student record."""
    student = await _shared(tracker)

    updated = await tracker.update_student(student.id, StudentUpdate(ftn_number="A1234567"))
    await tracker.engine.drain()

    assert updated.ftn_number == "A1234567"
    assert store.get(f"student:{student.id}")["ftnNumber"] == "A1234567"
    after = await tracker.get_student(student.id)
    assert after.sync_state == SyncState.ACKNOWLEDGED


@pytest.mark.asyncio
async def test_progress_follows_completion(tracker, p1_l1):
    """Test that progress is recomputed from the current state."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment

    before = await tracker.progress(student.id)
    for item in p1_l1.items:
        await tracker.set_item_complete(assignment.id, item.id, True)
    after = await tracker.progress(student.id)

    assert before.completed_items == 0
    assert after.completed_items == after.total_items == len(p1_l1.items)
    assert after.category_progress > before.category_progress
    assert after.assignments[0].is_complete


@pytest.mark.asyncio
async def test_sync_requires_engine(offline_tracker):
    """Test that sync without a configured engine fails."""
    with pytest.raises(TransportError):
        await offline_tracker.sync()


@pytest.mark.asyncio
async def test_watch_requires_engine(offline_tracker):
    """Test that periodic sync without a configured engine fails."""
    with pytest.raises(TransportError):
        await offline_tracker.watch(1.0)


@pytest.mark.asyncio
async def test_offline_tracker_still_saves(offline_tracker, p1_l1):
    """Test that local writes work with no sync engine at all."""
    student = await offline_tracker.create_student(StudentCreate(first_name="Bessie"))
    result = await offline_tracker.assign(student.id, p1_l1.id)

    toggled = await offline_tracker.set_item_complete(
        result.assignment.id, p1_l1.items[0].id, True
    )

    assert toggled.changed
    report = await offline_tracker.verify(student.id)
    assert report.is_clean


@pytest.mark.asyncio
async def test_sync_reports_flush_and_pull(tracker, p1_l1):
    """Test a foreground sync of one student."""
    student = await _shared(tracker)
    await tracker.assign(student.id, p1_l1.id)

    report = await tracker.sync(student.id)

    assert report.flush.ok
    assert report.reconcile.ok


# ============================================================================
# Buffered edits
# ============================================================================


@pytest.mark.asyncio
async def test_edit_buffers_until_commit(tracker, store, p1_l1):
    """Test that nothing is written before commit and the last item edit wins."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    await tracker.engine.drain()
    first, second = p1_l1.items[0].id, p1_l1.items[1].id

    edit = tracker.edit(assignment.id)
    edit.set_item(first, True).set_item(second, True).set_item(second, False)
    edit.set_instructor_comments("Good crosswind work").set_dual_given_hours(1.2)
    assert edit.has_changes

    untouched = (await tracker.progress(student.id)).completed_items
    assert untouched == 0

    result = await edit.commit()
    await tracker.engine.drain()

    assert result.changed
    assert result.changed_item_ids == [result.assignment.progress_for(first).id]
    assert result.assignment.progress_for(first).is_complete is True
    assert result.assignment.progress_for(second).is_complete is False
    assert result.assignment.instructor_comments == "Good crosswind work"
    assert result.assignment.dual_given_hours == 1.2
    assert store.get(f"assignment:{assignment.id}")["dualGivenHours"] == 1.2
    assert not edit.has_changes


@pytest.mark.asyncio
async def test_commit_after_close_fails(tracker, p1_l1):
    """Test that a committed edit cannot be reused."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    edit = tracker.edit(assignment.id).set_item(p1_l1.items[0].id, True)
    await edit.commit()

    with pytest.raises(ValidationError):
        await edit.commit()
    with pytest.raises(ValidationError):
        edit.set_item(p1_l1.items[1].id, True)


@pytest.mark.asyncio
async def test_discard_drops_edits(tracker, p1_l1, caplog):
    """Test that discard writes nothing."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    edit = tracker.edit(assignment.id).set_item(p1_l1.items[0].id, True)

    with caplog.at_level(logging.INFO, logger="ftt.tracker"):
        edit.discard()

    assert "edit.discarded" in caplog.text
    assert (await tracker.progress(student.id)).completed_items == 0
    with pytest.raises(ValidationError):
        await edit.commit()


@pytest.mark.asyncio
async def test_edit_context_manager(tracker, p1_l1):
    """Test that the context manager commits on success and discards on error."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment

    async with tracker.edit(assignment.id) as edit:
        edit.set_item(p1_l1.items[0].id, True)

    with pytest.raises(RuntimeError):
        async with tracker.edit(assignment.id) as edit:
            edit.set_item(p1_l1.items[1].id, True)
            raise RuntimeError("screen closed")

    summary = await tracker.progress(student.id)
    assert summary.completed_items == 1


@pytest.mark.asyncio
async def test_negative_dual_hours_rejected(tracker, p1_l1):
    """Test that negative dual given hours are rejected at edit time."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment

    with pytest.raises(ValidationError):
        tracker.edit(assignment.id).set_dual_given_hours(-0.5)


@pytest.mark.asyncio
async def test_update_details(tracker, p1_l1):
    """Test the unbuffered details update."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment

    updated = await tracker.update_details(
        assignment.id, AssignmentUpdate(instructor_comments="Ready for solo")
    )

    assert updated.instructor_comments == "Ready for solo"


# ============================================================================
# Device role and custom templates
# ============================================================================


@pytest.mark.asyncio
async def test_drained_toggle_leaves_only_assignment_to_flush(tracker, store, p1_l1):
    """Test that after a toggle has been pushed, a flush re-sends the assignment alone."""
    student = await _shared(tracker)
    assignment = (await tracker.assign(student.id, p1_l1.id)).assignment
    await tracker.engine.drain()
    await tracker.set_item_complete(assignment.id, p1_l1.items[0].id, True)
    await tracker.engine.drain()
    before = len(store.pushed_keys)

    await tracker.engine.flush_pending(student.id)

    assert store.pushed_keys[before:] == [f"assignment:{assignment.id}"]


@pytest.mark.asyncio
async def test_student_device_stamps_its_role(session_factory, library, store):
    """Test that edits made on the student device are attributed to the student."""
    device = TrainingTracker(
        session_factory,
        library,
        SyncEngine(store, session_factory, library),
        device_role="student",
    )
    created = await device.create_student(StudentCreate(first_name="Bessie"))
    await device.activate_share(created.id)
    await device.engine.drain()

    updated = await device.update_student(created.id, StudentUpdate(telephone="555-0100"))
    await device.engine.drain()

    assert created.last_modified_by == "student"
    assert updated.last_modified_by == "student"
    assert store.get(f"student:{created.id}")["lastModifiedBy"] == "student"


@pytest.mark.asyncio
async def test_instructor_is_the_default_role(offline_tracker):
    """Test that a tracker without a role attributes edits to the instructor."""
    student = await offline_tracker.create_student(StudentCreate(first_name="Bessie"))

    assert student.last_modified_by == "instructor"


@pytest.mark.asyncio
async def test_custom_template_survives_restart(tracker, session_factory, p1_l1):
    """Test that a customized template is stored and reloaded into a fresh library."""
    custom = await tracker.customize_template(p1_l1.id, name="Short field")
    restarted = TrainingTracker(session_factory, TemplateLibrary.load_default())

    assert custom.id in tracker.library
    assert await restarted.load_custom_templates() == 1
    assert restarted.library.get(custom.id).item_ids == custom.item_ids
    assert await restarted.load_custom_templates() == 0


@pytest.mark.asyncio
async def test_assigned_custom_template_is_pushed(tracker, store, p1_l1):
    """Test that assigning a custom template to a shared student pushes its content."""
    student = await _shared(tracker)
    custom = await tracker.customize_template(p1_l1.id, name="Short field")

    result = await tracker.assign(student.id, custom.id)
    await tracker.engine.drain()

    payload = store.get(f"template:{custom.id}")
    assert payload["name"] == "Short field"
    assert len(payload["items"]) == len(custom.items)
    assert store.get(f"assignment:{result.assignment.id}")["isCustomChecklist"] is True
