"""
Assignment Service for the Flight Training Tracker.

Handles the assignment lifecycle: assigning a template to a student, removing
it, and recording item completion. Works with the INSTANCE LAYER
(assignments and item_progress tables); templates are looked up in the
TemplateLibrary by id.

Every operation is one transaction. Sync pushes are not triggered here; the
caller (TrainingTracker) schedules them after the commit.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.db import commit_or_rollback
from ftt.errors import ValidationError
from ftt.models import (
    Assignment,
    AssignmentModel,
    AssignmentUpdate,
    ItemProgress,
    ItemProgressModel,
    ItemProgressUpdate,
    SyncState,
    Template,
)
from ftt.services.student_service import get_student_model
from ftt.services.template_library import TemplateLibrary
from ftt.services.tombstone_service import record_deletion
from ftt.sync.records import RecordType
from ftt.utils.clock import utcnow
from ftt.utils.ids import generate_entity_id

logger = logging.getLogger(__name__)


class AssignmentNotFoundError(ValidationError):
    """Raised when an assignment cannot be found."""

    pass


@dataclass
class AssignmentResult:
    """Result of assigning a template."""

    assignment: Assignment
    created: bool


@dataclass
class RemovalResult:
    """Result of removing an assignment."""

    assignment_id: str
    student_id: str
    removed_item_ids: list[str] = field(default_factory=list)
    pending_remote_deletes: list[str] = field(default_factory=list)


@dataclass
class ItemCompletionResult:
    """Result of one item edit."""

    item: ItemProgress | None
    changed: bool
    synthesized: bool = False


@dataclass
class AssignmentEditResult:
    """Result of applying a batch of buffered edits."""

    assignment: Assignment
    items: list[ItemCompletionResult] = field(default_factory=list)
    details_changed: bool = False

    @property
    def changed(self) -> bool:
        return self.details_changed or any(r.changed for r in self.items)

    @property
    def changed_item_ids(self) -> list[str]:
        return [r.item.id for r in self.items if r.changed and r.item is not None]


# ============================================================================
# Loading helpers
# ============================================================================


async def get_assignment_model(session: AsyncSession, assignment_id: str) -> AssignmentModel:
    """
    Load an assignment with its item progress, bypassing stale identity-map state.

    Raises:
        AssignmentNotFoundError: If assignment does not exist
    """
    result = await session.execute(
        select(AssignmentModel)
        .where(AssignmentModel.id == assignment_id)
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise AssignmentNotFoundError(f"Assignment {assignment_id} does not exist")
    return assignment


def touch_assignment(assignment: AssignmentModel, now: datetime | None = None) -> None:
    """Mark an assignment as locally modified."""
    assignment.last_modified = now or utcnow()
    assignment.sync_state = SyncState.UNSYNCED.value


def resolve_template_reference(
    assignment: AssignmentModel,
    library: TemplateLibrary,
    siblings: Iterable[AssignmentModel] = (),
) -> Template | None:
    """
    Resolve an assignment's template, repairing the reference when possible.

    Looks the template up by id first and by legacy identifier second. A
    template found by identifier is re-pointed to by id unless a sibling
    assignment already holds that template. Re-pointing is a local repair and
    does not bump last_modified. Does not commit.

    Args:
        assignment: Assignment to resolve
        library: Template library
        siblings: Other assignments of the same student

    Returns:
        The template, or None if neither key resolves
    """
    template = library.get(assignment.template_id)
    if template is None:
        template = library.find_by_identifier(assignment.template_identifier)
        if template is not None:
            taken = any(
                s.id != assignment.id and s.template_id == template.id for s in siblings
            )
            if not taken:
                logger.info(
                    "assignment.template_repointed assignment_id=%s old_template_id=%s "
                    "template_id=%s",
                    assignment.id,
                    assignment.template_id,
                    template.id,
                )
                assignment.template_id = template.id

    if template is None:
        logger.warning(
            "assignment.template_unresolved assignment_id=%s template_id=%s identifier=%s",
            assignment.id,
            assignment.template_id,
            assignment.template_identifier,
        )

    assignment.template_resolved = template is not None
    return template


def new_item_progress(
    assignment_id: str, template_item_id: str, now: datetime
) -> ItemProgressModel:
    """Build an incomplete progress record for one template item."""
    return ItemProgressModel(
        id=generate_entity_id(),
        assignment_id=assignment_id,
        template_item_id=template_item_id,
        is_complete=False,
        notes=None,
        completed_at=None,
        last_modified=now,
        sync_state=SyncState.UNSYNCED.value,
    )


def _apply_item_update(
    assignment: AssignmentModel,
    template: Template | None,
    update: ItemProgressUpdate,
    now: datetime,
) -> ItemCompletionResult:
    """Apply one item edit in memory. Returns what happened; never commits."""
    progress = next(
        (p for p in assignment.item_progress if p.template_item_id == update.template_item_id),
        None,
    )

    if template is not None and update.template_item_id not in template.item_ids:
        logger.warning(
            "item.not_in_template assignment_id=%s template_item_id=%s template_id=%s",
            assignment.id,
            update.template_item_id,
            template.id,
        )
        return ItemCompletionResult(
            item=ItemProgress.model_validate(progress) if progress else None, changed=False
        )

    synthesized = False
    if progress is None:
        if template is None:
            logger.warning(
                "item.unverifiable assignment_id=%s template_item_id=%s",
                assignment.id,
                update.template_item_id,
            )
            return ItemCompletionResult(item=None, changed=False)

        progress = new_item_progress(assignment.id, update.template_item_id, now)
        assignment.item_progress.append(progress)
        synthesized = True
        logger.warning(
            "item.synthesized assignment_id=%s template_item_id=%s",
            assignment.id,
            update.template_item_id,
        )

    notes_changed = update.notes is not None and update.notes != progress.notes
    if not synthesized and progress.is_complete == update.is_complete and not notes_changed:
        return ItemCompletionResult(item=ItemProgress.model_validate(progress), changed=False)

    if progress.is_complete != update.is_complete:
        progress.is_complete = update.is_complete
        progress.completed_at = now if update.is_complete else None
    if notes_changed:
        progress.notes = update.notes

    progress.last_modified = now
    progress.sync_state = SyncState.UNSYNCED.value
    touch_assignment(assignment, now)

    return ItemCompletionResult(
        item=ItemProgress.model_validate(progress), changed=True, synthesized=synthesized
    )


def _apply_details(assignment: AssignmentModel, details: AssignmentUpdate) -> bool:
    changed = False
    for name, value in details.model_dump(exclude_unset=True).items():
        if name == "dual_given_hours" and value is None:
            continue
        if getattr(assignment, name) != value:
            setattr(assignment, name, value)
            changed = True
    return changed


# ============================================================================
# Lifecycle
# ============================================================================


async def assign_template(
    session: AsyncSession, template: Template, student_id: str
) -> AssignmentResult:
    """
    Assign a template to a student.

    Creates the assignment and exactly one incomplete ItemProgress per
    template item in one transaction. Assigning the same template twice is a
    no-op that returns the existing assignment.

    Args:
        session: Database session
        template: Template from the library
        student_id: Student ID

    Returns:
        AssignmentResult with created=False when it already existed

    Raises:
        StudentNotFoundError: If student does not exist
        PersistenceError: If the write fails
    """
    student = await get_student_model(session, student_id)

    existing = next((a for a in student.assignments if a.template_id == template.id), None)
    if existing is not None:
        logger.info(
            "assignment.already_assigned assignment_id=%s student_id=%s template_id=%s",
            existing.id,
            student_id,
            template.id,
        )
        return AssignmentResult(assignment=Assignment.model_validate(existing), created=False)

    now = utcnow()
    assignment = AssignmentModel(
        id=generate_entity_id(),
        student_id=student_id,
        template_id=template.id,
        template_identifier=template.template_identifier,
        is_custom_checklist=template.is_user_created or template.template_identifier is None,
        instructor_comments=None,
        dual_given_hours=0.0,
        assigned_at=now,
        last_modified=now,
        template_resolved=True,
        sync_state=SyncState.UNSYNCED.value,
    )
    for item in template.items:
        assignment.item_progress.append(new_item_progress(assignment.id, item.id, now))

    student.assignments.append(assignment)
    await commit_or_rollback(session, "assign_template")
    await session.refresh(assignment)

    logger.info(
        "assignment.created assignment_id=%s student_id=%s template_id=%s items=%d",
        assignment.id,
        student_id,
        template.id,
        len(template.items),
    )
    return AssignmentResult(assignment=Assignment.model_validate(assignment), created=True)


async def remove_template(
    session: AsyncSession, template_id: str, student_id: str
) -> RemovalResult | None:
    """
    Remove a template's assignment from a student, with its item progress.

    When the student's share is active, one pending tombstone per removed
    record is written in the same transaction; the SyncEngine turns them into
    remote deletes.

    Args:
        session: Database session
        template_id: Template ID
        student_id: Student ID

    Returns:
        RemovalResult, or None if the template was not assigned

    Raises:
        StudentNotFoundError: If student does not exist
        PersistenceError: If the write fails
    """
    student = await get_student_model(session, student_id)

    assignment = next((a for a in student.assignments if a.template_id == template_id), None)
    if assignment is None:
        logger.info(
            "assignment.remove_skipped student_id=%s template_id=%s reason=not_assigned",
            student_id,
            template_id,
        )
        return None

    result = RemovalResult(
        assignment_id=assignment.id,
        student_id=student_id,
        removed_item_ids=[p.id for p in assignment.item_progress],
    )

    if student.share_active:
        for item_id in result.removed_item_ids:
            result.pending_remote_deletes.append(
                await record_deletion(session, RecordType.ITEM_PROGRESS, item_id, student_id, True)
            )
        result.pending_remote_deletes.append(
            await record_deletion(session, RecordType.ASSIGNMENT, assignment.id, student_id, True)
        )

    student.assignments.remove(assignment)
    await commit_or_rollback(session, "remove_template")

    logger.info(
        "assignment.removed assignment_id=%s student_id=%s items=%d pending_remote_deletes=%d",
        result.assignment_id,
        student_id,
        len(result.removed_item_ids),
        len(result.pending_remote_deletes),
    )
    return result


async def update_item_completion(
    session: AsyncSession,
    assignment_id: str,
    template_item_id: str,
    is_complete: bool,
    notes: str | None = None,
    *,
    library: TemplateLibrary,
) -> ItemCompletionResult:
    """
    Mark one checklist item complete or incomplete.

    completed_at is set on completion and cleared on un-completion. Repeating
    the current state is a no-op. A missing progress record for a real
    template item is synthesized; an item id that is not part of the
    template changes nothing.

    Args:
        session: Database session
        assignment_id: Assignment ID
        template_item_id: Template item ID
        is_complete: New completion flag
        notes: New notes (None leaves them unchanged)
        library: Template library, used to validate the item id

    Returns:
        ItemCompletionResult

    Raises:
        AssignmentNotFoundError: If assignment does not exist
        PersistenceError: If the write fails
    """
    assignment = await get_assignment_model(session, assignment_id)
    template = library.resolve(assignment.template_id, assignment.template_identifier)

    update = ItemProgressUpdate(
        template_item_id=template_item_id, is_complete=is_complete, notes=notes
    )
    result = _apply_item_update(assignment, template, update, utcnow())
    if not result.changed:
        return result

    await commit_or_rollback(session, "update_item_completion")
    logger.info(
        "item.updated assignment_id=%s template_item_id=%s is_complete=%s",
        assignment_id,
        template_item_id,
        is_complete,
    )
    return result


async def update_assignment_details(
    session: AsyncSession, assignment_id: str, updates: AssignmentUpdate
) -> Assignment:
    """
    Update instructor comments and dual-given hours.

    Raises:
        AssignmentNotFoundError: If assignment does not exist
    """
    assignment = await get_assignment_model(session, assignment_id)

    if _apply_details(assignment, updates):
        touch_assignment(assignment)
        await commit_or_rollback(session, "update_assignment_details")
        logger.info("assignment.updated assignment_id=%s", assignment_id)

    return Assignment.model_validate(assignment)


async def apply_assignment_edits(
    session: AsyncSession,
    assignment_id: str,
    item_updates: Sequence[ItemProgressUpdate],
    details: AssignmentUpdate | None = None,
    *,
    library: TemplateLibrary,
) -> AssignmentEditResult:
    """
    Apply a batch of buffered edits to one assignment in a single transaction.

    Args:
        session: Database session
        assignment_id: Assignment ID
        item_updates: Item edits, applied in order
        details: Instructor-owned field edits
        library: Template library, used to validate item ids

    Returns:
        AssignmentEditResult

    Raises:
        AssignmentNotFoundError: If assignment does not exist
        PersistenceError: If the write fails (nothing is applied)
    """
    assignment = await get_assignment_model(session, assignment_id)
    template = library.resolve(assignment.template_id, assignment.template_identifier)

    now = utcnow()
    items = [_apply_item_update(assignment, template, update, now) for update in item_updates]
    details_changed = details is not None and _apply_details(assignment, details)
    if details_changed:
        touch_assignment(assignment, now)

    result = AssignmentEditResult(
        assignment=Assignment.model_validate(assignment),
        items=items,
        details_changed=details_changed,
    )
    if result.changed:
        await commit_or_rollback(session, "apply_assignment_edits")
        logger.info(
            "assignment.edits_applied assignment_id=%s items_changed=%d details_changed=%s",
            assignment_id,
            len(result.changed_item_ids),
            details_changed,
        )
    return result


async def ensure_template_relationship(
    session: AsyncSession, assignment_id: str, library: TemplateLibrary
) -> bool:
    """
    Resolve an assignment's template reference, repairing it if needed.

    Returns:
        True if the template resolves

    Raises:
        AssignmentNotFoundError: If assignment does not exist
    """
    assignment = await get_assignment_model(session, assignment_id)
    student = await get_student_model(session, assignment.student_id)
    assignment = next(a for a in student.assignments if a.id == assignment_id)

    template = resolve_template_reference(assignment, library, student.assignments)
    if session.is_modified(assignment):
        await commit_or_rollback(session, "ensure_template_relationship")
    return template is not None


# ============================================================================
# Reads
# ============================================================================


async def get_assignment(session: AsyncSession, assignment_id: str) -> Assignment:
    """
    Retrieve an assignment with its item progress.

    Raises:
        AssignmentNotFoundError: If assignment does not exist
    """
    return Assignment.model_validate(await get_assignment_model(session, assignment_id))


async def find_assignment(
    session: AsyncSession, student_id: str, template_id: str
) -> Assignment | None:
    """Find a student's assignment of a template, if any."""
    result = await session.execute(
        select(AssignmentModel)
        .where(
            AssignmentModel.student_id == student_id,
            AssignmentModel.template_id == template_id,
        )
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    return Assignment.model_validate(assignment) if assignment else None


async def list_assignments(session: AsyncSession, student_id: str) -> list[Assignment]:
    """All assignments of a student, oldest first."""
    result = await session.execute(
        select(AssignmentModel)
        .where(AssignmentModel.student_id == student_id)
        .order_by(AssignmentModel.assigned_at)
        .execution_options(populate_existing=True)
    )
    return [Assignment.model_validate(a) for a in result.scalars().all()]
