"""
Application facade for the Flight Training Tracker.

TrainingTracker owns the session factory, the template library and
(optionally) a SyncEngine. Every mutation is awaited and committed locally
first; the matching push is then scheduled in the background, so a slow or
absent network never delays the user.

ChecklistEdit is the explicit commit boundary for checklist screens: edits
are buffered in memory and written in a single transaction on commit(), or
dropped on discard().
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ftt.errors import TransportError, ValidationError
from ftt.models import (
    AssignmentUpdate,
    DocumentType,
    ItemProgressUpdate,
    Student,
    StudentCreate,
    StudentUpdate,
    Template,
    TemplateItem,
)
from ftt.models.student import ModifiedBy
from ftt.services import (
    assignment_service,
    custom_template_service,
    integrity_service,
    student_service,
)
from ftt.services.assignment_service import (
    AssignmentEditResult,
    AssignmentResult,
    ItemCompletionResult,
    RemovalResult,
)
from ftt.services.integrity_service import IntegrityReport
from ftt.services.progress_service import ProgressSummary, summarize_progress
from ftt.services.template_library import TemplateLibrary
from ftt.sync.engine import SyncEngine, SyncReport

logger = logging.getLogger(__name__)


class TrainingTracker:
    """
    Entry point for user actions.

    Usage:
        tracker = TrainingTracker(session_factory, library, engine)
        result = await tracker.assign(student.id, template.id)
        await tracker.set_item_complete(result.assignment.id, item_id, True)
        summary = await tracker.progress(student.id)

    device_role is stamped as last_modified_by on every student edit made
    through this tracker.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        library: TemplateLibrary,
        engine: SyncEngine | None = None,
        device_role: ModifiedBy = "instructor",
    ):
        self.session_factory = session_factory
        self.library = library
        self.engine = engine
        self.device_role = device_role

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    async def create_student(self, data: StudentCreate) -> Student:
        async with self.session() as session:
            return await student_service.create_student(
                session, data, modified_by=self.device_role
            )

    async def get_student(self, student_id: str) -> Student:
        async with self.session() as session:
            return await student_service.get_student(session, student_id)

    async def list_students(self) -> list[Student]:
        async with self.session() as session:
            return await student_service.list_students(session)

    async def update_student(self, student_id: str, updates: StudentUpdate) -> Student:
        async with self.session() as session:
            student = await student_service.update_student(
                session, student_id, updates, modified_by=self.device_role
            )
        self._schedule_student_push(student_id)
        return student

    async def set_documents(
        self, student_id: str, documents: list[DocumentType] | None
    ) -> Student:
        async with self.session() as session:
            student = await student_service.set_documents(
                session, student_id, documents, modified_by=self.device_role
            )
        self._schedule_student_push(student_id)
        return student

    async def activate_share(self, student_id: str, share_record_id: str | None = None) -> Student:
        """Start sharing and push everything the companion has not seen."""
        async with self.session() as session:
            student = await student_service.activate_share(
                session, student_id, share_record_id, modified_by=self.device_role
            )
        if self.engine is not None:
            self.engine.schedule(self.engine.flush_pending(student_id))
        return student

    async def terminate_share(self, student_id: str) -> Student:
        """Stop sharing; the companion is told through one last student push."""
        async with self.session() as session:
            student = await student_service.terminate_share(
                session, student_id, modified_by=self.device_role
            )
        self._schedule_student_push(student_id)
        return student

    async def delete_student(self, student_id: str) -> list[str]:
        async with self.session() as session:
            keys = await student_service.delete_student(session, student_id)
        if keys and self.engine is not None:
            self.engine.schedule(self.engine.push_deletions(student_id))
        return keys

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def load_custom_templates(self) -> int:
        """Register the user-created templates stored on this device."""
        async with self.session() as session:
            return await custom_template_service.load_custom_templates(session, self.library)

    async def customize_template(
        self,
        template_id: str,
        name: str | None = None,
        items: Iterable[TemplateItem] | None = None,
    ) -> Template:
        """
        Create, store and register a user-authored copy of a template.

        The copy is pushed together with the first shared assignment of it.

        Raises:
            TemplateNotFoundError: If the source template is not in the library
        """
        template = self.library.custom_copy(template_id, name, items)
        async with self.session() as session:
            await custom_template_service.save_custom_template(
                session, template, source_template_id=template_id
            )
        return self.library.register(template)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def assign(self, student_id: str, template_id: str) -> AssignmentResult:
        """
        Assign a library template to a student.

        Raises:
            TemplateNotFoundError: If the template is not in the library
            StudentNotFoundError: If student does not exist
        """
        template = self.library.require(template_id)
        async with self.session() as session:
            result = await assignment_service.assign_template(session, template, student_id)
        if result.created and self.engine is not None:
            self.engine.schedule(self.engine.push_assignment(result.assignment.id))
        return result

    async def remove(self, student_id: str, template_id: str) -> RemovalResult | None:
        """Remove a template from a student; remote deletes follow in the background."""
        async with self.session() as session:
            result = await assignment_service.remove_template(session, template_id, student_id)
        if result is not None and result.pending_remote_deletes and self.engine is not None:
            self.engine.schedule(self.engine.push_deletions(student_id))
        return result

    async def set_item_complete(
        self,
        assignment_id: str,
        template_item_id: str,
        is_complete: bool,
        notes: str | None = None,
    ) -> ItemCompletionResult:
        """Toggle one checklist item and push it."""
        async with self.session() as session:
            result = await assignment_service.update_item_completion(
                session,
                assignment_id,
                template_item_id,
                is_complete,
                notes,
                library=self.library,
            )
        if result.changed and result.item is not None and self.engine is not None:
            self.engine.schedule(self.engine.push_item_progress(result.item.id))
        return result

    async def update_details(self, assignment_id: str, updates: AssignmentUpdate):
        async with self.session() as session:
            assignment = await assignment_service.update_assignment_details(
                session, assignment_id, updates
            )
        if self.engine is not None:
            self.engine.schedule(self.engine.push_assignment(assignment_id))
        return assignment

    def edit(self, assignment_id: str) -> "ChecklistEdit":
        """Open a buffered edit of one assignment."""
        return ChecklistEdit(self, assignment_id)

    async def _commit_edit(
        self,
        assignment_id: str,
        item_updates: list[ItemProgressUpdate],
        details: AssignmentUpdate | None,
    ) -> AssignmentEditResult:
        async with self.session() as session:
            result = await assignment_service.apply_assignment_edits(
                session, assignment_id, item_updates, details, library=self.library
            )
        if result.changed and self.engine is not None:
            self.engine.schedule(self.engine.push_assignment(assignment_id, changed_only=True))
        return result

    # ------------------------------------------------------------------
    # Progress, integrity and sync
    # ------------------------------------------------------------------

    async def progress(self, student_id: str) -> ProgressSummary:
        """Recompute the progress summary from the current local state."""
        student = await self.get_student(student_id)
        return summarize_progress(student, self.library)

    async def verify(self, student_id: str | None = None) -> IntegrityReport:
        async with self.session() as session:
            return await integrity_service.verify_and_repair(session, self.library, student_id)

    async def sync(self, student_id: str | None = None) -> SyncReport:
        """
        Push pending changes and pull remote ones, in the foreground.

        Raises:
            TransportError: If no SyncEngine is configured
        """
        if self.engine is None:
            raise TransportError("Sync is not configured")
        await self.engine.drain()
        if student_id is not None:
            return await self.engine.sync_student(student_id)
        return await self.engine.sync_all()

    async def watch(self, interval: float, stop: asyncio.Event | None = None) -> None:
        """
        Sync every `interval` seconds until `stop` is set.

        Raises:
            TransportError: If no SyncEngine is configured
        """
        if self.engine is None:
            raise TransportError("Sync is not configured")
        logger.info("sync.watch_started interval=%s", interval)
        await self.engine.run_periodic(interval, stop)

    def _schedule_student_push(self, student_id: str) -> None:
        if self.engine is not None:
            self.engine.schedule(self.engine.push_student(student_id))


class ChecklistEdit:
    """
    Buffered edits to one assignment.

    Nothing is written until commit(). The last edit of an item wins.

    Usage:
        edit = tracker.edit(assignment_id)
        edit.set_item(item_id, True).set_instructor_comments("Good crosswind work")
        await edit.commit()

        async with tracker.edit(assignment_id) as edit:
            edit.set_dual_given_hours(1.2)
    """

    def __init__(self, tracker: TrainingTracker, assignment_id: str):
        self.tracker = tracker
        self.assignment_id = assignment_id
        self._items: dict[str, ItemProgressUpdate] = {}
        self._details: dict[str, object] = {}
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise ValidationError(f"Edit of assignment {self.assignment_id} is already closed")

    def set_item(
        self, template_item_id: str, is_complete: bool, notes: str | None = None
    ) -> "ChecklistEdit":
        self._check_open()
        self._items[template_item_id] = ItemProgressUpdate(
            template_item_id=template_item_id, is_complete=is_complete, notes=notes
        )
        return self

    def set_instructor_comments(self, comments: str | None) -> "ChecklistEdit":
        self._check_open()
        self._details["instructor_comments"] = comments
        return self

    def set_dual_given_hours(self, hours: float) -> "ChecklistEdit":
        self._check_open()
        if hours < 0:
            raise ValidationError("Dual given hours cannot be negative")
        self._details["dual_given_hours"] = hours
        return self

    @property
    def has_changes(self) -> bool:
        return bool(self._items or self._details)

    async def commit(self) -> AssignmentEditResult:
        """
        Write every buffered edit in one transaction.

        Raises:
            ValidationError: If the edit was already committed or discarded
            AssignmentNotFoundError: If the assignment no longer exists
            PersistenceError: If the write fails (the buffer is kept for a retry)
        """
        self._check_open()
        details = AssignmentUpdate(**self._details) if self._details else None
        result = await self.tracker._commit_edit(
            self.assignment_id, list(self._items.values()), details
        )
        self._items.clear()
        self._details.clear()
        self._closed = True
        return result

    def discard(self) -> None:
        """Drop every buffered edit."""
        if self.has_changes:
            logger.info(
                "edit.discarded assignment_id=%s items=%d", self.assignment_id, len(self._items)
            )
        self._items.clear()
        self._details.clear()
        self._closed = True

    async def __aenter__(self) -> "ChecklistEdit":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._closed:
            return
        if exc_type is None:
            await self.commit()
        else:
            self.discard()
