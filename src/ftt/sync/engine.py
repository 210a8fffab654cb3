"""
Sync engine: push local deltas to the shared store and reconcile what comes back.

Outbound, every Student, Assignment, ItemProgress and user-created
template moves through UNSYNCED -> PUSHED -> ACKNOWLEDGED. A push snapshots
the records and marks them PUSHED in one transaction, talks to the
transport, then acknowledges in a second transaction only the records whose
last_modified still matches the snapshot. Anything modified in between stays
UNSYNCED for the next push.

Inbound, reconcile() applies record-level last-writer-wins: a strictly newer
record overwrites every mutable field, an older or equal one is discarded.
Tombstones always win. Records whose parent is not known yet are persisted
and retried on every reconcile, up to max_deferred_attempts times.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ftt.db import commit_or_rollback
from ftt.errors import TransportError, ValidationError
from ftt.models import (
    AssignmentModel,
    CustomTemplateModel,
    DeferredRecordModel,
    ItemProgressModel,
    StudentModel,
    SyncCursorModel,
    SyncState,
    TombstoneModel,
)
from ftt.services.assignment_service import resolve_template_reference
from ftt.services.custom_template_service import custom_template_model, get_custom_template
from ftt.services.template_library import TemplateLibrary
from ftt.services.tombstone_service import is_tombstoned, pending_tombstones, record_deletion
from ftt.sync.records import (
    STUDENT_RECORD_FIELDS,
    AssignmentRecord,
    ItemProgressRecord,
    RecordType,
    StudentRecord,
    SyncRecord,
    TemplateRecord,
    TombstoneRecord,
    assignment_payload,
    item_progress_record,
    parse_record,
    record_key,
    student_record,
)
from ftt.sync.transport import ShareTransport
from ftt.utils.clock import ensure_utc

logger = logging.getLogger(__name__)

PENDING_STATES = (SyncState.UNSYNCED.value, SyncState.PUSHED.value)

MODEL_FOR_TYPE = {
    RecordType.STUDENT: StudentModel,
    RecordType.ASSIGNMENT: AssignmentModel,
    RecordType.ITEM_PROGRESS: ItemProgressModel,
    RecordType.TEMPLATE: CustomTemplateModel,
}

# Inbound records are applied parents first; tombstones before everything
APPLY_ORDER = {
    "tombstone": 0,
    "student": 1,
    "template": 2,
    "assignment": 3,
    "item_progress": 4,
}

# Retries before a deferred record whose parent never arrived is dropped
MAX_DEFERRED_ATTEMPTS = 50

ASSIGNMENT_MUTABLE_FIELDS = (
    "template_identifier",
    "is_custom_checklist",
    "instructor_comments",
    "dual_given_hours",
    "assigned_at",
    "last_modified",
)

ITEM_MUTABLE_FIELDS = ("is_complete", "notes", "completed_at", "last_modified")


class Outcome(StrEnum):
    """What reconcile did with one inbound record."""

    APPLIED = "applied"
    DISCARDED = "discarded"
    DEFERRED = "deferred"
    DELETED = "deleted"


@dataclass
class ReconcileReport:
    """Outcome of one reconcile (or pull) pass."""

    applied: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    rejected: int = 0
    affected_students: set[str] = field(default_factory=set)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def record(self, outcome: Outcome, key: str) -> None:
        {
            Outcome.APPLIED: self.applied,
            Outcome.DISCARDED: self.discarded,
            Outcome.DEFERRED: self.deferred,
            Outcome.DELETED: self.deleted,
        }[outcome].append(key)


@dataclass
class FlushResult:
    """Outcome of pushing everything pending for a student."""

    pushed: int = 0
    failed: int = 0
    pending_deletes: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.pending_deletes == 0


@dataclass
class SyncReport:
    """Flush followed by pull."""

    flush: FlushResult
    reconcile: ReconcileReport


class SyncEngine:
    """
    Pushes local changes and reconciles remote ones.

    Args:
        transport: Where records go
        session_factory: Creates sessions on the local database
        library: Template library, for resolving inbound assignments
        scope: Name of the pull cursor (one per shared store)
        max_deferred_attempts: Reconciles a deferred record survives without its parent
    """

    def __init__(
        self,
        transport: ShareTransport,
        session_factory: async_sessionmaker[AsyncSession],
        library: TemplateLibrary,
        scope: str = "default",
        max_deferred_attempts: int = MAX_DEFERRED_ATTEMPTS,
    ):
        self.transport = transport
        self.session_factory = session_factory
        self.library = library
        self.scope = scope
        self.max_deferred_attempts = max_deferred_attempts
        self._tasks: set[asyncio.Task] = set()
        self._pull_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Background scheduling
    # ------------------------------------------------------------------

    def schedule(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run a sync coroutine in the background. Failures are logged."""
        task = asyncio.create_task(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except Exception:
            logger.exception("sync.background_failed")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled background task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _share_open(
        self, session: AsyncSession, student_id: str, allow_terminated: bool = False
    ) -> None:
        """
        Raises:
            TransportError: If the student's share is not active
        """
        result = await session.execute(
            select(StudentModel.share_active, StudentModel.share_terminated).where(
                StudentModel.id == student_id
            )
        )
        row = result.one_or_none()
        if row is None:
            raise TransportError(f"Student {student_id} does not exist")
        share_active, share_terminated = row
        if not share_active and not (allow_terminated and share_terminated):
            raise TransportError(f"Share for student {student_id} is not active")

    async def _push_records(self, student_id: str, records: list[SyncRecord]) -> bool:
        """
        Push a snapshot and settle each record's sync state.

        The caller has already committed the models as PUSHED; this pushes
        and then acknowledges in a fresh session.
        """
        results = {}
        for record in records:
            result = await self.transport.push(record)
            results[record.key] = result
            if not result.ok:
                logger.warning(
                    "sync.push_failed key=%s student_id=%s error=%s",
                    record.key,
                    student_id,
                    result.error,
                )

        async with self.session_factory() as session:
            for record in records:
                model = await session.get(MODEL_FOR_TYPE[record.record_type], record.id)
                if model is None:
                    continue
                if ensure_utc(model.last_modified) != record.last_modified:
                    # Superseded by a newer local mutation
                    model.sync_state = SyncState.UNSYNCED.value
                    logger.info("sync.push_superseded key=%s", record.key)
                elif results[record.key].ok:
                    model.sync_state = SyncState.ACKNOWLEDGED.value
                else:
                    model.sync_state = SyncState.UNSYNCED.value
            await commit_or_rollback(session, "acknowledge_push")

        return all(r.ok for r in results.values())

    async def push_item_progress(self, item_id: str) -> bool:
        """
        Push one item progress record.

        Returns:
            True if the record was acknowledged
        """
        async with self.session_factory() as session:
            progress = await session.get(ItemProgressModel, item_id)
            if progress is None:
                logger.debug("sync.push_skipped key=%s reason=missing", item_id)
                return False
            result = await session.execute(
                select(AssignmentModel.student_id).where(
                    AssignmentModel.id == progress.assignment_id
                )
            )
            student_id = result.scalar_one()
            try:
                await self._share_open(session, student_id)
            except TransportError as e:
                logger.warning("sync.push_skipped item_progress_id=%s reason=%s", item_id, e)
                return False

            records: list[SyncRecord] = [item_progress_record(progress, student_id)]
            progress.sync_state = SyncState.PUSHED.value
            await commit_or_rollback(session, "push_item_progress")

        return await self._push_records(student_id, records)

    async def push_assignment(self, assignment_id: str, changed_only: bool = False) -> bool:
        """
        Push an assignment with its item progress.

        A user-created template is sent ahead of the assignment so that the
        peer can resolve it.

        Args:
            assignment_id: Assignment to push
            changed_only: Send only the items and template that are not
                acknowledged yet. The assignment record is always sent.

        Returns:
            True if every record was acknowledged
        """
        async with self.session_factory() as session:
            assignment = await session.get(AssignmentModel, assignment_id)
            if assignment is None:
                logger.debug("sync.push_skipped key=%s reason=missing", assignment_id)
                return False
            try:
                await self._share_open(session, assignment.student_id)
            except TransportError as e:
                logger.warning("sync.push_skipped assignment_id=%s reason=%s", assignment_id, e)
                return False

            student_id = assignment.student_id
            items = [
                progress
                for progress in assignment.item_progress
                if not changed_only or progress.sync_state in PENDING_STATES
            ]
            template = await get_custom_template(session, assignment.template_id)
            if template is not None and changed_only and template.sync_state not in PENDING_STATES:
                template = None

            records = assignment_payload(assignment, items, template)
            assignment.sync_state = SyncState.PUSHED.value
            for progress in items:
                progress.sync_state = SyncState.PUSHED.value
            if template is not None:
                template.sync_state = SyncState.PUSHED.value
            await commit_or_rollback(session, "push_assignment")

        return await self._push_records(student_id, records)

    async def push_student(self, student_id: str) -> bool:
        """
        Push the student record.

        Allowed right after share termination so the peer sees it.

        Returns:
            True if the record was acknowledged
        """
        async with self.session_factory() as session:
            try:
                await self._share_open(session, student_id, allow_terminated=True)
            except TransportError as e:
                logger.warning("sync.push_skipped student_id=%s reason=%s", student_id, e)
                return False

            student = await session.get(StudentModel, student_id)
            records: list[SyncRecord] = [student_record(student)]
            student.sync_state = SyncState.PUSHED.value
            await commit_or_rollback(session, "push_student")

        return await self._push_records(student_id, records)

    async def push_deletions(self, student_id: str | None = None) -> int:
        """
        Send one delete per pending tombstone.

        Args:
            student_id: Restrict to one student's tombstones

        Returns:
            Number of deletes still pending
        """
        async with self.session_factory() as session:
            keys = [t.key for t in await pending_tombstones(session, student_id)]

        remaining = 0
        for key in keys:
            result = await self.transport.delete(key)
            if not result.ok:
                remaining += 1
                logger.warning(
                    "sync.delete_failed key=%s error=%s state=deleted_locally_remote_pending",
                    key,
                    result.error,
                )
                continue

            async with self.session_factory() as session:
                tombstone = await session.get(TombstoneModel, key)
                if tombstone is not None:
                    tombstone.remote_pending = False
                    await commit_or_rollback(session, "push_deletions")
            logger.info("sync.deleted key=%s", key)

        return remaining

    async def flush_pending(self, student_id: str) -> FlushResult:
        """
        Push everything not yet acknowledged for one student.

        Order: pending deletes, assignments (with their unacknowledged
        items), loose item progress, then the student record.
        """
        outcome = FlushResult(pending_deletes=await self.push_deletions(student_id))

        async with self.session_factory() as session:
            assignment_ids = (
                await session.execute(
                    select(AssignmentModel.id).where(
                        AssignmentModel.student_id == student_id,
                        AssignmentModel.sync_state.in_(PENDING_STATES),
                    )
                )
            ).scalars().all()
            item_ids = (
                await session.execute(
                    select(ItemProgressModel.id)
                    .join(AssignmentModel, ItemProgressModel.assignment_id == AssignmentModel.id)
                    .where(
                        AssignmentModel.student_id == student_id,
                        AssignmentModel.sync_state.not_in(PENDING_STATES),
                        ItemProgressModel.sync_state.in_(PENDING_STATES),
                    )
                )
            ).scalars().all()
            student_state = (
                await session.execute(
                    select(StudentModel.sync_state).where(StudentModel.id == student_id)
                )
            ).scalar_one_or_none()

        pushes = [partial(self.push_assignment, a, changed_only=True) for a in assignment_ids]
        pushes += [partial(self.push_item_progress, i) for i in item_ids]
        if student_state in PENDING_STATES:
            pushes.append(partial(self.push_student, student_id))

        for push in pushes:
            if await push():
                outcome.pushed += 1
            else:
                outcome.failed += 1

        logger.info(
            "sync.flushed student_id=%s pushed=%d failed=%d pending_deletes=%d",
            student_id,
            outcome.pushed,
            outcome.failed,
            outcome.pending_deletes,
        )
        return outcome

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def pull(self) -> ReconcileReport:
        """
        Pull changes since the stored cursor and reconcile them.

        The cursor is written in the same transaction as the reconciled
        records, so it only advances when they are committed.
        """
        async with self._pull_lock:
            async with self.session_factory() as session:
                cursor = await session.get(SyncCursorModel, self.scope)
                token = cursor.token if cursor else None

            result = await self.transport.pull(token)
            if not result.ok:
                logger.warning("sync.pull_failed scope=%s error=%s", self.scope, result.error)
                return ReconcileReport(error=result.error)

            report = await self.reconcile(result.records, next_token=result.next_token)
            report.rejected += result.rejected
            return report

    async def reconcile(
        self, records: Iterable[SyncRecord], next_token: str | None = None
    ) -> ReconcileReport:
        """
        Apply inbound records with last-writer-wins, in one transaction.

        Args:
            records: Records received from the shared store
            next_token: Pull cursor to store with the result

        Returns:
            ReconcileReport

        Raises:
            PersistenceError: If the result cannot be committed (nothing is applied)
        """
        report = ReconcileReport()
        ordered = sorted(records, key=lambda r: APPLY_ORDER[r.kind])

        async with self.session_factory() as session:
            for record in ordered:
                outcome = await self._apply(session, record, report)
                if outcome is Outcome.DEFERRED:
                    await self._defer(session, record)
                report.record(outcome, record.key)

            await self._retry_deferred(session, report)

            if next_token is not None:
                cursor = await session.get(SyncCursorModel, self.scope)
                if cursor is None:
                    session.add(SyncCursorModel(scope=self.scope, token=next_token))
                else:
                    cursor.token = next_token

            await commit_or_rollback(session, "reconcile")

        logger.info(
            "sync.reconciled applied=%d discarded=%d deferred=%d deleted=%d",
            len(report.applied),
            len(report.discarded),
            len(report.deferred),
            len(report.deleted),
        )
        return report

    async def _apply(
        self, session: AsyncSession, record: SyncRecord, report: ReconcileReport
    ) -> Outcome:
        if isinstance(record, TombstoneRecord):
            return await self._apply_tombstone(session, record, report)
        if isinstance(record, StudentRecord):
            return await self._apply_student(session, record, report)
        if isinstance(record, TemplateRecord):
            return await self._apply_template(session, record)
        if isinstance(record, AssignmentRecord):
            return await self._apply_assignment(session, record, report)
        return await self._apply_item(session, record, report)

    async def _apply_tombstone(
        self, session: AsyncSession, record: TombstoneRecord, report: ReconcileReport
    ) -> Outcome:
        await record_deletion(
            session,
            record.deleted_type,
            record.id,
            record.student_id,
            remote_pending=False,
            deleted_at=record.last_modified,
        )

        deferred = await session.get(DeferredRecordModel, record.key)
        if deferred is not None:
            await session.delete(deferred)

        model = await session.get(MODEL_FOR_TYPE[record.deleted_type], record.id)
        if model is None:
            return Outcome.DISCARDED

        await session.delete(model)
        await session.flush()
        if record.student_id:
            report.affected_students.add(record.student_id)
        logger.info("sync.tombstone_applied key=%s", record.key)
        return Outcome.DELETED

    async def _apply_student(
        self, session: AsyncSession, record: StudentRecord, report: ReconcileReport
    ) -> Outcome:
        if await is_tombstoned(session, record.key):
            return Outcome.DISCARDED

        fields = {name: getattr(record, name) for name in STUDENT_RECORD_FIELDS}
        fields["documents"] = (
            [d.value for d in record.documents] if record.documents is not None else None
        )

        student = await session.get(StudentModel, record.id)
        if student is None:
            student = StudentModel(
                id=record.id,
                assignments=[],
                share_active=not record.share_terminated,
                sync_state=SyncState.ACKNOWLEDGED.value,
                **fields,
            )
            session.add(student)
        elif record.last_modified > ensure_utc(student.last_modified):
            for name, value in fields.items():
                setattr(student, name, value)
            if record.share_terminated:
                student.share_active = False
            student.sync_state = SyncState.ACKNOWLEDGED.value
        else:
            return Outcome.DISCARDED

        report.affected_students.add(record.id)
        return Outcome.APPLIED

    async def _apply_template(self, session: AsyncSession, record: TemplateRecord) -> Outcome:
        if await is_tombstoned(session, record.key):
            return Outcome.DISCARDED
        # Templates are immutable once created; a known id carries nothing new
        if await session.get(CustomTemplateModel, record.id) is not None:
            return Outcome.DISCARDED

        template = record.to_template()
        model = custom_template_model(template, record.source_template_id)
        model.last_modified = record.last_modified
        model.sync_state = SyncState.ACKNOWLEDGED.value
        session.add(model)
        await session.flush()

        if template.id not in self.library:
            self.library.register(template)
        logger.info("sync.template_received template_id=%s name=%s", template.id, template.name)
        return Outcome.APPLIED

    async def _apply_assignment(
        self, session: AsyncSession, record: AssignmentRecord, report: ReconcileReport
    ) -> Outcome:
        if await is_tombstoned(session, record.key) or await is_tombstoned(
            session, record_key(RecordType.STUDENT, record.student_id)
        ):
            return Outcome.DISCARDED

        student_exists = (
            await session.execute(
                select(StudentModel.id).where(StudentModel.id == record.student_id)
            )
        ).scalar_one_or_none()
        if student_exists is None:
            return Outcome.DEFERRED

        siblings = list(
            (
                await session.execute(
                    select(AssignmentModel).where(AssignmentModel.student_id == record.student_id)
                )
            ).scalars().all()
        )
        local = next((a for a in siblings if a.id == record.id), None)
        template_taken = any(
            a.id != record.id and a.template_id == record.template_id for a in siblings
        )

        if local is None:
            if template_taken:
                # Same template already assigned locally under another id: keep ours
                logger.warning(
                    "sync.duplicate_assignment_discarded assignment_id=%s student_id=%s "
                    "template_id=%s",
                    record.id,
                    record.student_id,
                    record.template_id,
                )
                await record_deletion(
                    session, RecordType.ASSIGNMENT, record.id, record.student_id, False
                )
                return Outcome.DISCARDED

            local = AssignmentModel(
                id=record.id,
                item_progress=[],
                student_id=record.student_id,
                template_id=record.template_id,
                sync_state=SyncState.ACKNOWLEDGED.value,
                **{name: getattr(record, name) for name in ASSIGNMENT_MUTABLE_FIELDS},
            )
            resolve_template_reference(local, self.library, siblings)
            session.add(local)
        elif record.last_modified > ensure_utc(local.last_modified):
            for name in ASSIGNMENT_MUTABLE_FIELDS:
                setattr(local, name, getattr(record, name))
            if not template_taken:
                local.template_id = record.template_id
            resolve_template_reference(local, self.library, siblings)
            local.sync_state = SyncState.ACKNOWLEDGED.value
        else:
            return Outcome.DISCARDED

        await session.flush()
        report.affected_students.add(record.student_id)
        return Outcome.APPLIED

    async def _apply_item(
        self, session: AsyncSession, record: ItemProgressRecord, report: ReconcileReport
    ) -> Outcome:
        if await is_tombstoned(session, record.key) or await is_tombstoned(
            session, record_key(RecordType.ASSIGNMENT, record.assignment_id)
        ):
            return Outcome.DISCARDED

        assignment = await session.get(AssignmentModel, record.assignment_id)
        if assignment is None:
            return Outcome.DEFERRED

        local = next((p for p in assignment.item_progress if p.id == record.id), None)
        if local is None:
            local = next(
                (
                    p
                    for p in assignment.item_progress
                    if p.template_item_id == record.template_item_id
                ),
                None,
            )
            if local is not None:
                logger.info(
                    "sync.item_matched_by_template_item item_progress_id=%s local_id=%s",
                    record.id,
                    local.id,
                )

        if local is None:
            assignment.item_progress.append(
                ItemProgressModel(
                    id=record.id,
                    assignment_id=assignment.id,
                    template_item_id=record.template_item_id,
                    sync_state=SyncState.ACKNOWLEDGED.value,
                    **{name: getattr(record, name) for name in ITEM_MUTABLE_FIELDS},
                )
            )
        elif record.last_modified > ensure_utc(local.last_modified):
            for name in ITEM_MUTABLE_FIELDS:
                setattr(local, name, getattr(record, name))
            local.sync_state = SyncState.ACKNOWLEDGED.value
        else:
            return Outcome.DISCARDED

        await session.flush()
        report.affected_students.add(assignment.student_id)
        return Outcome.APPLIED

    async def _defer(self, session: AsyncSession, record: SyncRecord) -> None:
        reason = "student_unknown" if isinstance(record, AssignmentRecord) else "assignment_unknown"
        existing = await session.get(DeferredRecordModel, record.key)
        if existing is None:
            session.add(
                DeferredRecordModel(
                    key=record.key, payload=record.to_wire(), reason=reason, attempts=0
                )
            )
        elif record.last_modified > parse_record(existing.payload).last_modified:
            existing.payload = record.to_wire()
        logger.info("sync.record_deferred key=%s reason=%s", record.key, reason)

    async def _retry_deferred(self, session: AsyncSession, report: ReconcileReport) -> None:
        await session.flush()
        rows = (
            await session.execute(
                select(DeferredRecordModel).order_by(DeferredRecordModel.received_at)
            )
        ).scalars().all()
        deferred = []
        for row in rows:
            try:
                deferred.append((row, parse_record(row.payload)))
            except ValidationError as e:
                logger.warning("sync.deferred_dropped key=%s error=%s", row.key, e)
                report.rejected += 1
                await session.delete(row)

        # Assignments first so their items can land in the same pass
        for row, record in sorted(deferred, key=lambda pair: APPLY_ORDER[pair[1].kind]):
            outcome = await self._apply(session, record, report)
            if outcome is Outcome.DEFERRED:
                row.attempts += 1
                if row.attempts < self.max_deferred_attempts:
                    continue
                logger.warning(
                    "sync.deferred_expired key=%s reason=%s attempts=%d",
                    row.key,
                    row.reason,
                    row.attempts,
                )
                outcome = Outcome.DISCARDED
            await session.delete(row)
            if record.key in report.deferred:
                report.deferred.remove(record.key)
            report.record(outcome, record.key)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def sync_student(self, student_id: str) -> SyncReport:
        """Flush one student's pending changes, then pull."""
        flush = await self.flush_pending(student_id)
        return SyncReport(flush=flush, reconcile=await self.pull())

    async def shared_student_ids(self) -> list[str]:
        """Students whose records should be pushed (active or just-terminated shares)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(StudentModel.id).where(
                    (StudentModel.share_active.is_(True))
                    | (
                        StudentModel.share_terminated.is_(True)
                        & StudentModel.sync_state.in_(PENDING_STATES)
                    )
                )
            )
            return list(result.scalars().all())

    async def sync_all(self) -> SyncReport:
        """Flush every shared student, push stray deletes, then pull once."""
        total = FlushResult()
        for student_id in await self.shared_student_ids():
            flush = await self.flush_pending(student_id)
            total.pushed += flush.pushed
            total.failed += flush.failed
        total.pending_deletes = await self.push_deletions()
        return SyncReport(flush=total, reconcile=await self.pull())

    async def run_periodic(self, interval: float, stop: asyncio.Event | None = None) -> None:
        """
        Sync every `interval` seconds until `stop` is set.

        Failures of one round are logged and retried on the next.
        """
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await self.sync_all()
            except Exception:
                logger.exception("sync.periodic_failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass
