"""
Tombstone bookkeeping.

A tombstone is written in the same transaction as the delete it describes.
Pending tombstones form the outbox of remote deletes; applied tombstones
keep stale updates for dead keys from resurrecting them.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.models import Tombstone, TombstoneModel
from ftt.sync.records import RecordType, record_key
from ftt.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def record_deletion(
    session: AsyncSession,
    record_type: RecordType,
    record_id: str,
    student_id: str | None,
    remote_pending: bool,
    deleted_at: datetime | None = None,
) -> str:
    """
    Write (or refresh) the tombstone for a deleted record. Does not commit.

    Args:
        session: Database session
        record_type: Type of the deleted record
        record_id: Id of the deleted record
        student_id: Owning student, for scoping pushes
        remote_pending: Whether the delete still has to reach the shared store
        deleted_at: Deletion time (defaults to now)

    Returns:
        The record key
    """
    key = record_key(record_type, record_id)
    tombstone = await session.get(TombstoneModel, key)
    if tombstone is None:
        tombstone = TombstoneModel(
            key=key,
            record_type=RecordType(record_type).value,
            record_id=record_id,
            student_id=student_id,
        )
        session.add(tombstone)
        # Later is_tombstoned() lookups in this transaction go through session.get
        await session.flush()

    tombstone.deleted_at = deleted_at or utcnow()
    tombstone.remote_pending = tombstone.remote_pending or remote_pending
    return key


async def pending_tombstones(
    session: AsyncSession, student_id: str | None = None
) -> list[TombstoneModel]:
    """Tombstones whose remote delete has not been confirmed, oldest first."""
    query = select(TombstoneModel).where(TombstoneModel.remote_pending.is_(True))
    if student_id is not None:
        query = query.where(TombstoneModel.student_id == student_id)
    result = await session.execute(query.order_by(TombstoneModel.deleted_at))
    return list(result.scalars().all())


async def is_tombstoned(session: AsyncSession, key: str) -> bool:
    """Check whether a record key has been deleted."""
    return await session.get(TombstoneModel, key) is not None


async def list_tombstones(session: AsyncSession, student_id: str | None = None) -> list[Tombstone]:
    """All tombstones, optionally for one student."""
    query = select(TombstoneModel)
    if student_id is not None:
        query = query.where(TombstoneModel.student_id == student_id)
    result = await session.execute(query.order_by(TombstoneModel.deleted_at))
    return [Tombstone.model_validate(t) for t in result.scalars().all()]
