"""
Share transports: how records reach the shared store.

ShareTransport is the seam the SyncEngine is written against. Failures are
returned as results, never raised, so a dead network can never break a local
operation.

InMemoryShareTransport is a complete in-process store. Two engines sharing
one instance behave like an instructor device and a student device talking
through the cloud; it also simulates outages.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from ftt.errors import ValidationError
from ftt.sync.records import SyncRecord, TombstoneRecord, parse_record, parse_record_key
from ftt.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class TransportResult:
    """Outcome of a push or delete."""

    ok: bool
    key: str
    error: str | None = None


@dataclass
class PullResult:
    """Outcome of a pull."""

    ok: bool
    records: list[SyncRecord] = field(default_factory=list)
    next_token: str | None = None
    rejected: int = 0
    error: str | None = None


class ShareTransport(Protocol):
    """Protocol every transport implements."""

    async def push(self, record: SyncRecord) -> TransportResult:
        """Upsert one record under its key."""
        ...

    async def pull(self, since_token: str | None) -> PullResult:
        """Return every change after since_token (None means from the start)."""
        ...

    async def delete(self, key: str) -> TransportResult:
        """Delete one record. Deleting an absent key succeeds."""
        ...


def parse_payloads(payloads: list[dict[str, Any]]) -> tuple[list[SyncRecord], int]:
    """
    Parse raw payloads, skipping malformed ones.

    Returns:
        (records, number rejected)
    """
    records: list[SyncRecord] = []
    rejected = 0
    for payload in payloads:
        try:
            records.append(parse_record(payload))
        except ValidationError as e:
            rejected += 1
            logger.warning("transport.record_rejected error=%s", e)
    return records, rejected


class InMemoryShareTransport:
    """
    Shared store kept in memory.

    Every push and delete is appended to a change log; pull tokens are
    positions in that log. Deletes leave a tombstone in the log so peers
    learn about them.

    Usage:
        store = InMemoryShareTransport()
        instructor = SyncEngine(store, instructor_sessions, library)
        student = SyncEngine(store, student_sessions, library)
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: dict[str, dict[str, Any]] = {}
        self._changes: list[dict[str, Any]] = []
        self.online = True
        self.pushed_keys: list[str] = []
        self.deleted_keys: list[str] = []
        self.before_push: Callable[[SyncRecord], Awaitable[None]] | None = None

    def set_online(self, online: bool) -> None:
        """Simulate connectivity."""
        self.online = online

    def get(self, key: str) -> dict[str, Any] | None:
        """Current payload stored under a key."""
        return self._records.get(key)

    def keys(self) -> set[str]:
        """Keys currently stored (deleted keys excluded)."""
        return set(self._records)

    def inject(self, payload: dict[str, Any]) -> None:
        """Append a raw payload to the change log, as a foreign writer would."""
        self._changes.append(payload)

    async def push(self, record: SyncRecord) -> TransportResult:
        if self.before_push is not None:
            await self.before_push(record)
        if not self.online:
            return TransportResult(ok=False, key=record.key, error="store unreachable")

        payload = record.to_wire()
        async with self._lock:
            self._records[record.key] = payload
            self._changes.append(payload)
            self.pushed_keys.append(record.key)
        return TransportResult(ok=True, key=record.key)

    async def delete(self, key: str) -> TransportResult:
        if not self.online:
            return TransportResult(ok=False, key=key, error="store unreachable")

        record_type, record_id = parse_record_key(key)
        async with self._lock:
            previous = self._records.pop(key, None) or {}
            tombstone = TombstoneRecord(
                id=record_id,
                deleted_type=record_type,
                student_id=previous.get("studentId"),
                last_modified=utcnow(),
            )
            self._changes.append(tombstone.to_wire())
            self.deleted_keys.append(key)
        return TransportResult(ok=True, key=key)

    async def pull(self, since_token: str | None) -> PullResult:
        if not self.online:
            return PullResult(ok=False, error="store unreachable")

        async with self._lock:
            start = int(since_token) if since_token else 0
            payloads = self._changes[start:]
            next_token = str(len(self._changes))

        records, rejected = parse_payloads(payloads)
        return PullResult(ok=True, records=records, next_token=next_token, rejected=rejected)
