"""
Sync Outbox: durable queue of local actions awaiting the remote system.

Entry lifecycle:
    pending --dispatch ok--> removed
    pending --dispatch fails--> pending, attempts += 1
    attempts >= MAX_ATTEMPTS --> parked (kept with last_error, never dispatched)
    pending like/dislike --newer like/dislike for the entity--> removed

The remote keeps a single liked/disliked status per entity, so only the
latest like/dislike is worth sending; 'viewed' entries are independent.

Entries are enqueued inside the ledger transaction, so a like/dislike and
its outbox entry commit together. Draining happens outside any transaction
and never blocks enqueues.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func

from .database import SyncQueueEntry
from .logger import get_logger
from .retry import CircuitBreaker, is_transient_error
from .schema import ensure_entity_id, ensure_sync_action

MAX_ATTEMPTS = 3
DEFAULT_BATCH_SIZE = 20
MAX_ERROR_LENGTH = 500
STATUS_ACTIONS = ("like", "dislike")

logger = get_logger()

Dispatcher = Callable[[str, str, str], None]  # (entity_type, entity_id, action)


@dataclass(frozen=True)
class OutboxEntry:
    id: int
    entity_id: str
    entity_type: str
    action: str
    attempts: int
    last_error: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: SyncQueueEntry) -> "OutboxEntry":
        return cls(
            id=row.id,
            entity_id=row.entity_id,
            entity_type=row.entity_type,
            action=row.action,
            attempts=row.attempts,
            last_error=row.last_error,
            created_at=row.created_at,
        )

    @property
    def parked(self) -> bool:
        return self.attempts >= MAX_ATTEMPTS


@dataclass
class DrainResult:
    sent: int = 0
    failed: int = 0
    parked: int = 0
    skipped: int = 0

    @property
    def attempted(self) -> int:
        return self.sent + self.failed


class SyncOutbox:
    def __init__(self, session_factory, breaker: Optional[CircuitBreaker] = None):
        self._session_factory = session_factory
        self._drain_lock = threading.Lock()
        self.breaker = breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    def enqueue(self, session, entity_id: str, entity_type: str, action: str) -> SyncQueueEntry:
        """Add an entry within the caller's transaction.

        A like/dislike replaces any pending like/dislike for the same entity.
        Parked entries are kept for inspection.
        """
        ensure_entity_id(entity_id)
        ensure_sync_action(action)
        if action in STATUS_ACTIONS:
            superseded = (
                session.query(SyncQueueEntry)
                .filter(
                    SyncQueueEntry.entity_id == entity_id,
                    SyncQueueEntry.entity_type == entity_type,
                    SyncQueueEntry.action.in_(STATUS_ACTIONS),
                    SyncQueueEntry.attempts < MAX_ATTEMPTS,
                )
                .delete(synchronize_session=False)
            )
            if superseded:
                logger.debug("Outbox entries superseded", entity_id=entity_id, count=superseded)
        entry = SyncQueueEntry(
            entity_id=entity_id,
            entity_type=entity_type,
            action=action,
            attempts=0,
        )
        session.add(entry)
        return entry

    def enqueue_now(self, entity_id: str, entity_type: str, action: str) -> OutboxEntry:
        """Enqueue in a transaction of its own (used for 'viewed')."""
        with self._session_factory() as session:
            with session.begin():
                entry = self.enqueue(session, entity_id, entity_type, action)
            return OutboxEntry.from_row(entry)

    def pending(self, batch_size: int = DEFAULT_BATCH_SIZE) -> List[OutboxEntry]:
        with self._session_factory() as session:
            rows = (
                session.query(SyncQueueEntry)
                .filter(SyncQueueEntry.attempts < MAX_ATTEMPTS)
                .order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
                .limit(batch_size)
                .all()
            )
            return [OutboxEntry.from_row(r) for r in rows]

    def parked(self) -> List[OutboxEntry]:
        with self._session_factory() as session:
            rows = (
                session.query(SyncQueueEntry)
                .filter(SyncQueueEntry.attempts >= MAX_ATTEMPTS)
                .order_by(SyncQueueEntry.created_at, SyncQueueEntry.id)
                .all()
            )
            return [OutboxEntry.from_row(r) for r in rows]

    def entries(self) -> List[OutboxEntry]:
        with self._session_factory() as session:
            rows = session.query(SyncQueueEntry).order_by(SyncQueueEntry.created_at, SyncQueueEntry.id).all()
            return [OutboxEntry.from_row(r) for r in rows]

    def counts(self) -> dict:
        with self._session_factory() as session:
            pending = (
                session.query(func.count(SyncQueueEntry.id))
                .filter(SyncQueueEntry.attempts < MAX_ATTEMPTS)
                .scalar()
            )
            parked = (
                session.query(func.count(SyncQueueEntry.id))
                .filter(SyncQueueEntry.attempts >= MAX_ATTEMPTS)
                .scalar()
            )
        return {"pending": pending or 0, "parked": parked or 0}

    def drain(self, dispatcher: Dispatcher, batch_size: int = DEFAULT_BATCH_SIZE) -> DrainResult:
        """
        Dispatch up to batch_size pending entries.

        Args:
            dispatcher: Callable(entity_type, entity_id, action); raising means failure
            batch_size: Maximum number of entries taken from the queue

        Returns:
            DrainResult with sent/failed/parked/skipped counts
        """
        result = DrainResult()
        with self._drain_lock:
            batch = self.pending(batch_size)
            for entry in batch:
                if not self.breaker.allow():
                    result.skipped += 1
                    continue

                logger.record_sync_attempt(entry.entity_type)
                try:
                    dispatcher(entry.entity_type, entry.entity_id, entry.action)
                except Exception as e:
                    transient = getattr(e, "transient", None)
                    if transient is None:
                        transient = is_transient_error(e)
                    if transient:
                        self.breaker.record_failure()
                    attempts = self._mark_failed(entry, str(e), park=not transient)
                    logger.record_sync_failure(entry.entity_type, type(e).__name__)
                    result.failed += 1
                    if attempts >= MAX_ATTEMPTS:
                        result.parked += 1
                        logger.error(
                            "Outbox entry parked",
                            entry_id=entry.id,
                            entity_id=entry.entity_id,
                            action=entry.action,
                            attempts=attempts,
                            error=str(e),
                        )
                    else:
                        logger.warning(
                            "Outbox dispatch failed",
                            entry_id=entry.id,
                            entity_id=entry.entity_id,
                            attempts=attempts,
                            error=str(e),
                        )
                    continue

                self.breaker.record_success()
                self._mark_sent(entry)
                logger.record_sync_success(entry.entity_type)
                result.sent += 1

        if batch:
            logger.info(
                "Outbox drained",
                sent=result.sent,
                failed=result.failed,
                parked=result.parked,
                skipped=result.skipped,
            )
        return result

    def _mark_sent(self, entry: OutboxEntry) -> None:
        with self._session_factory() as session:
            with session.begin():
                session.query(SyncQueueEntry).filter_by(id=entry.id).delete()

    def _mark_failed(self, entry: OutboxEntry, error: str, park: bool = False) -> int:
        with self._session_factory() as session:
            with session.begin():
                attempts = SyncQueueEntry.attempts + 1
                if park:
                    attempts = func.max(SyncQueueEntry.attempts + 1, MAX_ATTEMPTS)
                session.query(SyncQueueEntry).filter_by(id=entry.id).update(
                    {
                        SyncQueueEntry.attempts: attempts,
                        SyncQueueEntry.last_error: error[:MAX_ERROR_LENGTH],
                    },
                    synchronize_session=False,
                )
            row = session.get(SyncQueueEntry, entry.id)
            # superseded by a newer like/dislike while in flight
            return row.attempts if row is not None else 0
