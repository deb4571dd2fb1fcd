"""Durable queue store for submission retries.

This module owns the `submission_queue` table. It provides:
- Idempotent enqueue (single and bulk) via INSERT ... ON CONFLICT DO UPDATE
- Atomic batch claiming that never hands the same entry to two callers
- Attempt bookkeeping, rescheduling and removal
- Aggregate status and paginated listings for operator tooling
- Pruning of entries whose submission is gone or already delivered

All mutations are single statements scoped to one entry (or one set of
entries) and rely on the database for atomicity. No in-process locks are
used, so any number of worker processes may share the same table.
PostgreSQL and SQLite are supported; both provide the atomic upsert.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from .config import Config
from .errors import EntryNotFoundError, InvalidPriorityError, UnsupportedDialectError
from .models import QueueEntry, Submission
from .mqtt import Broadcaster, QueueEvent, get_default_broadcaster
from .schemas import (
    RETRYABLE_STATUSES,
    QueuedSubmission,
    QueueListing,
    QueueStatus,
    SubmissionStatus,
)
from .translator import db_entry_to_queue_item, db_entry_to_queued_submission

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 500

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def unclaimed_at(now: int):
    """Filter for entries no worker holds a live claim lease on."""
    return or_(QueueEntry.claimed_until.is_(None), QueueEntry.claimed_until <= now)


def validate_priority(priority: int) -> int:
    """Return priority unchanged or raise InvalidPriorityError."""
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidPriorityError(priority)
    if priority < Config.MIN_PRIORITY or priority > Config.MAX_PRIORITY:
        raise InvalidPriorityError(priority)
    return priority


class QueueStore:
    """SQLAlchemy-backed store for submission queue entries.

    Example:
        session_factory = create_session_factory(engine)
        store = QueueStore(session_factory)

        store.enqueue("submission-123", priority=1)
        batch = store.claim_batch(10)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], int] | None = None,
        claim_lease_ms: int | None = None,
        broadcaster: Broadcaster | None = None,
    ):
        """Initialize store with session factory and event broadcaster.

        Args:
            session_factory: SQLAlchemy session factory (sessionmaker)
            clock: Returns the current time in epoch ms (for tests)
            claim_lease_ms: How long a claimed entry stays invisible to
                other claimants, defaults to Config.QUEUE_CLAIM_LEASE_MS
            broadcaster: Event broadcaster, defaults to the configured one
        """
        self.session_factory: sessionmaker[Session] = session_factory
        self.clock: Callable[[], int] = clock or now_ms
        self.claim_lease_ms: int = (
            claim_lease_ms if claim_lease_ms is not None else Config.QUEUE_CLAIM_LEASE_MS
        )
        self.broadcaster: Broadcaster = broadcaster or get_default_broadcaster()

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        submission_id: str,
        priority: int = Config.DEFAULT_PRIORITY,
        *,
        max_attempts: int | None = None,
        backoff_multiplier: float | None = None,
        reset_attempts: bool = False,
    ) -> None:
        """Add a submission to the queue, or refresh its existing entry.

        An existing entry gets the new priority and becomes eligible now,
        superseding any backoff wait. Its max_attempts and backoff_multiplier
        are kept, as is its attempt count unless reset_attempts is set. A
        claim lease held by a worker is left in place.

        Args:
            submission_id: Submission to deliver
            priority: 1 (most urgent) to 10 (least)
            max_attempts: Attempt ceiling for a new entry
            backoff_multiplier: Backoff growth factor for a new entry
            reset_attempts: Also reset attempts to 0 and clear last_error on an
                existing entry

        Raises:
            InvalidPriorityError: If priority is outside 1..10
        """
        _ = self._upsert(
            [submission_id],
            priority,
            max_attempts=max_attempts,
            backoff_multiplier=backoff_multiplier,
            reset_attempts=reset_attempts,
        )
        logger.debug(f"Enqueued submission {submission_id} at priority {priority}")
        _ = self.broadcaster.publish_event(
            QueueEvent.enqueued, submission_id, {"priority": priority}
        )

    def enqueue_bulk(
        self,
        submission_ids: Sequence[str],
        priority: int = Config.DEFAULT_PRIORITY,
        *,
        reset_attempts: bool = False,
    ) -> int:
        """Enqueue a set of submissions in one transaction.

        Same semantics as enqueue() for every id. Duplicate ids collapse.

        Returns:
            Number of distinct submissions enqueued
        """
        count = self._upsert(submission_ids, priority, reset_attempts=reset_attempts)
        if count:
            logger.info(f"Enqueued {count} submissions at priority {priority}")
        return count

    def _upsert(
        self,
        submission_ids: Sequence[str],
        priority: int,
        *,
        max_attempts: int | None = None,
        backoff_multiplier: float | None = None,
        reset_attempts: bool = False,
    ) -> int:
        _ = validate_priority(priority)
        max_attempts = Config.QUEUE_MAX_ATTEMPTS if max_attempts is None else max_attempts
        backoff_multiplier = (
            Config.QUEUE_BACKOFF_MULTIPLIER if backoff_multiplier is None else backoff_multiplier
        )
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {backoff_multiplier}")

        ids = list(dict.fromkeys(submission_ids))
        if not ids:
            return 0

        now = self.clock()
        rows = [
            {
                "submission_id": submission_id,
                "priority": priority,
                "scheduled_at": now,
                "attempts": 0,
                "max_attempts": max_attempts,
                "backoff_multiplier": backoff_multiplier,
                "created_at": now,
                "updated_at": now,
            }
            for submission_id in ids
        ]
        refresh: dict[str, int | None] = {
            "priority": priority,
            "scheduled_at": now,
            "updated_at": now,
        }
        if reset_attempts:
            refresh["attempts"] = 0
            refresh["last_error"] = None

        with self.session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_INSERTS.get(dialect)
            if insert is None:
                raise UnsupportedDialectError(dialect)

            stmt = insert(QueueEntry).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[QueueEntry.submission_id],
                set_=refresh,
            )
            _ = session.execute(stmt)
            session.commit()

        return len(ids)

    # -------------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------------

    def claim_batch(self, limit: int) -> list[QueuedSubmission]:
        """Atomically claim up to `limit` eligible entries.

        Eligible means scheduled_at <= now, attempts < max_attempts, no live
        claim lease, and the submission is still pending or failed. Entries
        are claimed in priority order, earliest scheduled_at first within a
        priority.

        Claiming is two-layered:
        1. SELECT ... FOR UPDATE SKIP LOCKED, so stores with row locks
           (PostgreSQL) skip rows another claimant holds without blocking.
        2. A conditional UPDATE per candidate that sets claimed_until to
           now + claim lease, guarded on the entry still being unclaimed.
           If another caller claimed the row first, the guard fails and
           the row is skipped.

        A claimed entry stays invisible until it is rescheduled, removed, or
        its lease expires (which recovers entries from crashed workers).
        Re-enqueueing a claimed entry changes its priority and schedule but
        leaves the lease in place.

        Args:
            limit: Maximum number of entries to claim

        Returns:
            Claimed entries carrying their new lease, in claim order
        """
        if limit <= 0:
            return []

        with self.session_factory() as session:
            now = self.clock()
            stmt = (
                select(QueueEntry)
                .join(Submission, Submission.id == QueueEntry.submission_id)
                .where(
                    QueueEntry.scheduled_at <= now,
                    QueueEntry.attempts < QueueEntry.max_attempts,
                    unclaimed_at(now),
                    Submission.status.in_(RETRYABLE_STATUSES),
                )
                .order_by(QueueEntry.priority.asc(), QueueEntry.scheduled_at.asc())
                .limit(limit)
                .with_for_update(skip_locked=True, of=QueueEntry)
            )
            candidates = [
                db_entry_to_queued_submission(db_entry)
                for db_entry in session.execute(stmt).scalars().all()
            ]

            lease_until = now + self.claim_lease_ms
            claimed: list[QueuedSubmission] = []
            for candidate in candidates:
                claim = (
                    update(QueueEntry)
                    .where(
                        QueueEntry.submission_id == candidate.submission_id,
                        unclaimed_at(now),  # Optimistic lock
                    )
                    .values(claimed_until=lease_until, updated_at=now)
                    .returning(QueueEntry.id)
                    .execution_options(synchronize_session=False)
                )
                if session.execute(claim).scalar_one_or_none() is not None:
                    claimed.append(candidate.model_copy(update={"claimed_until": lease_until}))

            session.commit()

        if len(claimed) < len(candidates):
            logger.debug(f"Lost {len(candidates) - len(claimed)} entries to concurrent claimants")
        return claimed

    # -------------------------------------------------------------------------
    # Attempt bookkeeping
    # -------------------------------------------------------------------------

    def record_attempt(self, submission_id: str) -> int | None:
        """Durably count one more delivery attempt.

        Returns:
            New attempt count, or None if the entry no longer exists or is
            already at its ceiling
        """
        with self.session_factory() as session:
            stmt = (
                update(QueueEntry)
                .where(
                    QueueEntry.submission_id == submission_id,
                    QueueEntry.attempts < QueueEntry.max_attempts,
                )
                .values(attempts=QueueEntry.attempts + 1, updated_at=self.clock())
                .returning(QueueEntry.attempts)
                .execution_options(synchronize_session=False)
            )
            attempts: int | None = session.execute(stmt).scalar_one_or_none()
            session.commit()
            return attempts

    def reschedule(
        self,
        submission_id: str,
        new_attempts: int,
        new_scheduled_at: int,
        error_text: str | None,
    ) -> bool:
        """Persist the outcome of a failed attempt and release the claim.

        Returns:
            True if the entry was updated, False if it no longer exists
        """
        with self.session_factory() as session:
            stmt = (
                update(QueueEntry)
                .where(QueueEntry.submission_id == submission_id)
                .values(
                    attempts=new_attempts,
                    scheduled_at=new_scheduled_at,
                    last_error=error_text,
                    claimed_until=None,
                    updated_at=self.clock(),
                )
                .returning(QueueEntry.id)
                .execution_options(synchronize_session=False)
            )
            updated_id: int | None = session.execute(stmt).scalar_one_or_none()
            session.commit()

        if updated_id is not None:
            _ = self.broadcaster.publish_event(
                QueueEvent.retry_scheduled,
                submission_id,
                {"attempts": new_attempts, "scheduled_at": new_scheduled_at, "error": error_text},
            )
        return updated_id is not None

    def remove(self, submission_id: str) -> bool:
        """Delete the entry for a submission.

        Returns:
            True if an entry was deleted, False if none existed
        """
        with self.session_factory() as session:
            stmt = (
                delete(QueueEntry)
                .where(QueueEntry.submission_id == submission_id)
                .returning(QueueEntry.id)
                .execution_options(synchronize_session=False)
            )
            deleted_id: int | None = session.execute(stmt).scalar_one_or_none()
            session.commit()
            return deleted_id is not None

    # -------------------------------------------------------------------------
    # Operator queries and overrides
    # -------------------------------------------------------------------------

    def set_priority(self, submission_id: str, priority: int) -> None:
        """Change the priority of a live entry.

        Raises:
            InvalidPriorityError: If priority is outside 1..10
            EntryNotFoundError: If the submission has no queue entry
        """
        _ = validate_priority(priority)

        with self.session_factory() as session:
            stmt = (
                update(QueueEntry)
                .where(QueueEntry.submission_id == submission_id)
                .values(priority=priority, updated_at=self.clock())
                .returning(QueueEntry.id)
                .execution_options(synchronize_session=False)
            )
            updated_id: int | None = session.execute(stmt).scalar_one_or_none()
            if updated_id is None:
                session.rollback()
                raise EntryNotFoundError(submission_id)
            session.commit()

    def get(self, submission_id: str) -> QueuedSubmission | None:
        with self.session_factory() as session:
            stmt = select(QueueEntry).where(QueueEntry.submission_id == submission_id)
            db_entry = session.execute(stmt).scalar_one_or_none()

            if db_entry:
                return db_entry_to_queued_submission(db_entry)
            return None

    def status(self) -> QueueStatus:
        """Aggregate counts over entries whose submission is still retryable.

        Entries whose submission is missing or no longer retryable are
        reported separately as orphaned; prune() removes them.
        """
        now = self.clock()
        live = QueueEntry.attempts < QueueEntry.max_attempts
        idle = live & unclaimed_at(now)

        with self.session_factory() as session:
            stmt = (
                select(
                    func.count(case((idle & (QueueEntry.scheduled_at <= now), 1))),
                    func.count(case((idle & (QueueEntry.scheduled_at > now), 1))),
                    func.count(case((live & (QueueEntry.claimed_until > now), 1))),
                    func.count(case((QueueEntry.attempts >= QueueEntry.max_attempts, 1))),
                    func.count(QueueEntry.id),
                )
                .select_from(QueueEntry)
                .join(Submission, Submission.id == QueueEntry.submission_id)
                .where(Submission.status.in_(RETRYABLE_STATUSES))
            )
            eligible, scheduled, claimed, exhausted, total = session.execute(stmt).one()
            all_entries = session.execute(select(func.count(QueueEntry.id))).scalar_one()

            failed = session.execute(
                select(func.count(Submission.id)).where(
                    Submission.status == SubmissionStatus.failed.value
                )
            ).scalar_one()

        return QueueStatus(
            eligible=eligible or 0,
            scheduled=scheduled or 0,
            claimed=claimed or 0,
            exhausted=exhausted or 0,
            failed=failed or 0,
            orphaned=(all_entries or 0) - (total or 0),
            total=total or 0,
        )

    def list(self, limit: int = 50, offset: int = 0) -> QueueListing:
        """Page through entries in claim order with submission context.

        Args:
            limit: Page size (1..500)
            offset: Number of entries to skip

        Raises:
            ValueError: If limit or offset is out of range
        """
        if limit < 1 or limit > MAX_LIST_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIST_LIMIT}, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")

        with self.session_factory() as session:
            total = session.execute(select(func.count(QueueEntry.id))).scalar_one()

            stmt = (
                select(QueueEntry, Submission)
                .outerjoin(Submission, Submission.id == QueueEntry.submission_id)
                .order_by(
                    QueueEntry.priority.asc(),
                    QueueEntry.scheduled_at.asc(),
                    QueueEntry.id.asc(),
                )
                .limit(limit)
                .offset(offset)
            )
            items = [
                db_entry_to_queue_item(db_entry, submission)
                for db_entry, submission in session.execute(stmt).all()
            ]

        return QueueListing(items=items, total=total)

    def purge(self) -> int:
        """Delete every entry. Destructive: administrative and test use only.

        Returns:
            Number of entries deleted
        """
        with self.session_factory() as session:
            result = session.execute(
                delete(QueueEntry).execution_options(synchronize_session=False)
            )
            session.commit()
            count = result.rowcount or 0

        logger.warning(f"Purged {count} entries from the submission queue")
        return count

    def prune(self) -> int:
        """Delete unclaimed entries whose submission is missing or no longer retryable.

        Such entries are never claimed again; they are left behind when a
        delivered submission's entry could not be removed.

        Returns:
            Number of entries deleted
        """
        retryable = (
            select(Submission.id)
            .where(
                Submission.id == QueueEntry.submission_id,
                Submission.status.in_(RETRYABLE_STATUSES),
            )
            .correlate(QueueEntry)
            .exists()
        )
        with self.session_factory() as session:
            result = session.execute(
                delete(QueueEntry)
                .where(~retryable, unclaimed_at(self.clock()))
                .execution_options(synchronize_session=False)
            )
            session.commit()
            count = result.rowcount or 0

        if count:
            logger.info(f"Pruned {count} orphaned entries from the submission queue")
        return count
