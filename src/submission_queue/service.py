"""Submission queue service: the surface business logic and operators use.

Wires the queue store, submission repository, processor and dispatcher
together and adds the operator recovery paths (single retry, bulk retry
of every failed submission, purge).

Example:
    engine = create_db_engine()
    init_db(engine)
    session_factory = create_session_factory(engine)

    service = SubmissionQueueService(session_factory, MyDeliveryAgent())
    service.enqueue("submission-123")
    await service.start()
"""

import logging
from collections.abc import Callable, Sequence

from sqlalchemy.orm import Session, sessionmaker

from .config import Config
from .delivery import DeliveryAgent
from .dispatcher import Dispatcher
from .errors import SubmissionNotFoundError
from .mqtt import Broadcaster, QueueEvent
from .processor import SubmissionProcessor
from .queue_store import QueueStore, validate_priority
from .schemas import QueueListing, QueueStatus, SubmissionStatus
from .submissions import SQLAlchemySubmissionRepository, SubmissionRepository

logger = logging.getLogger(__name__)


class SubmissionQueueService:
    """Facade over the submission retry queue."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        delivery_agent: DeliveryAgent | None = None,
        *,
        submissions: SubmissionRepository | None = None,
        broadcaster: Broadcaster | None = None,
        clock: Callable[[], int] | None = None,
        batch_size: int | None = None,
        interval_ms: int | None = None,
        claim_lease_ms: int | None = None,
    ):
        """Build the queue components.

        Args:
            session_factory: SQLAlchemy session factory for the queue database
            delivery_agent: Transmits submissions. Without one the service
                offers the operator operations only and cannot dispatch
            submissions: Submission record access, defaults to the SQLAlchemy one
            broadcaster: Event broadcaster, defaults to the configured one
            clock: Returns the current time in epoch ms (for tests)
            batch_size: Entries claimed per dispatcher pass
            interval_ms: Default time between dispatcher passes
            claim_lease_ms: Visibility timeout for claimed entries
        """
        self.store = QueueStore(
            session_factory,
            clock=clock,
            claim_lease_ms=claim_lease_ms,
            broadcaster=broadcaster,
        )
        self.submissions: SubmissionRepository = submissions or SQLAlchemySubmissionRepository(
            session_factory
        )
        self.processor: SubmissionProcessor | None = None
        self.dispatcher: Dispatcher | None = None
        if delivery_agent is not None:
            self.processor = SubmissionProcessor(self.store, self.submissions, delivery_agent)
            self.dispatcher = Dispatcher(
                self.store,
                self.processor,
                batch_size=batch_size,
                interval_ms=interval_ms,
            )

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(self, submission_id: str, priority: int = Config.DEFAULT_PRIORITY) -> None:
        self.store.enqueue(submission_id, priority)

    def enqueue_bulk(
        self, submission_ids: Sequence[str], priority: int = Config.DEFAULT_PRIORITY
    ) -> int:
        return self.store.enqueue_bulk(submission_ids, priority)

    # -------------------------------------------------------------------------
    # Operator recovery
    # -------------------------------------------------------------------------

    def retry_submission(self, submission_id: str, priority: int = Config.HIGH_PRIORITY) -> None:
        """Manually retry one submission at elevated priority.

        Re-enqueues the submission with a fresh attempt budget, then resets
        it to pending and clears its error. The entry is written first, so a
        store failure leaves the submission untouched.

        Raises:
            InvalidPriorityError: If priority is outside 1..10
            SubmissionNotFoundError: If the submission does not exist
        """
        _ = validate_priority(priority)
        if self.submissions.get_status(submission_id) is None:
            raise SubmissionNotFoundError(submission_id)

        self.store.enqueue(submission_id, priority, reset_attempts=True)
        _ = self.submissions.update_status(
            submission_id, SubmissionStatus.pending, error_message=None
        )
        _ = self.store.broadcaster.publish_event(
            QueueEvent.retry_requested, submission_id, {"priority": priority}
        )
        logger.info(f"Submission {submission_id} queued for retry at priority {priority}")

    def retry_all_failed(self) -> int:
        """Re-enqueue every failed submission at default priority and reset it.

        Entries are written before the submissions are reset to pending. A
        failed submission with an entry is still claimable, so a failure
        between the two steps loses nothing and a rerun is harmless.

        Returns:
            Number of submissions queued for retry
        """
        failed_ids = self.submissions.find_failed_ids()
        if not failed_ids:
            return 0

        count = self.store.enqueue_bulk(failed_ids, Config.DEFAULT_PRIORITY, reset_attempts=True)
        _ = self.submissions.reset_to_pending(failed_ids)
        logger.info(f"{count} failed submissions queued for retry")
        return count

    def set_priority(self, submission_id: str, priority: int) -> None:
        self.store.set_priority(submission_id, priority)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def status(self) -> QueueStatus:
        return self.store.status()

    def list(self, limit: int = 50, offset: int = 0) -> QueueListing:
        return self.store.list(limit=limit, offset=offset)

    def purge(self) -> int:
        return self.store.purge()

    def prune(self) -> int:
        return self.store.prune()

    # -------------------------------------------------------------------------
    # Dispatcher control
    # -------------------------------------------------------------------------

    async def start(self, interval_ms: int | None = None) -> bool:
        return await self._require_dispatcher().start(interval_ms)

    def stop(self) -> bool:
        if self.dispatcher is None:
            return False
        return self.dispatcher.stop()

    async def process_once(self) -> dict[str, int]:
        """Run a single dispatcher pass."""
        return await self._require_dispatcher().tick()

    @property
    def is_running(self) -> bool:
        return self.dispatcher is not None and self.dispatcher.is_running

    def _require_dispatcher(self) -> Dispatcher:
        if self.dispatcher is None:
            raise RuntimeError("SubmissionQueueService was built without a delivery agent")
        return self.dispatcher
