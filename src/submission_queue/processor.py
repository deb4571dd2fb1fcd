"""Per-entry delivery attempts and failure handling."""

import logging
from enum import Enum

from .backoff import compute_backoff_delay
from .config import Config
from .delivery import DeliveryAgent
from .mqtt import QueueEvent
from .queue_store import QueueStore
from .schemas import QueuedSubmission, SubmissionStatus
from .submissions import SubmissionRepository

logger = logging.getLogger(__name__)


class ProcessOutcome(str, Enum):
    delivered = "delivered"
    rescheduled = "rescheduled"
    exhausted = "exhausted"
    skipped = "skipped"


def exhausted_message(attempts: int, error: str) -> str:
    return f"Retries exhausted after {attempts} attempts. Last error: {error}"


class SubmissionProcessor:
    """Drives one claimed entry through a delivery attempt.

    The attempt counter is persisted before the delivery agent runs, so a
    worker that crashes mid-delivery still uses up the attempt.
    """

    def __init__(
        self,
        store: QueueStore,
        submissions: SubmissionRepository,
        delivery_agent: DeliveryAgent,
        *,
        base_delay_ms: int = Config.QUEUE_BASE_BACKOFF_MS,
        max_delay_ms: int = Config.QUEUE_MAX_BACKOFF_MS,
    ):
        self.store = store
        self.submissions = submissions
        self.delivery_agent = delivery_agent
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def process(self, entry: QueuedSubmission) -> ProcessOutcome:
        """Attempt delivery of one claimed entry.

        Args:
            entry: Entry returned by QueueStore.claim_batch()

        Returns:
            What happened to the entry
        """
        attempts = self.store.record_attempt(entry.submission_id)
        if attempts is None:
            logger.warning(f"Submission {entry.submission_id} left the queue before its attempt")
            return ProcessOutcome.skipped

        logger.info(
            f"Processing submission {entry.submission_id} "
            f"(attempt {attempts}/{entry.max_attempts})"
        )

        try:
            await self.delivery_agent.attempt_delivery(entry.submission_id)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"Failed to deliver submission {entry.submission_id}: {error}")
            return self.handle_failure(entry, attempts, error)

        try:
            _ = self.store.remove(entry.submission_id)
        except Exception:
            # Orphaned under a delivered submission; prune() clears it once the lease expires
            logger.exception(
                f"Delivered submission {entry.submission_id} but could not remove its queue entry"
            )
        _ = self.store.broadcaster.publish_event(
            QueueEvent.delivered, entry.submission_id, {"attempts": attempts}
        )
        logger.info(f"Successfully delivered submission {entry.submission_id}")
        return ProcessOutcome.delivered

    def handle_failure(self, entry: QueuedSubmission, attempts: int, error: str) -> ProcessOutcome:
        """Reschedule a failed entry with backoff, or escalate it as exhausted.

        Args:
            entry: The entry whose attempt failed
            attempts: Attempt count after this attempt was recorded
            error: Failure detail

        Returns:
            ProcessOutcome.rescheduled or ProcessOutcome.exhausted
        """
        if attempts >= entry.max_attempts:
            # Mark the submission first: if we crash before removing the
            # entry it sits at its ceiling and is never claimed again.
            _ = self.submissions.update_status(
                entry.submission_id,
                SubmissionStatus.failed,
                error_message=exhausted_message(attempts, error),
            )
            _ = self.store.remove(entry.submission_id)
            _ = self.store.broadcaster.publish_event(
                QueueEvent.exhausted, entry.submission_id, {"attempts": attempts, "error": error}
            )
            logger.error(
                f"Submission {entry.submission_id} permanently failed after {attempts} attempts"
            )
            return ProcessOutcome.exhausted

        delay = compute_backoff_delay(
            attempts,
            entry.backoff_multiplier,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )
        _ = self.store.reschedule(entry.submission_id, attempts, self.store.clock() + delay, error)
        logger.info(
            f"Submission {entry.submission_id} scheduled for retry in {round(delay / 1000)} seconds"
        )
        return ProcessOutcome.rescheduled
