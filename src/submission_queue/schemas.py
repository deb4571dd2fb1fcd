"""
Pydantic schemas for queue entries, listings and status reports.
Returned to callers of the queue store and the operator surface.
"""

from enum import Enum

from pydantic import BaseModel, Field

from .config import Config


class SubmissionStatus(str, Enum):
    """Business status of the external submission record."""

    pending = "pending"
    submitted = "submitted"
    confirmed = "confirmed"
    failed = "failed"


# Submissions in these states may still be claimed for delivery
RETRYABLE_STATUSES: tuple[str, ...] = (SubmissionStatus.pending.value, SubmissionStatus.failed.value)


class EntryState(str, Enum):
    """Effective lifecycle state of a live queue entry (derived, never stored)."""

    scheduled = "scheduled"
    eligible = "eligible"
    claimed = "claimed"
    exhausted = "exhausted"


def derive_entry_state(
    attempts: int,
    max_attempts: int,
    scheduled_at: int,
    now_ms: int,
    claimed_until: int | None = None,
) -> EntryState:
    """Compute an entry's state from its retry fields.

    Args:
        attempts: Attempts used so far
        max_attempts: Attempt ceiling
        scheduled_at: Earliest eligible time (epoch ms)
        now_ms: Current time (epoch ms)
        claimed_until: End of the current claim lease (epoch ms), if any

    Returns:
        The derived EntryState
    """
    if attempts >= max_attempts:
        return EntryState.exhausted
    if claimed_until is not None and claimed_until > now_ms:
        return EntryState.claimed
    if scheduled_at > now_ms:
        return EntryState.scheduled
    return EntryState.eligible


class QueuedSubmission(BaseModel):
    """Snapshot of one queue entry."""

    submission_id: str
    priority: int = Field(..., ge=Config.MIN_PRIORITY, le=Config.MAX_PRIORITY)
    scheduled_at: int = Field(..., description="Earliest eligible time (epoch ms)")
    attempts: int = Field(0, ge=0)
    max_attempts: int = Field(Config.QUEUE_MAX_ATTEMPTS, ge=1)
    backoff_multiplier: float = Field(Config.QUEUE_BACKOFF_MULTIPLIER, ge=1.0)
    last_error: str | None = None
    claimed_until: int | None = Field(None, description="Claim lease expiry (epoch ms)")
    created_at: int | None = None
    updated_at: int | None = None

    def state_at(self, now_ms: int) -> EntryState:
        return derive_entry_state(
            self.attempts, self.max_attempts, self.scheduled_at, now_ms, self.claimed_until
        )


class QueueItem(QueuedSubmission):
    """Queue entry with minimal submission context for operator tooling."""

    status: SubmissionStatus | None = None
    destination: str | None = None
    applicant_name: str | None = None


class QueueListing(BaseModel):
    """One page of queue items."""

    items: list[QueueItem] = Field(default_factory=list)
    total: int = 0


class QueueStatus(BaseModel):
    """Aggregate queue counts."""

    eligible: int = Field(0, description="Due now, unclaimed and under the attempt ceiling")
    scheduled: int = Field(0, description="Waiting for backoff")
    claimed: int = Field(0, description="Held by a worker under a claim lease")
    exhausted: int = Field(0, description="Live entries at the attempt ceiling")
    failed: int = Field(0, description="Submissions permanently failed")
    orphaned: int = Field(0, description="Entries whose submission is gone or no longer retryable")
    total: int = 0
