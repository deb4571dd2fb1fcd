"""Conversions between database rows and queue records."""

from .models import QueueEntry, Submission
from .schemas import QueuedSubmission, QueueItem, SubmissionStatus


def db_entry_to_queued_submission(db_entry: QueueEntry) -> QueuedSubmission:
    """Convert SQLAlchemy QueueEntry to Pydantic QueuedSubmission.

    Returns:
        Pydantic QueuedSubmission with all retry fields
    """
    return QueuedSubmission(
        submission_id=db_entry.submission_id,
        priority=db_entry.priority,
        scheduled_at=db_entry.scheduled_at,
        attempts=db_entry.attempts,
        max_attempts=db_entry.max_attempts,
        backoff_multiplier=db_entry.backoff_multiplier,
        last_error=db_entry.last_error,
        claimed_until=db_entry.claimed_until,
        created_at=db_entry.created_at,
        updated_at=db_entry.updated_at,
    )


def db_entry_to_queue_item(db_entry: QueueEntry, submission: Submission | None) -> QueueItem:
    """Convert a QueueEntry and its (optional) Submission to a QueueItem.

    Args:
        db_entry: Queue entry row
        submission: Joined submission row, None if it no longer exists

    Returns:
        Pydantic QueueItem with submission context
    """
    record = db_entry_to_queued_submission(db_entry)
    if submission is None:
        return QueueItem(**record.model_dump())

    return QueueItem(
        **record.model_dump(),
        status=SubmissionStatus(submission.status),
        destination=submission.destination,
        applicant_name=submission.applicant_name,
    )
