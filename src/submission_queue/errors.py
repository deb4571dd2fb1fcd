"""Typed errors raised by the submission queue."""


class QueueError(Exception):
    """Base class for submission queue errors."""


class InvalidPriorityError(QueueError, ValueError):
    """Priority outside the accepted 1..10 range."""

    def __init__(self, priority: object):
        self.priority = priority
        super().__init__(f"Priority must be between 1 (highest) and 10 (lowest), got {priority!r}")


class EntryNotFoundError(QueueError, LookupError):
    """No live queue entry exists for the submission."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} not found in queue")


class SubmissionNotFoundError(QueueError, LookupError):
    """The submission record itself does not exist."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} does not exist")


class UnsupportedDialectError(QueueError):
    """The queue database has no atomic upsert the store can use."""

    def __init__(self, dialect: str):
        self.dialect = dialect
        super().__init__(
            f"Database dialect {dialect!r} is not supported; use PostgreSQL or SQLite"
        )
