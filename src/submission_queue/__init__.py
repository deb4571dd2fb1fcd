"""Submission retry queue: durable, priority-ordered delivery retries."""

# Public API - Service implementations
from .backoff import compute_backoff_delay
from .config import Config
from .delivery import DeliveryAgent
from .dispatcher import Dispatcher
from .errors import (
    EntryNotFoundError,
    InvalidPriorityError,
    QueueError,
    SubmissionNotFoundError,
    UnsupportedDialectError,
)
from .processor import ProcessOutcome, SubmissionProcessor
from .queue_store import QueueStore
from .service import SubmissionQueueService
from .submissions import SQLAlchemySubmissionRepository, SubmissionRepository

# Public API - Pydantic models
from .schemas import (
    EntryState,
    QueuedSubmission,
    QueueItem,
    QueueListing,
    QueueStatus,
    SubmissionStatus,
)

__all__ = [
    # Configuration
    "Config",
    # Services
    "SubmissionQueueService",
    "QueueStore",
    "Dispatcher",
    "SubmissionProcessor",
    "ProcessOutcome",
    "DeliveryAgent",
    "SubmissionRepository",
    "SQLAlchemySubmissionRepository",
    "compute_backoff_delay",
    # Errors
    "QueueError",
    "InvalidPriorityError",
    "EntryNotFoundError",
    "SubmissionNotFoundError",
    "UnsupportedDialectError",
    # Pydantic Models
    "EntryState",
    "QueuedSubmission",
    "QueueItem",
    "QueueListing",
    "QueueStatus",
    "SubmissionStatus",
]
