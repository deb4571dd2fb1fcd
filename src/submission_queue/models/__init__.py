"""Database models for the submission queue."""

from .base import Base
from .queue import QueueEntry
from .submission import Submission

__all__ = ["Base", "QueueEntry", "Submission"]
