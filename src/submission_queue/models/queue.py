"""Queue entry model for priority-based submission retries."""

from sqlalchemy import BigInteger, CheckConstraint, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from ..schemas import EntryState, derive_entry_state
from .base import Base


class QueueEntry(Base):
    """Durable retry state for one submission's delivery.

    At most one entry exists per submission. Its lifecycle state is derived
    from (attempts, max_attempts, scheduled_at, claimed_until) and is never
    stored. scheduled_at is the backoff schedule and claimed_until the claim
    lease. Re-enqueueing never touches claimed_until.

    Timestamps are epoch milliseconds.
    """

    __tablename__ = "submission_queue"  # pyright: ignore[reportUnannotatedClassAttribute]
    __table_args__ = (  # pyright: ignore[reportUnannotatedClassAttribute]
        CheckConstraint("priority >= 1 AND priority <= 10", name="ck_submission_queue_priority"),
        Index("idx_submission_queue_priority_scheduled", "priority", "scheduled_at"),
        Index("idx_submission_queue_scheduled_at", "scheduled_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    scheduled_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    backoff_multiplier: Mapped[float] = mapped_column(Float, default=2.0, nullable=False)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Visibility timeout set by a claim; NULL when no worker holds the entry
    claimed_until: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def state_at(self, now_ms: int) -> EntryState:
        return derive_entry_state(
            self.attempts, self.max_attempts, self.scheduled_at, now_ms, self.claimed_until
        )

    @override
    def __repr__(self):
        return (
            f"<QueueEntry(submission_id={self.submission_id}, priority={self.priority}, "
            f"attempts={self.attempts}/{self.max_attempts})>"
        )
