"""Submission model: the business record a queue entry delivers."""

import time

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from .base import Base


class Submission(Base):
    """Minimal submission record.

    Owned by business logic, not by the queue. The queue reads `status`
    to decide whether an entry is still retryable and writes it only to
    mark exhaustion or to reset failed submissions on operator request.
    """

    __tablename__ = "submissions"  # pyright: ignore[reportUnannotatedClassAttribute]

    id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending", index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Display context for operator listings
    destination: Mapped[str | None] = mapped_column(String, nullable=True)
    applicant_name: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=lambda: int(time.time() * 1000)
    )
    updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    @override
    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, status={self.status})>"
