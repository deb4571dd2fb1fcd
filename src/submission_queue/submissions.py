"""Submission record access used by the queue.

The queue only needs a narrow view of the business record: whether a
submission exists, its status, and the ability to mark it failed or reset
it for retry. SubmissionRepository captures that contract;
SQLAlchemySubmissionRepository implements it over the `submissions` table.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker
from typing_extensions import override

from .models import Submission
from .schemas import SubmissionStatus

logger = logging.getLogger(__name__)

# Sentinel distinguishing "leave error_message alone" from "clear it"
_UNSET = object()


class SubmissionRepository(ABC):
    """Contract for the external submission record."""

    @abstractmethod
    def get_status(self, submission_id: str) -> SubmissionStatus | None:
        """Return the submission's status, or None if it does not exist."""

    @abstractmethod
    def update_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        *,
        error_message: str | None | object = _UNSET,
    ) -> bool:
        """Set the submission's status and optionally its error text.

        Args:
            submission_id: Submission to update
            status: New status
            error_message: New error text; None clears it, omitted keeps it

        Returns:
            True if the submission exists and was updated
        """

    @abstractmethod
    def find_failed_ids(self) -> list[str]:
        """Ids of every permanently failed submission."""

    @abstractmethod
    def reset_to_pending(self, submission_ids: Sequence[str]) -> int:
        """Reset submissions to pending, clearing error text and retry count.

        Returns:
            Number of submissions reset
        """


class SQLAlchemySubmissionRepository(SubmissionRepository):
    """SubmissionRepository over the `submissions` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory: sessionmaker[Session] = session_factory

    @override
    def get_status(self, submission_id: str) -> SubmissionStatus | None:
        with self.session_factory() as session:
            stmt = select(Submission.status).where(Submission.id == submission_id)
            status = session.execute(stmt).scalar_one_or_none()
            return SubmissionStatus(status) if status is not None else None

    @override
    def update_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        *,
        error_message: str | None | object = _UNSET,
    ) -> bool:
        values: dict[str, object] = {
            "status": status.value,
            "updated_at": int(time.time() * 1000),
        }
        if error_message is not _UNSET:
            values["error_message"] = error_message

        with self.session_factory() as session:
            stmt = (
                update(Submission)
                .where(Submission.id == submission_id)
                .values(**values)
                .returning(Submission.id)
                .execution_options(synchronize_session=False)
            )
            updated_id: str | None = session.execute(stmt).scalar_one_or_none()
            session.commit()

        if updated_id is None:
            logger.warning(f"Cannot set status {status.value}: submission {submission_id} not found")
        return updated_id is not None

    @override
    def find_failed_ids(self) -> list[str]:
        with self.session_factory() as session:
            stmt = (
                select(Submission.id)
                .where(Submission.status == SubmissionStatus.failed.value)
                .order_by(Submission.created_at.asc())
            )
            return list(session.execute(stmt).scalars().all())

    @override
    def reset_to_pending(self, submission_ids: Sequence[str]) -> int:
        if not submission_ids:
            return 0

        with self.session_factory() as session:
            result = session.execute(
                update(Submission)
                .where(Submission.id.in_(list(submission_ids)))
                .values(
                    status=SubmissionStatus.pending.value,
                    error_message=None,
                    retry_count=0,
                    updated_at=int(time.time() * 1000),
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0
