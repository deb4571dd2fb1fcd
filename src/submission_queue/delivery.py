"""Delivery agent contract."""

from abc import ABC, abstractmethod


class DeliveryAgent(ABC):
    """Base class for whatever actually transmits a submission.

    Implementations own every transport detail (API call, email, manual
    process flagging) and are solely responsible for moving the submission
    past `pending` when delivery succeeds. The queue treats any raised
    exception as a failed attempt, whatever its cause, and enforces no
    timeout of its own.
    """

    @abstractmethod
    async def attempt_delivery(self, submission_id: str) -> None:
        """
        Deliver one submission.

        Args:
            submission_id: Submission to deliver

        Raises:
            Exception: Any error means the attempt failed and may be retried
        """
        pass
