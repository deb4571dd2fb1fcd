"""Shared test fixtures for submission_queue tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from typing_extensions import override

from submission_queue import (
    DeliveryAgent,
    QueueStore,
    SQLAlchemySubmissionRepository,
    SubmissionQueueService,
    SubmissionStatus,
)
from submission_queue.models import Base, Submission
from submission_queue.mqtt import NoOpBroadcaster

if TYPE_CHECKING:
    from collections.abc import Generator

    from sqlalchemy.engine import Engine

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = START_MS):
        self.now: int = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeDeliveryAgent(DeliveryAgent):
    """Delivery agent that fails on demand and marks successes submitted.

    Failures are queued per submission with fail(); each attempt pops one.
    An optional async hook runs at the start of every attempt.
    """

    def __init__(self, submissions: SQLAlchemySubmissionRepository):
        self.submissions = submissions
        self.failures: dict[str, list[Exception]] = {}
        self.calls: list[str] = []
        self.on_attempt: Callable[[str], Awaitable[None]] | None = None

    def fail(self, submission_id: str, *errors: Exception) -> None:
        self.failures.setdefault(submission_id, []).extend(errors)

    @override
    async def attempt_delivery(self, submission_id: str) -> None:
        self.calls.append(submission_id)
        if self.on_attempt is not None:
            await self.on_attempt(submission_id)

        pending = self.failures.get(submission_id)
        if pending:
            raise pending.pop(0)

        _ = self.submissions.update_status(submission_id, SubmissionStatus.submitted)


@pytest.fixture
def in_memory_engine() -> Generator[Engine, None, None]:
    """Create SQLite in-memory engine with all tables created.

    Yields:
        Engine: SQLAlchemy engine with in-memory SQLite database
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(in_memory_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=in_memory_engine, expire_on_commit=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> NoOpBroadcaster:
    return NoOpBroadcaster()


@pytest.fixture
def store(
    session_factory: sessionmaker[Session], clock: FakeClock, broadcaster: NoOpBroadcaster
) -> QueueStore:
    return QueueStore(session_factory, clock=clock, broadcaster=broadcaster)


@pytest.fixture
def submissions(session_factory: sessionmaker[Session]) -> SQLAlchemySubmissionRepository:
    return SQLAlchemySubmissionRepository(session_factory)


@pytest.fixture
def delivery_agent(submissions: SQLAlchemySubmissionRepository) -> FakeDeliveryAgent:
    return FakeDeliveryAgent(submissions)


@pytest.fixture
def service(
    session_factory: sessionmaker[Session],
    delivery_agent: FakeDeliveryAgent,
    submissions: SQLAlchemySubmissionRepository,
    clock: FakeClock,
    broadcaster: NoOpBroadcaster,
) -> SubmissionQueueService:
    return SubmissionQueueService(
        session_factory,
        delivery_agent,
        submissions=submissions,
        broadcaster=broadcaster,
        clock=clock,
    )


@pytest.fixture
def add_submission(
    session_factory: sessionmaker[Session],
) -> Callable[..., str]:
    """Insert a submission row and return its id."""

    def _add(
        submission_id: str,
        status: SubmissionStatus = SubmissionStatus.pending,
        *,
        destination: str | None = "State University",
        applicant_name: str | None = "Ada Lovelace",
        error_message: str | None = None,
        retry_count: int = 0,
    ) -> str:
        with session_factory() as session:
            session.add(
                Submission(
                    id=submission_id,
                    status=status.value,
                    destination=destination,
                    applicant_name=applicant_name,
                    error_message=error_message,
                    retry_count=retry_count,
                )
            )
            session.commit()
        return submission_id

    return _add


@pytest.fixture
def get_submission(
    session_factory: sessionmaker[Session],
) -> Callable[[str], Submission | None]:
    def _get(submission_id: str) -> Submission | None:
        with session_factory() as session:
            return session.get(Submission, submission_id)

    return _get
