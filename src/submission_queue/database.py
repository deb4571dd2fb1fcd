"""Engine and session factory helpers."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import Config
from .models import Base


def create_db_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    """Create an engine for the queue database.

    SQLite connections are opened with check_same_thread disabled so the
    dispatcher and operator calls may share one engine.

    Args:
        database_url: SQLAlchemy URL, defaults to Config.DATABASE_URL
        echo: Log SQL statements, defaults to Config.DATABASE_ECHO
    """
    url = database_url or Config.DATABASE_URL
    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        url,
        echo=Config.DATABASE_ECHO if echo is None else echo,
        connect_args=connect_args,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create the queue and submission tables if they don't exist."""
    Base.metadata.create_all(engine)
