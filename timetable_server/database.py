"""Database connection and initialization."""

from sqlmodel import SQLModel, Session, create_engine

from timetable_server.config import settings

# Import all models so SQLModel registers them
import timetable_server.models  # noqa: F401

_is_sqlite = settings.sqlalchemy_url.startswith("sqlite")

engine = create_engine(
    settings.sqlalchemy_url,
    echo=settings.debug,
    connect_args={"check_same_thread": False, "timeout": 15} if _is_sqlite else {},
)


def init_db() -> None:
    """Create all tables and enable WAL mode."""
    SQLModel.metadata.create_all(engine)

    if not _is_sqlite:
        return

    # WAL lets readers proceed while a pairing write is in flight
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()


def execute_rowcount(session: Session, statement) -> int:
    """Run a conditional UPDATE/DELETE inside the session's transaction.

    The affected row count decides which of several racing callers won.
    """
    result = session.connection().execute(statement)
    return result.rowcount


def get_session():
    """FastAPI dependency: yields a database session."""
    with Session(engine) as session:
        yield session
