"""Database session management for the notification queue store."""

from collections.abc import Generator

from sqlmodel import Session, SQLModel, create_engine

from stream_notifier.config import get_settings

settings = get_settings()

# Convert postgresql:// to postgresql+psycopg:// for psycopg v3 driver
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    connect_args = {"sslmode": settings.DATABASE_SSLMODE}

engine = create_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session with automatic cleanup."""
    with Session(engine) as session:
        yield session


def init_db() -> None:
    """Create queue tables that do not exist yet.

    Production schemas are managed by Alembic; this is for local runs.
    """
    # Register table metadata
    from stream_notifier import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
