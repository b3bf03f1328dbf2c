"""Database engine and session management.

Creates the SQLModel engine from configuration and provides a session
generator suitable for FastAPI dependency injection.
"""

from collections.abc import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from docscan.storage import models  # noqa: F401  (registers tables)
from docscan.utils.config import DatabaseConfig
from docscan.utils.logger import get_logger

logger = get_logger(__name__)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured database URL.

    In-memory SQLite URLs share one connection so every session sees
    the same database.

    Args:
        config: Database configuration.

    Returns:
        SQLAlchemy engine.
    """
    kwargs: dict = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if config.url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    logger.debug("Creating database engine for %s", config.url)
    return create_engine(config.url, **kwargs)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ready")


def iter_session(engine: Engine) -> Iterator[Session]:
    """Yield a session bound to ``engine`` and close it afterwards."""
    with Session(engine) as session:
        yield session
