"""Database connection and session management for the key-value store.

Transaction Guarantees:
- Each store operation gets its own session
- On any exception, the transaction is rolled back
- Sessions are always closed afterwards
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings

logger = logging.getLogger(__name__)


def create_storage_engine(
    database_url: str | None = None,
    echo: bool | None = None,
) -> Engine:
    """Create a synchronous engine for the persistence table."""
    settings = get_settings()
    url = database_url or settings.database_url
    kwargs: dict = {
        "echo": settings.database_echo if echo is None else echo,
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        # sqlite connections are shared with the poller task and the request threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    logger.info(f"Storage database URL (masked): {url[:30]}...")
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        engine,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, rollback on any error."""
    session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error, transaction rolled back: {e}")
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_storage(engine: Engine) -> None:
    """Initialize storage (create tables if needed)."""
    from ..models import Base

    # In production, use migrations instead
    Base.metadata.create_all(engine)


def close_storage(engine: Engine) -> None:
    """Close database connections."""
    engine.dispose()
