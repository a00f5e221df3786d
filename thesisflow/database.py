"""Engine, session factory and transaction scope."""

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from thesisflow.models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create an engine for the given URL.

    SQLite engines get ``check_same_thread=False`` so FastAPI's worker
    threads can share them; in-memory SQLite also shares one connection so
    every session sees the same database.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    if url.database in (None, "", ":memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    directory = os.path.dirname(os.path.abspath(url.database))
    os.makedirs(directory, exist_ok=True)
    return create_engine(database_url, connect_args={"check_same_thread": False})


def build_session_factory(engine: Engine) -> sessionmaker:
    # Rows returned from an operation are serialized after the transaction closes
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """One transaction: commit on success, roll back on any exception."""
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_schema(engine: Engine) -> None:
    logger.info("Creating database schema")
    Base.metadata.create_all(bind=engine)


__all__ = [
    "build_engine",
    "build_session_factory",
    "session_scope",
    "init_schema",
]
