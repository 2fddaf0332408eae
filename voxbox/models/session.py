"""Helpers for configuring SQLAlchemy engine and session factories."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from voxbox.persistence.errors import ConfigurationError

from . import Base


def _as_sqlalchemy_url(database_url: str) -> str:
    """Ensure PostgreSQL URLs use the ``psycopg`` driver."""

    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        database_url: Optional database URL. When ``None`` the ``DATABASE_URL``
            environment variable is used.
        **kwargs: Additional keyword arguments forwarded to
            :func:`sqlalchemy.create_engine`.

    Raises:
        ConfigurationError: when no database URL is configured.
    """

    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError("DATABASE_URL is not configured.")

    kwargs.setdefault("echo", os.getenv("DB_ECHO", "false").lower() == "true")
    engine = create_engine(_as_sqlalchemy_url(url), **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(
    database_url: str | None = None, *, engine: Engine | None = None, **kwargs: object
) -> sessionmaker[Session]:
    """Return a session factory bound to ``engine`` or the configured database."""

    if engine is None:
        engine = get_engine(database_url=database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_schema(engine: Engine) -> None:
    """Create every table known to :class:`Base` that does not exist yet."""

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(database_url: str | None = None, **kwargs: object) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    factory = get_sessionmaker(database_url=database_url, **kwargs)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["Base", "get_engine", "get_sessionmaker", "init_schema", "session_scope"]
