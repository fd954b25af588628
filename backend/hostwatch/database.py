"""
database.py - Database Configuration

Builds the SQLAlchemy engine and session factory the snapshot store
works with. The URL comes from settings (HOSTWATCH_DATABASE_URL);
anything SQLAlchemy understands works, SQLite being the default.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Parent class for every table
Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Creates the engine for the given URL.

    SQLite needs check_same_thread=False because the scheduler and the
    API both use the connection. An in-memory SQLite database only
    exists for a single connection, so it gets a StaticPool.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Creates any missing tables."""
    # models must be imported so their tables are registered on Base
    from hostwatch import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
