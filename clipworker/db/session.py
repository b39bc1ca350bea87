"""SQLAlchemy engine and session factory helpers."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine for the shared datastore."""

    if not database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        kwargs.setdefault("poolclass", StaticPool)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory whose objects stay readable after commit."""

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables for all registered models.

    The production schema is owned by the datastore; this is only used for
    local development and tests.
    """

    # Import models to ensure metadata is populated before create_all.
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
