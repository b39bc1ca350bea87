"""Database session and metadata helpers."""

from .session import Base, build_engine, build_session_factory, init_db

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "init_db",
]
