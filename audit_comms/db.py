# audit_comms/db.py
"""
Database engine and session management.

The engine is built on first use so importing the package never needs
a database driver. Evidence sources only ever read through these sessions.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .settings import settings

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Get (or create) the SQLAlchemy engine for settings.database_url."""
    global _engine
    if _engine is None:
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,  # Check connection health
        )
    return _engine


def get_session_factory() -> sessionmaker:
    """Session factory bound to the package engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
        )
    return _session_factory


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for read-only sessions.

    Usage:
        with session_scope() as session:
            session.execute(...)

    Nothing is committed: the session is rolled back and closed on exit.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def check_connection(factory: Optional[sessionmaker] = None) -> bool:
    """
    Check database connection.

    Returns:
        True if connection successful
    """
    try:
        with session_scope(factory) as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
