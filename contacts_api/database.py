"""Database configuration and session management.

This module initializes the SQLAlchemy engine, session factory,
and declarative base, and provides a database session dependency
for FastAPI routes together with the scoped transaction helper used
by every multi-step write.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .core import get_settings


settings = get_settings()


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=(
        {"check_same_thread": False}
        if settings.DATABASE_URL.startswith("sqlite")
        else {}
    ),
    hide_parameters=True,
    future=True,
)
"""SQLAlchemy engine bound to the configured database URL."""


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)
"""Factory for database sessions."""


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""


def get_db():
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency.
    It yields a database session and ensures it is
    properly closed after the request is completed.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block of work as a single unit against ``db``.

    The session is committed when the block exits normally. Any exception
    raised inside the block, including an ``ApiError`` raised after a
    failed external call such as email dispatch, rolls everything back
    and is re-raised to the caller.

    Example::

        with transaction(db):
            db.add(user)
            db.flush()
            if not await mailer.send_activation(user.email, user.user_id):
                raise ApiError(500, ["Send email failed"], "Register Failed")

    Args:
        db (Session): Session whose pending work forms the transaction.

    Yields:
        Session: The same session, for convenience.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
