"""
Database configuration and session management for the drug orders service.

This module sets up the database connection using SQLAlchemy, provides a
session factory for database operations and the ``atomic`` helper that wraps
one unit of work in a single transaction.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import config
from .errors import OrderEngineError, StorageError

logger = logging.getLogger(__name__)


def make_engine(url: str):
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite needs ``check_same_thread`` disabled because FastAPI runs sync
    endpoints in a thread pool, and a busy timeout so concurrent writers wait
    for the write lock instead of failing immediately.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(url, pool_pre_ping=True)


# Create SQLAlchemy engine
engine = make_engine(config.DATABASE_URL)

# Create SessionLocal class for database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction: commit on success, roll back on any error.

    Domain errors are re-raised unchanged. Database failures are wrapped in
    StorageError so callers never see driver-specific exceptions.

    Args:
        db: Database session

    Raises:
        StorageError: If the database rejected the transaction
    """
    try:
        yield db
        db.commit()
    except OrderEngineError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}")
        raise StorageError("Database transaction failed") from e
    except Exception:
        db.rollback()
        raise
