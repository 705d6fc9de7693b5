# backend/core/database_utils.py

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .database import SessionLocal
from .exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[Session, None]:
    """
    Async context manager for database sessions.
    Use this for background tasks and non-request contexts.

    Example:
        async with get_db_context() as db:
            # Use db session
            pass
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_expected_version(record, expected_version: Optional[int]):
    """Reject a write built from a version the caller no longer holds."""
    if expected_version is not None and record.version != expected_version:
        raise ConcurrencyConflictError(
            f"{type(record).__name__} {record.id} is at version {record.version}, "
            f"not {expected_version}. Refresh and try again.",
            current_version=record.version,
        )


def commit_versioned(db: Session, description: str):
    """
    Commit a unit of work on versioned rows.

    A concurrent writer that committed first makes the UPDATE match no row;
    the whole transaction is rolled back and reported as a conflict.
    """
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.info(f"Optimistic write rejected for {description}: {e}")
        raise ConcurrencyConflictError(
            f"{description} was modified by another user. Refresh and try again."
        ) from e
