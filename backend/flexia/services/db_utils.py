"""
Transaction helpers shared by the services.
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flexia.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one transaction.

    Commits when the block exits normally. Any exception, whether an
    ``AppError`` raised by a business rule or a database failure, rolls the
    whole block back and is re-raised, so callers never observe a partially
    applied multi-row change.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back after database error: {e}")
        raise
    except Exception:
        db.rollback()
        raise
