"""Unit-of-work helper shared by mutation services."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, DomainError, TransactionError
from app.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def unit_of_work(
    db: Session,
    *,
    action: str,
    conflict_detail: str = "Change conflicts with existing data.",
) -> Iterator[Session]:
    """Commit every write made in the block, or roll all of them back.

    Domain errors raised inside the block propagate unchanged after rollback. Store
    integrity violations become ``ConflictError``; any other store failure becomes
    ``TransactionError``.
    """

    try:
        yield db
        db.commit()
    except DomainError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("transaction_conflict", action=action, error=str(exc.orig))
        raise ConflictError(conflict_detail) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("transaction_failed", action=action, exc_info=True)
        raise TransactionError() from exc
    logger.info("transaction_committed", action=action)
