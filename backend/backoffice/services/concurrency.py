# Overview: Transaction boundary and row-locking helpers shared by every mutating service.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackofficeError, StoreUnavailableError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, atomic() takes the database write lock up front instead.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run one business operation as a single database transaction.

    - SQLite: BEGIN IMMEDIATE so concurrent writers are serialized and the
      loser reads the winner's committed stock values.
    - Commit on success, full rollback on any exception.
    - SQLAlchemy failures surface as StoreUnavailableError (never retried).

    Must not be nested; internal helpers run inside the caller's block.
    """
    session = db.session
    try:
        if db.engine.dialect.name == "sqlite":
            session.execute(text("BEGIN IMMEDIATE"))
        yield session
        session.commit()
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Transaction rolled back after store failure")
        raise StoreUnavailableError(
            "The data store could not complete the operation",
            {"reason": exc.__class__.__name__},
        ) from exc
    except Exception:
        session.rollback()
        raise
