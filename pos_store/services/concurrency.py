# Overview: Unit-of-work and locking helpers shared by the store services.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import DuplicateKeyError, StorageFailure
from ..extensions import db

# "UNIQUE constraint failed: products.sku" -> (field, entity)
UNIQUE_COLUMNS = {
    "products.sku": ("sku", "product"),
    "categories.name": ("name", "category"),
}


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write paths.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def duplicate_key_from_integrity(exc: IntegrityError) -> DuplicateKeyError | None:
    """Translate a unique-index violation into a field-level DuplicateKeyError."""
    message = str(getattr(exc, "orig", exc))
    for column, (field, entity) in UNIQUE_COLUMNS.items():
        if column in message:
            return DuplicateKeyError(field, entity=entity)
    return None


@contextmanager
def unit_of_work():
    """
    Run a block of reads and writes as one all-or-nothing database transaction.

    Commits when the block exits normally. Any exception rolls back every
    write made in the block; SQLAlchemy errors are re-raised as
    DuplicateKeyError (unique violations) or StorageFailure.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        duplicate = duplicate_key_from_integrity(exc)
        if duplicate is not None:
            raise duplicate from exc
        raise StorageFailure("Integrity check failed", details={"error": str(exc.orig)}) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.exception("Unit of work failed; all writes rolled back")
        raise StorageFailure("Storage operation failed", details={"error": str(exc)}) from exc
    except BaseException:
        session.rollback()
        raise
