"""Database session helpers."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


def commit_and_refresh(db: Session, *instances) -> None:
    """Commit the transaction and refresh each given (non-None) instance."""
    db.commit()
    for obj in instances:
        if obj is not None:
            db.refresh(obj)


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    True if the IntegrityError is a unique-constraint violation (Postgres 23505 or SQLite).
    Anything else should be re-raised by the caller rather than treated as a duplicate.
    """
    orig = exc.orig
    if orig is None:
        return False
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "unique constraint" in str(orig).lower()
