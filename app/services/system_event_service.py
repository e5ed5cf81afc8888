"""
Durable audit log for the qualification engine.

Turn outcomes that an operator needs to see after the fact (generation and
delivery failures, duplicates, stripped replies, missing tenant credentials)
are written to the system_events table and mirrored to the application log.
Everything goes through record() (or info/warn/error) so payloads keep one shape:

    {...caller fields, "error": {"type", "message"}, "correlation_id"}
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, desc, select
from sqlalchemy.orm import Session

from app.db.models import SystemEvent
from app.middleware.correlation_id import get_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
MAX_ERROR_MESSAGE_CHARS = 500

LEVEL_INFO = "INFO"
LEVEL_WARN = "WARN"
LEVEL_ERROR = "ERROR"

_LOG_LEVELS = {
    LEVEL_INFO: logging.INFO,
    LEVEL_WARN: logging.WARNING,
    LEVEL_ERROR: logging.ERROR,
}


def _build_payload(
    payload: dict | None,
    exc: BaseException | None,
    correlation_id: str | None,
) -> dict | None:
    data: dict = dict(payload) if payload else {}
    if exc is not None:
        data["error"] = {"type": type(exc).__name__, "message": str(exc)[:MAX_ERROR_MESSAGE_CHARS]}
    # Request-scoped id from the middleware when the caller has none
    cid = correlation_id if correlation_id is not None else get_correlation_id()
    if cid is not None:
        data["correlation_id"] = cid
    return data or None


def record(
    db: Session,
    level: str,
    event_type: str,
    conversation_id: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
    correlation_id: str | None = None,
) -> SystemEvent:
    """
    Write one SystemEvent and commit it.

    Args:
        db: Database session
        level: INFO, WARN or ERROR
        event_type: One of app.constants.event_types
        conversation_id: Conversation the event belongs to, if any
        payload: Extra fields (copied, never mutated)
        exc: Exception whose type and message are added under "error"
        correlation_id: Overrides the request correlation id

    Returns:
        The persisted SystemEvent
    """
    level = level.upper()
    event = SystemEvent(
        level=level,
        event_type=event_type,
        conversation_id=conversation_id,
        payload=_build_payload(payload, exc, correlation_id),
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    logger.log(
        _LOG_LEVELS.get(level, logging.INFO),
        f"system_event {event_type} conversation={conversation_id}",
        extra={"event_type": event_type, "conversation_id": conversation_id},
    )
    return event


def info(db: Session, event_type: str, conversation_id: str | None = None, **kwargs) -> SystemEvent:
    return record(db, LEVEL_INFO, event_type, conversation_id, **kwargs)


def warn(db: Session, event_type: str, conversation_id: str | None = None, **kwargs) -> SystemEvent:
    return record(db, LEVEL_WARN, event_type, conversation_id, **kwargs)


def error(db: Session, event_type: str, conversation_id: str | None = None, **kwargs) -> SystemEvent:
    return record(db, LEVEL_ERROR, event_type, conversation_id, **kwargs)


def list_events(
    db: Session,
    limit: int = 100,
    conversation_id: str | None = None,
) -> list[SystemEvent]:
    """Most recent events first, optionally for one conversation."""
    stmt = select(SystemEvent).order_by(desc(SystemEvent.created_at), desc(SystemEvent.id))
    if conversation_id is not None:
        stmt = stmt.where(SystemEvent.conversation_id == conversation_id)
    return list(db.execute(stmt.limit(limit)).scalars().all())


def cleanup_old_events(
    db: Session,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    cutoff: datetime | None = None,
) -> int:
    """
    Delete SystemEvents older than retention_days (or before cutoff if provided).

    Returns:
        Number of rows deleted
    """
    if cutoff is None:
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=UTC)
    result = db.execute(delete(SystemEvent).where(SystemEvent.created_at < cutoff))
    db.commit()
    deleted = result.rowcount or 0
    logger.info(f"SystemEvent retention: deleted {deleted} events older than {cutoff.isoformat()}")
    return deleted
