import logging

from fastapi import APIRouter, Depends, HTTPException, Security
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from app.api.auth import get_admin_auth
from app.api.dependencies import get_conversation_or_404
from app.db.deps import get_db
from app.db.models import Conversation
from app.services import system_event_service
from app.services.lead_sheet import build_lead_record, format_lead_sheet
from app.services.qualification.classifier import LeadCategory
from app.utils.datetime_utils import iso_or_none

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/conversations")
def list_conversations(
    category: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    List qualified leads, most recently active first.
    Query params: category (HOT, WARM, COLD), limit (default 50, max 500).
    """
    wanted = None
    if category:
        try:
            wanted = LeadCategory(category.upper())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown category: {category}")

    limit = max(0, min(limit, 500))
    stmt = select(Conversation).order_by(desc(Conversation.updated_at))
    if wanted is None:
        stmt = stmt.limit(limit)
    records = db.execute(stmt).scalars().all()

    # Category is derived from facts, so the filter runs in Python
    leads = [build_lead_record(record) for record in records]
    if wanted is not None:
        leads = [lead for lead in leads if lead["category"] == wanted.value][:limit]
    return leads


@router.get("/conversations/{conversation_id}")
def get_conversation_detail(
    record: Conversation = Depends(get_conversation_or_404),
    _auth: bool = Security(get_admin_auth),
):
    """Lead record, plain-text lead sheet and full retained history."""
    lead = build_lead_record(record)
    return {
        **lead,
        "lead_sheet": format_lead_sheet(lead),
        "history": list(record.history or []),
    }


@router.get("/events")
def get_events(
    limit: int = 100,
    conversation_id: str | None = None,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    Get system events with optional filtering.

    Args:
        limit: Maximum number of events to return (default 100, max 1000)
        conversation_id: Optional conversation ID to filter by

    Returns:
        List of system events ordered by created_at descending
    """
    events = system_event_service.list_events(db, limit=min(limit, 1000), conversation_id=conversation_id)

    return [
        {
            "id": event.id,
            "created_at": iso_or_none(event.created_at),
            "level": event.level,
            "event_type": event.event_type,
            "conversation_id": event.conversation_id,
            "payload": event.payload,
        }
        for event in events
    ]


@router.post("/events/retention-cleanup")
def cleanup_system_events_retention(
    retention_days: int = 90,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    Delete SystemEvents older than retention_days (default 90).
    Admin-only. Use for periodic retention or manual cleanup.
    """
    deleted = system_event_service.cleanup_old_events(db, retention_days=retention_days)
    return {"deleted": deleted, "retention_days": retention_days}
