"""FastAPI dependencies for API routes."""

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from app.db.deps import get_db
from app.db.models import Conversation
from app.services.integrations.openai_client import OpenAIReplyGenerator, ReplyGenerator
from app.services.messaging.messaging import MessageDeliverer, WhatsAppDeliverer


def get_conversation_or_404(conversation_id: str, db: Session = Depends(get_db)) -> Conversation:
    """
    Resolve conversation by path parameter conversation_id; raise 404 if not found.

    Records are returned as stored, even if past the TTL (expiry only applies
    when the next inbound message loads them).
    """
    record = db.get(Conversation, conversation_id)
    if not record:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return record


def get_reply_generator() -> ReplyGenerator:
    """Generation capability for the webhook (overridden in tests)."""
    return OpenAIReplyGenerator()


def get_message_deliverer() -> MessageDeliverer:
    """Delivery capability for the webhook (overridden in tests)."""
    return WhatsAppDeliverer()
