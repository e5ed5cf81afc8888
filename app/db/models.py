from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Conversation(Base):
    """Per-sender conversation memory, keyed by "{endpoint_id}_{sender_id}"."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)

    # Ordered turns: [{"role": "user"|"assistant", "text": "..."}], oldest first
    history: Mapped[list[dict[str, Any]]] = mapped_column(
        MutableList.as_mutable(JSON), default=list
    )
    # Extracted slots (see app.services.qualification.facts.FactSet)
    facts: Mapped[dict[str, Any]] = mapped_column(MutableDict.as_mutable(JSON), default=dict)
    greeted: Mapped[bool] = mapped_column(Boolean, default=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Set explicitly on every mutation; governs logical expiry
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class ProcessedMessage(Base):
    """Idempotency ledger - inbound WhatsApp message IDs seen within the dedupe TTL."""

    __tablename__ = "processed_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(160), nullable=True, index=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class ClientProfile(Base):
    """Tenant record written by the onboarding flow; read-only for the qualification engine."""

    __tablename__ = "client_profiles"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)  # checkout session id
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending_onboarding", index=True)
    clinic: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone_number_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    wa_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    openai_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SystemEvent(Base):
    """Structured audit log of notable failures and decisions."""

    __tablename__ = "system_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    level: Mapped[str] = mapped_column(String(10), index=True)  # INFO, WARN, ERROR
    event_type: Mapped[str] = mapped_column(String(100), index=True)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(160), nullable=True, index=True)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
