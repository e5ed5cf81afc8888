"""
Reply orchestrator - runs one inbound message through the qualification turn.

Turn states:
    RECEIVED -> DEDUPE_CHECKED -> FACTS_UPDATED -> CONTEXT_BUILT
    -> REPLY_GENERATED -> PERSISTED -> DELIVERED

Terminal failures: DEDUPE_SKIPPED, INCOMPLETE_INPUT, GENERATION_FAILED,
DELIVERY_FAILED. Conversation state is always committed before any outbound
call, so a retried webhook is deduplicated even when delivery fails.

Turns for the same conversation id are serialized with an in-process
asyncio.Lock; turns for different ids run independently.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.constants.event_types import (
    EVENT_DELIVERY_FAILURE,
    EVENT_GENERATION_FAILURE,
    EVENT_GENERATION_FALLBACK_SENT,
    EVENT_INTERNAL_RECORD_STRIPPED,
    EVENT_MISSING_CREDENTIALS,
    EVENT_WHATSAPP_DUPLICATE_DELIVERY,
)
from app.core.config import settings
from app.db.models import Conversation
from app.services import system_event_service
from app.services.conversation_store import (
    ROLE_ASSISTANT,
    ROLE_USER,
    ConversationStore,
    conversation_id,
)
from app.services.dedupe import DedupeLedger
from app.services.integrations.openai_client import ReplyGenerator
from app.services.messaging.messaging import MessageDeliverer
from app.services.profiles import ResolvedProfile, resolve_profile
from app.services.qualification.classifier import LeadCategory, classify
from app.services.qualification.composer import build_summary, compose_instructions
from app.services.qualification.errors import (
    DeliveryError,
    GenerationError,
    MissingCredentialsError,
)
from app.services.qualification.extraction import extract_facts, is_greeting
from app.services.qualification.facts import FactSet
from app.services.safety import strip_internal_record
from app.services.text_normalization import normalize_text
from app.utils.datetime_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

GENERATION_FAILURE_SILENT = "silent"
GENERATION_FAILURE_FALLBACK = "fallback"


class TurnState(str, Enum):
    RECEIVED = "RECEIVED"
    DEDUPE_CHECKED = "DEDUPE_CHECKED"
    FACTS_UPDATED = "FACTS_UPDATED"
    CONTEXT_BUILT = "CONTEXT_BUILT"
    REPLY_GENERATED = "REPLY_GENERATED"
    PERSISTED = "PERSISTED"
    DELIVERED = "DELIVERED"
    # Terminal failures
    DEDUPE_SKIPPED = "DEDUPE_SKIPPED"
    INCOMPLETE_INPUT = "INCOMPLETE_INPUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    DELIVERY_FAILED = "DELIVERY_FAILED"


@dataclass(frozen=True)
class InboundMessage:
    """Inbound webhook message reduced to the four fields the engine needs."""

    endpoint_id: str
    sender_id: str
    message_id: str
    text: str

    @property
    def is_complete(self) -> bool:
        return bool(self.endpoint_id and self.sender_id and normalize_text(self.text))


@dataclass
class TurnResult:
    state: TurnState
    conversation_id: str | None = None
    reply: str | None = None
    category: LeadCategory | None = None
    facts: dict[str, Any] = field(default_factory=dict)
    # States passed through, in order (for logs and tests)
    trace: list[TurnState] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "conversation_id": self.conversation_id,
            "category": self.category.value if self.category else None,
        }


_conversation_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_conversation_lock(key: str) -> asyncio.Lock:
    """Lock shared by every in-flight turn of one conversation (dropped when unused)."""
    lock = _conversation_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _conversation_locks[key] = lock
    return lock


async def handle_inbound_message(
    db: Session,
    message: InboundMessage,
    generator: ReplyGenerator,
    deliverer: MessageDeliverer,
    now: datetime | None = None,
) -> TurnResult:
    """
    Run one qualification turn.

    Args:
        db: Database session
        message: Reduced inbound message
        generator: Reply generation capability
        deliverer: Outbound delivery capability
        now: Turn timestamp (defaults to utc_now; injected by tests)

    Returns:
        TurnResult with the terminal state reached

    Raises:
        MissingCredentialsError: neither the tenant profile nor the defaults
            provide credentials. Raised before the dedupe check so the message
            id is not consumed.
    """
    now = as_utc(now) or utc_now()
    trace = [TurnState.RECEIVED]

    if not message.is_complete:
        logger.info(
            f"Ignoring incomplete inbound message (endpoint={message.endpoint_id!r}, "
            f"sender={message.sender_id!r}, has_text={bool(normalize_text(message.text))})"
        )
        return TurnResult(state=TurnState.INCOMPLETE_INPUT, trace=trace + [TurnState.INCOMPLETE_INPUT])

    key = conversation_id(message.endpoint_id, message.sender_id)
    text = normalize_text(message.text)

    try:
        profile = resolve_profile(db, message.endpoint_id)
    except MissingCredentialsError as e:
        system_event_service.error(
            db,
            event_type=EVENT_MISSING_CREDENTIALS,
            conversation_id=key,
            payload={"endpoint_id": message.endpoint_id, "message_id": message.message_id},
            exc=e,
        )
        raise

    async with get_conversation_lock(key):
        ledger = DedupeLedger(db)
        if ledger.already_handled(message.message_id, now=now, conversation_id=key):
            system_event_service.info(
                db,
                event_type=EVENT_WHATSAPP_DUPLICATE_DELIVERY,
                conversation_id=key,
                payload={"message_id": message.message_id},
            )
            return TurnResult(
                state=TurnState.DEDUPE_SKIPPED,
                conversation_id=key,
                trace=trace + [TurnState.DEDUPE_SKIPPED],
            )
        trace.append(TurnState.DEDUPE_CHECKED)

        store = ConversationStore(db)
        record = store.get(key, now=now)

        facts = FactSet.from_dict(record.facts)
        extract_facts(text, facts)
        record.facts = facts.to_dict()
        category = classify(facts)
        trace.append(TurnState.FACTS_UPDATED)
        if facts.changed_slots:
            logger.info(
                f"Conversation {key}: new facts {sorted(facts.changed_slots)}, category={category.value}",
                extra={"conversation_id": key, "message_id": message.message_id},
            )

        instructions = compose_instructions(profile, record, greeting=is_greeting(text))
        history = list(record.history or [])
        trace.append(TurnState.CONTEXT_BUILT)

        reply = await _generate_reply(db, generator, key, instructions, history, text, profile)
        if reply is None:
            return await _finish_without_reply(
                db, store, record, facts, text, key, message, profile, deliverer, now, category, trace
            )
        trace.append(TurnState.REPLY_GENERATED)

        store.append(record, ROLE_USER, text, now)
        store.append(record, ROLE_ASSISTANT, reply, now)
        record.greeted = True
        record.summary = build_summary(facts, record.history, settings.summary_max_chars)
        store.save(record)
        trace.append(TurnState.PERSISTED)

    result = TurnResult(
        state=TurnState.PERSISTED,
        conversation_id=key,
        reply=reply,
        category=category,
        facts=facts.to_dict(),
        trace=trace,
    )
    if await _deliver(db, deliverer, key, message, reply, profile):
        result.state = TurnState.DELIVERED
    else:
        result.state = TurnState.DELIVERY_FAILED
    trace.append(result.state)
    return result


async def _generate_reply(
    db: Session,
    generator: ReplyGenerator,
    key: str,
    instructions: str,
    history: list[dict[str, Any]],
    text: str,
    profile: ResolvedProfile,
) -> str | None:
    """Call the generator and filter its output. None means generation failed."""
    try:
        raw = await generator.generate(instructions, history, text, profile)
    except GenerationError as e:
        logger.warning(f"Reply generation failed for {key}: {e}")
        system_event_service.error(db, event_type=EVENT_GENERATION_FAILURE, conversation_id=key, exc=e)
        return None

    reply, stripped = strip_internal_record((raw or "").strip())
    if stripped:
        system_event_service.warn(
            db,
            event_type=EVENT_INTERNAL_RECORD_STRIPPED,
            conversation_id=key,
            payload={"original_length": len(raw), "kept_length": len(reply)},
        )
    if not reply:
        logger.warning(f"Reply generation for {key} produced no usable text")
        system_event_service.error(
            db,
            event_type=EVENT_GENERATION_FAILURE,
            conversation_id=key,
            payload={"reason": "empty_reply", "stripped": stripped},
        )
        return None
    return reply


async def _finish_without_reply(
    db: Session,
    store: ConversationStore,
    record: Conversation,
    facts: FactSet,
    text: str,
    key: str,
    message: InboundMessage,
    profile: ResolvedProfile,
    deliverer: MessageDeliverer,
    now: datetime,
    category: LeadCategory,
    trace: list[TurnState],
) -> TurnResult:
    """
    Persist the user turn and extracted facts after a generation failure, then
    apply the failure policy: "silent" sends nothing, "fallback" sends the
    canned reply.
    """
    store.append(record, ROLE_USER, text, now)
    fallback = None
    if settings.generation_failure_policy == GENERATION_FAILURE_FALLBACK and settings.fallback_reply:
        fallback = settings.fallback_reply
        store.append(record, ROLE_ASSISTANT, fallback, now)
    record.summary = build_summary(facts, record.history, settings.summary_max_chars)
    store.save(record)

    if fallback is not None and await _deliver(db, deliverer, key, message, fallback, profile):
        system_event_service.info(db, event_type=EVENT_GENERATION_FALLBACK_SENT, conversation_id=key)

    trace.append(TurnState.GENERATION_FAILED)
    return TurnResult(
        state=TurnState.GENERATION_FAILED,
        conversation_id=key,
        reply=fallback,
        category=category,
        facts=facts.to_dict(),
        trace=trace,
    )


async def _deliver(
    db: Session,
    deliverer: MessageDeliverer,
    key: str,
    message: InboundMessage,
    text: str,
    profile: ResolvedProfile,
) -> bool:
    """Send one outbound message. Failures are logged and recorded, never retried."""
    try:
        await deliverer.deliver(message.endpoint_id, message.sender_id, text, profile)
    except DeliveryError as e:
        logger.error(
            f"Delivery failed for {key}: {e}",
            extra={"endpoint_id": e.endpoint_id or message.endpoint_id, "recipient_id": e.recipient_id or message.sender_id},
        )
        system_event_service.error(
            db,
            event_type=EVENT_DELIVERY_FAILURE,
            conversation_id=key,
            payload={"endpoint_id": message.endpoint_id, "recipient_id": message.sender_id},
            exc=e,
        )
        return False
    return True
