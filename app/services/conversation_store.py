"""
Conversation store - one mutable record per (endpoint, sender) pair.

Expiry is logical: a record whose updated_at is older than the TTL is reset
in place on load (history, facts, greeted flag and summary all cleared). Stale
state is never merged into the new conversation.

Persistence is write-through: callers save() after mutating and before any
outbound side effect.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.constants.event_types import EVENT_CONVERSATION_EXPIRED
from app.core.config import settings
from app.db.helpers import commit_and_refresh
from app.db.models import Conversation
from app.utils.datetime_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)


def conversation_id(endpoint_id: str, sender_id: str) -> str:
    """Composite key "{endpoint_id}_{sender_id}"."""
    return f"{endpoint_id}_{sender_id}"


def _reset(record: Conversation, now: datetime) -> None:
    record.history = []
    record.facts = {}
    record.greeted = False
    record.summary = None
    record.updated_at = now


class ConversationStore:
    def __init__(
        self,
        db: Session,
        ttl: timedelta | None = None,
        max_turns: int | None = None,
    ):
        self.db = db
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.conversation_ttl_hours)
        self.max_turns = max_turns if max_turns is not None else settings.max_history_turns

    def is_stale(self, record: Conversation, now: datetime) -> bool:
        updated_at = as_utc(record.updated_at)
        return updated_at is None or now - updated_at > self.ttl

    def get(self, key: str, now: datetime | None = None) -> Conversation:
        """
        Load the conversation for key, creating it when absent and resetting it
        when stale. The returned record is attached to the session but not committed.
        """
        now = as_utc(now) or utc_now()
        record = self.db.get(Conversation, key)
        if record is None:
            record = Conversation(id=key)
            _reset(record, now)
            self.db.add(record)
            logger.info(f"Conversation {key} created")
            return record

        if self.is_stale(record, now):
            logger.info(
                f"Conversation {key} expired (last update {as_utc(record.updated_at)}), starting fresh",
                extra={"conversation_id": key, "event_type": EVENT_CONVERSATION_EXPIRED},
            )
            _reset(record, now)
        return record

    def append(
        self,
        record: Conversation,
        role: str,
        text: str,
        now: datetime | None = None,
    ) -> Conversation:
        """Push a turn, keep only the most recent max_turns, touch updated_at."""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        history = list(record.history or [])
        history.append({"role": role, "text": text})
        if len(history) > self.max_turns:
            history = history[-self.max_turns :]
        record.history = history
        record.updated_at = as_utc(now) or utc_now()
        return record

    def save(self, record: Conversation) -> Conversation:
        """Write-through: commit the record so a retried delivery sees this state."""
        self.db.add(record)
        commit_and_refresh(self.db, record)
        return record

    # Plain key/value access (admin tooling, maintenance)

    def find(self, key: str) -> Conversation | None:
        """Return the stored record as-is, without creating or expiring it."""
        return self.db.get(Conversation, key)

    def put(self, record: Conversation) -> Conversation:
        if record.updated_at is None:
            record.updated_at = utc_now()
        return self.save(record)

    def delete(self, key: str) -> bool:
        record = self.db.get(Conversation, key)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True
