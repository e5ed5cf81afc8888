"""
Deduplication ledger for inbound webhook deliveries.

Meta retries a webhook until it gets a 200, so the same WhatsApp message id can
arrive several times. already_handled() is check-and-record: an unseen id is
written in the same call, and the unique constraint on message_id settles races
between concurrent deliveries. Entries older than the TTL are purged on every
check, which bounds the table.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.helpers import is_unique_violation
from app.db.models import ProcessedMessage
from app.utils.datetime_utils import as_utc, utc_now

logger = logging.getLogger(__name__)


class DedupeLedger:
    def __init__(self, db: Session, ttl: timedelta | None = None):
        self.db = db
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.dedupe_ttl_hours)

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete entries older than the TTL. Returns the number of rows removed."""
        cutoff = (as_utc(now) or utc_now()) - self.ttl
        result = self.db.execute(delete(ProcessedMessage).where(ProcessedMessage.processed_at < cutoff))
        self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.debug(f"Dedupe ledger: purged {deleted} entries older than {cutoff.isoformat()}")
        return deleted

    def get(self, message_id: str) -> ProcessedMessage | None:
        stmt = select(ProcessedMessage).where(ProcessedMessage.message_id == message_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def already_handled(
        self,
        message_id: str | None,
        now: datetime | None = None,
        conversation_id: str | None = None,
    ) -> bool:
        """
        True if message_id was seen within the TTL; otherwise record it and return False.

        A missing/empty id is never deduplicated (and never recorded): dropping a
        malformed-but-real message is worse than processing it twice.
        """
        now = as_utc(now) or utc_now()
        self.purge_expired(now)

        if not message_id:
            return False

        existing = self.get(message_id)
        if existing is not None:
            # purge_expired already removed anything older than the TTL
            logger.info(
                f"Duplicate delivery for message {message_id} "
                f"(first processed at {as_utc(existing.processed_at)})"
            )
            return True

        try:
            self.db.add(
                ProcessedMessage(
                    message_id=message_id,
                    conversation_id=conversation_id,
                    processed_at=now,
                )
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not is_unique_violation(e):
                raise
            logger.info(f"Duplicate delivery for message {message_id} (concurrent insert)")
            return True
        return False
