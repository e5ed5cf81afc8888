"""
Maintenance purge: expired dedupe entries and old SystemEvents.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from app.db.models import Conversation, ProcessedMessage, SystemEvent
from app.jobs.purge_expired import run_purge

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def test_run_purge_deletes_only_expired_rows(db):
    db.add(ProcessedMessage(message_id="wamid.old", processed_at=NOW - timedelta(hours=30)))
    db.add(ProcessedMessage(message_id="wamid.recent", processed_at=NOW - timedelta(hours=1)))
    db.add(SystemEvent(level="INFO", event_type="old", created_at=NOW - timedelta(days=120)))
    db.add(SystemEvent(level="INFO", event_type="recent", created_at=NOW - timedelta(days=3)))
    db.add(Conversation(id="E1_S1", facts={}, history=[], updated_at=NOW - timedelta(days=30)))
    db.commit()

    result = run_purge(db, now=NOW, retention_days=90)

    assert result == {"dedupe_entries_deleted": 1, "events_deleted": 1}
    assert db.execute(select(ProcessedMessage.message_id)).scalars().all() == ["wamid.recent"]
    assert db.execute(select(SystemEvent.event_type)).scalars().all() == ["recent"]
    # Conversations expire logically, never by the purge
    assert db.get(Conversation, "E1_S1") is not None


def test_run_purge_on_empty_tables(db):
    assert run_purge(db, now=NOW) == {"dedupe_entries_deleted": 0, "events_deleted": 0}
