"""
Deduplication ledger: check-and-record, TTL purge and empty ids.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select

from app.db.models import ProcessedMessage
from app.services.dedupe import DedupeLedger

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _count(db) -> int:
    return db.execute(select(func.count()).select_from(ProcessedMessage)).scalar_one()


def test_first_check_records_and_second_is_duplicate(db):
    ledger = DedupeLedger(db)
    assert ledger.already_handled("wamid.1", now=NOW) is False
    assert ledger.already_handled("wamid.1", now=NOW + timedelta(seconds=5)) is True
    assert _count(db) == 1


def test_empty_id_is_never_deduplicated_or_recorded(db):
    ledger = DedupeLedger(db)
    assert ledger.already_handled("", now=NOW) is False
    assert ledger.already_handled(None, now=NOW) is False
    assert ledger.already_handled("", now=NOW) is False
    assert _count(db) == 0


def test_expired_entry_is_purged_and_id_processed_again(db):
    ledger = DedupeLedger(db, ttl=timedelta(hours=24))
    assert ledger.already_handled("wamid.1", now=NOW) is False
    assert ledger.already_handled("wamid.1", now=NOW + timedelta(hours=25)) is False
    assert _count(db) == 1


def test_purge_runs_on_every_check(db):
    ledger = DedupeLedger(db, ttl=timedelta(hours=24))
    for i in range(3):
        ledger.already_handled(f"wamid.old.{i}", now=NOW)
    ledger.already_handled("wamid.new", now=NOW + timedelta(hours=30))
    remaining = db.execute(select(ProcessedMessage.message_id)).scalars().all()
    assert remaining == ["wamid.new"]


def test_purge_expired_returns_deleted_count(db):
    ledger = DedupeLedger(db, ttl=timedelta(hours=1))
    ledger.already_handled("wamid.a", now=NOW)
    ledger.already_handled("wamid.b", now=NOW)
    assert ledger.purge_expired(NOW + timedelta(minutes=30)) == 0
    assert ledger.purge_expired(NOW + timedelta(hours=2)) == 2


def test_conversation_id_is_stored_with_entry(db):
    ledger = DedupeLedger(db)
    ledger.already_handled("wamid.1", now=NOW, conversation_id="E1_S1")
    assert ledger.get("wamid.1").conversation_id == "E1_S1"


def test_concurrent_insert_is_treated_as_duplicate(db, monkeypatch):
    """A unique violation on insert (another worker won the race) counts as already handled."""
    ledger = DedupeLedger(db)
    other = DedupeLedger(db)
    assert other.already_handled("wamid.race", now=NOW) is False

    # Simulate the lookup missing the row the other worker just committed
    monkeypatch.setattr(ledger, "get", lambda message_id: None)
    assert ledger.already_handled("wamid.race", now=NOW) is True
    assert _count(db) == 1
