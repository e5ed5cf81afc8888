"""
Conversation store: creation, history bounding, logical expiry and
write-through persistence.
"""

from datetime import UTC, datetime, timedelta

import pytest

from app.db.models import Conversation
from app.services.conversation_store import (
    ROLE_ASSISTANT,
    ROLE_USER,
    ConversationStore,
    conversation_id,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def test_conversation_id_is_endpoint_and_sender():
    assert conversation_id("E1", "S1") == "E1_S1"


def test_get_creates_fresh_record(db):
    store = ConversationStore(db)
    record = store.get("E1_S1", now=NOW)
    assert record.history == []
    assert record.facts == {}
    assert record.greeted is False
    assert record.summary is None
    store.save(record)
    assert db.get(Conversation, "E1_S1") is not None


def test_history_bounded_to_most_recent_turns(db):
    store = ConversationStore(db, max_turns=4)
    record = store.get("E1_S1", now=NOW)
    for i in range(7):
        store.append(record, ROLE_USER if i % 2 == 0 else ROLE_ASSISTANT, f"turn {i}", now=NOW)
    assert len(record.history) == 4
    assert [t["text"] for t in record.history] == ["turn 3", "turn 4", "turn 5", "turn 6"]


def test_append_rejects_unknown_role(db):
    store = ConversationStore(db)
    record = store.get("E1_S1", now=NOW)
    with pytest.raises(ValueError):
        store.append(record, "system", "nope", now=NOW)


def test_append_touches_updated_at(db):
    store = ConversationStore(db)
    record = store.get("E1_S1", now=NOW)
    later = NOW + timedelta(minutes=5)
    store.append(record, ROLE_USER, "bonjour", now=later)
    assert record.updated_at == later


def test_persisted_state_survives_reload(db):
    store = ConversationStore(db)
    record = store.get("E1_S1", now=NOW)
    store.append(record, ROLE_USER, "bonjour", now=NOW)
    record.facts = {"intervention": "rhinoplastie"}
    record.greeted = True
    store.save(record)
    db.expire_all()

    reloaded = store.get("E1_S1", now=NOW + timedelta(hours=1))
    assert reloaded.history == [{"role": "user", "text": "bonjour"}]
    assert reloaded.facts == {"intervention": "rhinoplastie"}
    assert reloaded.greeted is True


def test_stale_record_is_replaced_not_merged(db):
    store = ConversationStore(db, ttl=timedelta(hours=72))
    record = store.get("E1_S1", now=NOW)
    store.append(record, ROLE_USER, "je veux une rhinoplastie", now=NOW)
    record.facts = {"intervention": "rhinoplastie", "budget": {"kind": "approx", "amount": 3000}}
    record.greeted = True
    record.summary = "ancien résumé"
    store.save(record)

    fresh = store.get("E1_S1", now=NOW + timedelta(hours=73))
    assert fresh.history == []
    assert fresh.facts == {}
    assert fresh.greeted is False
    assert fresh.summary is None


def test_record_within_ttl_is_kept(db):
    store = ConversationStore(db, ttl=timedelta(hours=72))
    record = store.get("E1_S1", now=NOW)
    store.append(record, ROLE_USER, "bonjour", now=NOW)
    store.save(record)

    same = store.get("E1_S1", now=NOW + timedelta(hours=71))
    assert len(same.history) == 1


def test_find_does_not_create_or_expire(db):
    store = ConversationStore(db, ttl=timedelta(hours=1))
    assert store.find("E1_S1") is None
    record = store.get("E1_S1", now=NOW)
    store.append(record, ROLE_USER, "bonjour", now=NOW)
    store.save(record)
    old = store.find("E1_S1")
    assert old.history == [{"role": "user", "text": "bonjour"}]


def test_put_and_delete_by_key(db):
    store = ConversationStore(db)
    store.put(Conversation(id="E2_S9", history=[], facts={"prenom": "Paul"}, greeted=False))
    assert store.find("E2_S9").facts == {"prenom": "Paul"}
    assert store.delete("E2_S9") is True
    assert store.find("E2_S9") is None
    assert store.delete("E2_S9") is False


def test_different_conversations_are_isolated(db):
    store = ConversationStore(db)
    a = store.get(conversation_id("E1", "S1"), now=NOW)
    b = store.get(conversation_id("E1", "S2"), now=NOW)
    store.append(a, ROLE_USER, "message A", now=NOW)
    store.save(a)
    store.append(b, ROLE_USER, "message B", now=NOW)
    store.save(b)
    assert store.find("E1_S1").history == [{"role": "user", "text": "message A"}]
    assert store.find("E1_S2").history == [{"role": "user", "text": "message B"}]
