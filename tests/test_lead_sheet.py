"""
Lead record and plain-text lead sheet built from conversation facts.
"""

from datetime import UTC, datetime

from app.db.models import Conversation
from app.services.lead_sheet import NOT_PROVIDED, SHEET_FIELDS, build_lead_record, format_lead_sheet

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _record(facts, key="E1_33612345678", summary=None):
    return Conversation(id=key, facts=facts, history=[], greeted=True, summary=summary, updated_at=NOW)


def test_lead_record_fields():
    lead = build_lead_record(
        _record(
            {
                "intervention": "augmentation mammaire",
                "budget": {"kind": "range", "amount": None, "min": 5000, "max": 6000},
                "timing": "court_terme",
                "prenom": "Léa",
                "age": 29,
                "telephone": "+33612345678",
                "email": "lea@example.com",
            },
            summary="Prospect : Léa",
        )
    )
    assert lead["endpoint_id"] == "E1"
    assert lead["sender_id"] == "33612345678"
    assert lead["budget"] == "5000-6000€"
    assert lead["timing"] == "1-3 mois"
    assert lead["contact"] == "+33612345678 / lea@example.com"
    assert lead["category"] == "HOT"
    assert lead["category_label"] == "CHAUD"
    assert lead["updated_at"].startswith("2026-03-02T10:00:00")


def test_sender_id_keeps_underscores_after_endpoint():
    lead = build_lead_record(_record({}, key="E1_user_with_underscore"))
    assert lead["endpoint_id"] == "E1"
    assert lead["sender_id"] == "user_with_underscore"


def test_empty_facts_are_cold_and_not_provided():
    lead = build_lead_record(_record({}))
    assert lead["category"] == "COLD"
    sheet = format_lead_sheet(lead)
    lines = sheet.splitlines()
    assert len(lines) == len(SHEET_FIELDS)
    assert lines[0] == f"Nom : {NOT_PROVIDED}"
    assert "Catégorie lead : FROID" in lines


def test_sheet_lists_known_values_in_order():
    lead = build_lead_record(
        _record(
            {
                "nom": "Dupont",
                "prenom": "Marie",
                "intervention": "rhinoplastie",
                "budget": {"kind": "max", "amount": 3000, "min": None, "max": None},
            }
        )
    )
    lines = format_lead_sheet(lead).splitlines()
    assert lines[0] == "Nom : Dupont"
    assert lines[1] == "Prénom : Marie"
    assert "Type de chirurgie demandé : rhinoplastie" in lines
    assert "Budget : max 3000€" in lines
    assert "Catégorie lead : TIEDE" in lines
