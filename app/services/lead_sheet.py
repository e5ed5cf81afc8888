"""
Qualified lead record - the internal lead sheet handed to the clinic assistant.

Built from the conversation facts on demand. The category is recomputed on
every call and never stored.
"""

from typing import Any

from app.db.models import Conversation
from app.services.qualification.classifier import CATEGORY_LABELS, classify
from app.services.qualification.facts import TIMING_LABELS, FactSet
from app.utils.datetime_utils import iso_or_none

NOT_PROVIDED = "non renseigné"

# (label, key in the lead record) in sheet order
SHEET_FIELDS = [
    ("Nom", "nom"),
    ("Prénom", "prenom"),
    ("Âge", "age"),
    ("Contact", "contact"),
    ("Type de chirurgie demandé", "intervention"),
    ("Objectif", "objectif"),
    ("Budget", "budget"),
    ("Timing", "timing"),
    ("Infos médicales pertinentes", "medical"),
    ("Préférence de contact", "contact_pref"),
    ("Catégorie lead", "category_label"),
    ("Commentaires utiles pour l'assistante", "summary"),
]


def _contact(facts: FactSet) -> str | None:
    parts = [p for p in (facts.telephone, facts.email) if p]
    return " / ".join(parts) if parts else None


def build_lead_record(record: Conversation) -> dict[str, Any]:
    """Structured lead record for one conversation (admin API, exports)."""
    facts = FactSet.from_dict(record.facts)
    category = classify(facts)
    endpoint_id, _, sender_id = record.id.partition("_")
    return {
        "conversation_id": record.id,
        "endpoint_id": endpoint_id,
        "sender_id": sender_id,
        "nom": facts.nom,
        "prenom": facts.prenom,
        "age": facts.age,
        "contact": _contact(facts),
        "email": facts.email,
        "telephone": facts.telephone,
        "intervention": facts.intervention,
        "objectif": facts.objectif,
        "budget": facts.budget.display() if facts.budget else None,
        "timing": TIMING_LABELS[facts.timing] if facts.timing else None,
        "medical": facts.medical,
        "contact_pref": facts.contact_pref,
        "category": category.value,
        "category_label": CATEGORY_LABELS[category],
        "summary": record.summary or None,
        "greeted": bool(record.greeted),
        "turns": len(record.history or []),
        "created_at": iso_or_none(record.created_at),
        "updated_at": iso_or_none(record.updated_at),
    }


def format_lead_sheet(lead: dict[str, Any]) -> str:
    """Plain-text lead sheet, one "Label : value" line per field."""
    lines = []
    for label, key in SHEET_FIELDS:
        value = lead.get(key)
        lines.append(f"{label} : {value if value not in (None, '') else NOT_PROVIDED}")
    return "\n".join(lines)
