"""
Instruction composer - builds the system instruction and message list for the
generation call, plus the rolling summary kept on the conversation.

Instruction layout (fixed order):
1. tenant prompt (or the shared default)
2. one line of known facts, "Infos connues : k=v | k=v" (or "aucune")
3. rolling summary (or "aucun résumé")
4. reminder clause: never re-ask known facts, never expose internal data,
   never greet again once the conversation has been greeted
"""

import logging
from typing import TYPE_CHECKING, Any

from app.services.qualification.facts import FactSet

if TYPE_CHECKING:
    from app.db.models import Conversation
    from app.services.profiles import ResolvedProfile

logger = logging.getLogger(__name__)

FACTS_PREFIX = "Infos connues : "
FACTS_NONE = "aucune"
FACTS_SEPARATOR = " | "
SUMMARY_PREFIX = "Résumé : "
SUMMARY_NONE = "aucun résumé"

REMINDER_NO_REPEAT = (
    "Rappel : ne redemande jamais une information déjà connue ci-dessus, "
    "pose au plus une question à la fois."
)
REMINDER_NO_INTERNAL = (
    "Ne montre jamais au prospect de fiche lead, de catégorie, de résumé interne "
    "ni aucune donnée structurée : réponds uniquement en langage naturel."
)
REMINDER_NO_REGREET = "La conversation est déjà engagée : ne salue pas de nouveau le prospect."
REMINDER_GREET_ONCE = "Le prospect vient de te saluer : salue-le une seule fois, brièvement."

# Key points kept in the summary from the most recent user turns
SUMMARY_KEY_POINTS = 3
KEY_POINT_MAX_CHARS = 120


def format_known_facts(facts: FactSet) -> str:
    items = facts.known_items()
    if not items:
        return FACTS_PREFIX + FACTS_NONE
    return FACTS_PREFIX + FACTS_SEPARATOR.join(f"{key}={value}" for key, value in items)


def compose_instructions(
    profile: "ResolvedProfile",
    record: "Conversation",
    greeting: bool = False,
) -> str:
    """
    Build the system instruction for one turn.

    Args:
        profile: Resolved tenant profile (custom prompt or default)
        record: Conversation being answered (facts, summary, greeted flag)
        greeting: True if the inbound message opens with a greeting

    Returns:
        Instruction text, sections separated by blank lines
    """
    facts = FactSet.from_dict(record.facts)
    reminder = [REMINDER_NO_REPEAT, REMINDER_NO_INTERNAL]
    if record.greeted:
        reminder.append(REMINDER_NO_REGREET)
    elif greeting:
        reminder.append(REMINDER_GREET_ONCE)

    sections = [
        profile.prompt.strip(),
        format_known_facts(facts),
        SUMMARY_PREFIX + (record.summary or SUMMARY_NONE),
        " ".join(reminder),
    ]
    return "\n\n".join(sections)


def build_generation_messages(
    instructions: str,
    history: list[dict[str, Any]],
    new_message: str,
    window: int,
) -> list[dict[str, str]]:
    """
    Role-tagged messages for the generation call: system instruction, the
    trailing `window` turns of history (oldest first), then the new message.
    """
    messages = [{"role": "system", "content": instructions}]
    recent = history[-window:] if window > 0 else []
    for turn in recent:
        role = turn.get("role")
        if role not in ("user", "assistant"):
            continue
        messages.append({"role": role, "content": turn.get("text", "")})
    messages.append({"role": "user", "content": new_message})
    return messages


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"


def build_summary(facts: FactSet, history: list[dict[str, Any]], max_chars: int = 600) -> str:
    """
    Deterministic rolling digest: known facts plus the latest user key points.
    Internal only - it feeds the next instruction and is never sent to the prospect.
    """
    parts = []
    identity = " ".join(p for p in (facts.prenom, facts.nom) if p)
    if identity:
        parts.append(f"Prospect : {identity}" + (f", {facts.age} ans" if facts.age else ""))
    elif facts.age:
        parts.append(f"Prospect : {facts.age} ans")

    details = [f"{key}={value}" for key, value in facts.known_items() if key not in ("prenom", "nom", "age")]
    if details:
        parts.append("Faits : " + ", ".join(details))

    user_turns = [t.get("text", "") for t in history if t.get("role") == "user" and t.get("text")]
    if user_turns:
        points = [_truncate(text, KEY_POINT_MAX_CHARS) for text in user_turns[-SUMMARY_KEY_POINTS:]]
        parts.append("Derniers messages : " + " / ".join(points))

    turns = len(history)
    if turns:
        parts.append(f"{turns} échanges")

    return _truncate(". ".join(parts), max_chars) if parts else ""
