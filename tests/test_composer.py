"""
Instruction composition: section order, known-facts line, summary marker,
reminder clause and greeting suppression.
"""

from app.db.models import Conversation
from app.services.profiles import ResolvedProfile
from app.services.qualification.composer import (
    FACTS_NONE,
    FACTS_PREFIX,
    REMINDER_GREET_ONCE,
    REMINDER_NO_INTERNAL,
    REMINDER_NO_REGREET,
    REMINDER_NO_REPEAT,
    SUMMARY_NONE,
    SUMMARY_PREFIX,
    build_generation_messages,
    build_summary,
    compose_instructions,
    format_known_facts,
)
from app.services.qualification.facts import Budget, FactSet, Timing

PROFILE = ResolvedProfile(
    endpoint_id="E1",
    wa_token="wa",
    openai_key="sk",
    prompt="Tu es l'assistante de la Clinique Lumière.",
)


def _record(**kwargs) -> Conversation:
    defaults = {"id": "E1_S1", "history": [], "facts": {}, "greeted": False, "summary": None}
    defaults.update(kwargs)
    return Conversation(**defaults)


def test_sections_in_fixed_order():
    instructions = compose_instructions(PROFILE, _record())
    sections = instructions.split("\n\n")
    assert sections[0] == PROFILE.prompt
    assert sections[1] == FACTS_PREFIX + FACTS_NONE
    assert sections[2] == SUMMARY_PREFIX + SUMMARY_NONE
    assert REMINDER_NO_REPEAT in sections[3]
    assert REMINDER_NO_INTERNAL in sections[3]


def test_known_facts_line():
    facts = FactSet(
        intervention="rhinoplastie",
        budget=Budget(kind="approx", amount=4000),
        timing=Timing.URGENT,
        prenom="Marie",
        nom="Dupont",
    )
    assert format_known_facts(facts) == (
        "Infos connues : intervention=rhinoplastie | budget=4000€ | timing=urgent"
        " | prenom=Marie | nom=Dupont"
    )


def test_summary_included_when_present():
    instructions = compose_instructions(PROFILE, _record(summary="Prospect : Marie Dupont"))
    assert SUMMARY_PREFIX + "Prospect : Marie Dupont" in instructions
    assert SUMMARY_NONE not in instructions


def test_greeted_conversation_keeps_no_regreet_clause_on_new_greeting():
    record = _record(greeted=True)
    instructions = compose_instructions(PROFILE, record, greeting=True)
    assert REMINDER_NO_REGREET in instructions
    assert REMINDER_GREET_ONCE not in instructions


def test_greeted_conversation_without_greeting():
    assert REMINDER_NO_REGREET in compose_instructions(PROFILE, _record(greeted=True))


def test_first_greeting_is_answered_once():
    instructions = compose_instructions(PROFILE, _record(), greeting=True)
    assert REMINDER_GREET_ONCE in instructions
    assert REMINDER_NO_REGREET not in instructions


def test_generation_messages_window_and_order():
    history = [
        {"role": "user", "text": f"u{i}"} if i % 2 == 0 else {"role": "assistant", "text": f"a{i}"}
        for i in range(6)
    ]
    messages = build_generation_messages("SYS", history, "nouveau", window=4)
    assert messages[0] == {"role": "system", "content": "SYS"}
    assert [m["content"] for m in messages[1:-1]] == ["u2", "a3", "u4", "a5"]
    assert messages[-1] == {"role": "user", "content": "nouveau"}


def test_generation_messages_zero_window():
    messages = build_generation_messages("SYS", [{"role": "user", "text": "old"}], "new", window=0)
    assert [m["content"] for m in messages] == ["SYS", "new"]


def test_summary_digest_is_deterministic_and_bounded():
    facts = FactSet(prenom="Marie", nom="Dupont", age=34, intervention="rhinoplastie")
    history = [
        {"role": "user", "text": "Bonjour"},
        {"role": "assistant", "text": "Bonjour Marie"},
        {"role": "user", "text": "je veux une rhinoplastie " + "très " * 100},
    ]
    summary = build_summary(facts, history, max_chars=200)
    assert summary == build_summary(facts, history, max_chars=200)
    assert summary.startswith("Prospect : Marie Dupont, 34 ans. Faits : intervention=rhinoplastie")
    assert len(summary) <= 200
    assert "Bonjour Marie" not in summary


def test_summary_empty_for_empty_conversation():
    assert build_summary(FactSet(), []) == ""
