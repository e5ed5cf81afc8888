"""
Lead classification - commercial priority derived from known facts.

The category is never stored: it is recomputed on every query, so rule changes
apply retroactively to existing conversations.
"""

from collections.abc import Callable
from enum import Enum

from app.services.qualification.facts import FactSet, Timing


class LeadCategory(str, Enum):
    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"


# Labels used in the French lead sheet
CATEGORY_LABELS = {
    LeadCategory.HOT: "CHAUD",
    LeadCategory.WARM: "TIEDE",
    LeadCategory.COLD: "FROID",
}

SHORT_HORIZON = {Timing.URGENT, Timing.NEAR_TERM}
REAL_PROJECT_HORIZON = {Timing.URGENT, Timing.NEAR_TERM, Timing.MID_TERM}


def _is_hot(facts: FactSet) -> bool:
    # Clear budget and a project within three months
    return facts.has_budget and facts.timing in SHORT_HORIZON


def _is_warm(facts: FactSet) -> bool:
    # Budget without a short horizon, or a real project (<= 12 months) with no budget yet
    return facts.has_budget or facts.timing in REAL_PROJECT_HORIZON


# Ordered: first matching rule wins, COLD is the default
CLASSIFICATION_RULES: list[tuple[LeadCategory, Callable[[FactSet], bool]]] = [
    (LeadCategory.HOT, _is_hot),
    (LeadCategory.WARM, _is_warm),
]


def classify(facts: FactSet) -> LeadCategory:
    """Return exactly one LeadCategory for any FactSet."""
    for category, rule in CLASSIFICATION_RULES:
        if rule(facts):
            return category
    return LeadCategory.COLD
