import pytest

from app.services.qualification.classifier import CATEGORY_LABELS, LeadCategory, classify
from app.services.qualification.facts import Budget, FactSet, Timing

BUDGET_3000 = Budget(kind="approx", amount=3000)


@pytest.mark.parametrize(
    "budget,timing,expected",
    [
        (BUDGET_3000, Timing.URGENT, LeadCategory.HOT),
        (BUDGET_3000, Timing.NEAR_TERM, LeadCategory.HOT),
        (None, Timing.MID_TERM, LeadCategory.WARM),
        (None, None, LeadCategory.COLD),
        (BUDGET_3000, Timing.LONG_TERM, LeadCategory.WARM),
        (BUDGET_3000, Timing.MID_TERM, LeadCategory.WARM),
        (BUDGET_3000, None, LeadCategory.WARM),
        (None, Timing.URGENT, LeadCategory.WARM),
        (None, Timing.LONG_TERM, LeadCategory.COLD),
    ],
)
def test_classification_rules(budget, timing, expected):
    facts = FactSet(budget=budget, timing=timing)
    assert classify(facts) == expected


def test_any_budget_shape_counts_for_hot():
    for budget in (
        Budget(kind="range", min=2000, max=3000),
        Budget(kind="max", amount=1500, max=1500),
        Budget(kind="approx", amount=4000),
    ):
        assert classify(FactSet(budget=budget, timing=Timing.URGENT)) == LeadCategory.HOT


def test_other_slots_do_not_affect_category():
    facts = FactSet(intervention="rhinoplastie", prenom="Marie", email="m@example.com")
    assert classify(facts) == LeadCategory.COLD


def test_every_category_has_a_sheet_label():
    assert set(CATEGORY_LABELS) == set(LeadCategory)
