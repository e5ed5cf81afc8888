"""
Structured facts ("slots") extracted from a conversation.

Every slot is optional and first-write-wins: FactSet.set_if_absent is the only
way the extractor writes, so a value never changes once recorded. The identity
age sub-field follows the same rule; it may simply arrive on a later turn than
the name.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class Timing(str, Enum):
    URGENT = "urgent"
    NEAR_TERM = "court_terme"  # 1-3 months
    MID_TERM = "moyen_terme"  # 3-12 months
    LONG_TERM = "long_terme"


TIMING_LABELS = {
    Timing.URGENT: "urgent",
    Timing.NEAR_TERM: "1-3 mois",
    Timing.MID_TERM: "3-12 mois",
    Timing.LONG_TERM: "long terme",
}

BUDGET_RANGE = "range"
BUDGET_MAX = "max"
BUDGET_APPROX = "approx"


@dataclass(frozen=True)
class Budget:
    """Budget in euros. Ranges carry min/max; single values carry amount."""

    kind: str
    amount: int | None = None
    min: int | None = None
    max: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "amount": self.amount, "min": self.min, "max": self.max}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Budget":
        return cls(
            kind=data.get("kind", BUDGET_APPROX),
            amount=data.get("amount"),
            min=data.get("min"),
            max=data.get("max"),
        )

    def display(self) -> str:
        if self.kind == BUDGET_RANGE:
            return f"{self.min}-{self.max}€"
        if self.kind == BUDGET_MAX:
            return f"max {self.amount}€"
        return f"{self.amount}€"


@dataclass
class FactSet:
    intervention: str | None = None
    objectif: str | None = None
    budget: Budget | None = None
    timing: Timing | None = None
    prenom: str | None = None
    nom: str | None = None
    age: int | None = None
    email: str | None = None
    telephone: str | None = None
    contact_pref: str | None = None
    medical: str | None = None
    _changed: set[str] = field(default_factory=set, repr=False, compare=False)

    def set_if_absent(self, slot: str, value: Any) -> bool:
        """Record value for slot unless already set (or value is empty). Returns True if written."""
        if slot not in SLOT_ORDER:
            raise KeyError(f"Unknown slot: {slot}")
        if value is None or value == "":
            return False
        if getattr(self, slot) is not None:
            return False
        setattr(self, slot, value)
        self._changed.add(slot)
        return True

    @property
    def changed_slots(self) -> set[str]:
        """Slots written since this FactSet was built (used for logging)."""
        return set(self._changed)

    @property
    def has_budget(self) -> bool:
        return self.budget is not None

    def is_empty(self) -> bool:
        return all(getattr(self, slot) is None for slot in SLOT_ORDER)

    def known_items(self) -> list[tuple[str, str]]:
        """(slot, display value) for every known slot, in stable SLOT_ORDER."""
        items = []
        for slot in SLOT_ORDER:
            value = getattr(self, slot)
            if value is None:
                continue
            if isinstance(value, Budget):
                items.append((slot, value.display()))
            elif isinstance(value, Timing):
                items.append((slot, TIMING_LABELS[value]))
            else:
                items.append((slot, str(value)))
        return items

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for slot in SLOT_ORDER:
            value = getattr(self, slot)
            if value is None:
                continue
            if isinstance(value, Budget):
                data[slot] = value.to_dict()
            elif isinstance(value, Timing):
                data[slot] = value.value
            else:
                data[slot] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FactSet":
        data = data or {}
        facts = cls()
        for slot in SLOT_ORDER:
            value = data.get(slot)
            if value is None:
                continue
            if slot == "budget":
                value = Budget.from_dict(value)
            elif slot == "timing":
                value = Timing(value)
            setattr(facts, slot, value)
        return facts


SLOT_ORDER: tuple[str, ...] = tuple(f.name for f in fields(FactSet) if not f.name.startswith("_"))
