# Qualification engine: fact extraction, lead classification, instruction composition.
# The orchestrator is imported from its own module (it depends on the integrations).

from app.services.qualification.classifier import LeadCategory, classify
from app.services.qualification.composer import build_summary, compose_instructions
from app.services.qualification.errors import (
    DeliveryError,
    GenerationError,
    MissingCredentialsError,
    QualificationError,
)
from app.services.qualification.extraction import extract_facts
from app.services.qualification.facts import Budget, FactSet, Timing

__all__ = [
    "Budget",
    "DeliveryError",
    "FactSet",
    "GenerationError",
    "LeadCategory",
    "MissingCredentialsError",
    "QualificationError",
    "Timing",
    "build_summary",
    "classify",
    "compose_instructions",
    "extract_facts",
]
