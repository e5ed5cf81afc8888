"""
Outbound reply safety net.

The instruction never asks the model for the structured lead sheet, so it should
not appear in a reply. strip_internal_record is the last-resort filter in case
it does: it cuts the reply at the first line that looks like a lead-sheet field
block and drops any leftover category marker.
"""

import logging
import re

from app.services.text_normalization import fold_accents

logger = logging.getLogger(__name__)

# Labels of the internal lead sheet ("Nom :", "Budget :", "Catégorie lead : CHAUD", ...)
LEAD_SHEET_LABELS = (
    "nom",
    "prenom",
    "age",
    "contact",
    "type de chirurgie demande",
    "type de chirurgie",
    "intervention",
    "objectif",
    "budget",
    "timing",
    "infos medicales pertinentes",
    "infos medicales",
    "preference de contact",
    "categorie lead",
    "categorie",
    "commentaires utiles pour l'assistante",
)

_LABEL_LINE = re.compile(
    r"^\s*[-*•]?\s*\**(" + "|".join(re.escape(label) for label in LEAD_SHEET_LABELS) + r")\**\s*:(.*)$",
    re.IGNORECASE,
)
# A line that is only the sheet title; "votre fiche prospect" in a sentence is not
_SHEET_HEADER = re.compile(r"^\W*fiche\s+(lead|prospect)\W*$", re.IGNORECASE)
_CATEGORY_MARKER = re.compile(r"\b(lead\s+)?(chaud|tiede|froid)\b\s*$", re.IGNORECASE)

# Two filled label lines in a row are a field block, a single "Budget :" in prose is not
MIN_LABEL_LINES = 2


def _is_filled_label(line: str) -> bool:
    """
    "Nom : Dupont" is a sheet field. "- Nom :" or "Budget : combien ?" is the bot
    asking the prospect for that field.
    """
    match = _LABEL_LINE.match(line)
    if not match:
        return False
    value = match.group(2).strip().strip("*_").strip()
    return bool(re.search(r"\w", value)) and not value.endswith("?")


def strip_internal_record(reply: str) -> tuple[str, bool]:
    """
    Remove an internal lead sheet leaked into a model reply.

    Returns:
        (clean_reply, stripped) - stripped is True if anything was removed
    """
    if not reply:
        return reply, False

    lines = reply.splitlines()
    folded = [fold_accents(line) for line in lines]

    cut_at = None
    for i, line in enumerate(folded):
        if _SHEET_HEADER.search(line):
            cut_at = i
            break
        if _is_filled_label(line):
            block = [j for j in range(i, min(i + MIN_LABEL_LINES, len(folded))) if _is_filled_label(folded[j])]
            if len(block) >= MIN_LABEL_LINES:
                cut_at = i
                break

    if cut_at is None:
        last = folded[-1] if folded else ""
        if "categorie" in last.lower() and _CATEGORY_MARKER.search(last):
            cut_at = len(lines) - 1

    if cut_at is None:
        return reply, False

    clean = "\n".join(lines[:cut_at]).rstrip()
    logger.warning(f"Stripped internal lead record from reply ({len(lines) - cut_at} lines removed)")
    return clean, True
