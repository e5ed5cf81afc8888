"""
Text normalization for parsing: strip, collapse spaces, normalize unicode.

Use before pattern matching on user input to handle WhatsApp copy/paste:
non-breaking spaces, zero-width chars, narrow NBSP in "3 000 €", accents.
"""

import re
import unicodedata

# Common unicode replacements
NBSP = "\u00A0"
NARROW_NBSP = "\u202F"
ZWSP = "\u200B"
ZWNBSP = "\uFEFF"
RIGHT_SINGLE_QUOTE = "\u2019"


def normalize_text(text: str | None) -> str:
    """
    Normalize user input for parsing: strip, collapse spaces, fix common unicode.

    Args:
        text: Raw user message (or None)

    Returns:
        Normalized string (empty string if input is None/empty)
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        return ""
    s = text.strip()
    s = s.replace(NBSP, " ").replace(NARROW_NBSP, " ")
    s = s.replace(ZWSP, "").replace(ZWNBSP, "")
    # French keyboards on phones send a typographic apostrophe ("m’appelle")
    s = s.replace(RIGHT_SINGLE_QUOTE, "'")
    # Normalize unicode (NFC) so composed chars are consistent
    s = unicodedata.normalize("NFC", s)
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def fold_accents(text: str) -> str:
    """Remove diacritics ("téléphone" -> "telephone") for accent-insensitive matching."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_for_matching(text: str | None) -> str:
    """normalize_text + lowercase + accent folding. Use for vocabulary lookups."""
    return fold_accents(normalize_text(text)).lower()


def normalize_for_budget(text: str | None) -> str:
    """
    Normalize for budget parsing: lowercase, and join thousands groups split by
    spaces ("3 000 €" -> "3000 €"). Decimal separators are handled by the parser.
    """
    s = normalize_for_matching(text)
    return re.sub(r"(?<=\d) (?=\d{3}\b)", "", s)
