"""
Fact extraction - deterministic pattern matching over French free text.

All extraction goes through EXTRACTION_RULES, an ordered table of
(slot, extractor) pairs. Each extractor is a pure function of the message and
returns a candidate value (or None); FactSet.set_if_absent applies
first-write-wins. Rules for the same slot are tried in table order, which is the
tie-break when several patterns could match.

Budget shapes (in priority order):
- range: "entre 2000 et 3000", "de 2k à 3k €", "2000-3000€"
- single with keyword: "max 1.5k", "budget de 4000", "jusqu'à 3000 €"
- bare amount with currency marker: "4000€", "3k", "2 500 euros"
"k" multiplies by 1000; "." and "," are accepted as decimal separators.
"""

import logging
import re
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from app.services.qualification.facts import (
    BUDGET_APPROX,
    BUDGET_MAX,
    BUDGET_RANGE,
    Budget,
    FactSet,
    Timing,
)
from app.services.text_normalization import (
    fold_accents,
    normalize_for_budget,
    normalize_for_matching,
    normalize_text,
)

logger = logging.getLogger(__name__)

VOCABULARY_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "vocabulary.yml"

MIN_AGE = 16
MAX_AGE = 99

# Tokens that end a captured name ("je m'appelle marie dupont et je voudrais...")
NAME_STOPWORDS = {
    "et", "je", "j", "mais", "ai", "suis", "veux", "voudrais", "souhaite", "souhaiterais",
    "aimerais", "cherche", "pour", "avec", "qui", "ans", "merci", "bonjour", "svp",
}

# Words that can follow "je suis" or "moi c'est" without being a name
NOT_A_NAME = {
    "interesse", "interessee", "enceinte", "allergique", "fumeuse", "fumeur", "disponible",
    "la", "le", "les", "une", "un", "du", "des", "en", "pas", "tres", "tellement", "ravi",
    "ravie", "de", "mon", "ma", "mes", "surtout", "plutot", "juste",
}

_NUM = r"(\d+(?:[.,]\d+)?)"
_CURRENCY = r"(?:€|euros?\b|eur\b)"
# A number followed by one of these is a duration or an age, never a budget
_NOT_MONEY_UNIT = r"(?!\d|[.,]\d|\s*(?:ans?|mois|jours?|semaines?|heures?|kg|kilos?|cm)\b)"

RANGE_PATTERNS = [
    re.compile(
        rf"entre\s+{_NUM}\s*(k)?\s*{_CURRENCY}?\s+et\s+{_NUM}\s*(k)?{_NOT_MONEY_UNIT}"
    ),
    re.compile(rf"\bde\s+{_NUM}\s*(k)?\s*{_CURRENCY}?\s+a\s+{_NUM}\s*(k)?\s*{_CURRENCY}"),
    re.compile(rf"{_NUM}\s*(k)?\s*{_CURRENCY}?\s*-\s*{_NUM}\s*(k)?\s*{_CURRENCY}"),
]

SINGLE_PATTERNS = [
    re.compile(
        rf"\b(max(?:imum)?|jusqu'a|pas plus de|budget(?:\s+max(?:imum)?)?(?:\s+est)?"
        rf"(?:\s+(?:de|d'environ|d'|a|autour de|aux alentours de))?)\s*:?\s*"
        rf"(?:environ\s+)?{_NUM}\s*(k)?{_NOT_MONEY_UNIT}"
    ),
]

BARE_AMOUNT_PATTERNS = [
    re.compile(rf"{_NUM}\s*(k)?\s*{_CURRENCY}"),
    re.compile(rf"(?<![\w.,]){_NUM}\s*k\b"),
]

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
PHONE_PATTERN = re.compile(r"(?<!\d)(?:(?:\+|00)33\s?|0)[1-9](?:[\s.-]?\d{2}){4}(?!\d)|\+\d{10,15}")
AGE_PATTERN = re.compile(r"\b(\d{2})\s*ans\b")
_COUNT = r"(\d{1,2}|un|une|deux|trois|quatre|cinq|six|sept|huit|neuf|dix|onze|douze)"
MONTHS_PATTERN = re.compile(rf"\b{_COUNT}\s*mois\b")
# Weeks and years only count as a horizon after "dans", "d'ici" or "sous" ("j'ai 34 ans" is an age)
WEEKS_PATTERN = re.compile(rf"\b(?:dans|d'ici|sous)\s+(?:a\s+)?{_COUNT}\s*semaines?\b")
YEARS_PATTERN = re.compile(rf"\b(?:dans|d'ici|sous)\s+(?:a\s+)?{_COUNT}\s*ans?\b")
# A count after these is time already spent, not a horizon
PAST_DURATION_CUES = ("depuis", "il y a", "ca fait", "cela fait", "pendant")
GREETING_PATTERN = re.compile(r"\b(bonjour|bonsoir|salut|hello|coucou|hey|hi)\b")

_NAME_TOKEN = r"[A-Za-zÀ-ÖØ-öø-ÿ][A-Za-zÀ-ÖØ-öø-ÿ'-]*"
EXPLICIT_NAME_PATTERNS = [
    re.compile(rf"(?i:je m'appelle|mon nom est|mon nom c'est|moi c'est)\s+((?:{_NAME_TOKEN}\s*){{1,4}})"),
]
# "je suis X" only counts when X is capitalized, to skip "je suis intéressée par..."
INTRO_NAME_PATTERN = re.compile(
    r"(?i:je suis)\s+([A-ZÀ-Ý][a-zà-ÿ'-]+(?:\s+[A-ZÀ-Ý][A-Za-zà-ÿ'-]+){0,3})"
)

WORD_NUMBERS = {
    "un": 1, "une": 1, "deux": 2, "trois": 3, "quatre": 4, "cinq": 5, "six": 6,
    "sept": 7, "huit": 8, "neuf": 9, "dix": 10, "onze": 11, "douze": 12,
}

NEGATIONS = ("pas ", "pas tres ", "rien d'", "rien de ", "aucune ", "aucun ")


@lru_cache(maxsize=1)
def load_vocabulary() -> dict[str, Any]:
    """Load and cache the extraction vocabulary (YAML)."""
    try:
        with open(VOCABULARY_PATH, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded extraction vocabulary from {VOCABULARY_PATH}")
        return data
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load extraction vocabulary: {e}, extraction will be limited")
        return {}


@lru_cache(maxsize=512)
def _term_pattern(term: str) -> re.Pattern:
    folded = fold_accents(term).lower()
    return re.compile(rf"(?<![a-z0-9]){re.escape(folded)}(?![a-z0-9])")


def _find_term(text: str, term: str, allow_negated: bool = False) -> bool:
    """Whole-word match of term in folded text; negated mentions ("pas urgent") are skipped."""
    for match in _term_pattern(term).finditer(text):
        if allow_negated:
            return True
        before = text[: match.start()]
        if not any(before.endswith(neg) for neg in NEGATIONS):
            return True
    return False


def _first_named_match(text: str, entries: list[dict]) -> str | None:
    for entry in entries:
        for term in entry.get("terms", []):
            if _find_term(text, str(term)):
                return entry["name"]
    return None


def _to_euros(raw: str, has_k: bool) -> int | None:
    """
    Convert a numeric fragment to whole euros. With "k", "." and "," are decimal
    separators ("1.5k", "2,5k"). Without "k", a separator followed by exactly
    three digits groups thousands ("1.500"); otherwise it is a decimal point.
    """
    try:
        if has_k:
            value = float(raw.replace(",", ".")) * 1000
        elif re.fullmatch(r"\d+[.,]\d{3}", raw):
            value = float(raw.replace(",", "").replace(".", ""))
        else:
            value = float(raw.replace(",", "."))
    except ValueError:
        return None
    amount = int(round(value))
    return amount if amount > 0 else None


def parse_budget(text: str) -> Budget | None:
    """Parse a budget from free text. Returns None when nothing parses (never a zero budget)."""
    cleaned = normalize_for_budget(text)
    if not cleaned:
        return None

    for pattern in RANGE_PATTERNS:
        match = pattern.search(cleaned)
        if not match:
            continue
        low_raw, low_k, high_raw, high_k = match.groups()
        high = _to_euros(high_raw, bool(high_k))
        # "entre 2 et 3k" -> the k applies to both bounds
        low = _to_euros(low_raw, bool(low_k) or (bool(high_k) and float(low_raw.replace(",", ".")) < 1000))
        if low is None or high is None:
            continue
        if low > high:
            low, high = high, low
        return Budget(kind=BUDGET_RANGE, min=low, max=high)

    for pattern in SINGLE_PATTERNS:
        match = pattern.search(cleaned)
        if not match:
            continue
        keyword, raw, has_k = match.groups()
        amount = _to_euros(raw, bool(has_k))
        if amount is None:
            continue
        if "max" in keyword or keyword.startswith(("jusqu", "pas plus")):
            return Budget(kind=BUDGET_MAX, amount=amount, max=amount)
        return Budget(kind=BUDGET_APPROX, amount=amount)

    for pattern in BARE_AMOUNT_PATTERNS:
        match = pattern.search(cleaned)
        if not match:
            continue
        groups = match.groups()
        raw, has_k = groups[0], (groups[1] if len(groups) > 1 else "k")
        amount = _to_euros(raw, bool(has_k))
        if amount is not None:
            return Budget(kind=BUDGET_APPROX, amount=amount)

    return None


def _months_to_timing(months: int) -> Timing | None:
    if months <= 0:
        return None
    if months <= 3:
        return Timing.NEAR_TERM
    if months <= 12:
        return Timing.MID_TERM
    return Timing.LONG_TERM


def _count(token: str) -> int:
    return int(token) if token.isdigit() else WORD_NUMBERS[token]


def _is_past_duration(folded: str, start: int) -> bool:
    return folded[:start].rstrip().endswith(PAST_DURATION_CUES)


def _numeric_horizon(folded: str) -> Timing | None:
    """"dans 2 mois", "d'ici 6 semaines", "dans 2 ans". Durations already elapsed are skipped."""
    for match in WEEKS_PATTERN.finditer(folded):
        if _count(match.group(1)) > 0:
            return Timing.NEAR_TERM
    for match in MONTHS_PATTERN.finditer(folded):
        if _is_past_duration(folded, match.start()):
            continue
        timing = _months_to_timing(_count(match.group(1)))
        if timing is not None:
            return timing
    for match in YEARS_PATTERN.finditer(folded):
        years = _count(match.group(1))
        if years == 1:
            return Timing.MID_TERM
        if years > 1:
            return Timing.LONG_TERM
    return None


def parse_timing(text: str) -> Timing | None:
    """Classify the project horizon. Order: urgent, 1-3 months, 3-12 months, long term."""
    folded = normalize_for_matching(text)
    if not folded:
        return None
    keywords = load_vocabulary().get("timing", {})

    if any(_find_term(folded, term) for term in keywords.get("urgent", [])):
        return Timing.URGENT

    timing = _numeric_horizon(folded)
    if timing is not None:
        return timing

    for timing in (Timing.NEAR_TERM, Timing.MID_TERM, Timing.LONG_TERM):
        # Negated phrases ("pas urgent") are themselves long-term keywords
        allow_negated = timing == Timing.LONG_TERM
        if any(_find_term(folded, term, allow_negated) for term in keywords.get(timing.value, [])):
            return timing
    return None


def _starts_like_name(raw: str) -> bool:
    first = fold_accents(raw.split()[0]).lower() if raw.split() else ""
    # Elided articles: "l'abdomen", "d'abord"
    return bool(first) and first not in NOT_A_NAME and not first.startswith(("l'", "d'"))


def _clean_name_tokens(raw: str) -> list[str]:
    tokens = []
    for token in raw.split():
        token = token.strip("'-")
        if not token or fold_accents(token).lower() in NAME_STOPWORDS:
            break
        tokens.append(token)
    return tokens


def parse_name(text: str) -> tuple[str | None, str | None]:
    """
    Extract (prenom, nom) from a self-introduction. The last token is the surname,
    preceding tokens are given names; a single token is a given name only.
    """
    normalized = normalize_text(text)
    tokens: list[str] = []
    for pattern in EXPLICIT_NAME_PATTERNS:
        match = pattern.search(normalized)
        if match:
            # "moi c'est une rhinoplastie", "moi c'est le nez"
            if _starts_like_name(match.group(1)):
                tokens = _clean_name_tokens(match.group(1))
            break
    if not tokens:
        match = INTRO_NAME_PATTERN.search(normalized)
        if match and _starts_like_name(match.group(1)):
            tokens = _clean_name_tokens(match.group(1))
    if not tokens:
        return None, None

    tokens = [t[:1].upper() + t[1:] for t in tokens]
    if len(tokens) == 1:
        return tokens[0], None
    return " ".join(tokens[:-1]), tokens[-1]


def parse_age(text: str) -> int | None:
    """"NN ans" as an age; durations ("depuis 20 ans", "dans 10 ans") are ignored."""
    folded = normalize_for_matching(text)
    for match in AGE_PATTERN.finditer(folded):
        before = folded[: match.start()].rstrip()
        if before.endswith(("depuis", "dans", "pendant", "il y a", "plus de", "moins de")):
            continue
        age = int(match.group(1))
        if MIN_AGE <= age <= MAX_AGE:
            return age
    return None


def parse_email(text: str) -> str | None:
    match = EMAIL_PATTERN.search(normalize_text(text))
    return match.group(0).lower() if match else None


def parse_phone(text: str) -> str | None:
    match = PHONE_PATTERN.search(normalize_text(text))
    if not match:
        return None
    return re.sub(r"[\s.-]", "", match.group(0))


def parse_contact_pref(text: str) -> str | None:
    """Preferred channel: an email token, then a phone token, then an explicit channel mention."""
    if parse_email(text):
        return "email"
    if parse_phone(text):
        return "telephone"
    folded = normalize_for_matching(text)
    for channel, terms in load_vocabulary().get("contact_channels", {}).items():
        if any(_find_term(folded, term) for term in terms):
            return channel
    return None


def parse_intervention(text: str) -> str | None:
    return _first_named_match(normalize_for_matching(text), load_vocabulary().get("interventions", []))


def parse_objective(text: str) -> str | None:
    return _first_named_match(normalize_for_matching(text), load_vocabulary().get("objectives", []))


def parse_medical(text: str) -> str | None:
    """Return the raw sentence mentioning a contraindication-relevant term."""
    terms = load_vocabulary().get("medical_terms", [])
    for sentence in re.split(r"(?<=[.!?;])\s+|\n+", normalize_text(text)):
        folded = fold_accents(sentence).lower()
        if any(_find_term(folded, str(term)) for term in terms):
            return sentence.strip()
    return None


def is_greeting(text: str) -> bool:
    return bool(GREETING_PATTERN.search(normalize_for_matching(text)))


def _prenom(text: str) -> str | None:
    return parse_name(text)[0]


def _nom(text: str) -> str | None:
    return parse_name(text)[1]


# Ordered extraction table: (slot, extractor). Earlier rows win for the same slot.
EXTRACTION_RULES: list[tuple[str, Callable[[str], Any]]] = [
    ("intervention", parse_intervention),
    ("objectif", parse_objective),
    ("budget", parse_budget),
    ("timing", parse_timing),
    ("prenom", _prenom),
    ("nom", _nom),
    ("age", parse_age),
    ("email", parse_email),
    ("telephone", parse_phone),
    ("contact_pref", parse_contact_pref),
    ("medical", parse_medical),
]


def extract_facts(text: str | None, facts: FactSet) -> FactSet:
    """
    Update facts in place from one inbound message and return them.

    Never raises: an extractor that fails is logged and skipped, unmatched
    patterns simply leave the slot unset.
    """
    if not text:
        return facts
    for slot, extractor in EXTRACTION_RULES:
        if getattr(facts, slot) is not None:
            continue
        try:
            value = extractor(text)
        except Exception as e:
            logger.warning(
                f"Fact extractor failed for slot={slot}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            continue
        facts.set_if_absent(slot, value)
    return facts
