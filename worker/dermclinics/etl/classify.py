"""Rule-based dermatology classifier for raw Places candidates.

Rules run in order and the first one that matches decides. The exclude list
always runs first so dental and veterinary practices, which share a lot of
generic "clinic" vocabulary, never get through on a positive signal.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

SKIN_CARE_CLINIC_TYPE = "skin_care_clinic"

EXCLUDE_SUBSTRINGS = (
    "dental",
    "dentist",
    "orthodont",
    "oral surgery",
    "veterinar",
    "massage",
    "spa resort",
    "day spa",
    "nail salon",
)
# Must start a word and either end it or run into a compound suffix
# ("petcare", "animalderm"), so "St. Petersburg" does not match.
EXCLUDE_WORDS = ("animals?", "pets?")
EXCLUDE_COMPOUND_SUFFIXES = ("care", "vet", "derm", "clinic", "hospital", "health", "doc")

CORE_TERMS = ("dermatology", "dermatologist", "dermatologic", "derma")

RELATED_TERMS = (
    "skin clinic",
    "skin center",
    "skin care clinic",
    "skin doctor",
    "skin specialist",
    "skin health",
    "medical dermatology",
    "cosmetic dermatology",
    "laser dermatology",
    "aesthetic dermatology",
    "mohs surgery",
    "skin cancer",
)

WEAK_TERMS = ("derm", "skin")
MEDICAL_TYPE_TAGS = ("doctor", "health")
MEDICAL_WORDS = ("medical", "clinic", "center")
STORE_TERMS = ("beauty supply", "cosmetics store", "cosmetics shop")

_EXCLUDE_WORD_RE = re.compile(
    r"\b(?:%s)(?:\b|(?=%s))" % ("|".join(EXCLUDE_WORDS), "|".join(EXCLUDE_COMPOUND_SUFFIXES))
)


class CandidateText(NamedTuple):
    name: str
    website: str
    types: Tuple[str, ...]
    combined: str


class Verdict(NamedTuple):
    accepted: bool
    rule: str


def candidate_text(place: Dict[str, Any]) -> CandidateText:
    """Lower-cased text fields a rule can look at."""
    display_name = place.get("displayName")
    if isinstance(display_name, dict):
        name = display_name.get("text") or ""
    else:
        name = display_name or ""
    name = str(name).lower()
    website = str(place.get("websiteUri") or "").lower()
    types = tuple(str(tag).lower() for tag in place.get("types") or [])
    combined = " ".join([name, website, " ".join(types).replace("_", " ")])
    return CandidateText(name=name, website=website, types=types, combined=combined)


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def has_exclude_term(text: CandidateText) -> bool:
    return _contains_any(text.combined, EXCLUDE_SUBSTRINGS) or bool(_EXCLUDE_WORD_RE.search(text.combined))


def has_skin_care_type(text: CandidateText) -> bool:
    return SKIN_CARE_CLINIC_TYPE in text.types


def has_core_term(text: CandidateText) -> bool:
    return _contains_any(text.combined, CORE_TERMS)


def has_related_term(text: CandidateText) -> bool:
    for term in RELATED_TERMS:
        if term in text.name or term in text.website or term.replace(" ", "") in text.website:
            return True
    return False


def has_medical_context(text: CandidateText) -> bool:
    return _contains_any(" ".join(text.types), MEDICAL_TYPE_TAGS) or _contains_any(text.combined, MEDICAL_WORDS)


def looks_like_store(text: CandidateText) -> bool:
    if any(tag == "store" or tag.endswith("_store") for tag in text.types):
        return True
    return _contains_any(text.combined, STORE_TERMS)


def weak_signal_verdict(text: CandidateText) -> Optional[bool]:
    if not _contains_any(text.combined, WEAK_TERMS) or not has_medical_context(text):
        return None
    return not looks_like_store(text)


def _flag(predicate: Callable[[CandidateText], bool], verdict: bool) -> Callable[[CandidateText], Optional[bool]]:
    def rule(text: CandidateText) -> Optional[bool]:
        return verdict if predicate(text) else None

    return rule


# (name, rule) pairs; a rule returns True/False to decide or None to defer.
RULES: Tuple[Tuple[str, Callable[[CandidateText], Optional[bool]]], ...] = (
    ("exclude_term", _flag(has_exclude_term, False)),
    ("skin_care_type", _flag(has_skin_care_type, True)),
    ("core_term", _flag(has_core_term, True)),
    ("related_term", _flag(has_related_term, True)),
    ("weak_signal", weak_signal_verdict),
)


def classify(place: Dict[str, Any]) -> Verdict:
    text = candidate_text(place)
    for name, rule in RULES:
        decision = rule(text)
        if decision is not None:
            return Verdict(decision, name)
    return Verdict(False, "default_reject")


def accept_candidate(place: Dict[str, Any]) -> bool:
    """Return True when the candidate looks like a dermatology practice."""
    verdict = classify(place)
    logger.debug("candidate %s -> %s (%s)", place.get("id"), verdict.accepted, verdict.rule)
    return verdict.accepted
