"""
Team-name normalization and fuzzy comparison.

Different feeds spell the same club differently ("SE Palmeiras", "Palmeiras",
"Atl. Mineiro"); names are reduced to a canonical key before comparing.
"""
from __future__ import annotations

import re
import unicodedata

from rapidfuzz.distance import Levenshtein

# Generic club-type tokens that carry no identity
CLUB_TOKENS: frozenset[str] = frozenset({
    "fc", "sc", "ac", "cf", "rc", "se", "ec", "afc", "cd", "ca",
    "club", "clube", "esporte", "futebol", "futbol", "sport",
})

# Abbreviations expanded before club tokens are dropped
ABBREVIATIONS: dict[str, str] = {
    "atl": "atletico",
    "utd": "united",
    "dep": "deportivo",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_team_name(name: str) -> str:
    """
    Lowercase, strip diacritics and punctuation, drop generic club tokens.

    Returns the remaining tokens joined without separators, or "" when nothing
    identifying is left.
    """
    if not name:
        return ""
    cleaned = _NON_ALNUM.sub(" ", _strip_accents(name).lower())
    tokens = [ABBREVIATIONS.get(tok, tok) for tok in cleaned.split()]
    return "".join(tok for tok in tokens if tok not in CLUB_TOKENS)


def name_similarity(a: str, b: str) -> float:
    """1 - Levenshtein distance / length of the longer string."""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def teams_match(a: str, b: str, threshold: float = 0.8) -> bool:
    """Compare two already-normalized names."""
    if not a or not b:
        return False
    if a == b or a in b or b in a:
        return True
    return name_similarity(a, b) > threshold
