from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

from .store.base import CharacterClassCounts

_NUMERIC_RE = re.compile(r"^[0-9]+$")
_LETTERS_RE = re.compile(r"^[a-z]+$")
_SPECIAL_RE = re.compile(r"[^a-z0-9]")
_REPEAT_RE = re.compile(r"(.)\1")

CLASS_WEIGHT = 0.2
PALINDROME_ADJUSTMENT = -10.0
REPEATING_ADJUSTMENT = 5.0

BANDS = (
    (20.0, "Ultra Rare"),
    (40.0, "Rare"),
    (60.0, "Uncommon"),
    (80.0, "Common"),
)
TOP_BAND = "Very Common"


def _round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percentage(count: int, total: int) -> float:
    """Brief: Share of count in total as a percentage rounded to 2 places.

    Inputs:
      - count: Matching names.
      - total: All names; 0 yields 0.0.

    Outputs:
      - float in [0, 100] for count <= total.

    Example:
      >>> percentage(1, 3)
      33.33
    """
    if int(total) <= 0:
        return 0.0
    exact = Decimal(int(count)) * Decimal(100) / Decimal(int(total))
    return float(exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def length_base(length: int) -> float:
    if length <= 3:
        return 10.0
    if length <= 5:
        return 30.0
    if length <= 7:
        return 50.0
    if length <= 10:
        return 70.0
    return 90.0


def classify(score: float) -> str:
    """Map a score to its band; lower is rarer."""
    for upper, label in BANDS:
        if score <= upper:
            return label
    return TOP_BAND


@dataclass(frozen=True)
class RarityScore:
    name: str
    is_numeric: bool
    is_letters_only: bool
    has_special_chars: bool
    is_palindrome: bool
    has_repeating_chars: bool
    raw_score: float
    classification: str

    @property
    def score(self) -> float:
        """Score rounded to 2 decimals for display; bands use raw_score."""
        return _round2(self.raw_score)


def score_name(name: str, counts: CharacterClassCounts) -> RarityScore:
    """
    Brief: Deterministic scarcity score of name within its namespace.

    Inputs:
    - name: Name string (without namespace).
    - counts: CharacterClassCounts of the namespace.

    Outputs:
    - RarityScore with the clamped score in [0, 100] and its band.

    Notes:
    - Base by length, plus 0.2 x the namespace share of the one character
      class the name belongs to, -10 for palindromes (single characters
      included), +5 for any adjacent repeated character.

    Example:
        >>> score_name("abc", CharacterClassCounts(total=10, letters=5)).score
        20.0
    """
    is_numeric = bool(_NUMERIC_RE.match(name))
    is_letters_only = bool(_LETTERS_RE.match(name))
    has_special = bool(_SPECIAL_RE.search(name))
    is_palindrome = name == name[::-1]
    has_repeating = bool(_REPEAT_RE.search(name))

    score = length_base(len(name))
    if is_numeric:
        score += percentage(counts.numeric, counts.total) * CLASS_WEIGHT
    elif is_letters_only:
        score += percentage(counts.letters, counts.total) * CLASS_WEIGHT
    elif has_special:
        score += percentage(counts.special, counts.total) * CLASS_WEIGHT

    if is_palindrome:
        score += PALINDROME_ADJUSTMENT
    if has_repeating:
        score += REPEATING_ADJUSTMENT

    score = max(0.0, min(100.0, score))

    return RarityScore(
        name=name,
        is_numeric=is_numeric,
        is_letters_only=is_letters_only,
        has_special_chars=has_special,
        is_palindrome=is_palindrome,
        has_repeating_chars=has_repeating,
        raw_score=score,
        classification=classify(score),
    )


def rarity_metrics(name: str, counts: CharacterClassCounts) -> Dict[str, Any]:
    """Brief: Full metrics document for one name.

    Inputs:
      - name: Name string.
      - counts: CharacterClassCounts of the namespace.

    Outputs:
      - dict with 'length', 'type', 'patterns' and 'rarity_score' sections.
    """

    result = score_name(name, counts)
    same_length = counts.same_length(len(name))
    return {
        "length": {
            "value": len(name),
            "count_same_length": same_length,
            "percentile": percentage(same_length, counts.total),
        },
        "type": {
            "is_numeric": result.is_numeric,
            "is_letters_only": result.is_letters_only,
            "has_special_chars": result.has_special_chars,
            "numeric_names_count": counts.numeric,
            "letter_only_names_count": counts.letters,
            "special_char_names_count": counts.special,
            "numeric_percentile": percentage(counts.numeric, counts.total),
            "letters_percentile": percentage(counts.letters, counts.total),
            "special_char_percentile": percentage(counts.special, counts.total),
        },
        "patterns": {
            "is_palindrome": result.is_palindrome,
            "has_repeating_chars": result.has_repeating_chars,
        },
        "rarity_score": {
            "score": result.score,
            "classification": result.classification,
        },
    }
