"""
Signal Scorer Functions

Provides core matching logic for phone and name signals.

Design decisions:
- Tier values (0.9/0.7/0.5 for phone, +0.2 typo boost for names) are policy
  constants; downstream payments depend on reproducing them exactly
- Edit distance is unit-cost Levenshtein from RapidFuzz
- Both scorers are symmetric in their two arguments
"""

from typing import Optional
from rapidfuzz.distance import Levenshtein
import structlog

from driver_matcher.services.matching.normalizer import (
    normalize_name_for_comparison,
    normalize_phone,
)

logger = structlog.get_logger(__name__)

# Phone tiers: mismatched trailing digits -> score
PHONE_MAX_LENGTH_GAP = 3
PHONE_COMPARE_DIGITS = 9
PHONE_TIER_SCORES = {0: 1.0, 1: 0.9, 2: 0.7}
PHONE_LOOSE_SCORE = 0.5
PHONE_LOOSE_MAX_DIFFS = 3
PHONE_LOOSE_MIN_COMPARED = 7

# Name typo boost
TYPO_BOOST = 0.2
TYPO_MAX_DISTANCE = 2
TYPO_MIN_WORD_LENGTH = 4


def phone_similarity(phone_a: Optional[str], phone_b: Optional[str]) -> float:
    """
    Score two phone numbers by their trailing digits.

    Tolerates one misdialed digit or a missing/extra country prefix:
    compares the last min(9, shorter length) characters positionally.

    Example:
        >>> phone_similarity("0991234567", "+591 99123456 7")
        1.0
        >>> phone_similarity("0991234567", "0991234568")
        0.9
    """
    norm_a = normalize_phone(phone_a)
    norm_b = normalize_phone(phone_b)

    if not norm_a or not norm_b:
        return 0.0

    if norm_a == norm_b:
        return 1.0

    len_a, len_b = len(norm_a), len(norm_b)
    shorter, longer = min(len_a, len_b), max(len_a, len_b)

    if longer - shorter > PHONE_MAX_LENGTH_GAP:
        return 0.0

    compare_len = min(shorter, PHONE_COMPARE_DIGITS)
    tail_a = norm_a[-compare_len:]
    tail_b = norm_b[-compare_len:]

    compared = min(len(tail_a), len(tail_b))
    diffs = sum(1 for i in range(compared) if tail_a[i] != tail_b[i])
    diffs += abs(len(tail_a) - len(tail_b))

    if diffs in PHONE_TIER_SCORES:
        return PHONE_TIER_SCORES[diffs]
    if diffs <= PHONE_LOOSE_MAX_DIFFS and compared >= PHONE_LOOSE_MIN_COMPARED:
        return PHONE_LOOSE_SCORE
    return 0.0


def edit_distance(word_a: str, word_b: str) -> int:
    """Classic Levenshtein distance (insert/delete/substitute cost 1)."""
    return Levenshtein.distance(word_a, word_b)


def _is_typo_pair(word_a: str, word_b: str) -> bool:
    return (
        word_a != word_b
        and max(len(word_a), len(word_b)) >= TYPO_MIN_WORD_LENGTH
        and edit_distance(word_a, word_b) <= TYPO_MAX_DISTANCE
    )


def name_similarity(
    name_a: Optional[str],
    name_b: Optional[str],
    threshold: float,
    min_words_match: int = 2,
    ignore_trailing_surname: bool = False,
) -> float:
    """
    Word-set Jaccard similarity with a typo boost.

    Args:
        name_a: First name string (any order, accents allowed)
        name_b: Second name string
        threshold: Minimum Jaccard for a non-zero score
        min_words_match: Minimum number of shared words for a non-zero score
        ignore_trailing_surname: Compare only the first two words of each
            comparison form (drops a second surname)

    Returns:
        1.0 for identical comparison forms; jaccard (plus up to 0.2 when a
        near-miss word pair exists, capped at 1.0) when both gates pass;
        otherwise 0.0.

    Example:
        >>> name_similarity("Juan Pérez López", "López Juan Pérez", threshold=0.5)
        1.0
    """
    norm_a = normalize_name_for_comparison(name_a)
    norm_b = normalize_name_for_comparison(name_b)

    if not norm_a or not norm_b:
        return 0.0

    if norm_a == norm_b:
        return 1.0

    words_a = norm_a.split(" ")
    words_b = norm_b.split(" ")

    if ignore_trailing_surname:
        words_a = words_a[:2]
        words_b = words_b[:2]

    set_a, set_b = set(words_a), set(words_b)
    shared = set_a & set_b
    union = set_a | set_b

    if not union:
        return 0.0

    jaccard = len(shared) / len(union)

    if len(shared) < min_words_match or jaccard < threshold:
        return 0.0

    typo_pairs = [
        f"{a}~{b}"
        for a in sorted(set_a)
        for b in sorted(set_b)
        if _is_typo_pair(a, b)
    ]
    adjusted = jaccard + TYPO_BOOST if typo_pairs else jaccard

    logger.debug("name_similarity_details",
                 name_a=name_a,
                 name_b=name_b,
                 shared=len(shared),
                 union=len(union),
                 jaccard=round(jaccard, 4),
                 adjusted=round(adjusted, 4),
                 typo_pairs=typo_pairs)

    return min(adjusted, 1.0)


def adaptive_name_threshold(word_count: int) -> float:
    """
    Jaccard threshold scaled by name length.

    Longer names tolerate more missing words; single words never
    auto-match (threshold 1.0 means only an exact comparison form passes).
    """
    if word_count >= 4:
        return 0.40
    if word_count == 3:
        return 0.50
    if word_count == 2:
        return 0.65
    return 1.0


__all__ = [
    "phone_similarity",
    "name_similarity",
    "edit_distance",
    "adaptive_name_threshold",
]
