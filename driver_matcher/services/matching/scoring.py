"""
Composite Score Decision Table

Combines phone and name similarity into one match score. Rows are evaluated
top to bottom and the first matching row wins, so phone=1.0/name=0.85 scores
0.9 even though it also satisfies the 0.8 row.
"""

from typing import Callable, List, Tuple

# (row name, predicate(phone_sim, name_sim), score)
DECISION_TABLE: List[Tuple[str, Callable[[float, float], bool], float]] = [
    ("exact_phone_exact_name", lambda p, n: p == 1.0 and n == 1.0, 1.0),
    ("exact_phone_strong_name", lambda p, n: p == 1.0 and n > 0.8, 0.9),
    ("similar_phone_similar_name", lambda p, n: p >= 0.7 and n > 0.7, 0.8),
    ("exact_phone_only", lambda p, n: p == 1.0 and n == 0.0, 0.7),
    ("name_only", lambda p, n: p == 0.0 and n > 0.6, 0.6),
    ("weak_phone_or_name", lambda p, n: p >= 0.5 or n >= 0.5, 0.5),
]


def composite_row(phone_sim: float, name_sim: float) -> Tuple[str, float]:
    """Return (row name, score) of the first decision-table row that applies."""
    for row_name, applies, score in DECISION_TABLE:
        if applies(phone_sim, name_sim):
            return row_name, score
    return "no_signal", 0.0


def composite_score(phone_sim: float, name_sim: float) -> float:
    """
    Score a candidate from its phone and name similarities.

    Example:
        >>> composite_score(1.0, 0.85)
        0.9
    """
    return composite_row(phone_sim, name_sim)[1]


__all__ = ["DECISION_TABLE", "composite_row", "composite_score"]
