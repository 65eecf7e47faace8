"""
Confidence Scoring

Maps cosine distance (0 = same direction, 2 = opposite) to the confidence
score shown to users (1 = perfect match, 0 = no match).
"""

from __future__ import annotations


def distance_to_confidence(distance: float) -> float:
    """
    Convert a cosine distance into a confidence score.

    Only the low side is clamped: a negative distance (never produced by a
    cosine search) yields a score above 1.0.

    Examples
    --------
    >>> distance_to_confidence(0)
    1.0
    >>> distance_to_confidence(1)
    0.5
    >>> distance_to_confidence(3)
    0.0
    """
    return max(0.0, 1.0 - distance / 2.0)
