# backend/attestdb/apps/training/scoring.py
"""
Deterministic scoring rules for training sessions.

All scores are floats in 0..1. Means are computed with math.fsum so the
result depends only on the multiset of values, not on how they were split
between scenarios and quiz questions.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

DEFAULT_PASS_THRESHOLD = 0.7


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return math.fsum(values) / len(values)


def score_mc_answer(selected: str, correct: str) -> float:
    """Exact, case-sensitive match. Two empty strings count as a match."""
    return 1.0 if selected == correct else 0.0


def compute_module_score(
    scenario_scores: Sequence[float],
    quiz_scores: Sequence[float],
) -> Optional[float]:
    return _mean([*scenario_scores, *quiz_scores])


def compute_aggregate_score(module_scores: Sequence[float]) -> Optional[float]:
    return _mean(list(module_scores))


def is_passing(score: float, threshold: float = DEFAULT_PASS_THRESHOLD) -> bool:
    return score >= threshold


def identify_weak_areas(
    modules: Iterable[Tuple[str, float]],
    threshold: float = DEFAULT_PASS_THRESHOLD,
) -> List[str]:
    """
    Topic areas of modules scoring strictly below `threshold`, in input order.

    `modules` yields (topic_area, module_score) pairs.
    """
    return [topic_area for topic_area, score in modules if score < threshold]
