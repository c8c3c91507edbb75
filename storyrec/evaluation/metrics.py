"""Ranking-quality metrics over a recommended list and a relevant set.

All functions use binary relevance: a recommended story either is in the
relevant set or it is not.
"""

from __future__ import annotations

from typing import Collection, Sequence

import numpy as np

from storyrec.models import Story


def _hits_at_k(recommended: Sequence[str], relevant: Collection[str], k: int) -> int:
    return sum(1 for story_id in recommended[:k] if story_id in relevant)


def precision_at_k(recommended: Sequence[str], relevant: Collection[str], k: int) -> float:
    """Hits in the first *k* divided by ``min(k, len(recommended))``."""
    if not recommended:
        return 0.0
    return _hits_at_k(recommended, relevant, k) / min(k, len(recommended))


def recall_at_k(recommended: Sequence[str], relevant: Collection[str], k: int) -> float:
    """Hits in the first *k* divided by the number of relevant items."""
    if not relevant:
        return 0.0
    return _hits_at_k(recommended, relevant, k) / len(relevant)


def f1_score(precision: float, recall: float) -> float:
    """Harmonic mean of *precision* and *recall*; 0 when both are 0."""
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def average_precision_at_k(
    recommended: Sequence[str], relevant: Collection[str], k: int
) -> float:
    """Sum of precision at each hit within the first *k*, over ``min(len(relevant), k)``."""
    if not relevant:
        return 0.0
    total = 0.0
    hits = 0
    for i, story_id in enumerate(recommended[:k]):
        if story_id in relevant:
            hits += 1
            total += hits / (i + 1)
    return total / min(len(relevant), k)


def ndcg_at_k(recommended: Sequence[str], relevant: Collection[str], k: int) -> float:
    """Normalised discounted cumulative gain with a ``log2(position + 2)`` discount.

    The ideal ordering places ``min(k, len(relevant))`` relevant items first.
    """
    if not relevant:
        return 0.0
    gains = np.array(
        [1.0 if story_id in relevant else 0.0 for story_id in recommended[:k]]
    )
    discounts = 1.0 / np.log2(np.arange(2, len(gains) + 2))
    dcg = float((gains * discounts).sum())

    ideal = min(k, len(relevant))
    idcg = float((1.0 / np.log2(np.arange(2, ideal + 2))).sum())
    return dcg / idcg if idcg > 0 else 0.0


def reciprocal_rank(recommended: Sequence[str], relevant: Collection[str]) -> float:
    """``1 / (1 + index of the first hit)``, or 0 without a hit."""
    for i, story_id in enumerate(recommended):
        if story_id in relevant:
            return 1.0 / (i + 1)
    return 0.0


def genre_diversity(stories: Sequence[Story]) -> float:
    """Distinct genres across *stories* divided by the number of stories."""
    if not stories:
        return 0.0
    genres = {genre_id for story in stories for genre_id in story.genre_ids}
    return len(genres) / len(stories)
