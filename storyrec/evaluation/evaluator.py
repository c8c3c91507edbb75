"""Offline evaluation: held-out splits, per-user metrics and batch reports."""

from __future__ import annotations

import logging
import random
from concurrent import futures
from dataclasses import dataclass, field
from datetime import datetime

import numpy as np

from storyrec.clock import Clock, utcnow
from storyrec.engine import HybridRecommender, resolve_algorithm
from storyrec.evaluation import metrics
from storyrec.models import EvaluationSplit, RecommendationType
from storyrec.preferences import PreferenceAnalyzer
from storyrec.stores.base import InteractionStore

logger = logging.getLogger(__name__)

K_VALUES = (5, 10, 20, 50)

_TRAINING_SHARE = 0.8
# Coverage and diversity only count users with at least this many relevant items
_MIN_RELEVANT_FOR_BREADTH = 2


@dataclass
class UserMetrics:
    """Metrics for a single user at cutoff *k*.

    Every score is ``None`` when the user could not be scored (no relevant
    items, or an empty test set after the split).  Aggregation skips those
    users instead of counting them as zero.
    """

    user_id: str
    k: int
    precision: float | None = None
    recall: float | None = None
    f1: float | None = None
    average_precision: float | None = None
    ndcg: float | None = None
    reciprocal_rank: float | None = None
    diversity: float | None = None
    recommended_ids: list[str] = field(default_factory=list)
    relevant_items_found: int = 0
    total_relevant_items: int = 0

    @property
    def is_scored(self) -> bool:
        return self.precision is not None

    @property
    def total_recommendations(self) -> int:
        return len(self.recommended_ids)


@dataclass
class RecommendationMetrics:
    """Aggregate metrics over a batch of users at cutoff *k*.

    Attributes:
        k: The cutoff rank.
        total_users: Users requested, scored or not.
        precision_at_k: Mean over scored users (``None`` if none were scored).
        recall_at_k: Mean over scored users.
        f1_score_at_k: Mean over scored users.
        map_at_k: Mean average precision over scored users.
        ndcg_at_k: Mean over scored users.
        mrr: Mean reciprocal rank over scored users.
        coverage: Distinct story ids recommended to scored users with at
            least two relevant items.  This is a raw count; divide by the
            catalog size to normalise.
        diversity: Mean per-user genre diversity over users with at least
            two relevant items.
        total_recommendations: Stories recommended across scored users.
        per_user_metrics: Scored users' metrics, keyed by user id.
        skipped_user_ids: Users that were unscorable or failed, in input order.
    """

    k: int
    total_users: int
    precision_at_k: float | None = None
    recall_at_k: float | None = None
    f1_score_at_k: float | None = None
    map_at_k: float | None = None
    ndcg_at_k: float | None = None
    mrr: float | None = None
    coverage: float | None = None
    diversity: float | None = None
    total_recommendations: int = 0
    per_user_metrics: dict[str, UserMetrics] = field(default_factory=dict)
    skipped_user_ids: list[str] = field(default_factory=list)


class MetricsCalculator:
    """Scores recommendation quality against each user's held-out relevant items.

    For every user:

    1. The relevant set is every story rated 4+ or favorited.
    2. The set is sorted, shuffled with ``random.Random(user_id)`` and split
       80/20 at ``int(0.8 × n)`` into training and test items.
    3. The algorithm under test is asked for *k* stories while excluding
       only the training items, so test items stay eligible.
    4. The recommended list is scored against the test items.

    Args:
        analyzer: Supplies each user's relevant stories.
        engine: The recommender under evaluation.
        interactions: Lists users for whole-system evaluation.
        max_workers: Thread pool size for batch evaluation.
    """

    def __init__(
        self,
        analyzer: PreferenceAnalyzer,
        engine: HybridRecommender,
        interactions: InteractionStore,
        max_workers: int = 4,
    ) -> None:
        self._analyzer = analyzer
        self._engine = engine
        self._interactions = interactions
        self._max_workers = max_workers

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @staticmethod
    def split_relevant_items(user_id: str, relevant: set[str]) -> EvaluationSplit:
        """Split *relevant* 80/20 into training and test items.

        The shuffle is seeded with *user_id*, so the split is identical
        across runs for the same user and relevant set.
        """
        ordered = sorted(relevant)
        random.Random(user_id).shuffle(ordered)
        split_index = int(len(ordered) * _TRAINING_SHARE)
        return EvaluationSplit(
            user_id=user_id,
            training_set=frozenset(ordered[:split_index]),
            test_set=frozenset(ordered[split_index:]),
        )

    def calculate_user_metrics(
        self,
        user_id: str,
        k: int,
        algorithm: RecommendationType = RecommendationType.HYBRID,
    ) -> UserMetrics:
        """Score *algorithm*'s top-*k* recommendations for one user.

        Args:
            user_id: The user to evaluate.
            k: Cutoff rank. Must be positive.
            algorithm: The personalised algorithm to evaluate.

        Returns:
            A :class:`UserMetrics`; unscored (all ``None``) when the user has
            no relevant items or too few to leave a test item.

        Raises:
            ValueError: If *k* is not positive.
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k!r}")
        algorithm = resolve_algorithm(algorithm)

        relevant = self._analyzer.relevant_story_ids(user_id)
        if not relevant:
            logger.warning("User %r has no relevant items, cannot calculate metrics", user_id)
            return UserMetrics(user_id=user_id, k=k)

        split = self.split_relevant_items(user_id, relevant)
        if not split.test_set:
            logger.warning(
                "User %r has insufficient relevant items for train-test split (total: %d)",
                user_id, len(relevant),
            )
            return UserMetrics(user_id=user_id, k=k, total_relevant_items=len(relevant))

        logger.debug(
            "User %r - training set: %d, test set: %d",
            user_id, len(split.training_set), len(split.test_set),
        )
        result = self._engine.recommend_with_exclusions(
            algorithm, user_id, k, set(split.training_set)
        )
        stories = result.stories[:k]
        recommended = [s.story_id for s in stories]
        test_set = split.test_set

        precision = metrics.precision_at_k(recommended, test_set, k)
        recall = metrics.recall_at_k(recommended, test_set, k)
        return UserMetrics(
            user_id=user_id,
            k=k,
            precision=precision,
            recall=recall,
            f1=metrics.f1_score(precision, recall),
            average_precision=metrics.average_precision_at_k(recommended, test_set, k),
            ndcg=metrics.ndcg_at_k(recommended, test_set, k),
            reciprocal_rank=metrics.reciprocal_rank(recommended, test_set),
            diversity=(
                metrics.genre_diversity(stories)
                if len(relevant) >= _MIN_RELEVANT_FOR_BREADTH else None
            ),
            recommended_ids=recommended,
            relevant_items_found=sum(1 for sid in recommended if sid in test_set),
            total_relevant_items=len(relevant),
        )

    def calculate_aggregate_metrics(
        self,
        user_ids: list[str],
        k: int,
        algorithm: RecommendationType = RecommendationType.HYBRID,
    ) -> RecommendationMetrics:
        """Evaluate every user in *user_ids* in parallel and average the results.

        Users that are unscorable, or whose evaluation raises, are logged
        and left out of every mean.

        Raises:
            ValueError: If *k* is not positive.
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k!r}")
        algorithm = resolve_algorithm(algorithm)
        logger.info(
            "Calculating aggregate %s metrics for %d users with K=%d",
            algorithm.value, len(user_ids), k,
        )

        per_user: list[UserMetrics | None] = []
        with futures.ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            pending = [
                executor.submit(self.calculate_user_metrics, user_id, k, algorithm)
                for user_id in user_ids
            ]
            for user_id, future in zip(user_ids, pending):
                try:
                    per_user.append(future.result())
                except Exception as exc:
                    logger.warning("Failed to calculate metrics for user %r: %s", user_id, exc)
                    per_user.append(None)

        aggregate = RecommendationMetrics(k=k, total_users=len(user_ids))
        scored: list[UserMetrics] = []
        for user_id, user_metrics in zip(user_ids, per_user):
            if user_metrics is None or not user_metrics.is_scored:
                aggregate.skipped_user_ids.append(user_id)
                continue
            scored.append(user_metrics)
            aggregate.per_user_metrics[user_id] = user_metrics

        if aggregate.skipped_user_ids:
            logger.warning(
                "Skipped %d/%d users without a scorable test set",
                len(aggregate.skipped_user_ids), len(user_ids),
            )
        if not scored:
            return aggregate

        aggregate.precision_at_k = _mean(m.precision for m in scored)
        aggregate.recall_at_k = _mean(m.recall for m in scored)
        aggregate.f1_score_at_k = _mean(m.f1 for m in scored)
        aggregate.map_at_k = _mean(m.average_precision for m in scored)
        aggregate.ndcg_at_k = _mean(m.ndcg for m in scored)
        aggregate.mrr = _mean(m.reciprocal_rank for m in scored)
        aggregate.coverage = float(len({
            sid
            for m in scored
            if m.total_relevant_items >= _MIN_RELEVANT_FOR_BREADTH
            for sid in m.recommended_ids
        }))
        aggregate.diversity = _mean(m.diversity for m in scored if m.diversity is not None)
        aggregate.total_recommendations = sum(m.total_recommendations for m in scored)
        return aggregate

    def evaluate_system(
        self,
        k: int,
        max_users: int,
        algorithm: RecommendationType = RecommendationType.HYBRID,
    ) -> RecommendationMetrics:
        """Aggregate metrics over the first *max_users* users of the interaction store."""
        logger.info("Evaluating recommendation system with K=%d, max_users=%d", k, max_users)
        user_ids = self._interactions.list_user_ids(max_users)
        return self.calculate_aggregate_metrics(user_ids, k, algorithm)


@dataclass
class KMetrics:
    k: int
    metrics: RecommendationMetrics


@dataclass
class EvaluationReport:
    """Aggregate metrics at every cutoff in :data:`K_VALUES`."""

    evaluation_time: datetime
    completion_time: datetime
    total_users: int
    k_metrics: list[KMetrics]

    def summary(self) -> str:
        lines = [
            "Offline Evaluation Report",
            "=========================",
            f"Evaluation Time: {self.evaluation_time.isoformat()}",
            f"Total Users: {self.total_users}",
            "",
        ]
        for km in self.k_metrics:
            m = km.metrics
            lines += [
                f"K={km.k}:",
                f"  Precision@K: {_fmt(m.precision_at_k)}",
                f"  Recall@K: {_fmt(m.recall_at_k)}",
                f"  F1@K: {_fmt(m.f1_score_at_k)}",
                f"  MAP@K: {_fmt(m.map_at_k)}",
                f"  NDCG@K: {_fmt(m.ndcg_at_k)}",
                f"  MRR: {_fmt(m.mrr)}",
                f"  Coverage: {_fmt(m.coverage, '.2f')} items",
                f"  Diversity: {_fmt(m.diversity)}",
                "",
            ]
        return "\n".join(lines)


@dataclass
class ComparisonReport:
    """Side-by-side metrics of two algorithms over the same users and splits."""

    algorithm_a: RecommendationType
    algorithm_b: RecommendationType
    metrics_a: RecommendationMetrics
    metrics_b: RecommendationMetrics
    k: int
    total_users: int

    def summary(self) -> str:
        lines = [f"Algorithm Comparison (K={self.k}, Users={self.total_users})"]
        for algorithm, m in ((self.algorithm_a, self.metrics_a), (self.algorithm_b, self.metrics_b)):
            lines.append(
                f"{algorithm.value}: P@K={_fmt(m.precision_at_k)}, "
                f"R@K={_fmt(m.recall_at_k)}, NDCG@K={_fmt(m.ndcg_at_k)}"
            )
        return "\n".join(lines) + "\n"


class OfflineEvaluator:
    """Runs multi-cutoff evaluations and algorithm comparisons.

    Args:
        calculator: The :class:`MetricsCalculator` doing the per-user work.
        clock: Time source for report timestamps.
    """

    def __init__(self, calculator: MetricsCalculator, clock: Clock = utcnow) -> None:
        self._calculator = calculator
        self._clock = clock

    def run_full_evaluation(self, max_users: int) -> EvaluationReport:
        """Evaluate the hybrid recommender at K = 5, 10, 20 and 50."""
        logger.info("Starting full offline evaluation with max_users=%d", max_users)
        started = self._clock()
        k_metrics = []
        for k in K_VALUES:
            result = self._calculator.evaluate_system(k, max_users)
            k_metrics.append(KMetrics(k=k, metrics=result))
            logger.info(
                "K=%d results - P@K: %s, R@K: %s, NDCG@K: %s",
                k, _fmt(result.precision_at_k), _fmt(result.recall_at_k), _fmt(result.ndcg_at_k),
            )
        return EvaluationReport(
            evaluation_time=started,
            completion_time=self._clock(),
            total_users=k_metrics[0].metrics.total_users if k_metrics else 0,
            k_metrics=k_metrics,
        )

    def compare_algorithms(
        self,
        algorithm_a: str | RecommendationType,
        algorithm_b: str | RecommendationType,
        k: int,
        max_users: int,
    ) -> ComparisonReport:
        """Evaluate two algorithms on the same users and held-out splits.

        Raises:
            UnknownAlgorithmError: If either name is not a personalised algorithm.
        """
        first = resolve_algorithm(algorithm_a)
        second = resolve_algorithm(algorithm_b)
        logger.info(
            "Comparing %s vs %s with K=%d, max_users=%d", first.value, second.value, k, max_users
        )
        metrics_a = self._calculator.evaluate_system(k, max_users, first)
        metrics_b = self._calculator.evaluate_system(k, max_users, second)
        return ComparisonReport(
            algorithm_a=first,
            algorithm_b=second,
            metrics_a=metrics_a,
            metrics_b=metrics_b,
            k=k,
            total_users=metrics_a.total_users,
        )


def _mean(values) -> float | None:
    collected = [v for v in values if v is not None]
    if not collected:
        return None
    return float(np.mean(collected))


def _fmt(value: float | None, format_spec: str = ".4f") -> str:
    return "n/a" if value is None else format(value, format_spec)
