"""Facade exposing every public recommendation, profile and evaluation operation."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from storyrec.coldstart import ColdStartSelector
from storyrec.engine import HybridRecommender, resolve_algorithm
from storyrec.evaluation.evaluator import (
    ComparisonReport,
    EvaluationReport,
    MetricsCalculator,
    OfflineEvaluator,
    RecommendationMetrics,
    UserMetrics,
)
from storyrec.models import RecommendationResult, RecommendationType, UserProfile
from storyrec.profile import ProfileUpdater
from storyrec.semantic import SimilarStoriesFinder

logger = logging.getLogger(__name__)

_DEFAULT_SLOW_CALL_WARN_THRESHOLD_MS = 450

_COLD_START_EXPLANATION = "Popular and new stories to get you started"
_COLD_START_ALGORITHM = "cold-start"


class RecommendationService:
    """Single entry point for callers such as an API layer or the CLI.

    Every call is timed; calls slower than ``slow_call_warn_ms`` are logged
    at WARNING.  Unexpected errors are logged with their traceback and
    re-raised unchanged.

    Args:
        engine: The :class:`~storyrec.engine.HybridRecommender`.
        similar_finder: The :class:`~storyrec.semantic.SimilarStoriesFinder`.
        cold_start: The :class:`~storyrec.coldstart.ColdStartSelector`.
        profile_updater: The :class:`~storyrec.profile.ProfileUpdater`.
        calculator: The :class:`~storyrec.evaluation.evaluator.MetricsCalculator`.
        evaluator: The :class:`~storyrec.evaluation.evaluator.OfflineEvaluator`.
        slow_call_warn_ms: Duration above which a call is logged as slow.
    """

    def __init__(
        self,
        engine: HybridRecommender,
        similar_finder: SimilarStoriesFinder,
        cold_start: ColdStartSelector,
        profile_updater: ProfileUpdater,
        calculator: MetricsCalculator,
        evaluator: OfflineEvaluator,
        slow_call_warn_ms: float = _DEFAULT_SLOW_CALL_WARN_THRESHOLD_MS,
    ) -> None:
        self._engine = engine
        self._similar_finder = similar_finder
        self._cold_start = cold_start
        self._profile_updater = profile_updater
        self._calculator = calculator
        self._evaluator = evaluator
        self._slow_call_warn_ms = slow_call_warn_ms

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def get_hybrid_recommendations(self, user_id: str | None, limit: int) -> RecommendationResult:
        with self._timed("get_hybrid_recommendations", user_id):
            return self._engine.get_hybrid_recommendations(user_id, limit)

    def get_content_based_recommendations(
        self, user_id: str | None, limit: int
    ) -> RecommendationResult:
        with self._timed("get_content_based_recommendations", user_id):
            return self._engine.get_content_based_recommendations(user_id, limit)

    def get_collaborative_recommendations(
        self, user_id: str | None, limit: int
    ) -> RecommendationResult:
        with self._timed("get_collaborative_recommendations", user_id):
            return self._engine.get_collaborative_recommendations(user_id, limit)

    def get_similar_stories(
        self, story_id: str, user_id: str | None = None, limit: int = 10
    ) -> RecommendationResult:
        """Return stories similar to *story_id*.

        Raises:
            StoryNotFoundError: If *story_id* is not in the catalog.
        """
        with self._timed("get_similar_stories", user_id):
            return self._similar_finder.get_similar_stories(story_id, user_id, limit)

    def get_cold_start_recommendations(
        self, user_id: str | None, limit: int, mixed: bool = False
    ) -> RecommendationResult:
        """Return cold-start recommendations.

        Args:
            user_id: The requesting user, or ``None`` when anonymous.
            limit: Maximum number of stories. Must be positive.
            mixed: Blend the top applicable strategies instead of using only
                the highest-priority one.

        Raises:
            ValueError: If *limit* is not positive.
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit!r}")
        with self._timed("get_cold_start_recommendations", user_id):
            if mixed:
                stories = self._cold_start.get_mixed_recommendations(user_id, limit)
            else:
                stories = self._cold_start.get_recommendations(user_id, limit)
            return RecommendationResult(
                stories=stories,
                type=RecommendationType.COLD_START,
                explanation=_COLD_START_EXPLANATION,
            )

    def get_recommendations(
        self, user_id: str | None, limit: int, algorithm: str = "hybrid"
    ) -> RecommendationResult:
        """Dispatch to the algorithm named *algorithm*.

        Accepts ``hybrid``, ``content``, ``collaborative`` and ``cold-start``.

        Raises:
            UnknownAlgorithmError: For any other name.
        """
        if algorithm == _COLD_START_ALGORITHM:
            return self.get_cold_start_recommendations(user_id, limit)
        resolved = resolve_algorithm(algorithm)
        if resolved == RecommendationType.CONTENT_BASED:
            return self.get_content_based_recommendations(user_id, limit)
        if resolved == RecommendationType.COLLABORATIVE:
            return self.get_collaborative_recommendations(user_id, limit)
        return self.get_hybrid_recommendations(user_id, limit)

    def is_user_cold_start(self, user_id: str | None) -> bool:
        return self._cold_start.is_user_cold_start(user_id)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def refresh_user_profile(self, user_id: str) -> UserProfile:
        with self._timed("refresh_user_profile", user_id):
            return self._profile_updater.refresh_user_profile(user_id)

    def refresh_stale_profiles(self, threshold_days: int, max_workers: int) -> int:
        with self._timed("refresh_stale_profiles"):
            return self._profile_updater.refresh_stale_profiles(threshold_days, max_workers)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def calculate_user_metrics(self, user_id: str, k: int) -> UserMetrics:
        with self._timed("calculate_user_metrics", user_id):
            return self._calculator.calculate_user_metrics(user_id, k)

    def calculate_aggregate_metrics(self, user_ids: list[str], k: int) -> RecommendationMetrics:
        with self._timed("calculate_aggregate_metrics"):
            return self._calculator.calculate_aggregate_metrics(user_ids, k)

    def evaluate_system(self, k: int, max_users: int) -> RecommendationMetrics:
        with self._timed("evaluate_system"):
            return self._calculator.evaluate_system(k, max_users)

    def run_full_evaluation(self, max_users: int) -> EvaluationReport:
        with self._timed("run_full_evaluation"):
            return self._evaluator.run_full_evaluation(max_users)

    def compare_algorithms(
        self, algorithm_a: str, algorithm_b: str, k: int, max_users: int
    ) -> ComparisonReport:
        with self._timed("compare_algorithms"):
            return self._evaluator.compare_algorithms(algorithm_a, algorithm_b, k, max_users)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _timed(self, operation: str, user_id: str | None = None) -> Iterator[None]:
        start_ms = time.monotonic() * 1000
        try:
            yield
        except (LookupError, ValueError):
            raise
        except Exception:
            logger.exception("Unexpected error in %s for user=%r", operation, user_id)
            raise
        finally:
            elapsed_ms = time.monotonic() * 1000 - start_ms
            if elapsed_ms > self._slow_call_warn_ms:
                logger.warning(
                    "%s for user=%r took %.1fms (threshold: %.0fms)",
                    operation, user_id, elapsed_ms, self._slow_call_warn_ms,
                )
            else:
                logger.debug("%s for user=%r took %.1fms", operation, user_id, elapsed_ms)
