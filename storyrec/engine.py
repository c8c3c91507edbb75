"""Hybrid recommender: fuses the four sources into one ranked list."""

from __future__ import annotations

import logging

from storyrec.errors import UnknownAlgorithmError
from storyrec.models import RecommendationResult, RecommendationType, Story
from storyrec.preferences import PreferenceAnalyzer
from storyrec.stores.base import CatalogStore
from storyrec.strategies.base import RecommendationSource

logger = logging.getLogger(__name__)

# Fusion table: (source_attr_name, weight, candidates requested per result slot)
_SOURCE_WEIGHTS = [
    ("_content_source", 0.4, 2),
    ("_collaborative_source", 0.3, 2),
    ("_trending_source", 0.2, 1),
    ("_high_rated_source", 0.1, 1),
]

_EXPLANATIONS = {
    RecommendationType.HYBRID: "Based on your reading history, preferences, and trending stories",
    RecommendationType.CONTENT_BASED: "Based on genres you enjoy",
    RecommendationType.COLLABORATIVE: "Based on users with similar tastes",
}


class HybridRecommender:
    """Fuses content-based, collaborative, trending and high-rated sources.

    Source scores live on incomparable scales, so fusion is rank-based: for
    a source returning *n* stories, the story at 0-indexed position *i*
    adds ``(n - i) × weight`` to its accumulator.

    ========================  =======  ====================
    Source                    Weight   Candidates requested
    ========================  =======  ====================
    Content-based             0.4      2 × limit
    Collaborative filtering   0.3      2 × limit
    Trending (30 days)        0.2      limit
    High-rated                0.1      limit
    ========================  =======  ====================

    A source that raises is logged and contributes nothing; the call only
    comes back empty when every source fails or finds nothing.  Fusion is
    deterministic: equal scores keep the order in which stories were first
    seen.

    Args:
        analyzer: Supplies the user's interacted-story exclusion set.
        catalog: Resolves the final story records.
        content_source: Content-based filtering source.
        collaborative_source: Collaborative filtering source.
        trending_source: Trending stories source.
        high_rated_source: High-rated stories source.
    """

    def __init__(
        self,
        analyzer: PreferenceAnalyzer,
        catalog: CatalogStore,
        content_source: RecommendationSource,
        collaborative_source: RecommendationSource,
        trending_source: RecommendationSource,
        high_rated_source: RecommendationSource,
    ) -> None:
        self._analyzer = analyzer
        self._catalog = catalog
        self._content_source = content_source
        self._collaborative_source = collaborative_source
        self._trending_source = trending_source
        self._high_rated_source = high_rated_source

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_hybrid_recommendations(self, user_id: str | None, limit: int) -> RecommendationResult:
        """Return up to *limit* fused recommendations, excluding everything the user has seen.

        Args:
            user_id: The requesting user, or ``None`` when anonymous.
            limit: Maximum number of stories. Must be positive.

        Raises:
            ValueError: If *limit* is not positive.
        """
        _check_limit(limit)
        logger.info("Generating hybrid recommendations for user %r", user_id)
        return self.get_hybrid_recommendations_with_exclusions(
            user_id, limit, self._exclusions_for(user_id)
        )

    def get_hybrid_recommendations_with_exclusions(
        self, user_id: str | None, limit: int, exclude_ids: set[str]
    ) -> RecommendationResult:
        """Return up to *limit* fused recommendations, excluding *exclude_ids* only.

        The evaluation harness passes the training split here so held-out
        stories stay eligible.

        Args:
            user_id: The requesting user, or ``None`` when anonymous.
            limit: Maximum number of stories. Must be positive.
            exclude_ids: Story IDs that must never appear in the result.

        Raises:
            ValueError: If *limit* is not positive.
        """
        _check_limit(limit)
        logger.debug(
            "Hybrid recommendations for user %r with %d exclusions", user_id, len(exclude_ids)
        )

        scores: dict[str, float] = {}
        for source_attr, weight, fetch_factor in _SOURCE_WEIGHTS:
            source: RecommendationSource = getattr(self, source_attr)
            try:
                stories = source.recommend(user_id, limit * fetch_factor, exclude_ids)
            except Exception as exc:
                logger.warning(
                    "%s source failed for user %r: %s", source.name, user_id, exc
                )
                continue
            accumulate_rank_scores(scores, stories, weight, exclude_ids)
            logger.debug("Added %d %s candidates", len(stories), source.name)

        ranked = sorted(scores.items(), key=lambda item: -item[1])
        top_ids = [sid for sid, _ in ranked[:limit]]
        stories = self._catalog.get_stories_in_order(top_ids)

        logger.info("Generated %d hybrid recommendations for user %r", len(stories), user_id)
        return _result(RecommendationType.HYBRID, stories)

    def get_content_based_recommendations(
        self, user_id: str | None, limit: int
    ) -> RecommendationResult:
        """Return up to *limit* stories from the content-based source alone."""
        _check_limit(limit)
        stories = self._content_source.recommend(user_id, limit, self._exclusions_for(user_id))
        return _result(RecommendationType.CONTENT_BASED, stories)

    def get_collaborative_recommendations(
        self, user_id: str | None, limit: int
    ) -> RecommendationResult:
        """Return up to *limit* stories from the collaborative source alone."""
        _check_limit(limit)
        stories = self._collaborative_source.recommend(
            user_id, limit, self._exclusions_for(user_id)
        )
        return _result(RecommendationType.COLLABORATIVE, stories)

    def recommend_with_exclusions(
        self,
        algorithm: RecommendationType,
        user_id: str | None,
        limit: int,
        exclude_ids: set[str],
    ) -> RecommendationResult:
        """Run one of the personalised algorithms with a caller-supplied exclusion set.

        Args:
            algorithm: :attr:`RecommendationType.HYBRID`,
                :attr:`RecommendationType.CONTENT_BASED` or
                :attr:`RecommendationType.COLLABORATIVE`.
            user_id: The requesting user.
            limit: Maximum number of stories.
            exclude_ids: Story IDs that must never appear in the result.

        Raises:
            UnknownAlgorithmError: For any other algorithm.
        """
        if algorithm == RecommendationType.HYBRID:
            return self.get_hybrid_recommendations_with_exclusions(user_id, limit, exclude_ids)
        _check_limit(limit)
        if algorithm == RecommendationType.CONTENT_BASED:
            stories = self._content_source.recommend(user_id, limit, exclude_ids)
        elif algorithm == RecommendationType.COLLABORATIVE:
            stories = self._collaborative_source.recommend(user_id, limit, exclude_ids)
        else:
            raise UnknownAlgorithmError(algorithm.value)
        return _result(algorithm, stories)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _exclusions_for(self, user_id: str | None) -> set[str]:
        if user_id is None:
            return set()
        return self._analyzer.interacted_story_ids(user_id)


def accumulate_rank_scores(
    scores: dict[str, float],
    stories: list[Story],
    weight: float,
    exclude_ids: set[str],
) -> None:
    """Add the decaying rank score ``(n - i) × weight`` of each story to *scores*.

    Args:
        scores: Accumulator mapping story_id to fused score, mutated in place.
        stories: One source's ranked list.
        weight: The source's fusion weight.
        exclude_ids: Stories skipped even if the source returned them.
    """
    n = len(stories)
    for i, story in enumerate(stories):
        if story.story_id in exclude_ids:
            continue
        scores[story.story_id] = scores.get(story.story_id, 0.0) + (n - i) * weight


def _result(algorithm: RecommendationType, stories: list[Story]) -> RecommendationResult:
    return RecommendationResult(
        stories=stories, type=algorithm, explanation=_EXPLANATIONS[algorithm]
    )


def _check_limit(limit: int) -> None:
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit!r}")


_ALGORITHM_NAMES = {
    "hybrid": RecommendationType.HYBRID,
    "content": RecommendationType.CONTENT_BASED,
    "content_based": RecommendationType.CONTENT_BASED,
    "collaborative": RecommendationType.COLLABORATIVE,
}


def resolve_algorithm(name: str | RecommendationType) -> RecommendationType:
    """Map an algorithm name (``hybrid``, ``content``, ``collaborative``) to its type.

    Raises:
        UnknownAlgorithmError: If *name* is not a personalised algorithm.
    """
    if isinstance(name, RecommendationType):
        if name in _ALGORITHM_NAMES.values():
            return name
        raise UnknownAlgorithmError(name.value)
    try:
        return _ALGORITHM_NAMES[name.strip().lower().replace("-", "_")]
    except KeyError:
        raise UnknownAlgorithmError(name) from None
