"""Collaborative filtering source using rating overlap between users."""

from __future__ import annotations

import logging

from storyrec.models import InteractionKind, Story, UserSimilarity
from storyrec.stores.base import CatalogStore, InteractionStore
from storyrec.strategies.base import RecommendationSource

logger = logging.getLogger(__name__)

_TOP_K_SIMILAR_USERS = 10
_USER_RATINGS_LIMIT = 100
_STORY_RATINGS_LIMIT = 100
_NEIGHBOR_RATINGS_LIMIT = 50
_MIN_LIKED_RATING = 4


class CollaborativeFilteringSource(RecommendationSource):
    """Recommends stories rated highly by users who rated the same stories.

    **Similarity** between the target user *A* and another user *B* is the
    share of *A*'s rated stories that *B* also rated::

        similarity = |rated(A) ∩ rated(B)| / |rated(A)|

    This is a containment ratio, not a symmetric Jaccard index.

    **Candidate score** per story: the sum, over the most similar users, of
    ``rating × similarity`` for every rating of 4 or more.

    **Cold-start behaviour**: a user with no ratings has no computable
    neighbours and gets an empty list.

    Args:
        interactions: Source of ratings.
        catalog: Used to resolve candidate story records.
        neighbor_limit: Number of similar users to draw candidates from.
    """

    name = "collaborative"

    def __init__(
        self,
        interactions: InteractionStore,
        catalog: CatalogStore,
        neighbor_limit: int = _TOP_K_SIMILAR_USERS,
    ) -> None:
        self._interactions = interactions
        self._catalog = catalog
        self._neighbor_limit = neighbor_limit

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def recommend(self, user_id: str | None, n: int, exclude_ids: set[str]) -> list[Story]:
        """Return up to *n* stories favoured by similar users.

        Args:
            user_id: Target user; anonymous users get an empty list.
            n: Number of recommendations to return.
            exclude_ids: Story IDs that must not be returned.

        Returns:
            List of up to *n* stories, best-first.
        """
        if user_id is None or n <= 0:
            return []

        similar_users = self.find_similar_users(user_id, self._neighbor_limit)
        if not similar_users:
            logger.info("No similar users found for user %r", user_id)
            return []

        story_scores = self._aggregate_candidate_stories(similar_users, exclude_ids)
        ranked = sorted(story_scores.items(), key=lambda x: (-x[1], x[0]))
        top_ids = [sid for sid, _ in ranked[:n]]
        return self._catalog.get_stories_in_order(top_ids)

    def find_similar_users(
        self, user_id: str, limit: int = _TOP_K_SIMILAR_USERS
    ) -> list[UserSimilarity]:
        """Return the top-*limit* users by rating-overlap similarity.

        Args:
            user_id: The querying user.
            limit: Maximum number of users to return.

        Returns:
            List of :class:`~storyrec.models.UserSimilarity`, sorted by
            similarity descending (ties by user id).  Empty if the user has
            not rated anything.
        """
        ratings = self._interactions.get_interactions(
            user_id, InteractionKind.RATED, _USER_RATINGS_LIMIT
        )
        rated_ids = {r.story_id for r in ratings}
        if not rated_ids:
            logger.info("User %r has no ratings, cannot find similar users", user_id)
            return []

        shared_counts: dict[str, int] = {}
        for story_id in rated_ids:
            for rating in self._interactions.get_interactions_for_story(
                story_id, _STORY_RATINGS_LIMIT
            ):
                if rating.user_id == user_id:
                    continue
                shared_counts[rating.user_id] = shared_counts.get(rating.user_id, 0) + 1

        similarities = [
            UserSimilarity(other_user_id=other, similarity_score=count / len(rated_ids))
            for other, count in shared_counts.items()
        ]
        similarities.sort(key=lambda s: (-s.similarity_score, s.other_user_id))
        logger.info(
            "Found %d similar users for user %r", min(limit, len(similarities)), user_id
        )
        return similarities[:limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _aggregate_candidate_stories(
        self,
        similar_users: list[UserSimilarity],
        exclude_ids: set[str],
    ) -> dict[str, float]:
        """Score candidate stories by ``rating × similarity`` over similar users.

        Args:
            similar_users: Neighbours with their similarity scores.
            exclude_ids: Stories that must not become candidates.

        Returns:
            Map from story_id to aggregated weighted score.
        """
        story_scores: dict[str, float] = {}
        for neighbor in similar_users:
            ratings = self._interactions.get_interactions(
                neighbor.other_user_id, InteractionKind.RATED, _NEIGHBOR_RATINGS_LIMIT
            )
            for rating in ratings:
                if rating.value is None or rating.value < _MIN_LIKED_RATING:
                    continue
                if rating.story_id in exclude_ids:
                    continue
                score = rating.value * neighbor.similarity_score
                story_scores[rating.story_id] = story_scores.get(rating.story_id, 0.0) + score
        return story_scores

