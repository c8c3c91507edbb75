"""Similar-stories lookup: embedding neighbours, then genre, then trending."""

from __future__ import annotations

import logging
from datetime import timedelta

from storyrec.clock import Clock, utcnow
from storyrec.errors import StoryNotFoundError
from storyrec.models import RecommendationResult, RecommendationType, Story
from storyrec.preferences import PreferenceAnalyzer
from storyrec.stores.base import CatalogStore
from storyrec.strategies.popularity import TRENDING_WINDOW_DAYS

logger = logging.getLogger(__name__)


class SimilarStoriesFinder:
    """Finds stories similar to a source story with a three-tier fallback.

    **Tiers** (each only engaged while fewer than ``limit`` results exist):

    1. Nearest neighbours of the source story's embedding (cosine),
       requesting ``2 × limit`` candidates to absorb exclusions.
    2. Other stories in the source story's first genre.
    3. Trending stories, only if both tiers above found nothing.

    A tier that raises is logged and skipped, so a missing or broken
    embedding index degrades to genre matching rather than failing the call.

    Args:
        catalog: Story catalog with nearest-neighbour search.
        analyzer: Supplies the requesting user's interacted stories.
        trending_window_days: Window for the trending fallback.
        clock: Time source; defaults to UTC now.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        analyzer: PreferenceAnalyzer,
        trending_window_days: int = TRENDING_WINDOW_DAYS,
        clock: Clock = utcnow,
    ) -> None:
        self._catalog = catalog
        self._analyzer = analyzer
        self._trending_window = timedelta(days=trending_window_days)
        self._clock = clock

    def get_similar_stories(
        self, story_id: str, user_id: str | None = None, limit: int = 10
    ) -> RecommendationResult:
        """Return up to *limit* stories similar to *story_id*.

        The source story is always excluded, as is everything *user_id* has
        already interacted with when a user is given.

        Args:
            story_id: The source story.
            user_id: The requesting user, or ``None``.
            limit: Maximum number of stories. Must be positive.

        Returns:
            A :attr:`RecommendationType.SEMANTIC` result.

        Raises:
            StoryNotFoundError: If *story_id* is not in the catalog.
            ValueError: If *limit* is not positive.
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit!r}")

        source = self._catalog.get_story(story_id)
        if source is None:
            raise StoryNotFoundError(story_id)

        exclude_ids = {story_id}
        if user_id is not None:
            try:
                exclude_ids |= self._analyzer.interacted_story_ids(user_id)
            except Exception as exc:
                logger.warning("Failed to get interacted stories for user %r: %s", user_id, exc)

        similar: list[Story] = []

        if source.has_embedding:
            try:
                similar.extend(self._embedding_neighbours(source, limit, exclude_ids))
                logger.info("Found %d semantically similar stories", len(similar))
            except Exception:
                logger.warning("Semantic similarity search failed for story %r", story_id, exc_info=True)
        else:
            logger.debug("No embedding for story %r, skipping semantic search", story_id)

        if len(similar) < limit and source.genres:
            try:
                added = self._genre_neighbours(source, limit, exclude_ids, similar)
                similar.extend(added)
                logger.info("Added %d genre-based similar stories", len(added))
            except Exception:
                logger.warning("Genre-based similarity failed for story %r", story_id, exc_info=True)

        if not similar:
            logger.warning(
                "No similar stories found for %r via embedding or genre, using trending", story_id
            )
            try:
                since = self._clock() - self._trending_window
                trending = self._catalog.get_trending_stories(since, limit + len(exclude_ids))
                similar.extend([s for s in trending if s.story_id not in exclude_ids][:limit])
            except Exception:
                logger.exception("Trending fallback failed for story %r", story_id)

        explanation = (
            f"Similar to: {source.title or source.story_id}" if similar else "No similar stories found"
        )
        return RecommendationResult(
            stories=similar[:limit], type=RecommendationType.SEMANTIC, explanation=explanation
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _embedding_neighbours(
        self, source: Story, limit: int, exclude_ids: set[str]
    ) -> list[Story]:
        neighbour_ids = self._catalog.find_nearest_by_embedding(source.embedding, limit * 2)
        kept = [sid for sid in neighbour_ids if sid not in exclude_ids][:limit]
        return self._catalog.get_stories_in_order(kept)

    def _genre_neighbours(
        self,
        source: Story,
        limit: int,
        exclude_ids: set[str],
        collected: list[Story],
    ) -> list[Story]:
        primary_genre = source.genres[0].genre_id
        collected_ids = {s.story_id for s in collected}
        needed = limit - len(collected)
        genre_stories = self._catalog.get_stories_by_genre(
            primary_genre, limit * 2 + len(exclude_ids)
        )
        return [
            s for s in genre_stories
            if s.story_id not in exclude_ids and s.story_id not in collected_ids
        ][:needed]
