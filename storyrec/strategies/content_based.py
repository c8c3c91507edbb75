"""Content-based filtering source driven by genre preferences."""

from __future__ import annotations

import logging

from storyrec.models import Story
from storyrec.preferences import PreferenceAnalyzer
from storyrec.stores.base import CatalogStore
from storyrec.strategies.base import RecommendationSource

logger = logging.getLogger(__name__)


class ContentBasedSource(RecommendationSource):
    """Recommends stories from the genres the user scores highest.

    Walks the user's genre preferences strongest-first and takes stories
    from each genre until *n* are collected.  Every scored genre is walked,
    so a user whose only signal is a poor rating still gets stories from that
    genre, ranked after any genre they like.

    **Cold-start behaviour**: if the user has no genre preferences at all,
    falls back to the fallback source (trending stories).

    Args:
        analyzer: Produces the user's genre preferences.
        catalog: Story catalog.
        fallback: Source used when the user has no usable preferences.
    """

    name = "content_based"

    def __init__(
        self,
        analyzer: PreferenceAnalyzer,
        catalog: CatalogStore,
        fallback: RecommendationSource,
    ) -> None:
        self._analyzer = analyzer
        self._catalog = catalog
        self._fallback = fallback

    def recommend(self, user_id: str | None, n: int, exclude_ids: set[str]) -> list[Story]:
        """Return up to *n* stories from the user's preferred genres.

        Args:
            user_id: Target user; anonymous users get the fallback.
            n: Number of recommendations to return.
            exclude_ids: Story IDs that must not be returned.

        Returns:
            List of up to *n* stories, strongest genre first.
        """
        if n <= 0:
            return []

        preferences = []
        if user_id is not None:
            preferences = self._analyzer.analyze_genre_preferences(user_id)
        if not preferences:
            logger.info("User %r has no genre preferences, using %s", user_id, self._fallback.name)
            return self._fallback.recommend(user_id, n, exclude_ids)

        picks: list[Story] = []
        picked_ids: set[str] = set()
        for pref in preferences:
            needed = n - len(picks)
            if needed <= 0:
                break
            genre_stories = self._catalog.get_stories_by_genre(
                pref.genre_id, needed * 2 + len(exclude_ids)
            )
            for story in genre_stories:
                if story.story_id in exclude_ids or story.story_id in picked_ids:
                    continue
                picks.append(story)
                picked_ids.add(story.story_id)
                if len(picks) >= n:
                    break

        return picks
