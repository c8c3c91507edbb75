"""Non-personalised sources: trending and high-rated stories."""

from __future__ import annotations

import logging
from datetime import timedelta

from storyrec.clock import Clock, utcnow
from storyrec.models import Story
from storyrec.stores.base import CatalogStore
from storyrec.strategies.base import RecommendationSource

logger = logging.getLogger(__name__)

TRENDING_WINDOW_DAYS = 30


class TrendingSource(RecommendationSource):
    """Recommends the most viewed stories active within the trending window.

    Args:
        catalog: Story catalog.
        window_days: Only stories updated within this many days qualify.
        clock: Time source; defaults to UTC now.
    """

    name = "trending"

    def __init__(
        self,
        catalog: CatalogStore,
        window_days: int = TRENDING_WINDOW_DAYS,
        clock: Clock = utcnow,
    ) -> None:
        self._catalog = catalog
        self._window = timedelta(days=window_days)
        self._clock = clock

    def recommend(self, user_id: str | None, n: int, exclude_ids: set[str]) -> list[Story]:
        if n <= 0:
            return []
        since = self._clock() - self._window
        # Over-fetch by the exclusion size so filtering cannot starve the result
        stories = self._catalog.get_trending_stories(since, n + len(exclude_ids))
        return [s for s in stories if s.story_id not in exclude_ids][:n]


class HighRatedSource(RecommendationSource):
    """Recommends the best-rated stories with enough ratings to be trusted.

    Args:
        catalog: Story catalog.
        min_total_ratings: Minimum number of ratings a story needs (inclusive).
    """

    name = "high_rated"

    def __init__(self, catalog: CatalogStore, min_total_ratings: int = 10) -> None:
        self._catalog = catalog
        self._min_total_ratings = min_total_ratings

    def recommend(self, user_id: str | None, n: int, exclude_ids: set[str]) -> list[Story]:
        if n <= 0:
            return []
        stories = self._catalog.get_top_rated_stories(
            n + len(exclude_ids), self._min_total_ratings
        )
        return [s for s in stories if s.story_id not in exclude_ids][:n]
