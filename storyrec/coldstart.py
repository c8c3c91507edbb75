"""Cold-start strategies and the selector that chooses between them.

Strategies are registered explicitly: :func:`build_default_strategies`
returns the full list, one strategy per :class:`ColdStartKind`, and the
:class:`ColdStartSelector` refuses a list that registers a kind twice.
Priority, not list position, decides which strategy wins.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from enum import Enum

from storyrec.clock import Clock, utcnow
from storyrec.models import InteractionKind, Story
from storyrec.preferences import PreferenceAnalyzer
from storyrec.stores.base import CatalogStore, InteractionStore
from storyrec.strategies.base import RecommendationSource
from storyrec.strategies.popularity import HighRatedSource, TrendingSource

logger = logging.getLogger(__name__)

_MAX_MIXED_STRATEGIES = 3


class ColdStartKind(str, Enum):
    """Tag identifying each cold-start strategy variant."""

    NEW_USER = "new_user"
    NEW_ITEM = "new_item"


class ColdStartStrategy(ABC):
    """A fallback policy used when normal personalisation signals are insufficient."""

    kind: ColdStartKind
    name: str
    priority: int

    @abstractmethod
    def is_applicable(self, user_id: str | None) -> bool:
        """Return ``True`` if this strategy should serve *user_id*."""

    @abstractmethod
    def recommend(self, user_id: str | None, limit: int) -> list[Story]:
        """Return up to *limit* stories for *user_id*."""


class NewUserStrategy(ColdStartStrategy):
    """Serves users with almost no history a blend of trending and high-rated stories.

    Applicable to anonymous users and to users whose reading-history plus
    rating count is at most ``max_interactions``.  Output is 70% trending,
    the rest high-rated (more than 10 ratings), deduplicated.

    Args:
        interactions: Used to count the user's history and ratings.
        analyzer: Supplies stories to exclude for known users.
        trending: Trending source.
        high_rated: High-rated source.
        max_interactions: Largest history+rating count still considered new.
    """

    kind = ColdStartKind.NEW_USER
    name = "NewUserStrategy"
    priority = 10

    _TRENDING_SHARE = 0.7

    def __init__(
        self,
        interactions: InteractionStore,
        analyzer: PreferenceAnalyzer,
        trending: RecommendationSource,
        high_rated: RecommendationSource,
        max_interactions: int = 3,
    ) -> None:
        self._interactions = interactions
        self._analyzer = analyzer
        self._trending = trending
        self._high_rated = high_rated
        self._max_interactions = max_interactions

    def is_applicable(self, user_id: str | None) -> bool:
        if user_id is None:
            return True
        history = self._interactions.count_interactions(user_id, InteractionKind.READ)
        ratings = self._interactions.count_interactions(user_id, InteractionKind.RATED)
        applicable = history + ratings <= self._max_interactions
        logger.debug(
            "New user strategy applicable for user %r: %s (history: %d, ratings: %d)",
            user_id, applicable, history, ratings,
        )
        return applicable

    def recommend(self, user_id: str | None, limit: int) -> list[Story]:
        if limit <= 0:
            return []
        trending_count = int(limit * self._TRENDING_SHARE)
        high_rated_count = limit - trending_count
        exclude_ids = set() if user_id is None else self._analyzer.interacted_story_ids(user_id)

        picks = self._trending.recommend(user_id, trending_count, exclude_ids)
        seen = exclude_ids | {s.story_id for s in picks}
        picks.extend(self._high_rated.recommend(user_id, high_rated_count, seen))

        logger.info("New user strategy generated %d recommendations", len(picks))
        return picks[:limit]


class NewItemStrategy(ColdStartStrategy):
    """Surfaces freshly added stories so new content gets exposure.

    Stories created within ``new_item_days`` are returned newest first,
    with stories that already carry an embedding ahead of those that do not.
    Applicable whenever the catalog is non-empty; it is a supplementary
    strategy meant to be mixed with others.

    Args:
        catalog: Story catalog.
        analyzer: Supplies stories to exclude for known users.
        new_item_days: Age limit for a story to count as new.
        clock: Time source; defaults to UTC now.
    """

    kind = ColdStartKind.NEW_ITEM
    name = "NewItemStrategy"
    priority = 5

    def __init__(
        self,
        catalog: CatalogStore,
        analyzer: PreferenceAnalyzer,
        new_item_days: int = 14,
        clock: Clock = utcnow,
    ) -> None:
        self._catalog = catalog
        self._analyzer = analyzer
        self._window = timedelta(days=new_item_days)
        self._clock = clock

    def is_applicable(self, user_id: str | None) -> bool:
        return self._catalog.count_stories() > 0

    def recommend(self, user_id: str | None, limit: int) -> list[Story]:
        if limit <= 0:
            return []
        exclude_ids = set() if user_id is None else self._analyzer.interacted_story_ids(user_id)
        since = self._clock() - self._window
        fresh = [
            s for s in self._catalog.get_recent_stories(since, limit * 2 + len(exclude_ids))
            if s.story_id not in exclude_ids
        ]
        # Stable sort: embedding-bearing stories first, newest-first within each group
        fresh.sort(key=lambda s: not s.has_embedding)
        logger.info("New item strategy generated %d recommendations", min(limit, len(fresh)))
        return fresh[:limit]

    def new_stories_for_exploration(self, limit: int) -> list[Story]:
        """Return up to *limit* stories created within the window, newest first."""
        since = self._clock() - self._window
        return self._catalog.get_recent_stories(since, limit)


class ColdStartSelector:
    """Chooses among cold-start strategies by priority.

    Args:
        strategies: Every available strategy, at most one per
            :class:`ColdStartKind`.

    Raises:
        ValueError: If two strategies share a kind.
    """

    def __init__(self, strategies: list[ColdStartStrategy]) -> None:
        kinds = [s.kind for s in strategies]
        duplicates = {k for k in kinds if kinds.count(k) > 1}
        if duplicates:
            raise ValueError(
                f"Cold-start kinds registered more than once: {sorted(k.value for k in duplicates)}"
            )
        self._strategies = list(strategies)

    @property
    def strategies(self) -> list[ColdStartStrategy]:
        return list(self._strategies)

    def get_recommendations(self, user_id: str | None, limit: int) -> list[Story]:
        """Return the output of the highest-priority applicable strategy.

        A strategy that raises is logged and the next applicable one is tried.

        Args:
            user_id: The requesting user, or ``None`` when anonymous.
            limit: Maximum number of stories.

        Returns:
            Up to *limit* stories; empty if no strategy applies or all fail.
        """
        applicable = self._applicable(user_id)
        if not applicable:
            logger.warning("No applicable cold-start strategy found for user %r", user_id)
            return []

        for strategy in applicable:
            logger.info(
                "Selected cold-start strategy: %s (priority: %d)", strategy.name, strategy.priority
            )
            try:
                return strategy.recommend(user_id, limit)[:limit]
            except Exception:
                logger.exception("Cold-start strategy %s failed for user %r", strategy.name, user_id)
        return []

    def get_mixed_recommendations(self, user_id: str | None, limit: int) -> list[Story]:
        """Blend the top three applicable strategies.

        *limit* is split evenly between the strategies, the remainder going
        to the highest-priority ones.  Each strategy is asked for twice its
        share so cross-strategy duplicates can be dropped without leaving
        the share short.

        Args:
            user_id: The requesting user, or ``None`` when anonymous.
            limit: Maximum number of stories.

        Returns:
            Up to *limit* unique stories, grouped by contributing strategy.
        """
        applicable = self._applicable(user_id)[:_MAX_MIXED_STRATEGIES]
        if not applicable or limit <= 0:
            return []

        per_strategy, remainder = divmod(limit, len(applicable))
        seen_ids: set[str] = set()
        picks: list[Story] = []

        for i, strategy in enumerate(applicable):
            share = per_strategy + (1 if i < remainder else 0)
            if share <= 0:
                continue
            try:
                candidates = strategy.recommend(user_id, share * 2)
            except Exception:
                logger.exception("Cold-start strategy %s failed for user %r", strategy.name, user_id)
                continue
            added = 0
            for story in candidates:
                if added >= share:
                    break
                if story.story_id in seen_ids:
                    continue
                seen_ids.add(story.story_id)
                picks.append(story)
                added += 1
            logger.debug("Added %d recommendations from %s", added, strategy.name)

        return picks[:limit]

    def is_user_cold_start(self, user_id: str | None) -> bool:
        """Return ``True`` if any strategy applies to *user_id*."""
        return bool(self._applicable(user_id))

    def recommended_strategy_name(self, user_id: str | None) -> str:
        """Return the name of the strategy that would serve *user_id*, or ``"NONE"``."""
        applicable = self._applicable(user_id)
        return applicable[0].name if applicable else "NONE"

    def _applicable(self, user_id: str | None) -> list[ColdStartStrategy]:
        applicable = []
        for strategy in self._strategies:
            try:
                if strategy.is_applicable(user_id):
                    applicable.append(strategy)
            except Exception:
                logger.exception(
                    "Applicability check of %s failed for user %r", strategy.name, user_id
                )
        applicable.sort(key=lambda s: s.priority, reverse=True)
        return applicable


def build_default_strategies(
    interactions: InteractionStore,
    catalog: CatalogStore,
    analyzer: PreferenceAnalyzer,
    clock: Clock = utcnow,
) -> list[ColdStartStrategy]:
    """Return the registered cold-start strategies, one per :class:`ColdStartKind`."""
    return [
        NewUserStrategy(
            interactions,
            analyzer,
            trending=TrendingSource(catalog, clock=clock),
            # more than 10 ratings
            high_rated=HighRatedSource(catalog, min_total_ratings=11),
        ),
        NewItemStrategy(catalog, analyzer, clock=clock),
    ]
