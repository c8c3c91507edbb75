"""Preference analysis: genre preference scores and the "already seen" set."""

from __future__ import annotations

import logging

from storyrec.models import GenrePreference, InteractionKind, InteractionRecord
from storyrec.stores.base import CatalogStore, InteractionStore

logger = logging.getLogger(__name__)

# Weight added to every genre of an interacted story
_WEIGHT_READ = 1.0
_WEIGHT_FAVORITE = 3.0
_WEIGHT_RATING_HIGH = 2.0   # rating >= 4
_WEIGHT_RATING_NEUTRAL = 0.5  # rating == 3
_WEIGHT_RATING_LOW = -0.5   # rating <= 2

_PREFERENCE_PAGE_LIMIT = 100
_INTERACTED_PAGE_LIMIT = 200


def rating_weight(rating: float) -> float:
    """Return the preference delta for a 1–5 star rating.

    ``>= 4`` is a strong positive signal, ``3`` a weak one and ``<= 2`` a
    penalty.
    """
    if rating >= 4:
        return _WEIGHT_RATING_HIGH
    if rating == 3:
        return _WEIGHT_RATING_NEUTRAL
    return _WEIGHT_RATING_LOW


class PreferenceAnalyzer:
    """Turns a user's interaction history into ranked genre preferences.

    Each interaction adds its weight once to every genre tag of the story
    involved:

    ==========  ====================================
    Kind        Genre score delta
    ==========  ====================================
    Read        +1.0
    Rated       +2.0 (>= 4), +0.5 (3), -0.5 (<= 2)
    Favorited   +3.0
    ==========  ====================================

    Args:
        interactions: Source of ratings, favorites and reading history.
        catalog: Used to resolve the genres of interacted stories.
    """

    def __init__(self, interactions: InteractionStore, catalog: CatalogStore) -> None:
        self._interactions = interactions
        self._catalog = catalog

    def analyze_genre_preferences(self, user_id: str) -> list[GenrePreference]:
        """Return the user's genre preferences, strongest first.

        Ties are broken by interaction count (descending), then by genre id
        (ascending) so the ordering is deterministic.

        Args:
            user_id: The user to analyse.

        Returns:
            List of :class:`~storyrec.models.GenrePreference`; empty when the
            user has no interactions with genre-tagged stories.
        """
        weighted: list[tuple[InteractionRecord, float]] = []
        for record in self._interactions.get_interactions(
            user_id, InteractionKind.READ, _PREFERENCE_PAGE_LIMIT
        ):
            weighted.append((record, _WEIGHT_READ))
        for record in self._interactions.get_interactions(
            user_id, InteractionKind.RATED, _PREFERENCE_PAGE_LIMIT
        ):
            if record.value is not None:
                weighted.append((record, rating_weight(record.value)))
        for record in self._interactions.get_interactions(
            user_id, InteractionKind.FAVORITED, _PREFERENCE_PAGE_LIMIT
        ):
            weighted.append((record, _WEIGHT_FAVORITE))

        stories = {
            s.story_id: s
            for s in self._catalog.get_stories_by_ids({r.story_id for r, _ in weighted})
        }

        preferences: dict[str, GenrePreference] = {}
        for record, weight in weighted:
            story = stories.get(record.story_id)
            if story is None:
                continue
            for genre in story.genres:
                pref = preferences.get(genre.genre_id)
                if pref is None:
                    pref = GenrePreference(genre_id=genre.genre_id, genre_name=genre.name)
                    preferences[genre.genre_id] = pref
                pref.add_score(weight)

        ranked = sorted(
            preferences.values(),
            key=lambda p: (-p.score, -p.interaction_count, p.genre_id),
        )
        logger.info("Found %d genre preferences for user %r", len(ranked), user_id)
        return ranked

    def interacted_story_ids(self, user_id: str) -> set[str]:
        """Return every story id the user has read, rated or favorited.

        Used as the exclusion set so recommendations never repeat seen content.
        """
        story_ids: set[str] = set()
        for kind in InteractionKind:
            for record in self._interactions.get_interactions(
                user_id, kind, _INTERACTED_PAGE_LIMIT
            ):
                story_ids.add(record.story_id)
        logger.debug("User %r has interacted with %d stories", user_id, len(story_ids))
        return story_ids

    def relevant_story_ids(self, user_id: str) -> set[str]:
        """Return the stories the user rated 4+ or favorited (evaluation ground truth)."""
        relevant: set[str] = set()
        for record in self._interactions.get_interactions(
            user_id, InteractionKind.RATED, _INTERACTED_PAGE_LIMIT
        ):
            if record.value is not None and record.value >= 4:
                relevant.add(record.story_id)
        for record in self._interactions.get_interactions(
            user_id, InteractionKind.FAVORITED, _INTERACTED_PAGE_LIMIT
        ):
            relevant.add(record.story_id)
        return relevant
