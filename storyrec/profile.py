"""User profile maintenance: time-decayed profile embedding and reading metrics."""

from __future__ import annotations

import logging
import math
from concurrent import futures
from dataclasses import dataclass
from datetime import datetime, timedelta

import numpy as np

from storyrec.clock import Clock, utcnow
from storyrec.models import InteractionKind, UserProfile
from storyrec.preferences import rating_weight
from storyrec.stores.base import CatalogStore, InteractionStore, ProfileStore

logger = logging.getLogger(__name__)

# Exponential decay rate per day; exp(-0.1 * 7) ≈ 0.5
TIME_DECAY_FACTOR = 0.1

_WEIGHT_READ = 1.0
_COMPLETION_BONUS = 1.5      # multiplier on the read weight
_COMPLETED_PROGRESS = 90.0   # progress percentage that counts as completed

_EMBEDDING_PAGE_LIMIT = 100
_METRICS_HISTORY_LIMIT = 500
_DIVERSITY_HISTORY_LIMIT = 200

_VELOCITY_WINDOW_DAYS = 30
_WEEKS_PER_VELOCITY_WINDOW = 4.3


@dataclass
class _StoryInteraction:
    """Accumulated interaction weight for one story and its latest timestamp."""

    weight: float
    timestamp: datetime


def time_decay(days: float, decay_factor: float = TIME_DECAY_FACTOR) -> float:
    """Return ``exp(-decay_factor × days)``; future timestamps count as today."""
    return math.exp(-decay_factor * max(days, 0.0))


class ProfileUpdater:
    """Recomputes a user's profile from their interaction history.

    **Profile embedding** is the weighted average of the embeddings of
    stories the user read or rated.  Each story's interaction weight is:

    ==========================  ==========================
    Interaction                 Weight
    ==========================  ==========================
    Read                        +1.0 (×1.5 at >= 90% progress)
    Rated                       +2.0 (>= 4), +0.5 (3), -0.5 (<= 2)
    ==========================  ==========================

    Weights for the same story add up and the latest timestamp is kept.
    The final weight is ``weight × exp(-0.1 × days since interaction)``;
    stories with a non-positive final weight or no embedding are skipped.
    When nothing qualifies the stored embedding is left untouched.

    **Reading metrics** (stories read, chapters read, completion rate,
    chapters per week) and **genre diversity** (normalised Shannon entropy)
    are recomputed alongside.

    The whole read-modify-write runs inside :meth:`ProfileStore.locked`.

    Args:
        interactions: Source of reading history and ratings.
        catalog: Resolves story embeddings and genres.
        profiles: Profile persistence.
        clock: Time source; defaults to UTC now.
        decay_factor: Exponential decay rate per day.
    """

    def __init__(
        self,
        interactions: InteractionStore,
        catalog: CatalogStore,
        profiles: ProfileStore,
        clock: Clock = utcnow,
        decay_factor: float = TIME_DECAY_FACTOR,
    ) -> None:
        self._interactions = interactions
        self._catalog = catalog
        self._profiles = profiles
        self._clock = clock
        self._decay_factor = decay_factor

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def refresh_user_profile(self, user_id: str) -> UserProfile:
        """Recompute every derived field of *user_id*'s profile and save it.

        Safe to call repeatedly; each call recomputes from the interaction
        history rather than adjusting the previous values.

        Args:
            user_id: The user whose profile to refresh.

        Returns:
            The saved :class:`~storyrec.models.UserProfile`.
        """
        logger.info("Updating profile for user %r", user_id)
        now = self._clock()
        with self._profiles.locked(user_id):
            profile = self._profiles.get_or_create_profile(user_id)
            self.update_reading_metrics(profile, now)
            self.update_genre_diversity(profile)

            embedding = self.compute_profile_embedding(user_id, now)
            if embedding is not None:
                self._profiles.update_profile_embedding(user_id, embedding)
                profile.profile_embedding = embedding

            profile.last_profile_update = now
            self._profiles.save_profile(profile)
        return profile

    def update_profile_embedding(self, user_id: str) -> bool:
        """Recompute and store only the profile embedding.

        Returns:
            ``True`` if a new embedding was stored, ``False`` if the user had
            no qualifying interactions and the old embedding was kept.
        """
        now = self._clock()
        with self._profiles.locked(user_id):
            embedding = self.compute_profile_embedding(user_id, now)
            if embedding is None:
                return False
            self._profiles.update_profile_embedding(user_id, embedding)
        return True

    def refresh_stale_profiles(
        self, threshold_days: int = 7, max_workers: int = 4
    ) -> int:
        """Refresh every profile not updated within *threshold_days*.

        Profiles are refreshed in parallel; a failure for one user is logged
        and does not stop the others.

        Returns:
            Number of profiles refreshed successfully.
        """
        stale = self._profiles.find_stale_profiles(threshold_days, self._clock())
        logger.info("Found %d stale profiles to refresh", len(stale))
        if not stale:
            return 0

        updated = 0
        with futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            pending = {
                executor.submit(self.refresh_user_profile, p.user_id): p.user_id for p in stale
            }
            for future in futures.as_completed(pending):
                try:
                    future.result()
                    updated += 1
                except Exception:
                    logger.exception("Failed to update profile for user %r", pending[future])

        logger.info("Refreshed %d/%d stale profiles", updated, len(stale))
        return updated

    def compute_profile_embedding(self, user_id: str, now: datetime) -> list[float] | None:
        """Return the time-decayed weighted-average embedding, or ``None``.

        Args:
            user_id: The user.
            now: Reference time for the decay.

        Returns:
            The averaged vector, or ``None`` when no story qualifies or the
            total weight is zero.
        """
        story_interactions = self._collect_story_interactions(user_id)
        if not story_interactions:
            logger.debug("No story interactions for user %r", user_id)
            return None

        stories = [
            s for s in self._catalog.get_stories_by_ids(list(story_interactions))
            if s.has_embedding
        ]
        if not stories:
            logger.debug("No stories with embeddings for user %r", user_id)
            return None
        stories.sort(key=lambda s: s.story_id)

        dimension = len(stories[0].embedding)
        weighted_sum = np.zeros(dimension, dtype=np.float64)
        total_weight = 0.0
        used = 0

        for story in stories:
            if len(story.embedding) != dimension:
                logger.warning(
                    "Skipping story %r: embedding dimension %d != %d",
                    story.story_id, len(story.embedding), dimension,
                )
                continue
            interaction = story_interactions[story.story_id]
            days = (now - interaction.timestamp).days
            final_weight = interaction.weight * time_decay(days, self._decay_factor)
            if final_weight <= 0:
                continue
            weighted_sum += np.asarray(story.embedding, dtype=np.float64) * final_weight
            total_weight += final_weight
            used += 1

        if total_weight == 0:
            logger.debug("Could not calculate weighted embedding for user %r", user_id)
            return None

        logger.info(
            "Updated profile embedding for user %r from %d stories (total weight: %.2f)",
            user_id, used, total_weight,
        )
        return (weighted_sum / total_weight).tolist()

    def update_reading_metrics(self, profile: UserProfile, now: datetime) -> None:
        """Recompute the scalar reading metrics on *profile* in place.

        Leaves the metrics untouched when the user has no reading history.
        """
        history = self._interactions.get_interactions(
            profile.user_id, InteractionKind.READ, _METRICS_HISTORY_LIMIT
        )
        if not history:
            logger.debug("No reading history for user %r", profile.user_id)
            return

        unique_stories = {h.story_id for h in history}
        completed = {
            h.story_id for h in history
            if h.value is not None and h.value >= _COMPLETED_PROGRESS
        }
        window_start = now - timedelta(days=_VELOCITY_WINDOW_DAYS)
        recent_chapters = sum(
            1 for h in history if h.chapter_id is not None and h.timestamp > window_start
        )

        profile.total_stories_read = len(unique_stories)
        profile.total_chapters_read = sum(1 for h in history if h.chapter_id is not None)
        profile.average_completion_rate = len(completed) / len(unique_stories)
        profile.chapters_per_week = recent_chapters / _WEEKS_PER_VELOCITY_WINDOW

        logger.debug(
            "Updated metrics for user %r: %d stories, %d chapters, %.2f completion, %.2f ch/week",
            profile.user_id,
            profile.total_stories_read,
            profile.total_chapters_read,
            profile.average_completion_rate,
            profile.chapters_per_week,
        )

    def update_genre_diversity(self, profile: UserProfile) -> None:
        """Set *profile*'s genre diversity to the normalised entropy of its reading history."""
        history = self._interactions.get_interactions(
            profile.user_id, InteractionKind.READ, _DIVERSITY_HISTORY_LIMIT
        )
        stories = {
            s.story_id: s
            for s in self._catalog.get_stories_by_ids({h.story_id for h in history})
        }
        genre_counts: dict[str, int] = {}
        for record in history:
            story = stories.get(record.story_id)
            if story is None:
                continue
            for genre_id in story.genre_ids:
                genre_counts[genre_id] = genre_counts.get(genre_id, 0) + 1

        profile.genre_diversity_score = genre_entropy(genre_counts)
        logger.debug(
            "Genre diversity for user %r: %.4f (unique genres: %d)",
            profile.user_id, profile.genre_diversity_score, len(genre_counts),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _collect_story_interactions(self, user_id: str) -> dict[str, _StoryInteraction]:
        collected: dict[str, _StoryInteraction] = {}

        def merge(story_id: str, weight: float, timestamp: datetime) -> None:
            existing = collected.get(story_id)
            if existing is None:
                collected[story_id] = _StoryInteraction(weight, timestamp)
            else:
                existing.weight += weight
                existing.timestamp = max(existing.timestamp, timestamp)

        for record in self._interactions.get_interactions(
            user_id, InteractionKind.READ, _EMBEDDING_PAGE_LIMIT
        ):
            weight = _WEIGHT_READ
            if record.value is not None and record.value >= _COMPLETED_PROGRESS:
                weight *= _COMPLETION_BONUS
            merge(record.story_id, weight, record.timestamp)

        for record in self._interactions.get_interactions(
            user_id, InteractionKind.RATED, _EMBEDDING_PAGE_LIMIT
        ):
            if record.value is None:
                continue
            merge(record.story_id, rating_weight(record.value), record.timestamp)

        return collected


def genre_entropy(genre_counts: dict[str, int]) -> float:
    """Return the Shannon entropy of *genre_counts* normalised to [0, 1].

    Zero when fewer than two distinct genres occur.
    """
    if len(genre_counts) < 2:
        return 0.0
    counts = np.asarray(list(genre_counts.values()), dtype=np.float64)
    probabilities = counts / counts.sum()
    entropy = float(-(probabilities * np.log2(probabilities)).sum())
    max_entropy = math.log2(len(genre_counts))
    return min(1.0, max(0.0, entropy / max_entropy))
