"""Abstract contracts for the external collaborators the core reads from.

The recommendation core never owns persistence.  Interaction records, the
story catalog and user profiles are supplied through these narrow
interfaces; :mod:`storyrec.stores.memory` provides thread-safe in-memory
implementations used by the CLI and the tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Iterable

from storyrec.models import InteractionKind, InteractionRecord, Story, UserProfile


class InteractionStore(ABC):
    """Read-only access to ratings, favorites and reading history."""

    @abstractmethod
    def get_interactions(
        self, user_id: str, kind: InteractionKind, limit: int
    ) -> list[InteractionRecord]:
        """Return up to *limit* of the user's records of *kind*, most recent first."""

    @abstractmethod
    def get_interactions_for_story(
        self, story_id: str, limit: int
    ) -> list[InteractionRecord]:
        """Return up to *limit* ratings on *story_id*, most recent first."""

    @abstractmethod
    def count_interactions(self, user_id: str, kind: InteractionKind) -> int:
        """Return the total number of the user's records of *kind*."""

    @abstractmethod
    def list_user_ids(self, limit: int) -> list[str]:
        """Return up to *limit* user ids with any interaction, in a stable order."""


class CatalogStore(ABC):
    """Read access to story records plus embedding similarity search."""

    @abstractmethod
    def get_story(self, story_id: str) -> Story | None:
        """Return a single story, or ``None`` if it does not exist."""

    @abstractmethod
    def get_stories_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        """Return the stories that exist among *story_ids*.

        No ordering guarantee: callers that need rank order must re-sort.
        """

    def get_stories_in_order(self, story_ids: list[str]) -> list[Story]:
        """Return the stories for *story_ids* in the given order, dropping unknown ids.

        :meth:`get_stories_by_ids` may not preserve order, so the result is
        re-sorted by each id's index in *story_ids*.
        """
        rank = {sid: i for i, sid in enumerate(story_ids)}
        stories = self.get_stories_by_ids(story_ids)
        stories.sort(key=lambda s: rank.get(s.story_id, len(rank)))
        return stories

    @abstractmethod
    def get_stories_by_genre(self, genre_id: str, limit: int) -> list[Story]:
        """Return up to *limit* stories tagged with *genre_id*."""

    @abstractmethod
    def get_trending_stories(self, since: datetime, limit: int) -> list[Story]:
        """Return up to *limit* stories active since *since*, most viewed first."""

    @abstractmethod
    def get_top_rated_stories(self, limit: int, min_total_ratings: int) -> list[Story]:
        """Return up to *limit* stories with at least *min_total_ratings* ratings.

        Ordered by average rating, then rating count, both descending.
        """

    @abstractmethod
    def get_recent_stories(self, since: datetime, limit: int) -> list[Story]:
        """Return up to *limit* stories created after *since*, newest first."""

    @abstractmethod
    def count_stories(self) -> int:
        """Return the number of stories in the catalog."""

    @abstractmethod
    def find_nearest_by_embedding(
        self, embedding: list[float], limit: int
    ) -> list[str]:
        """Return up to *limit* story ids ordered by cosine similarity to *embedding*."""


class ProfileStore(ABC):
    """Read/write access to the per-user aggregated profile.

    Implementations must guarantee at most one writer per user for the
    duration of a :meth:`locked` block.  The profile updater performs its
    whole read-modify-write cycle inside that block.
    """

    @abstractmethod
    def get_or_create_profile(self, user_id: str) -> UserProfile:
        """Return the user's profile, creating an empty one on first access."""

    @abstractmethod
    def save_profile(self, profile: UserProfile) -> None:
        """Persist *profile*."""

    @abstractmethod
    def update_profile_embedding(self, user_id: str, embedding: list[float]) -> None:
        """Replace the stored profile embedding for *user_id*."""

    @abstractmethod
    def find_stale_profiles(self, threshold_days: int, now: datetime) -> list[UserProfile]:
        """Return profiles not updated within *threshold_days* of *now*."""

    @abstractmethod
    def locked(self, user_id: str) -> AbstractContextManager[None]:
        """Return a context manager holding the write lock for *user_id*."""
