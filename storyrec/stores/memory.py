"""Thread-safe in-memory implementations of the store contracts."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

import numpy as np

from storyrec.models import InteractionKind, InteractionRecord, Story, UserProfile
from storyrec.stores.base import CatalogStore, InteractionStore, ProfileStore

logger = logging.getLogger(__name__)


class InMemoryInteractionStore(InteractionStore):
    """Holds interaction records in memory, keyed so re-recording updates in place.

    Ratings and favorites are unique per ``(user, story)``; a new record
    replaces the previous one.  Reading history is unique per
    ``(user, story, chapter)`` so progress updates on the same chapter
    replace the earlier entry.

    All public methods are thread-safe.
    """

    def __init__(self, records: Iterable[InteractionRecord] = ()) -> None:
        self._lock = threading.RLock()
        self._records: dict[tuple, InteractionRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: InteractionRecord) -> None:
        """Insert or replace *record*."""
        if record.kind == InteractionKind.RATED and record.value is not None:
            if not 1 <= record.value <= 5:
                raise ValueError(f"Rating must be between 1 and 5, got {record.value!r}")
        with self._lock:
            self._records[_record_key(record)] = record

    def get_interactions(
        self, user_id: str, kind: InteractionKind, limit: int
    ) -> list[InteractionRecord]:
        with self._lock:
            matching = [
                r for r in self._records.values()
                if r.user_id == user_id and r.kind == kind
            ]
        matching.sort(key=lambda r: r.timestamp, reverse=True)
        return matching[:limit]

    def get_interactions_for_story(
        self, story_id: str, limit: int
    ) -> list[InteractionRecord]:
        with self._lock:
            matching = [
                r for r in self._records.values()
                if r.story_id == story_id and r.kind == InteractionKind.RATED
            ]
        matching.sort(key=lambda r: r.timestamp, reverse=True)
        return matching[:limit]

    def count_interactions(self, user_id: str, kind: InteractionKind) -> int:
        with self._lock:
            return sum(
                1 for r in self._records.values()
                if r.user_id == user_id and r.kind == kind
            )

    def list_user_ids(self, limit: int) -> list[str]:
        with self._lock:
            user_ids = {r.user_id for r in self._records.values()}
        return sorted(user_ids)[:limit]


class InMemoryCatalogStore(CatalogStore):
    """Holds the story catalog in memory and answers embedding queries with numpy.

    Nearest-neighbour search is brute-force cosine similarity over every
    story that carries an embedding of the query's dimension.

    All public methods are thread-safe.
    """

    def __init__(self, stories: Iterable[Story] = ()) -> None:
        self._lock = threading.RLock()
        self._stories: dict[str, Story] = {}
        for story in stories:
            self.add(story)

    def add(self, story: Story) -> None:
        """Insert or replace *story*."""
        with self._lock:
            self._stories[story.story_id] = story

    def get_all_stories(self) -> list[Story]:
        """Return a snapshot list of all stories, in insertion order."""
        with self._lock:
            return list(self._stories.values())

    def get_story(self, story_id: str) -> Story | None:
        with self._lock:
            return self._stories.get(story_id)

    def get_stories_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        wanted = set(story_ids)
        with self._lock:
            return [s for sid, s in self._stories.items() if sid in wanted]

    def get_stories_by_genre(self, genre_id: str, limit: int) -> list[Story]:
        return [s for s in self.get_all_stories() if genre_id in s.genre_ids][:limit]

    def get_trending_stories(self, since: datetime, limit: int) -> list[Story]:
        active = [
            s for s in self.get_all_stories()
            if s.updated_at is not None and s.updated_at >= since
        ]
        active.sort(key=lambda s: (s.view_count, s.updated_at), reverse=True)
        return active[:limit]

    def get_top_rated_stories(self, limit: int, min_total_ratings: int) -> list[Story]:
        rated = [s for s in self.get_all_stories() if s.total_ratings >= min_total_ratings]
        rated.sort(key=lambda s: (s.average_rating, s.total_ratings), reverse=True)
        return rated[:limit]

    def get_recent_stories(self, since: datetime, limit: int) -> list[Story]:
        recent = [
            s for s in self.get_all_stories()
            if s.created_at is not None and s.created_at > since
        ]
        recent.sort(key=lambda s: s.created_at, reverse=True)
        return recent[:limit]

    def count_stories(self) -> int:
        with self._lock:
            return len(self._stories)

    def find_nearest_by_embedding(
        self, embedding: list[float], limit: int
    ) -> list[str]:
        query = np.asarray(embedding, dtype=np.float32)
        query_norm = np.linalg.norm(query)
        if query.size == 0 or query_norm == 0.0:
            return []

        candidates = [
            s for s in self.get_all_stories()
            if s.embedding and len(s.embedding) == query.size
        ]
        if not candidates:
            return []

        matrix = np.asarray([s.embedding for s in candidates], dtype=np.float32)
        row_norms = np.linalg.norm(matrix, axis=1)
        similarities = np.zeros(len(candidates), dtype=np.float32)
        valid_mask = row_norms > 0.0
        similarities[valid_mask] = (matrix[valid_mask] @ query) / (
            row_norms[valid_mask] * query_norm
        )

        # Stable sort keeps catalog order among equal similarities
        order = np.argsort(-similarities, kind="stable")[:limit]
        return [candidates[i].story_id for i in order]


class InMemoryProfileStore(ProfileStore):
    """Holds user profiles in memory with one write lock per user.

    :meth:`get_or_create_profile` returns the stored object itself, so a
    caller holding :meth:`locked` for that user can mutate it in place.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: dict[str, UserProfile] = {}
        self._user_locks: dict[str, threading.RLock] = {}

    def get_or_create_profile(self, user_id: str) -> UserProfile:
        with self._lock:
            if user_id not in self._profiles:
                self._profiles[user_id] = UserProfile(user_id=user_id)
                logger.debug("Created profile for user %r", user_id)
            return self._profiles[user_id]

    def get_all_profiles(self) -> list[UserProfile]:
        """Return a snapshot list of all user profiles."""
        with self._lock:
            return list(self._profiles.values())

    def save_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def update_profile_embedding(self, user_id: str, embedding: list[float]) -> None:
        with self.locked(user_id):
            profile = self.get_or_create_profile(user_id)
            profile.profile_embedding = list(embedding)

    def find_stale_profiles(self, threshold_days: int, now: datetime) -> list[UserProfile]:
        return [p for p in self.get_all_profiles() if p.is_stale(threshold_days, now)]

    @contextmanager
    def locked(self, user_id: str) -> Iterator[None]:
        with self._lock:
            user_lock = self._user_locks.setdefault(user_id, threading.RLock())
        with user_lock:
            yield


def _record_key(record: InteractionRecord) -> tuple:
    if record.kind == InteractionKind.READ:
        return (record.kind, record.user_id, record.story_id, record.chapter_id)
    return (record.kind, record.user_id, record.story_id)
