"""Core domain dataclasses shared across all recommender modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum


class InteractionKind(str, Enum):
    """Categories of user interaction records supplied by the interaction store."""

    READ = "read"
    RATED = "rated"
    FAVORITED = "favorited"


class RecommendationType(str, Enum):
    """Algorithm tag attached to every :class:`RecommendationResult`."""

    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"
    SEMANTIC = "semantic"
    TRENDING = "trending"
    HYBRID = "hybrid"
    COLD_START = "cold_start"


@dataclass(frozen=True)
class Genre:
    """A genre tag attached to stories."""

    genre_id: str
    name: str


@dataclass
class Story:
    """A single story in the catalog.

    Attributes:
        story_id: Unique identifier for the story.
        title: Human-readable story title.
        genres: Genre tags, in the order the catalog lists them.  The first
            one is treated as the story's primary genre.
        embedding: Semantic embedding vector, or ``None`` when the external
            embedding provider has not produced one yet.
        created_at: When the story was added to the catalog.
        updated_at: Last activity on the story (new chapter, edit).  Drives
            trending membership.
        view_count: Total views; orders trending stories.
        total_ratings: Number of ratings received.
        average_rating: Mean rating (1–5), ``0.0`` when unrated.
    """

    story_id: str
    title: str
    genres: list[Genre] = field(default_factory=list)
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    view_count: int = 0
    total_ratings: int = 0
    average_rating: float = 0.0

    @property
    def genre_ids(self) -> list[str]:
        return [g.genre_id for g in self.genres]

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass(frozen=True)
class InteractionRecord:
    """A single user interaction, read-only from the core's perspective.

    Attributes:
        user_id: The interacting user.
        story_id: The story involved.
        kind: The category of interaction.
        value: Rating (1–5) for :attr:`InteractionKind.RATED`, progress
            percentage (0–100) for :attr:`InteractionKind.READ`, ``None``
            for favorites.
        timestamp: When the interaction happened (last read time for READ).
        chapter_id: Chapter the reading progress refers to (READ only).
    """

    user_id: str
    story_id: str
    kind: InteractionKind
    value: float | None
    timestamp: datetime
    chapter_id: str | None = None


@dataclass
class GenrePreference:
    """Accumulated preference score for one genre, recomputed per request."""

    genre_id: str
    genre_name: str
    score: float = 0.0
    interaction_count: int = 0

    def add_score(self, delta: float) -> None:
        self.score += delta
        self.interaction_count += 1


@dataclass(frozen=True)
class UserSimilarity:
    """Similarity of another user to the querying user.

    ``similarity_score`` is the share of the querying user's rated stories
    that the other user also rated: ``shared / |A|``.  It is asymmetric.
    """

    other_user_id: str
    similarity_score: float


@dataclass
class RecommendationCandidate:
    """Story id and the score accumulated for it during fusion."""

    story_id: str
    accumulated_score: float = 0.0


@dataclass
class RecommendationResult:
    """A ranked story list plus the algorithm that produced it."""

    stories: list[Story]
    type: RecommendationType
    explanation: str

    @property
    def total_count(self) -> int:
        return len(self.stories)

    @property
    def story_ids(self) -> list[str]:
        return [s.story_id for s in self.stories]


@dataclass
class UserProfile:
    """Aggregated per-user profile maintained by the profile updater.

    Attributes:
        user_id: Owner of the profile.
        profile_embedding: Time-decayed weighted average of the embeddings
            of stories the user interacted with, or ``None`` before the first
            successful update.
        total_stories_read: Unique stories in the reading history.
        total_chapters_read: Reading-history entries that reference a chapter.
        average_completion_rate: Fraction (0–1) of read stories with progress
            of at least 90%.
        chapters_per_week: Chapters touched in the last 30 days / 4.3.
        genre_diversity_score: Normalised Shannon entropy (0–1) of the genre
            distribution across the reading history.
        last_profile_update: When the profile was last recomputed.
    """

    user_id: str
    profile_embedding: list[float] | None = None
    total_stories_read: int = 0
    total_chapters_read: int = 0
    average_completion_rate: float = 0.0
    chapters_per_week: float = 0.0
    genre_diversity_score: float = 0.0
    last_profile_update: datetime | None = None

    def is_stale(self, days_threshold: int, now: datetime) -> bool:
        """Return ``True`` if the profile was never updated or is older than *days_threshold*."""
        if self.last_profile_update is None:
            return True
        return self.last_profile_update + timedelta(days=days_threshold) < now


@dataclass(frozen=True)
class EvaluationSplit:
    """Held-out split of one user's relevant items."""

    user_id: str
    training_set: frozenset[str]
    test_set: frozenset[str]
