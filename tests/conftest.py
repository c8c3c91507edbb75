"""Shared pytest fixtures for all recommender tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from storyrec.models import Genre, InteractionKind, InteractionRecord, Story
from storyrec.stores.memory import (
    InMemoryCatalogStore,
    InMemoryInteractionStore,
    InMemoryProfileStore,
)


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

ADVENTURE = Genre("g_adv", "Adventure")
MYSTERY = Genre("g_mys", "Mystery")
HORROR = Genre("g_hor", "Horror")
CALM = Genre("g_calm", "Calm")


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def make_story(
    story_id: str,
    genres: list[Genre],
    embedding: list[float] | None = None,
    created: float = 100,
    updated: float = 10,
    views: int = 0,
    total_ratings: int = 0,
    average_rating: float = 0.0,
) -> Story:
    return Story(
        story_id=story_id,
        title=story_id.replace("s_", "").title(),
        genres=genres,
        embedding=embedding,
        created_at=days_ago(created),
        updated_at=days_ago(updated),
        view_count=views,
        total_ratings=total_ratings,
        average_rating=average_rating,
    )


def read(user_id: str, story_id: str, progress: float = 50.0, days: float = 1,
         chapter_id: str | None = "c1") -> InteractionRecord:
    return InteractionRecord(
        user_id, story_id, InteractionKind.READ, progress, days_ago(days), chapter_id
    )


def rated(user_id: str, story_id: str, rating: float, days: float = 1) -> InteractionRecord:
    return InteractionRecord(user_id, story_id, InteractionKind.RATED, rating, days_ago(days))


def favorited(user_id: str, story_id: str, days: float = 1) -> InteractionRecord:
    return InteractionRecord(user_id, story_id, InteractionKind.FAVORITED, None, days_ago(days))


# ---------------------------------------------------------------------------
# Catalog fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def sample_stories() -> list[Story]:
    """10-story catalog spanning four genres.

    Trending (updated in the last 30 days, by views):
        s_adv, s_multi, s_mys, s_treasure, s_abyss, s_calm, s_voyage, s_wood
    Top rated (>= 10 ratings, by average):
        s_treasure, s_adv, s_multi, s_mys, s_abyss, s_hor
    Created in the last 14 days: s_voyage (embedded), s_wood (no embedding)
    """
    return [
        make_story("s_adv", [ADVENTURE], [1.0, 0.0, 0.0], 200, 2, 500, 40, 4.5),
        make_story("s_mys", [MYSTERY], [0.0, 1.0, 0.0], 180, 5, 300, 25, 4.0),
        make_story("s_hor", [HORROR], [0.0, 0.0, 1.0], 150, 60, 800, 12, 3.5),
        make_story("s_calm", [CALM], None, 100, 10, 50, 3, 4.8),
        make_story("s_multi", [ADVENTURE, MYSTERY], [0.7, 0.7, 0.0], 90, 1, 400, 10, 4.2),
        make_story("s_voyage", [ADVENTURE], [0.9, 0.1, 0.0], 3, 1, 20),
        make_story("s_wood", [MYSTERY], None, 5, 5, 15),
        make_story("s_abyss", [HORROR], [0.1, 0.0, 0.9], 40, 20, 120, 11, 3.9),
        make_story("s_meadow", [CALM], [0.2, 0.2, 0.2], 60, 45, 10, 2, 3.0),
        make_story("s_treasure", [ADVENTURE, CALM], [0.8, 0.0, 0.2], 30, 3, 250, 15, 4.6),
    ]


@pytest.fixture
def catalog(sample_stories) -> InMemoryCatalogStore:
    return InMemoryCatalogStore(sample_stories)


# ---------------------------------------------------------------------------
# Interaction fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_interactions() -> list[InteractionRecord]:
    """Four users.

    u_adv: adventure reader: read+rated s_adv and s_multi, favorited s_adv.
    u_mys: mystery reader: rated s_mys, s_multi, s_treasure highly.
    u_hor: rates horror poorly.
    u_new: a single read; cold start.
    """
    return [
        read("u_adv", "s_adv", 100.0, days=2),
        read("u_adv", "s_multi", 40.0, days=4),
        rated("u_adv", "s_adv", 5, days=2),
        rated("u_adv", "s_multi", 4, days=4),
        favorited("u_adv", "s_adv", days=2),
        read("u_mys", "s_mys", 100.0, days=1),
        rated("u_mys", "s_mys", 5, days=1),
        rated("u_mys", "s_multi", 5, days=3),
        rated("u_mys", "s_treasure", 4, days=6),
        read("u_hor", "s_hor", 20.0, days=8),
        rated("u_hor", "s_hor", 1, days=8),
        rated("u_hor", "s_abyss", 2, days=9),
        read("u_new", "s_calm", 10.0, days=1),
    ]


@pytest.fixture
def interactions(sample_interactions) -> InMemoryInteractionStore:
    return InMemoryInteractionStore(sample_interactions)


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()
