"""Tests for storyrec.models dataclasses."""

from datetime import datetime, timedelta, timezone

import pytest

from storyrec.models import (
    Genre,
    GenrePreference,
    InteractionKind,
    InteractionRecord,
    RecommendationResult,
    RecommendationType,
    Story,
    UserProfile,
)

TS = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestStory:
    def test_genre_ids_keep_catalog_order(self) -> None:
        story = Story("s1", "Dual", genres=[Genre("g2", "Mystery"), Genre("g1", "Adventure")])
        assert story.genre_ids == ["g2", "g1"]

    def test_has_embedding(self) -> None:
        assert Story("s1", "A", embedding=[0.1, 0.2]).has_embedding
        assert not Story("s2", "B").has_embedding
        assert not Story("s3", "C", embedding=[]).has_embedding

    def test_equality(self) -> None:
        assert Story("s1", "A") == Story("s1", "A")
        assert Story("s1", "A") != Story("s2", "A")


class TestInteractionKind:
    def test_values(self) -> None:
        assert InteractionKind.READ == "read"
        assert InteractionKind.RATED == "rated"
        assert InteractionKind.FAVORITED == "favorited"

    def test_from_string(self) -> None:
        assert InteractionKind("rated") is InteractionKind.RATED


class TestInteractionRecord:
    def test_is_immutable(self) -> None:
        record = InteractionRecord("u1", "s1", InteractionKind.RATED, 4, TS)
        with pytest.raises(AttributeError):
            record.value = 5  # type: ignore[misc]

    def test_chapter_defaults_to_none(self) -> None:
        record = InteractionRecord("u1", "s1", InteractionKind.FAVORITED, None, TS)
        assert record.chapter_id is None


class TestGenrePreference:
    def test_add_score_counts_interactions(self) -> None:
        pref = GenrePreference("g1", "Adventure")
        pref.add_score(2.0)
        pref.add_score(-0.5)
        assert pref.score == pytest.approx(1.5)
        assert pref.interaction_count == 2


class TestRecommendationResult:
    def test_total_count_and_ids(self) -> None:
        result = RecommendationResult(
            stories=[Story("s1", "A"), Story("s2", "B")],
            type=RecommendationType.HYBRID,
            explanation="x",
        )
        assert result.total_count == 2
        assert result.story_ids == ["s1", "s2"]

    def test_empty(self) -> None:
        result = RecommendationResult([], RecommendationType.SEMANTIC, "none")
        assert result.total_count == 0


class TestUserProfile:
    def test_defaults(self) -> None:
        profile = UserProfile(user_id="u1")
        assert profile.profile_embedding is None
        assert profile.total_stories_read == 0
        assert profile.genre_diversity_score == 0.0
        assert profile.last_profile_update is None

    def test_never_updated_is_stale(self) -> None:
        assert UserProfile(user_id="u1").is_stale(7, TS)

    def test_recent_update_is_not_stale(self) -> None:
        profile = UserProfile(user_id="u1", last_profile_update=TS - timedelta(days=3))
        assert not profile.is_stale(7, TS)

    def test_old_update_is_stale(self) -> None:
        profile = UserProfile(user_id="u1", last_profile_update=TS - timedelta(days=8))
        assert profile.is_stale(7, TS)
