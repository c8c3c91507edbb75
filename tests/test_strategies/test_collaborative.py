"""Tests for CollaborativeFilteringSource."""

from __future__ import annotations

import pytest

from conftest import rated
from storyrec.stores.memory import InMemoryInteractionStore
from storyrec.strategies.collaborative import CollaborativeFilteringSource


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def source(interactions, catalog) -> CollaborativeFilteringSource:
    return CollaborativeFilteringSource(interactions, catalog)


# ---------------------------------------------------------------------------
# Similar users
# ---------------------------------------------------------------------------


class TestFindSimilarUsers:
    def test_similarity_is_share_of_own_ratings(self, source) -> None:
        # u_adv rated 2 stories, u_mys rated 1 of them
        similar = source.find_similar_users("u_adv")
        assert [s.other_user_id for s in similar] == ["u_mys"]
        assert similar[0].similarity_score == pytest.approx(0.5)

    def test_similarity_is_asymmetric(self, source) -> None:
        # u_mys rated 3 stories, u_adv rated 1 of them
        similar = source.find_similar_users("u_mys")
        assert similar[0].other_user_id == "u_adv"
        assert similar[0].similarity_score == pytest.approx(1 / 3)

    def test_no_ratings_means_no_neighbours(self, source) -> None:
        assert source.find_similar_users("u_new") == []

    def test_no_overlap(self, source) -> None:
        assert source.find_similar_users("u_hor") == []

    def test_sorted_and_limited(self, catalog) -> None:
        store = InMemoryInteractionStore([
            rated("a", "s_adv", 5), rated("a", "s_mys", 5),
            rated("b", "s_adv", 4),
            rated("c", "s_adv", 4), rated("c", "s_mys", 3),
            rated("d", "s_mys", 2),
        ])
        similar = CollaborativeFilteringSource(store, catalog).find_similar_users("a", limit=2)
        assert [(s.other_user_id, s.similarity_score) for s in similar] == [
            ("c", 1.0),
            ("b", 0.5),
        ]


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class TestRecommend:
    def test_scores_by_rating_times_similarity(self, source) -> None:
        # u_mys (similarity 0.5) liked s_multi 5, s_mys 5, s_treasure 4
        result = source.recommend("u_adv", 10, set())
        assert [s.story_id for s in result] == ["s_multi", "s_mys", "s_treasure"]

    def test_respects_exclusions(self, source) -> None:
        result = source.recommend("u_adv", 10, {"s_adv", "s_multi"})
        assert [s.story_id for s in result] == ["s_mys", "s_treasure"]

    def test_returns_at_most_n(self, source) -> None:
        assert len(source.recommend("u_adv", 1, set())) == 1

    def test_ignores_low_ratings(self, catalog) -> None:
        store = InMemoryInteractionStore([
            rated("a", "s_adv", 5),
            rated("b", "s_adv", 5),
            rated("b", "s_hor", 3),
            rated("b", "s_mys", 4),
        ])
        result = CollaborativeFilteringSource(store, catalog).recommend("a", 10, {"s_adv"})
        assert [s.story_id for s in result] == ["s_mys"]

    def test_anonymous_user(self, source) -> None:
        assert source.recommend(None, 5, set()) == []

    def test_user_without_ratings(self, source) -> None:
        assert source.recommend("u_new", 5, set()) == []
