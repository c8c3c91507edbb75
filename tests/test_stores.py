"""Tests for the in-memory stores and the JSON dataset loader."""

from __future__ import annotations

import json
import threading

import pytest

from conftest import NOW, days_ago, rated, read
from storyrec.models import InteractionKind
from storyrec.stores.dataset import build_dataset, load_dataset
from storyrec.stores.memory import InMemoryInteractionStore, InMemoryProfileStore


class TestInMemoryInteractionStore:
    def test_most_recent_first(self, interactions) -> None:
        records = interactions.get_interactions("u_mys", InteractionKind.RATED, 10)
        assert [r.story_id for r in records] == ["s_mys", "s_multi", "s_treasure"]

    def test_limit(self, interactions) -> None:
        assert len(interactions.get_interactions("u_mys", InteractionKind.RATED, 2)) == 2

    def test_rerating_replaces_previous(self) -> None:
        store = InMemoryInteractionStore([rated("u1", "s1", 2, days=5)])
        store.add(rated("u1", "s1", 5, days=1))
        records = store.get_interactions("u1", InteractionKind.RATED, 10)
        assert len(records) == 1
        assert records[0].value == 5

    def test_reading_history_is_per_chapter(self) -> None:
        store = InMemoryInteractionStore([
            read("u1", "s1", chapter_id="c1"),
            read("u1", "s1", chapter_id="c2"),
        ])
        assert store.count_interactions("u1", InteractionKind.READ) == 2

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rejects_out_of_range_rating(self, rating) -> None:
        with pytest.raises(ValueError):
            InMemoryInteractionStore([rated("u1", "s1", rating)])

    def test_ratings_for_story(self, interactions) -> None:
        users = {r.user_id for r in interactions.get_interactions_for_story("s_multi", 10)}
        assert users == {"u_adv", "u_mys"}

    def test_list_user_ids_sorted(self, interactions) -> None:
        assert interactions.list_user_ids(10) == ["u_adv", "u_hor", "u_mys", "u_new"]
        assert interactions.list_user_ids(2) == ["u_adv", "u_hor"]


class TestInMemoryCatalogStore:
    def test_get_missing_story(self, catalog) -> None:
        assert catalog.get_story("nope") is None

    def test_stories_in_order(self, catalog) -> None:
        stories = catalog.get_stories_in_order(["s_mys", "missing", "s_adv"])
        assert [s.story_id for s in stories] == ["s_mys", "s_adv"]

    def test_trending_by_views_within_window(self, catalog) -> None:
        ids = [s.story_id for s in catalog.get_trending_stories(days_ago(30), 4)]
        assert ids == ["s_adv", "s_multi", "s_mys", "s_treasure"]

    def test_trending_skips_inactive(self, catalog) -> None:
        ids = {s.story_id for s in catalog.get_trending_stories(days_ago(30), 100)}
        assert "s_hor" not in ids
        assert "s_meadow" not in ids

    def test_top_rated_min_ratings_inclusive(self, catalog) -> None:
        ids = [s.story_id for s in catalog.get_top_rated_stories(10, 10)]
        assert ids == ["s_treasure", "s_adv", "s_multi", "s_mys", "s_abyss", "s_hor"]

    def test_recent_newest_first(self, catalog) -> None:
        ids = [s.story_id for s in catalog.get_recent_stories(days_ago(14), 10)]
        assert ids == ["s_voyage", "s_wood"]

    def test_nearest_by_embedding(self, catalog) -> None:
        ids = catalog.find_nearest_by_embedding([1.0, 0.0, 0.0], 3)
        assert ids[0] == "s_adv"
        assert ids[1] == "s_voyage"

    def test_nearest_with_zero_query(self, catalog) -> None:
        assert catalog.find_nearest_by_embedding([0.0, 0.0, 0.0], 3) == []


class TestInMemoryProfileStore:
    def test_get_or_create_returns_same_object(self) -> None:
        store = InMemoryProfileStore()
        assert store.get_or_create_profile("u1") is store.get_or_create_profile("u1")

    def test_update_embedding(self) -> None:
        store = InMemoryProfileStore()
        store.update_profile_embedding("u1", [0.5, 0.5])
        assert store.get_or_create_profile("u1").profile_embedding == [0.5, 0.5]

    def test_find_stale(self) -> None:
        store = InMemoryProfileStore()
        fresh = store.get_or_create_profile("fresh")
        fresh.last_profile_update = days_ago(1)
        store.get_or_create_profile("never")
        assert [p.user_id for p in store.find_stale_profiles(7, NOW)] == ["never"]

    def test_lock_excludes_other_writers(self) -> None:
        store = InMemoryProfileStore()
        entered = threading.Event()
        order: list[str] = []

        def writer() -> None:
            entered.set()
            with store.locked("u1"):
                order.append("second")

        with store.locked("u1"):
            thread = threading.Thread(target=writer)
            thread.start()
            entered.wait(timeout=1)
            order.append("first")
        thread.join(timeout=1)
        assert order == ["first", "second"]


class TestDataset:
    def _raw(self) -> dict:
        return {
            "genres": [{"genre_id": "g1", "name": "Fantasy"}],
            "stories": [
                {
                    "story_id": "s1",
                    "title": "Dragons",
                    "genre_ids": ["g1"],
                    "embedding": [0.1, 0.2],
                    "created_at": "2024-05-01T00:00:00",
                    "updated_at": "2024-05-20T00:00:00+00:00",
                    "view_count": 10,
                    "total_ratings": 12,
                    "average_rating": 4.2,
                }
            ],
            "interactions": [
                {"user_id": "u1", "story_id": "s1", "kind": "rated", "value": 5,
                 "timestamp": "2024-05-02T10:00:00+00:00"},
                {"user_id": "u1", "story_id": "s1", "kind": "read", "value": 95,
                 "chapter_id": "c3", "timestamp": "2024-05-02T09:00:00+00:00"},
            ],
        }

    def test_build(self) -> None:
        dataset = build_dataset(self._raw())
        story = dataset.catalog.get_story("s1")
        assert story.genres[0].name == "Fantasy"
        assert story.created_at.tzinfo is not None
        reads = dataset.interactions.get_interactions("u1", InteractionKind.READ, 10)
        assert reads[0].chapter_id == "c3"
        assert dataset.interactions.count_interactions("u1", InteractionKind.RATED) == 1

    def test_profiles_seeded(self) -> None:
        raw = self._raw()
        raw["profiles"] = [
            {"user_id": "u1", "last_profile_update": "2020-01-01T00:00:00",
             "profile_embedding": [0.5, 0.5], "total_stories_read": 4},
            {"user_id": "u2"},
        ]
        profiles = build_dataset(raw).profiles
        u1 = profiles.get_or_create_profile("u1")
        assert u1.profile_embedding == [0.5, 0.5]
        assert u1.total_stories_read == 4
        assert u1.last_profile_update.tzinfo is not None
        assert profiles.get_or_create_profile("u2").last_profile_update is None
        assert {p.user_id for p in profiles.find_stale_profiles(7, NOW)} == {"u1", "u2"}

    def test_profiles_section_optional(self) -> None:
        assert build_dataset(self._raw()).profiles.get_all_profiles() == []

    def test_unknown_genre_rejected(self) -> None:
        raw = self._raw()
        raw["stories"][0]["genre_ids"] = ["missing"]
        with pytest.raises(ValueError):
            build_dataset(raw)

    def test_load_from_file(self, tmp_path) -> None:
        path = tmp_path / "dataset.json"
        path.write_text(json.dumps(self._raw()), encoding="utf-8")
        dataset = load_dataset(path)
        assert dataset.catalog.count_stories() == 1
        assert dataset.interactions.list_user_ids(10) == ["u1"]
