"""Load a JSON dataset into the in-memory stores.

Expected layout::

    {
      "genres": [{"genre_id": "g1", "name": "Fantasy"}, ...],
      "stories": [
        {"story_id": "s1", "title": "...", "genre_ids": ["g1"],
         "embedding": [0.1, ...], "created_at": "2024-05-01T00:00:00+00:00",
         "updated_at": "...", "view_count": 10, "total_ratings": 12,
         "average_rating": 4.2},
        ...
      ],
      "interactions": [
        {"user_id": "u1", "story_id": "s1", "kind": "rated", "value": 5,
         "timestamp": "2024-05-02T10:00:00+00:00"},
        ...
      ],
      "profiles": [
        {"user_id": "u1", "last_profile_update": "2024-05-01T00:00:00+00:00",
         "profile_embedding": [0.1, ...]},
        ...
      ]
    }

The "profiles" section is optional; it seeds previously computed profiles
so stale ones can be refreshed.

Timestamps are ISO-8601; naive values are assumed UTC.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from storyrec.models import Genre, InteractionKind, InteractionRecord, Story, UserProfile
from storyrec.stores.memory import (
    InMemoryCatalogStore,
    InMemoryInteractionStore,
    InMemoryProfileStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Dataset:
    """The three stores populated from one dataset file."""

    catalog: InMemoryCatalogStore
    interactions: InMemoryInteractionStore
    profiles: InMemoryProfileStore


def load_dataset(path: str | Path) -> Dataset:
    """Read *path* and return populated in-memory stores.

    Args:
        path: Location of the JSON dataset.

    Returns:
        A :class:`Dataset` with catalog, interaction and profile stores.

    Raises:
        ValueError: If a story references an undeclared genre or a record has
            an unknown interaction kind.
    """
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    dataset = build_dataset(raw)
    logger.info(
        "Loaded dataset %s: %d stories, %d users, %d profiles.",
        path,
        dataset.catalog.count_stories(),
        len(dataset.interactions.list_user_ids(limit=10**9)),
        len(dataset.profiles.get_all_profiles()),
    )
    return dataset


def build_dataset(raw: dict[str, Any]) -> Dataset:
    """Build in-memory stores from an already-parsed dataset mapping."""
    genres = {
        g["genre_id"]: Genre(genre_id=str(g["genre_id"]), name=g.get("name", str(g["genre_id"])))
        for g in raw.get("genres", [])
    }

    catalog = InMemoryCatalogStore()
    for item in raw.get("stories", []):
        genre_ids = item.get("genre_ids", [])
        missing = [gid for gid in genre_ids if gid not in genres]
        if missing:
            raise ValueError(
                f"Story {item.get('story_id')!r} references unknown genres: {missing}"
            )
        catalog.add(
            Story(
                story_id=str(item["story_id"]),
                title=item.get("title", ""),
                genres=[genres[gid] for gid in genre_ids],
                embedding=item.get("embedding") or None,
                created_at=_parse_timestamp(item.get("created_at")),
                updated_at=_parse_timestamp(item.get("updated_at")),
                view_count=int(item.get("view_count", 0)),
                total_ratings=int(item.get("total_ratings", 0)),
                average_rating=float(item.get("average_rating", 0.0)),
            )
        )

    interactions = InMemoryInteractionStore()
    for item in raw.get("interactions", []):
        value = item.get("value")
        interactions.add(
            InteractionRecord(
                user_id=str(item["user_id"]),
                story_id=str(item["story_id"]),
                kind=InteractionKind(item["kind"]),
                value=float(value) if value is not None else None,
                timestamp=_parse_timestamp(item["timestamp"]),
                chapter_id=item.get("chapter_id"),
            )
        )

    profiles = InMemoryProfileStore()
    for item in raw.get("profiles", []):
        embedding = item.get("profile_embedding")
        profiles.save_profile(
            UserProfile(
                user_id=str(item["user_id"]),
                profile_embedding=list(embedding) if embedding else None,
                total_stories_read=int(item.get("total_stories_read", 0)),
                total_chapters_read=int(item.get("total_chapters_read", 0)),
                average_completion_rate=float(item.get("average_completion_rate", 0.0)),
                chapters_per_week=float(item.get("chapters_per_week", 0.0)),
                genre_diversity_score=float(item.get("genre_diversity_score", 0.0)),
                last_profile_update=_parse_timestamp(item.get("last_profile_update")),
            )
        )

    return Dataset(catalog=catalog, interactions=interactions, profiles=profiles)


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
