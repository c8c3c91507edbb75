"""Exceptions surfaced to callers of the recommendation core."""

from __future__ import annotations


class RecommenderError(Exception):
    """Base class for errors raised by the recommendation core."""


class StoryNotFoundError(RecommenderError, LookupError):
    """The requested story does not exist in the catalog."""

    def __init__(self, story_id: str) -> None:
        super().__init__(f"Story not found: {story_id!r}")
        self.story_id = story_id


class UnknownAlgorithmError(RecommenderError, ValueError):
    """An algorithm name did not match any registered recommendation algorithm."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown recommendation algorithm: {name!r}")
        self.name = name
