"""Abstract base class for all recommendation sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from storyrec.models import Story


class RecommendationSource(ABC):
    """Abstract base class for all recommendation sources.

    Each source encapsulates a single recommendation approach
    (content-based, collaborative, trending or high-rated).  The
    :class:`~storyrec.engine.HybridRecommender` calls every source with the
    same ``exclude_ids`` set and fuses their ranked lists by rank.
    """

    #: Short label used in log messages.
    name: str = "source"

    @abstractmethod
    def recommend(self, user_id: str | None, n: int, exclude_ids: set[str]) -> list[Story]:
        """Return up to *n* stories recommended for *user_id*.

        Args:
            user_id: The target user, or ``None`` for an anonymous request.
            n: Maximum number of recommendations to return.
            exclude_ids: Story IDs that must never appear in the result.

        Returns:
            List of up to *n* stories, ordered by descending relevance.
        """
