"""Tests for RecommendationService (the public facade)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from main import build_service
from storyrec.errors import StoryNotFoundError, UnknownAlgorithmError
from storyrec.models import RecommendationResult, RecommendationType, Story
from storyrec.service import RecommendationService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_service(slow_call_warn_ms: float = 450) -> RecommendationService:
    """Return a service whose collaborators are all mocks."""
    return RecommendationService(
        engine=MagicMock(),
        similar_finder=MagicMock(),
        cold_start=MagicMock(),
        profile_updater=MagicMock(),
        calculator=MagicMock(),
        evaluator=MagicMock(),
        slow_call_warn_ms=slow_call_warn_ms,
    )


@pytest.fixture
def service(catalog, interactions, profiles, clock) -> RecommendationService:
    return build_service(catalog, interactions, profiles, clock=clock)


# ---------------------------------------------------------------------------
# Delegation and logging
# ---------------------------------------------------------------------------


class TestDelegation:
    def test_hybrid_delegates_to_engine(self) -> None:
        svc = _make_service()
        expected = RecommendationResult([], RecommendationType.HYBRID, "x")
        svc._engine.get_hybrid_recommendations.return_value = expected
        assert svc.get_hybrid_recommendations("u1", 5) is expected
        svc._engine.get_hybrid_recommendations.assert_called_once_with("u1", 5)

    def test_cold_start_single_mode(self) -> None:
        svc = _make_service()
        story = Story("s1", "One")
        svc._cold_start.get_recommendations.return_value = [story]
        result = svc.get_cold_start_recommendations("u1", 3)
        assert result.type == RecommendationType.COLD_START
        assert result.stories == [story]
        svc._cold_start.get_mixed_recommendations.assert_not_called()

    def test_cold_start_mixed_mode(self) -> None:
        svc = _make_service()
        svc._cold_start.get_mixed_recommendations.return_value = []
        svc.get_cold_start_recommendations("u1", 3, mixed=True)
        svc._cold_start.get_mixed_recommendations.assert_called_once_with("u1", 3)

    def test_cold_start_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            _make_service().get_cold_start_recommendations("u1", 0)

    def test_unexpected_error_is_logged_and_reraised(self) -> None:
        svc = _make_service()
        svc._engine.get_hybrid_recommendations.side_effect = RuntimeError("crash")
        with patch("storyrec.service.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                svc.get_hybrid_recommendations("u1", 5)
            mock_logger.exception.assert_called_once()

    def test_not_found_is_not_logged_as_unexpected(self) -> None:
        svc = _make_service()
        svc._similar_finder.get_similar_stories.side_effect = StoryNotFoundError("s9")
        with patch("storyrec.service.logger") as mock_logger:
            with pytest.raises(StoryNotFoundError):
                svc.get_similar_stories("s9")
            mock_logger.exception.assert_not_called()

    def test_slow_call_logs_warning(self) -> None:
        svc = _make_service(slow_call_warn_ms=-1)
        with patch("storyrec.service.logger") as mock_logger:
            svc.refresh_user_profile("u1")
            mock_logger.warning.assert_called_once()

    def test_fast_call_logs_debug(self) -> None:
        svc = _make_service(slow_call_warn_ms=60_000)
        with patch("storyrec.service.logger") as mock_logger:
            svc.run_full_evaluation(10)
            mock_logger.warning.assert_not_called()
            mock_logger.debug.assert_called_once()


# ---------------------------------------------------------------------------
# Wired service
# ---------------------------------------------------------------------------


class TestWiredService:
    def test_hybrid(self, service) -> None:
        result = service.get_hybrid_recommendations("u_adv", 5)
        assert result.type == RecommendationType.HYBRID
        assert result.total_count == 5
        assert not {"s_adv", "s_multi"} & set(result.story_ids)

    @pytest.mark.parametrize(
        "algorithm, expected",
        [
            ("hybrid", RecommendationType.HYBRID),
            ("content", RecommendationType.CONTENT_BASED),
            ("collaborative", RecommendationType.COLLABORATIVE),
            ("cold-start", RecommendationType.COLD_START),
        ],
    )
    def test_dispatch_by_name(self, service, algorithm, expected) -> None:
        assert service.get_recommendations("u_adv", 3, algorithm).type == expected

    def test_unknown_algorithm(self, service) -> None:
        with pytest.raises(UnknownAlgorithmError):
            service.get_recommendations("u_adv", 3, "random")

    def test_cold_start_for_new_user(self, service) -> None:
        assert service.is_user_cold_start("u_new")
        result = service.get_cold_start_recommendations("u_new", 3)
        assert result.story_ids == ["s_adv", "s_multi", "s_treasure"]

    def test_similar_stories(self, service) -> None:
        result = service.get_similar_stories("s_adv", limit=3)
        assert result.type == RecommendationType.SEMANTIC
        assert "s_adv" not in result.story_ids

    def test_similar_unknown_story(self, service) -> None:
        with pytest.raises(StoryNotFoundError):
            service.get_similar_stories("missing")

    def test_refresh_profile(self, service, profiles) -> None:
        profile = service.refresh_user_profile("u_adv")
        assert profile.total_stories_read == 2
        assert profiles.get_or_create_profile("u_adv").profile_embedding is not None

    def test_refresh_stale_profiles(self, service, profiles) -> None:
        profiles.get_or_create_profile("u_adv")
        profiles.get_or_create_profile("u_mys")
        assert service.refresh_stale_profiles(threshold_days=7, max_workers=2) == 2

    def test_user_metrics(self, service) -> None:
        assert service.calculate_user_metrics("u_mys", 5).is_scored
        assert not service.calculate_user_metrics("u_new", 5).is_scored

    def test_aggregate_metrics(self, service) -> None:
        aggregate = service.calculate_aggregate_metrics(["u_adv", "u_hor", "u_mys"], 5)
        assert aggregate.skipped_user_ids == ["u_hor"]

    def test_full_evaluation(self, service) -> None:
        report = service.run_full_evaluation(max_users=10)
        assert len(report.k_metrics) == 4
        assert "K=20:" in report.summary()

    def test_compare(self, service) -> None:
        report = service.compare_algorithms("content", "collaborative", 5, 10)
        assert "content_based: P@K=" in report.summary()
