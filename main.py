"""Entry point: wires all components and runs one command against a dataset."""

from __future__ import annotations

import argparse
import logging
import sys

import config
from storyrec.clock import Clock, utcnow
from storyrec.coldstart import ColdStartSelector, build_default_strategies
from storyrec.engine import HybridRecommender
from storyrec.errors import RecommenderError
from storyrec.evaluation.evaluator import MetricsCalculator, OfflineEvaluator
from storyrec.models import RecommendationResult
from storyrec.preferences import PreferenceAnalyzer
from storyrec.profile import ProfileUpdater
from storyrec.semantic import SimilarStoriesFinder
from storyrec.service import RecommendationService
from storyrec.stores.base import CatalogStore, InteractionStore, ProfileStore
from storyrec.stores.dataset import load_dataset
from storyrec.strategies.collaborative import CollaborativeFilteringSource
from storyrec.strategies.content_based import ContentBasedSource
from storyrec.strategies.popularity import HighRatedSource, TrendingSource

logger = logging.getLogger(__name__)


def build_service(
    catalog: CatalogStore,
    interactions: InteractionStore,
    profiles: ProfileStore,
    clock: Clock = utcnow,
) -> RecommendationService:
    """Construct the :class:`~storyrec.service.RecommendationService` with all dependencies wired.

    Args:
        catalog: The story catalog.
        interactions: The interaction store.
        profiles: The profile store.
        clock: Time source shared by every time-windowed component.

    Returns:
        A ready-to-use service.
    """
    analyzer = PreferenceAnalyzer(interactions, catalog)
    trending = TrendingSource(catalog, clock=clock)

    engine = HybridRecommender(
        analyzer=analyzer,
        catalog=catalog,
        content_source=ContentBasedSource(analyzer, catalog, fallback=trending),
        collaborative_source=CollaborativeFilteringSource(interactions, catalog),
        trending_source=trending,
        high_rated_source=HighRatedSource(catalog),
    )
    calculator = MetricsCalculator(
        analyzer, engine, interactions, max_workers=config.EVALUATION_MAX_WORKERS
    )

    return RecommendationService(
        engine=engine,
        similar_finder=SimilarStoriesFinder(catalog, analyzer, clock=clock),
        cold_start=ColdStartSelector(
            build_default_strategies(interactions, catalog, analyzer, clock=clock)
        ),
        profile_updater=ProfileUpdater(interactions, catalog, profiles, clock=clock),
        calculator=calculator,
        evaluator=OfflineEvaluator(calculator, clock=clock),
        slow_call_warn_ms=config.SLOW_CALL_WARN_THRESHOLD_MS,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyrec", description="Story recommendation core")
    parser.add_argument(
        "--dataset", default=config.DATASET_PATH, help="JSON dataset (default: %(default)s)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    recommend = sub.add_parser("recommend", help="Recommend stories for a user")
    recommend.add_argument("user_id")
    recommend.add_argument("--limit", type=int, default=config.DEFAULT_RECOMMENDATION_LIMIT)
    recommend.add_argument(
        "--algorithm",
        choices=["hybrid", "content", "collaborative", "cold-start"],
        default="hybrid",
    )

    similar = sub.add_parser("similar", help="Find stories similar to a story")
    similar.add_argument("story_id")
    similar.add_argument("--user", dest="user_id", default=None)
    similar.add_argument("--limit", type=int, default=config.DEFAULT_RECOMMENDATION_LIMIT)

    refresh = sub.add_parser("refresh-profile", help="Recompute one user's profile")
    refresh.add_argument("user_id")

    stale = sub.add_parser("refresh-stale", help="Recompute every stale profile")
    stale.add_argument("--days", type=int, default=config.PROFILE_STALENESS_DAYS)

    evaluate = sub.add_parser("evaluate", help="Run the offline evaluation")
    evaluate.add_argument("--max-users", type=int, default=config.EVALUATION_MAX_USERS)
    evaluate.add_argument(
        "--k", type=int, default=None, help="Single cutoff; all of 5/10/20/50 when omitted"
    )

    compare = sub.add_parser("compare", help="Compare two algorithms offline")
    compare.add_argument("algorithm_a", choices=["hybrid", "content", "collaborative"])
    compare.add_argument("algorithm_b", choices=["hybrid", "content", "collaborative"])
    compare.add_argument("--k", type=int, default=10)
    compare.add_argument("--max-users", type=int, default=config.EVALUATION_MAX_USERS)
    return parser


def run(args: argparse.Namespace, service: RecommendationService) -> None:
    """Execute the parsed command against *service* and print the result."""
    if args.command == "recommend":
        _print_result(service.get_recommendations(args.user_id, args.limit, args.algorithm))
    elif args.command == "similar":
        _print_result(service.get_similar_stories(args.story_id, args.user_id, args.limit))
    elif args.command == "refresh-profile":
        profile = service.refresh_user_profile(args.user_id)
        print(
            f"{profile.user_id}: {profile.total_stories_read} stories, "
            f"{profile.total_chapters_read} chapters, "
            f"completion {profile.average_completion_rate:.2f}, "
            f"{profile.chapters_per_week:.2f} chapters/week, "
            f"genre diversity {profile.genre_diversity_score:.4f}, "
            f"embedding {'set' if profile.profile_embedding else 'unset'}"
        )
    elif args.command == "refresh-stale":
        updated = service.refresh_stale_profiles(args.days, config.PROFILE_REFRESH_MAX_WORKERS)
        print(f"Refreshed {updated} profiles")
    elif args.command == "evaluate":
        if args.k is None:
            print(service.run_full_evaluation(args.max_users).summary())
        else:
            m = service.evaluate_system(args.k, args.max_users)
            print(
                f"K={m.k} users={m.total_users} scored={len(m.per_user_metrics)} "
                f"P@K={m.precision_at_k} R@K={m.recall_at_k} NDCG@K={m.ndcg_at_k}"
            )
    elif args.command == "compare":
        report = service.compare_algorithms(
            args.algorithm_a, args.algorithm_b, args.k, args.max_users
        )
        print(report.summary())


def _print_result(result: RecommendationResult) -> None:
    print(f"{result.type.value}: {result.explanation}")
    for rank, story in enumerate(result.stories, start=1):
        print(f"{rank:3d}. {story.story_id}  {story.title}")


def main(argv: list[str] | None = None) -> int:
    """Load the dataset, wire the service and run one CLI command.

    Returns:
        Process exit code.
    """
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)

    logger.info("Loading dataset from %s", args.dataset)
    dataset = load_dataset(args.dataset)
    service = build_service(dataset.catalog, dataset.interactions, dataset.profiles)

    try:
        run(args, service)
    except RecommenderError as exc:
        logger.error("%s", exc)
        return 1
    except ValueError as exc:
        logger.error("Invalid argument: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
