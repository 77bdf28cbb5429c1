"""
Mixed recommendations: scatter-gather over four candidate generators.

The strategies run concurrently in a small thread pool. A strategy that raises
or misses the timeout contributes nothing; the remaining strategies still
produce a result.
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable

from ..config import DEFAULT_APP_CONFIG, AppConfig
from . import retrieval
from .data_store import EntityStore
from .models import MixedRecommendations, RecommendationResult, Restaurant, RestaurantFilter, User

logger = logging.getLogger(__name__)

Strategy = Callable[[], list[RecommendationResult]]


def build_strategies(
    store: EntityStore,
    user: User,
    partial: int,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> list[tuple[str, Strategy]]:
    """The four strategies in merge-priority order."""
    return [
        (retrieval.PERSONALIZED, lambda: retrieval.personalized(store, user, partial, config=config)),
        (retrieval.COLLABORATIVE, lambda: retrieval.collaborative(store, user, partial, config=config)),
        (retrieval.TRENDING, lambda: retrieval.trending(store, partial, config.trending_days, config=config)),
        (
            retrieval.HIGH_RATED,
            lambda: retrieval.filtered(
                store,
                RestaurantFilter(min_rating=config.mixed_high_rated_min_rating),
                partial,
                source=retrieval.HIGH_RATED,
            ),
        ),
    ]


def run_strategies(
    strategies: list[tuple[str, Strategy]],
    timeout: float,
) -> tuple[list[list[RecommendationResult]], list[str]]:
    """Run every strategy concurrently; return per-strategy results and failures."""
    executor = ThreadPoolExecutor(max_workers=len(strategies), thread_name_prefix="mixed-recs")
    try:
        futures = [executor.submit(fn) for _, fn in strategies]
        wait(futures, timeout=timeout)

        results: list[list[RecommendationResult]] = []
        failed: list[str] = []
        for (name, _), future in zip(strategies, futures):
            if not future.done():
                logger.warning("Strategy %s timed out after %.1fs", name, timeout)
                failed.append(name)
                results.append([])
                continue
            exc = future.exception()
            if exc is not None:
                logger.warning("Strategy %s failed", name, exc_info=exc)
                failed.append(name)
                results.append([])
                continue
            results.append(future.result())
        return results, failed
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def merge_results(groups: list[list[RecommendationResult]], limit: int) -> list[Restaurant]:
    """Concatenate, keep the first occurrence per restaurant, re-rank by rating."""
    seen: set[int] = set()
    unique: list[Restaurant] = []
    for group in groups:
        for result in group:
            if result.restaurant.id in seen:
                continue
            seen.add(result.restaurant.id)
            unique.append(result.restaurant)

    # Stable sort: equal ratings keep strategy priority order.
    unique.sort(key=lambda r: r.average_rating, reverse=True)
    return unique[:limit]


def mixed_recommendations(
    store: EntityStore,
    user: User,
    limit: int,
    config: AppConfig = DEFAULT_APP_CONFIG,
    strategies: list[tuple[str, Strategy]] | None = None,
) -> MixedRecommendations:
    partial = math.ceil(limit / 4)
    if strategies is None:
        strategies = build_strategies(store, user, partial, config)

    groups, failed = run_strategies(strategies, config.strategy_timeout_seconds)
    logger.info(
        "Mixed recommendations for user %s: %s",
        user.id,
        ", ".join(f"{name}={len(group)}" for (name, _), group in zip(strategies, groups)),
    )
    return MixedRecommendations(
        restaurants=merge_results(groups, limit),
        failed_strategies=failed,
    )
