from __future__ import annotations

import threading

from restaurant_recs.config import AppConfig
from restaurant_recs.recommendations import retrieval
from restaurant_recs.recommendations.mixing import (
    build_strategies,
    merge_results,
    mixed_recommendations,
    run_strategies,
)
from restaurant_recs.recommendations.models import RecommendationResult, Restaurant


def _result(id, rating, source="x"):
    restaurant = Restaurant(
        id=id, name=f"R{id}", cuisine_type="Thai", city="Bilbao", price_range="$",
        average_rating=rating,
    )
    return RecommendationResult(restaurant=restaurant, score=rating, source_strategy=source)


# ── Merging ──────────────────────────────────────────────────────────────


def test_merge_results_dedupes_and_sorts_by_rating():
    groups = [
        [_result(1, 4.0), _result(2, 3.0)],
        [_result(2, 3.0), _result(3, 5.0)],
        [],
        [_result(1, 4.0)],
    ]
    merged = merge_results(groups, limit=10)
    assert [r.id for r in merged] == [3, 1, 2]


def test_merge_results_ties_keep_strategy_order():
    groups = [[_result(5, 4.0)], [_result(2, 4.0)], [_result(9, 4.0)]]
    assert [r.id for r in merge_results(groups, limit=10)] == [5, 2, 9]


def test_merge_results_truncates():
    groups = [[_result(i, float(i)) for i in range(1, 6)]]
    assert [r.id for r in merge_results(groups, limit=2)] == [5, 4]


# ── Running strategies ───────────────────────────────────────────────────


def test_run_strategies_isolates_failures():
    def boom():
        raise RuntimeError("store went away")

    groups, failed = run_strategies(
        [("ok", lambda: [_result(1, 4.0)]), ("bad", boom)], timeout=5
    )
    assert failed == ["bad"]
    assert [len(g) for g in groups] == [1, 0]


def test_run_strategies_times_out_slow_strategy():
    release = threading.Event()

    def slow():
        release.wait(5)
        return [_result(2, 5.0)]

    try:
        groups, failed = run_strategies(
            [("fast", lambda: [_result(1, 4.0)]), ("slow", slow)], timeout=0.2
        )
    finally:
        release.set()
    assert failed == ["slow"]
    assert groups[1] == []
    assert groups[0][0].restaurant.id == 1


# ── End to end ───────────────────────────────────────────────────────────


def test_build_strategies_order(store, seeded):
    user = store.find_user_by_id(seeded["alice"])
    names = [name for name, _ in build_strategies(store, user, partial=2)]
    assert names == [
        retrieval.PERSONALIZED,
        retrieval.COLLABORATIVE,
        retrieval.TRENDING,
        retrieval.HIGH_RATED,
    ]


def test_mixed_recommendations_merges_all_strategies(store, seeded):
    user = store.find_user_by_id(seeded["alice"])
    result = mixed_recommendations(store, user, limit=8)
    assert [r.name for r in result.restaurants] == [
        "Trattoria Uno",
        "Taqueria Tres",
        "Pasta Due",
        "Sushi Cuatro",
    ]
    assert result.failed_strategies == []


def test_mixed_recommendations_survives_failing_strategy(store, seeded):
    user = store.find_user_by_id(seeded["alice"])

    def boom():
        raise RuntimeError("collaborative query failed")

    strategies = build_strategies(store, user, partial=2)
    strategies[1] = (retrieval.COLLABORATIVE, boom)
    result = mixed_recommendations(store, user, limit=8, strategies=strategies)
    assert result.failed_strategies == [retrieval.COLLABORATIVE]
    assert [r.name for r in result.restaurants] == [
        "Trattoria Uno",
        "Taqueria Tres",
        "Pasta Due",
        "Sushi Cuatro",
    ]


def test_mixed_recommendations_all_failing_is_empty(store, seeded):
    user = store.find_user_by_id(seeded["alice"])

    def boom():
        raise RuntimeError("down")

    strategies = [(name, boom) for name, _ in build_strategies(store, user, partial=1)]
    result = mixed_recommendations(
        store, user, limit=4, config=AppConfig(strategy_timeout_seconds=2), strategies=strategies
    )
    assert result.restaurants == []
    assert len(result.failed_strategies) == 4
