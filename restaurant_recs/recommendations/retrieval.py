"""
Candidate generators.

Each generator is a read-only function of the store contents and its
arguments, returning restaurants ranked best first as ``RecommendationResult``
items. Scores are strategy-specific and not comparable across generators.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from ..config import DEFAULT_APP_CONFIG, AppConfig
from .data_store import RESTAURANT_SUMMARY_SQL, EntityStore, restaurant_from_row
from .models import RecommendationResult, RestaurantFilter, User
from .similarity import RESTAURANT_SIMILARITY_SQL, rank_similar_users

logger = logging.getLogger(__name__)

PERSONALIZED = "personalized"
HISTORY = "history"
COLLABORATIVE = "collaborative"
TRENDING = "trending"
HIGH_RATED = "high_rated"
FILTERED = "filtered"
SIMILAR = "similar"

# Reviews at or above this rating count as a "favorite" for history-based picks.
FAVORITE_REVIEW_RATING = 4

_EXCLUDE_REVIEWED_SQL = """
    AND rs.id NOT IN (
        SELECT restaurant_id FROM reviews WHERE user_id = :user_id
    )
"""


def _results(rows: list[dict[str, Any]], score_key: str | None, source: str) -> list[RecommendationResult]:
    out: list[RecommendationResult] = []
    for row in rows:
        restaurant = restaurant_from_row(row)
        score = float(row[score_key]) if score_key else restaurant.average_rating
        out.append(RecommendationResult(restaurant=restaurant, score=score, source_strategy=source))
    return out


def top_rated(
    store: EntityStore,
    limit: int,
    min_rating: float,
    exclude_user_id: int | None = None,
    source: str = PERSONALIZED,
) -> list[RecommendationResult]:
    """Generic rating-ordered listing used as the no-preferences fallback."""
    sql = f"""
        SELECT rs.*, 0 AS preference_score
        FROM ({RESTAURANT_SUMMARY_SQL}) rs
        WHERE rs.average_rating >= :min_rating
    """
    params: dict[str, Any] = {"min_rating": min_rating, "limit": limit}
    if exclude_user_id is not None:
        sql += _EXCLUDE_REVIEWED_SQL
        params["user_id"] = exclude_user_id
    sql += """
        ORDER BY rs.average_rating DESC, rs.total_reviews DESC, rs.id ASC
        LIMIT :limit
    """
    return _results(store.query(sql, params), "preference_score", source)


def _preference_scored(
    store: EntityStore,
    cuisines: list[str],
    price_ranges: list[str],
    cities: list[str],
    min_rating: float,
    limit: int,
    exclude_user_id: int | None,
    source: str,
) -> list[RecommendationResult]:
    # Highest matching tier wins; the tiers are not summed.
    sql = f"""
        SELECT rs.*,
               CASE
                   WHEN rs.cuisine_type IN :cuisines THEN 3
                   WHEN rs.price_range IN :price_ranges THEN 2
                   WHEN rs.city IN :cities THEN 1
                   ELSE 0
               END AS preference_score
        FROM ({RESTAURANT_SUMMARY_SQL}) rs
        WHERE rs.average_rating >= :min_rating
    """
    params: dict[str, Any] = {
        "cuisines": cuisines,
        "price_ranges": price_ranges,
        "cities": cities,
        "min_rating": min_rating,
        "limit": limit,
    }
    if exclude_user_id is not None:
        sql += _EXCLUDE_REVIEWED_SQL
        params["user_id"] = exclude_user_id
    sql += """
        ORDER BY preference_score DESC, rs.average_rating DESC,
                 rs.total_reviews DESC, rs.id ASC
        LIMIT :limit
    """
    return _results(store.query(sql, params), "preference_score", source)


def personalized(
    store: EntityStore,
    user: User,
    limit: int,
    exclude_visited: bool = False,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> list[RecommendationResult]:
    exclude = user.id if exclude_visited else None
    prefs = user.preferences
    if prefs.is_empty():
        return top_rated(store, limit, config.personalized_min_rating, exclude)

    return _preference_scored(
        store,
        cuisines=prefs.favorite_cuisines,
        price_ranges=prefs.preferred_price_ranges,
        cities=prefs.preferred_cities,
        min_rating=config.personalized_min_rating,
        limit=limit,
        exclude_user_id=exclude,
        source=PERSONALIZED,
    )


def history_based(
    store: EntityStore,
    user: User,
    limit: int,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> list[RecommendationResult]:
    """Score restaurants against what the user has rated highly before."""
    favorites = store.query(
        """
        SELECT DISTINCT r.cuisine_type, r.price_range, r.city
        FROM reviews rev
        JOIN restaurants r ON rev.restaurant_id = r.id
        WHERE rev.user_id = :user_id AND rev.rating >= :min_rating
        """,
        {"user_id": user.id, "min_rating": FAVORITE_REVIEW_RATING},
    )
    if not favorites:
        return top_rated(store, limit, config.personalized_min_rating, source=HISTORY)

    return _preference_scored(
        store,
        cuisines=sorted({row["cuisine_type"] for row in favorites}),
        price_ranges=sorted({row["price_range"] for row in favorites}),
        cities=sorted({row["city"] for row in favorites}),
        min_rating=config.history_min_rating,
        limit=limit,
        exclude_user_id=user.id,
        source=HISTORY,
    )


def collaborative(
    store: EntityStore,
    user: User,
    limit: int,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> list[RecommendationResult]:
    similar = rank_similar_users(
        user.preferences,
        store.peer_preferences(user.id),
        config.similar_users_limit,
    )
    if not similar:
        logger.info("No similar users for user %s, using personalized picks", user.id)
        return personalized(store, user, limit, config=config)

    sql = f"""
        SELECT rs.*, cohort.cohort_rating, cohort.cohort_reviews
        FROM (
            SELECT restaurant_id,
                   AVG(rating) AS cohort_rating,
                   COUNT(id) AS cohort_reviews
            FROM reviews
            WHERE user_id IN :peer_ids AND rating >= :min_rating
            GROUP BY restaurant_id
            HAVING COUNT(id) >= :min_reviews
        ) cohort
        JOIN ({RESTAURANT_SUMMARY_SQL}) rs ON rs.id = cohort.restaurant_id
        WHERE 1 = 1
        {_EXCLUDE_REVIEWED_SQL}
        ORDER BY cohort.cohort_rating DESC, rs.average_rating DESC, rs.id ASC
        LIMIT :limit
    """
    rows = store.query(
        sql,
        {
            "peer_ids": [user_id for user_id, _ in similar],
            "min_rating": config.collaborative_min_rating,
            "min_reviews": config.collaborative_min_reviews,
            "user_id": user.id,
            "limit": limit,
        },
    )
    return _results(rows, "cohort_rating", COLLABORATIVE)


def trending(
    store: EntityStore,
    limit: int,
    days: int,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> list[RecommendationResult]:
    """Restaurants ranked by how many reviews they received in the last *days*."""
    since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
    sql = f"""
        SELECT rs.*, recent.recent_reviews
        FROM (
            SELECT restaurant_id, COUNT(id) AS recent_reviews
            FROM reviews
            WHERE created_at >= :since
            GROUP BY restaurant_id
        ) recent
        JOIN ({RESTAURANT_SUMMARY_SQL}) rs ON rs.id = recent.restaurant_id
        WHERE rs.average_rating >= :min_rating
        ORDER BY recent.recent_reviews DESC, rs.average_rating DESC, rs.id ASC
        LIMIT :limit
    """
    rows = store.query(
        sql,
        {"since": since, "min_rating": config.trending_min_rating, "limit": limit},
    )
    return _results(rows, "recent_reviews", TRENDING)


def filtered(
    store: EntityStore,
    filters: RestaurantFilter,
    limit: int,
    source: str = FILTERED,
) -> list[RecommendationResult]:
    """Shared listing behind the cuisine, location, price and rating queries."""
    restaurants, _ = store.find_restaurants_by_filter(
        filters, limit=limit, offset=0, sort_by="average_rating", sort_order="DESC"
    )
    return [
        RecommendationResult(restaurant=r, score=r.average_rating, source_strategy=source)
        for r in restaurants
    ]


def similar_restaurants(
    store: EntityStore,
    restaurant_id: int,
    limit: int,
) -> list[RecommendationResult] | None:
    """Restaurants sharing cuisine, city or price tier with the given one.

    Returns ``None`` when the base restaurant does not exist.
    """
    base = store.find_restaurant_by_id(restaurant_id)
    if base is None:
        return None

    rows = store.query(
        f"""
        SELECT rs.*, {RESTAURANT_SIMILARITY_SQL} AS similarity
        FROM ({RESTAURANT_SUMMARY_SQL}) rs
        WHERE rs.id != :id
          AND (rs.cuisine_type = :cuisine_type OR rs.city = :city
               OR rs.price_range = :price_range)
        ORDER BY similarity DESC, rs.average_rating DESC, rs.id ASC
        LIMIT :limit
        """,
        {
            "id": base.id,
            "cuisine_type": base.cuisine_type,
            "city": base.city,
            "price_range": base.price_range,
            "limit": limit,
        },
    )
    return _results(rows, "similarity", SIMILAR)
