"""
Recommendation service facade.

Validates caller input, resolves users and restaurants, and dispatches to the
candidate generators, the similarity engine and the mixed aggregator. Every
call is a stateless read-compute-return cycle over the injected store, except
``update_preferences`` and ``record_feedback`` which write.
"""
from __future__ import annotations

import logging
from typing import Any

from ..analytics.aggregator import compute_stats
from ..analytics.feedback import feedback_summary, record_feedback
from ..config import DEFAULT_APP_CONFIG, AppConfig
from . import retrieval
from .data_store import EntityStore
from .errors import InvalidParameter, NotFound
from .mixing import mixed_recommendations
from .models import (
    PRICE_TIERS,
    MixedRecommendations,
    Preferences,
    RecommendationResult,
    RecommendationStats,
    Restaurant,
    RestaurantFilter,
    User,
)

logger = logging.getLogger(__name__)

# Widest trending window accepted; keeps the cutoff date representable.
MAX_TRENDING_DAYS = 3650


def _check_limit(limit: int) -> int:
    if limit < 1:
        raise InvalidParameter(f"limit must be a positive integer, got {limit}")
    return limit


def _check_rating(value: float | None, name: str = "min_rating") -> float | None:
    if value is not None and not 0.0 <= value <= 5.0:
        raise InvalidParameter(f"{name} must be between 0 and 5, got {value}")
    return value


def _check_price(value: str | None) -> str | None:
    if value is not None and value not in PRICE_TIERS:
        raise InvalidParameter(
            f"Invalid price range {value!r}. Use one of: {', '.join(PRICE_TIERS)}"
        )
    return value


class RecommendationService:
    def __init__(self, store: EntityStore, config: AppConfig = DEFAULT_APP_CONFIG):
        self.store = store
        self.config = config

    # ── Lookups ──────────────────────────────────────────────────────────

    def get_user(self, user_id: int) -> User:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def get_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = self.store.find_restaurant_by_id(restaurant_id)
        if restaurant is None:
            raise NotFound(f"Restaurant {restaurant_id} not found")
        return restaurant

    # ── User-based recommendations ───────────────────────────────────────

    def personalized(
        self, user_id: int, limit: int = 10, exclude_visited: bool = False
    ) -> list[RecommendationResult]:
        _check_limit(limit)
        user = self.get_user(user_id)
        return retrieval.personalized(self.store, user, limit, exclude_visited, self.config)

    def history_based(self, user_id: int, limit: int = 10) -> list[RecommendationResult]:
        _check_limit(limit)
        user = self.get_user(user_id)
        return retrieval.history_based(self.store, user, limit, self.config)

    def collaborative(self, user_id: int, limit: int = 10) -> list[RecommendationResult]:
        _check_limit(limit)
        user = self.get_user(user_id)
        return retrieval.collaborative(self.store, user, limit, self.config)

    def mixed(self, user_id: int, limit: int = 15) -> MixedRecommendations:
        _check_limit(limit)
        user = self.get_user(user_id)
        return mixed_recommendations(self.store, user, limit, self.config)

    # ── Restaurant-based recommendations ─────────────────────────────────

    def similar_to_restaurant(self, restaurant_id: int, limit: int = 5) -> list[RecommendationResult]:
        _check_limit(limit)
        results = retrieval.similar_restaurants(self.store, restaurant_id, limit)
        if results is None:
            raise NotFound(f"Restaurant {restaurant_id} not found")
        return results

    def trending(self, limit: int = 10, days: int | None = None) -> list[RecommendationResult]:
        _check_limit(limit)
        days = self.config.trending_days if days is None else days
        if not 1 <= days <= MAX_TRENDING_DAYS:
            raise InvalidParameter(
                f"days must be between 1 and {MAX_TRENDING_DAYS}, got {days}"
            )
        return retrieval.trending(self.store, limit, days, self.config)

    def by_cuisine(
        self, cuisine_type: str, limit: int = 10, min_rating: float = 3.0
    ) -> list[RecommendationResult]:
        _check_limit(limit)
        _check_rating(min_rating)
        filters = RestaurantFilter(cuisine_type=cuisine_type, min_rating=min_rating)
        return retrieval.filtered(self.store, filters, limit)

    def by_location(
        self,
        city: str,
        limit: int = 10,
        price_range: str | None = None,
        min_rating: float = 3.0,
    ) -> list[RecommendationResult]:
        _check_limit(limit)
        _check_rating(min_rating)
        _check_price(price_range)
        filters = RestaurantFilter(city=city, price_range=price_range, min_rating=min_rating)
        return retrieval.filtered(self.store, filters, limit)

    def by_price_range(
        self,
        price_range: str,
        limit: int = 10,
        city: str | None = None,
        cuisine_type: str | None = None,
    ) -> list[RecommendationResult]:
        _check_limit(limit)
        _check_price(price_range)
        filters = RestaurantFilter(price_range=price_range, city=city, cuisine_type=cuisine_type)
        return retrieval.filtered(self.store, filters, limit)

    def by_rating(
        self,
        min_rating: float = 4.0,
        limit: int = 10,
        cuisine_type: str | None = None,
        city: str | None = None,
        price_range: str | None = None,
    ) -> list[RecommendationResult]:
        _check_limit(limit)
        _check_rating(min_rating)
        _check_price(price_range)
        filters = RestaurantFilter(
            min_rating=min_rating, cuisine_type=cuisine_type, city=city, price_range=price_range
        )
        return retrieval.filtered(self.store, filters, limit, source=retrieval.HIGH_RATED)

    # ── Writes ───────────────────────────────────────────────────────────

    def update_preferences(self, user_id: int, preferences: Preferences) -> Preferences:
        for tier in preferences.preferred_price_ranges:
            _check_price(tier)
        self.get_user(user_id)
        self.store.save_preferences(user_id, preferences)
        logger.info("Updated preferences for user %s", user_id)
        return preferences

    def record_feedback(
        self, user_id: int, restaurant_id: int, liked: bool, reason: str | None = None
    ) -> tuple[int, Restaurant]:
        restaurant = self.get_restaurant(restaurant_id)
        feedback_id = record_feedback(self.store, user_id, restaurant.id, liked, reason)
        return feedback_id, restaurant

    # ── Reporting ────────────────────────────────────────────────────────

    def stats(self) -> RecommendationStats:
        return compute_stats(self.store)

    def feedback_summary(self) -> dict[str, Any]:
        return feedback_summary(self.store)
