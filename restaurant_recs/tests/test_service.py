from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from restaurant_recs.analytics.feedback import get_feedback
from restaurant_recs.recommendations.errors import InvalidParameter, NotFound
from restaurant_recs.recommendations.models import Preferences
from restaurant_recs.recommendations.service import MAX_TRENDING_DAYS, RecommendationService


@pytest.fixture
def offline_service():
    """A service whose store must never be reached."""
    return RecommendationService(MagicMock())


# ── Validation happens before any store access ───────────────────────────


@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.personalized(1, limit=0),
        lambda s: s.mixed(1, limit=-3),
        lambda s: s.trending(days=0),
        lambda s: s.trending(limit=5, days=1_000_000),
        lambda s: s.by_cuisine("Italian", min_rating=7.5),
        lambda s: s.by_location("Madrid", price_range="cheap"),
        lambda s: s.by_price_range("$$$$$"),
        lambda s: s.by_rating(min_rating=-1),
        lambda s: s.similar_to_restaurant(1, limit=0),
        lambda s: s.update_preferences(1, Preferences(preferred_price_ranges=["€"])),
    ],
)
def test_invalid_parameters_never_touch_store(offline_service, call):
    with pytest.raises(InvalidParameter):
        call(offline_service)
    assert offline_service.store.method_calls == []


# ── Lookups ──────────────────────────────────────────────────────────────


def test_unknown_user_is_not_found(service, seeded):
    with pytest.raises(NotFound):
        service.personalized(9999)
    with pytest.raises(NotFound):
        service.mixed(9999)


def test_unknown_restaurant_is_not_found(service, seeded):
    with pytest.raises(NotFound):
        service.similar_to_restaurant(9999)
    with pytest.raises(NotFound):
        service.record_feedback(seeded["alice"], 9999, liked=True)


# ── Listings ─────────────────────────────────────────────────────────────


def test_by_cuisine_applies_default_rating_floor(service, seeded):
    names = [r.restaurant.name for r in service.by_cuisine("Mexican")]
    assert names == ["Taqueria Tres"]


def test_by_cuisine_unknown_is_empty(service, seeded):
    assert service.by_cuisine("Martian") == []


def test_by_location_with_price(service, seeded):
    names = [r.restaurant.name for r in service.by_location("Madrid", price_range="$$")]
    assert names == ["Trattoria Uno", "Pasta Due"]


def test_by_price_range_has_no_rating_floor(service, seeded):
    names = [r.restaurant.name for r in service.by_price_range("$", city="Madrid")]
    assert names == ["Cheap Eats"]


def test_by_rating_tags_high_rated(service, seeded):
    results = service.by_rating(min_rating=4.5)
    assert [r.restaurant.name for r in results] == ["Trattoria Uno", "Taqueria Tres"]
    assert {r.source_strategy for r in results} == {"high_rated"}


def test_trending_default_window(service, seeded):
    assert len(service.trending()) == 4


def test_trending_widest_window_is_accepted(service, seeded):
    assert len(service.trending(days=MAX_TRENDING_DAYS)) == 5


# ── Writes ───────────────────────────────────────────────────────────────


def test_update_preferences_changes_personalized(service, seeded):
    service.update_preferences(seeded["dave"], Preferences(favorite_cuisines=["Japanese"]))
    results = service.personalized(seeded["dave"], limit=1)
    assert results[0].restaurant.name == "Sushi Cuatro"


def test_update_preferences_unknown_user(service, seeded):
    with pytest.raises(NotFound):
        service.update_preferences(9999, Preferences(favorite_cuisines=["Thai"]))


def test_record_feedback_persists(service, seeded):
    feedback_id, restaurant = service.record_feedback(
        seeded["alice"], seeded["pasta"], liked=False, reason="too salty"
    )
    assert restaurant.name == "Pasta Due"
    stored = get_feedback(service.store, seeded["alice"])
    assert [f["id"] for f in stored] == [feedback_id]
    assert stored[0]["reason"] == "too salty"
