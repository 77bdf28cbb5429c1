"""
User-user and restaurant-restaurant similarity.

User similarity is the raw count of shared favorite cuisines plus shared
preferred price tiers. It is not normalized, so users who declare more
preferences score higher against everyone; callers rank by it as-is.
"""
from __future__ import annotations

from .models import Preferences

CUISINE_WEIGHT = 3
CITY_WEIGHT = 2
PRICE_WEIGHT = 1


def user_similarity(a: Preferences, b: Preferences) -> int:
    shared_cuisines = set(a.favorite_cuisines) & set(b.favorite_cuisines)
    shared_prices = set(a.preferred_price_ranges) & set(b.preferred_price_ranges)
    return len(shared_cuisines) + len(shared_prices)


def rank_similar_users(
    target: Preferences,
    peers: list[tuple[int, Preferences]],
    limit: int,
) -> list[tuple[int, int]]:
    """Return ``(user_id, similarity)`` for peers with non-zero overlap, best first."""
    scored = [(user_id, user_similarity(target, prefs)) for user_id, prefs in peers]
    scored = [(user_id, score) for user_id, score in scored if score > 0]
    scored.sort(key=lambda item: (-item[1], item[0]))
    return scored[:limit]


# Weighted attribute match of ``rs`` against the base restaurant's
# ``:cuisine_type``, ``:city`` and ``:price_range``; ranked in the store.
RESTAURANT_SIMILARITY_SQL = f"""
    (CASE WHEN rs.cuisine_type = :cuisine_type THEN {CUISINE_WEIGHT} ELSE 0 END
     + CASE WHEN rs.city = :city THEN {CITY_WEIGHT} ELSE 0 END
     + CASE WHEN rs.price_range = :price_range THEN {PRICE_WEIGHT} ELSE 0 END)
"""
