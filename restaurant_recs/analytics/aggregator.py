from __future__ import annotations

from ..recommendations.data_store import RESTAURANT_SUMMARY_SQL, EntityStore, decode_preferences
from ..recommendations.models import PRICE_TIERS, CountBucket, RecommendationStats


def _count(store: EntityStore, table: str) -> int:
    return int(store.query(f"SELECT COUNT(*) AS n FROM {table}")[0]["n"])


def _price_position(tier: str) -> int:
    try:
        return PRICE_TIERS.index(tier)
    except ValueError:
        return len(PRICE_TIERS)


def compute_stats(store: EntityStore) -> RecommendationStats:
    total_restaurants = _count(store, "restaurants")
    total_users = _count(store, "users")
    total_reviews = _count(store, "reviews")

    overall = store.query(
        f"SELECT AVG(rs.average_rating) AS overall FROM ({RESTAURANT_SUMMARY_SQL}) rs"
    )[0]["overall"]

    # Top cuisines
    cuisine_rows = store.query(
        """
        SELECT cuisine_type AS name, COUNT(*) AS n
        FROM restaurants
        GROUP BY cuisine_type
        ORDER BY n DESC, cuisine_type ASC
        LIMIT 10
        """
    )
    cuisines = [CountBucket(name=row["name"], count=row["n"]) for row in cuisine_rows]

    # Price tiers, cheapest first
    price_rows = store.query(
        "SELECT price_range AS name, COUNT(*) AS n FROM restaurants GROUP BY price_range"
    )
    prices = sorted(
        (CountBucket(name=row["name"], count=row["n"]) for row in price_rows),
        key=lambda bucket: _price_position(bucket.name),
    )

    # Users with any preference set
    pref_rows = store.query("SELECT preferences FROM users")
    with_prefs = sum(
        1 for row in pref_rows if any(decode_preferences(row["preferences"]).model_dump().values())
    )

    return RecommendationStats(
        total_restaurants=total_restaurants,
        total_users=total_users,
        total_reviews=total_reviews,
        overall_avg_rating=round(float(overall), 2) if overall is not None else 0.0,
        cuisine_distribution=cuisines,
        price_distribution=prices,
        users_with_preferences=with_prefs,
        preferences_fraction=round(with_prefs / total_users, 4) if total_users else 0.0,
    )
