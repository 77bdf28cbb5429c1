from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List

import pandas as pd

from ..auth.users import hash_password
from ..config import DEFAULT_APP_CONFIG
from ..recommendations.data_store import EntityStore, decode_json_field
from ..recommendations.errors import DuplicateReview
from ..recommendations.models import PRICE_TIERS
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)


CANONICAL_RESTAURANT_COLUMNS: List[str] = [
    "id",
    "name",
    "description",
    "cuisine_type",
    "address",
    "city",
    "price_range",
    "opening_hours",
]


def _map_price_to_bucket(cost_for_two: float | int | None) -> str | None:
    if cost_for_two is None:
        return None
    try:
        value = float(cost_for_two)
    except (TypeError, ValueError):
        return None
    if pd.isna(value):
        return None

    if value <= 300:
        return "$"
    if value <= 700:
        return "$$"
    if value <= 1500:
        return "$$$"
    return "$$$$"


def _normalize_rating(rating: float | int | str | None) -> int | None:
    if rating is None:
        return None
    raw = str(rating).strip()
    # Handle "X/5" format (e.g. "4.1/5")
    if "/" in raw:
        raw = raw.split("/")[0].strip()
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if pd.isna(value):
        return None

    # Clamp to [1, 5]
    return int(max(1, min(5, round(value))))


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _to_datetime(value: Any) -> datetime | None:
    stamp = pd.to_datetime(_clean(value), errors="coerce")
    if stamp is None or pd.isna(stamp):
        return None
    return stamp.to_pydatetime()


def _first_present(df: pd.DataFrame, columns: List[str]) -> str | None:
    for col in columns:
        if col in df.columns:
            return col
    return None


def normalize_restaurants(raw: pd.DataFrame) -> pd.DataFrame:
    """Map a raw restaurant export onto ``CANONICAL_RESTAURANT_COLUMNS``."""
    canonical = pd.DataFrame()
    col_id = _first_present(raw, ["id", "restaurant_id"])
    canonical["id"] = raw[col_id].astype(str) if col_id else raw.index.astype(str)
    col_name = _first_present(raw, ["name", "restaurant_name"])
    canonical["name"] = raw[col_name] if col_name else None

    col_cuisine = _first_present(raw, ["cuisine_type", "cuisine", "cuisines"])
    # Multi-valued cuisine strings keep their first label.
    canonical["cuisine_type"] = (
        raw[col_cuisine].fillna("").astype(str).str.split(",").str[0].str.strip()
        if col_cuisine
        else ""
    )

    for target, candidates in (
        ("description", ["description"]),
        ("address", ["address", "full_address"]),
        ("city", ["city", "City"]),
        ("opening_hours", ["opening_hours"]),
    ):
        col = _first_present(raw, candidates)
        canonical[target] = raw[col] if col else None

    col_price = _first_present(raw, ["price_range", "price_bucket"])
    col_cost = _first_present(raw, ["avg_cost_for_two", "cost_for_two", "approx_cost_for_two"])
    if col_price:
        canonical["price_range"] = raw[col_price]
    elif col_cost:
        canonical["price_range"] = pd.to_numeric(raw[col_cost], errors="coerce").apply(
            _map_price_to_bucket
        )
    else:
        canonical["price_range"] = None

    canonical = canonical[CANONICAL_RESTAURANT_COLUMNS]
    canonical = canonical[canonical["price_range"].isin(PRICE_TIERS)]
    return canonical.dropna(subset=["name", "city"])


def _load_restaurants(store: EntityStore, path) -> dict[str, int]:
    df = normalize_restaurants(pd.read_csv(path))
    id_map: dict[str, int] = {}
    for row in df.to_dict(orient="records"):
        hours = decode_json_field(_clean(row["opening_hours"]), None)
        new_id = store.add_restaurant(
            name=str(row["name"]),
            cuisine_type=_clean(row["cuisine_type"]) or "Other",
            city=str(row["city"]),
            price_range=str(row["price_range"]),
            address=_clean(row["address"]) or "",
            description=_clean(row["description"]),
            opening_hours=hours if isinstance(hours, dict) else None,
        )
        id_map[str(row["id"])] = new_id
    return id_map


def _load_users(store: EntityStore, path) -> dict[str, int]:
    df = pd.read_csv(path, dtype={"phone": str})
    id_map: dict[str, int] = {}
    for row in df.to_dict(orient="records"):
        prefs = decode_json_field(_clean(row.get("preferences")), {})
        password = _clean(row.get("password"))
        new_id = store.add_user(
            name=str(row["name"]),
            email=str(row["email"]),
            password_hash=hash_password(str(password)) if password else "",
            phone=_clean(row.get("phone")),
            preferences=prefs if isinstance(prefs, dict) and prefs else None,
            role=_clean(row.get("role")) or "user",
        )
        id_map[str(row.get("id", row["email"]))] = new_id
    return id_map


def _load_reviews(
    store: EntityStore,
    path,
    user_ids: dict[str, int],
    restaurant_ids: dict[str, int],
) -> int:
    df = pd.read_csv(path)
    loaded = 0
    for row in df.to_dict(orient="records"):
        user_id = user_ids.get(str(row["user_id"]))
        restaurant_id = restaurant_ids.get(str(row["restaurant_id"]))
        rating = _normalize_rating(_clean(row.get("rating")))
        if user_id is None or restaurant_id is None or rating is None:
            logger.warning("Skipping review row with unknown references: %s", row)
            continue
        visit = _to_datetime(row.get("visit_date"))
        try:
            store.add_review(
                user_id=user_id,
                restaurant_id=restaurant_id,
                rating=rating,
                comment=_clean(row.get("comment")),
                visit_date=visit.date() if visit else None,
                created_at=_to_datetime(row.get("created_at")),
            )
        except DuplicateReview:
            logger.info("Skipping duplicate review user=%s restaurant=%s", user_id, restaurant_id)
            continue
        loaded += 1
    return loaded


def run_ingestion(
    store: EntityStore,
    config: IngestionConfig = DEFAULT_INGESTION_CONFIG,
) -> dict[str, int]:
    """
    Seed the entity store from CSV exports.

    Steps:
    - Normalize and insert restaurants.
    - Insert users, hashing plain-text passwords.
    - Insert reviews, skipping duplicates and dangling references.
    """
    store.create_schema()

    restaurant_ids = _load_restaurants(store, config.restaurants_path)
    user_ids = _load_users(store, config.users_path) if config.users_path.exists() else {}
    review_count = (
        _load_reviews(store, config.reviews_path, user_ids, restaurant_ids)
        if config.reviews_path.exists()
        else 0
    )

    return {
        "restaurants": len(restaurant_ids),
        "users": len(user_ids),
        "reviews": review_count,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_store = EntityStore.from_url(
        DEFAULT_APP_CONFIG.database_url, DEFAULT_APP_CONFIG.statement_timeout_ms
    )
    counts = run_ingestion(seed_store)
    print(f"Ingestion complete: {counts}")
