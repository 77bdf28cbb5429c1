from pathlib import Path

import pandas as pd

from restaurant_recs.data_ingestion.config import IngestionConfig
from restaurant_recs.data_ingestion.ingest import (
    CANONICAL_RESTAURANT_COLUMNS,
    _map_price_to_bucket,
    _normalize_rating,
    normalize_restaurants,
    run_ingestion,
)
from restaurant_recs.recommendations.models import RestaurantFilter


def _write_seed(data_dir: Path) -> IngestionConfig:
    data_dir.mkdir()
    pd.DataFrame(
        [
            {"restaurant_id": "a1", "restaurant_name": "Casa Uno", "cuisines": "Italian, Pizza",
             "city": "Madrid", "approx_cost_for_two": 450},
            {"restaurant_id": "a2", "restaurant_name": "Dos Tacos", "cuisines": "Mexican",
             "city": "Madrid", "approx_cost_for_two": 200},
            {"restaurant_id": "a3", "restaurant_name": None, "cuisines": "Thai",
             "city": "Madrid", "approx_cost_for_two": 900},
        ]
    ).to_csv(data_dir / "restaurants.csv", index=False)
    pd.DataFrame(
        [
            {"id": "u1", "name": "Ana", "email": "ana@example.com", "password": "pw1", "phone": "600111222",
             "preferences": '{"favorite_cuisines": ["Italian"]}'},
            {"id": "u2", "name": "Ben", "email": "ben@example.com", "password": None, "phone": None,
             "preferences": None},
        ]
    ).to_csv(data_dir / "users.csv", index=False)
    pd.DataFrame(
        [
            {"user_id": "u1", "restaurant_id": "a1", "rating": "4.6/5"},
            {"user_id": "u2", "restaurant_id": "a1", "rating": 3},
            {"user_id": "u1", "restaurant_id": "a1", "rating": 1},
            {"user_id": "u9", "restaurant_id": "a2", "rating": 5},
        ]
    ).to_csv(data_dir / "reviews.csv", index=False)
    return IngestionConfig(data_dir=data_dir)


def test_map_price_to_bucket():
    assert _map_price_to_bucket(300) == "$"
    assert _map_price_to_bucket(301) == "$$"
    assert _map_price_to_bucket(1500) == "$$$"
    assert _map_price_to_bucket(4000) == "$$$$"
    assert _map_price_to_bucket(None) is None
    assert _map_price_to_bucket("n/a") is None


def test_normalize_rating():
    assert _normalize_rating("4.1/5") == 4
    assert _normalize_rating(7) == 5
    assert _normalize_rating(0.2) == 1
    assert _normalize_rating("NEW") is None


def test_normalize_restaurants_maps_columns():
    raw = pd.DataFrame(
        [{"name": "X", "cuisines": "Thai, Vegan", "City": "Bilbao", "cost_for_two": 800}]
    )
    df = normalize_restaurants(raw)
    assert list(df.columns) == CANONICAL_RESTAURANT_COLUMNS
    row = df.iloc[0]
    assert row["cuisine_type"] == "Thai"
    assert row["price_range"] == "$$$"
    assert row["city"] == "Bilbao"


def test_run_ingestion_seeds_store(store, tmp_path: Path):
    """
    End-to-end seed run.

    Uses a temporary data directory so real seed files are never touched.
    """
    counts = run_ingestion(store, _write_seed(tmp_path / "seed"))

    assert counts == {"restaurants": 2, "users": 2, "reviews": 2}

    restaurants, total = store.find_restaurants_by_filter(
        RestaurantFilter(), sort_by="name", sort_order="ASC"
    )
    assert total == 2
    casa = restaurants[0]
    assert casa.name == "Casa Uno"
    assert casa.cuisine_type == "Italian"
    assert casa.price_range == "$$"
    assert casa.total_reviews == 2
    assert casa.average_rating == 4.0

    user, password_hash = store.find_user_credentials("ana@example.com")
    assert user.preferences.favorite_cuisines == ["Italian"]
    assert password_hash.startswith("$2")


def test_run_ingestion_without_optional_files(store, tmp_path: Path):
    data_dir = tmp_path / "seed"
    data_dir.mkdir()
    pd.DataFrame(
        [{"name": "Solo", "cuisine_type": "Greek", "city": "Cadiz", "price_range": "$$"}]
    ).to_csv(data_dir / "restaurants.csv", index=False)

    counts = run_ingestion(store, IngestionConfig(data_dir=data_dir))
    assert counts == {"restaurants": 1, "users": 0, "reviews": 0}
