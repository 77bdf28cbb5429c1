from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from restaurant_recs.app import app, get_service
from restaurant_recs.auth.users import hash_password
from restaurant_recs.config import AppConfig
from restaurant_recs.recommendations.data_store import EntityStore
from restaurant_recs.recommendations.service import RecommendationService

# Hashed once per session; bcrypt is deliberately slow.
ALICE_PASSWORD = "alice123"
ADMIN_PASSWORD = "admin123"
_ALICE_HASH = hash_password(ALICE_PASSWORD)
_ADMIN_HASH = hash_password(ADMIN_PASSWORD)

NOW = datetime.now(timezone.utc).replace(tzinfo=None)
RECENT = NOW - timedelta(days=2)
OLD = NOW - timedelta(days=60)
OLDER = NOW - timedelta(days=90)


@pytest.fixture
def store(tmp_path) -> EntityStore:
    s = EntityStore.from_url(f"sqlite:///{tmp_path / 'test.db'}")
    s.create_schema()
    yield s
    s.dispose()


@pytest.fixture
def seeded(store: EntityStore) -> dict[str, int]:
    """Seed a small city guide and return ids keyed by short name.

    Aggregate ratings that follow from the reviews below:
    trattoria 5.0, taqueria 4.67, pasta 4.33, diner 4.0 (no recent reviews),
    sushi 3.67, bistro 3.0, cheap 2.0.
    """
    ids: dict[str, int] = {}

    ids["trattoria"] = store.add_restaurant(
        "Trattoria Uno", "Italian", "Madrid", "$$",
        opening_hours={"monday": {"open": "12:00", "close": "23:00"}, "tuesday": None},
    )
    ids["pasta"] = store.add_restaurant("Pasta Due", "Italian", "Madrid", "$$")
    ids["taqueria"] = store.add_restaurant("Taqueria Tres", "Mexican", "Barcelona", "$")
    ids["sushi"] = store.add_restaurant("Sushi Cuatro", "Japanese", "Madrid", "$$$")
    ids["bistro"] = store.add_restaurant("Bistro Cinco", "French", "Valencia", "$$$$")
    ids["diner"] = store.add_restaurant("Old Diner", "American", "Sevilla", "$")
    ids["cheap"] = store.add_restaurant("Cheap Eats", "Mexican", "Madrid", "$")

    ids["alice"] = store.add_user(
        "Alice", "alice@example.com", password_hash=_ALICE_HASH,
        preferences={"favorite_cuisines": ["Italian"], "preferred_price_ranges": ["$$"]},
    )
    ids["bob"] = store.add_user(
        "Bob", "bob@example.com",
        preferences={
            "favorite_cuisines": ["Italian", "Japanese"],
            "preferred_price_ranges": ["$$"],
        },
    )
    ids["carol"] = store.add_user(
        "Carol", "carol@example.com",
        preferences={"favorite_cuisines": ["Italian"], "preferred_price_ranges": ["$$$"]},
    )
    ids["dave"] = store.add_user("Dave", "dave@example.com")
    ids["erin"] = store.add_user(
        "Erin", "erin@example.com", password_hash=_ADMIN_HASH, role="admin"
    )
    ids["frank"] = store.add_user("Frank", "frank@example.com")
    ids["gina"] = store.add_user("Gina", "gina@example.com")
    ids["hank"] = store.add_user("Hank", "hank@example.com")

    reviews = [
        ("alice", "trattoria", 5, RECENT),
        ("bob", "trattoria", 5, RECENT),
        ("bob", "pasta", 4, RECENT),
        ("carol", "pasta", 5, RECENT),
        ("frank", "pasta", 4, OLD),
        ("frank", "taqueria", 5, RECENT),
        ("gina", "taqueria", 5, RECENT),
        ("hank", "taqueria", 4, RECENT),
        ("bob", "sushi", 4, RECENT),
        ("carol", "sushi", 4, RECENT),
        ("hank", "sushi", 3, RECENT),
        ("gina", "bistro", 3, OLD),
        ("frank", "diner", 4, OLDER),
        ("hank", "diner", 4, OLDER),
        ("gina", "cheap", 2, RECENT),
    ]
    for user, restaurant, rating, created_at in reviews:
        store.add_review(ids[user], ids[restaurant], rating, created_at=created_at)

    return ids


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def service(store: EntityStore, config: AppConfig) -> RecommendationService:
    return RecommendationService(store, config)


@pytest.fixture
def client(service: RecommendationService, seeded: dict[str, int]) -> TestClient:
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
