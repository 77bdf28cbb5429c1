from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

PRICE_TIERS = ["$", "$$", "$$$", "$$$$"]
ROLES = ("user", "admin", "owner")


def _dedupe(labels: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for label in labels:
        if label not in seen:
            seen.add(label)
            out.append(label)
    return out


# ── Stored entities ──────────────────────────────────────────────────────


class DayHours(BaseModel):
    open: str
    close: str


class Preferences(BaseModel):
    favorite_cuisines: list[str] = Field(default_factory=list)
    preferred_price_ranges: list[str] = Field(default_factory=list)
    preferred_cities: list[str] = Field(default_factory=list)
    disliked_cuisines: list[str] = Field(default_factory=list)
    dietary_restrictions: list[str] = Field(default_factory=list)

    @field_validator(
        "favorite_cuisines",
        "preferred_price_ranges",
        "preferred_cities",
        "disliked_cuisines",
        "dietary_restrictions",
    )
    @classmethod
    def _unique_labels(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    def is_empty(self) -> bool:
        """True when nothing usable for preference scoring is set."""
        return not (
            self.favorite_cuisines or self.preferred_price_ranges or self.preferred_cities
        )


class Restaurant(BaseModel):
    id: int
    name: str
    description: str | None = None
    cuisine_type: str
    address: str = ""
    city: str
    phone: str | None = None
    email: str | None = None
    price_range: str
    average_rating: float = 0.0
    total_reviews: int = 0
    opening_hours: dict[str, DayHours | None] = Field(default_factory=dict)
    created_at: datetime | None = None


class User(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    role: str = "user"
    preferences: Preferences = Field(default_factory=Preferences)
    created_at: datetime | None = None
    last_login: datetime | None = None


class RestaurantFilter(BaseModel):
    cuisine_type: str | None = None
    city: str | None = None
    price_range: str | None = None
    min_rating: float | None = None
    search: str | None = None


# ── Recommendation results ───────────────────────────────────────────────


class RecommendationResult(BaseModel):
    restaurant: Restaurant
    score: float
    source_strategy: str


class MixedRecommendations(BaseModel):
    restaurants: list[Restaurant]
    failed_strategies: list[str] = Field(default_factory=list)


class CountBucket(BaseModel):
    name: str
    count: int


class RecommendationStats(BaseModel):
    total_restaurants: int
    total_users: int
    total_reviews: int
    overall_avg_rating: float
    cuisine_distribution: list[CountBucket]
    price_distribution: list[CountBucket]
    users_with_preferences: int
    preferences_fraction: float


# ── API payloads ─────────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class RecommendationResponse(BaseModel):
    recommendations: list[RecommendationResult]
    total: int
    algorithm: str


class MixedResponse(BaseModel):
    recommendations: list[Restaurant]
    total: int
    failed_strategies: list[str]
    algorithm: str = "mixed_approach"


class PreferencesUpdate(BaseModel):
    preferences: Preferences


class FeedbackRequest(BaseModel):
    restaurant_id: int = Field(..., ge=1)
    liked: bool
    reason: str | None = Field(default=None, max_length=500)


class FeedbackResponse(BaseModel):
    status: str
    feedback_id: int
    restaurant_id: int
    restaurant_name: str
