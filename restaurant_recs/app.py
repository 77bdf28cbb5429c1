from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .auth.dependencies import SESSION_KEY, require_admin, require_user
from .auth.users import authenticate
from .config import DEFAULT_APP_CONFIG
from .recommendations.data_store import EntityStore
from .recommendations.errors import DuplicateReview, InvalidParameter, NotFound, StoreFailure
from .recommendations.models import (
    FeedbackRequest,
    FeedbackResponse,
    LoginRequest,
    MixedResponse,
    PreferencesUpdate,
    RecommendationResponse,
    RecommendationResult,
    RecommendationStats,
)
from .recommendations.service import RecommendationService

logging.basicConfig(
    level=DEFAULT_APP_CONFIG.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title="Restaurant Recommendation API", version="1.0.0")
app.add_middleware(SessionMiddleware, secret_key=DEFAULT_APP_CONFIG.session_secret)


@lru_cache
def get_service() -> RecommendationService:
    """Build the service around a store for the configured database."""
    store = EntityStore.from_url(
        DEFAULT_APP_CONFIG.database_url, DEFAULT_APP_CONFIG.statement_timeout_ms
    )
    store.create_schema()
    return RecommendationService(store, DEFAULT_APP_CONFIG)


def _listing(results: list[RecommendationResult], algorithm: str) -> RecommendationResponse:
    return RecommendationResponse(recommendations=results, total=len(results), algorithm=algorithm)


# ── Error mapping ────────────────────────────────────────────────────────


@app.exception_handler(NotFound)
def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidParameter)
def _invalid_parameter(request: Request, exc: InvalidParameter) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DuplicateReview)
def _duplicate_review(request: Request, exc: DuplicateReview) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StoreFailure)
def _store_failure(request: Request, exc: StoreFailure) -> JSONResponse:
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Recommendation store unavailable", "retryable": True},
    )


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(
    body: LoginRequest,
    request: Request,
    service: RecommendationService = Depends(get_service),
) -> dict:
    user = authenticate(service.store, body.email, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session[SESSION_KEY] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Recommendation listings (public) ─────────────────────────────────────


@app.get("/recommendations/cuisine/{cuisine_type}", response_model=RecommendationResponse)
def by_cuisine(
    cuisine_type: str,
    limit: int = Query(10, ge=1, le=50),
    min_rating: float = Query(3.0, ge=0.0, le=5.0),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.by_cuisine(cuisine_type, limit, min_rating), "cuisine")


@app.get("/recommendations/location/{city}", response_model=RecommendationResponse)
def by_location(
    city: str,
    limit: int = Query(10, ge=1, le=50),
    price_range: str | None = None,
    min_rating: float = Query(3.0, ge=0.0, le=5.0),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.by_location(city, limit, price_range, min_rating), "location")


@app.get("/recommendations/trending", response_model=RecommendationResponse)
def trending(
    limit: int = Query(10, ge=1, le=50),
    days: int = Query(30, ge=1, le=365),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.trending(limit, days), "trending")


@app.get("/recommendations/price-range/{price_range}", response_model=RecommendationResponse)
def by_price_range(
    price_range: str,
    limit: int = Query(10, ge=1, le=50),
    city: str | None = None,
    cuisine_type: str | None = None,
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.by_price_range(price_range, limit, city, cuisine_type), "price_range")


@app.get("/recommendations/rating", response_model=RecommendationResponse)
def by_rating(
    min_rating: float = Query(4.0, ge=0.0, le=5.0),
    limit: int = Query(10, ge=1, le=50),
    cuisine_type: str | None = None,
    city: str | None = None,
    price_range: str | None = None,
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    results = service.by_rating(min_rating, limit, cuisine_type, city, price_range)
    return _listing(results, "high_rated")


@app.get("/recommendations/stats", response_model=RecommendationStats)
def stats(service: RecommendationService = Depends(get_service)) -> RecommendationStats:
    return service.stats()


@app.get("/recommendations/similar/{restaurant_id}", response_model=RecommendationResponse)
def similar(
    restaurant_id: int,
    limit: int = Query(5, ge=1, le=50),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.similar_to_restaurant(restaurant_id, limit), "similar")


# ── User endpoints ───────────────────────────────────────────────────────


@app.get("/recommendations/personalized", response_model=RecommendationResponse)
def personalized(
    limit: int = Query(10, ge=1, le=50),
    exclude_visited: bool = False,
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    results = service.personalized(user["id"], limit, exclude_visited)
    return _listing(results, "personalized")


@app.get("/recommendations/history", response_model=RecommendationResponse)
def history(
    limit: int = Query(10, ge=1, le=50),
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.history_based(user["id"], limit), "history")


@app.get("/recommendations/collaborative", response_model=RecommendationResponse)
def collaborative(
    limit: int = Query(10, ge=1, le=50),
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> RecommendationResponse:
    return _listing(service.collaborative(user["id"], limit), "collaborative_filtering")


@app.get("/recommendations/mixed", response_model=MixedResponse)
def mixed(
    limit: int = Query(15, ge=1, le=50),
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> MixedResponse:
    result = service.mixed(user["id"], limit)
    return MixedResponse(
        recommendations=result.restaurants,
        total=len(result.restaurants),
        failed_strategies=result.failed_strategies,
    )


@app.put("/recommendations/preferences")
def update_preferences(
    body: PreferencesUpdate,
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> dict:
    preferences = service.update_preferences(user["id"], body.preferences)
    return {"status": "updated", "preferences": preferences.model_dump()}


@app.post("/recommendations/feedback", response_model=FeedbackResponse)
def feedback(
    body: FeedbackRequest,
    user: dict = Depends(require_user),
    service: RecommendationService = Depends(get_service),
) -> FeedbackResponse:
    feedback_id, restaurant = service.record_feedback(
        user["id"], body.restaurant_id, body.liked, body.reason
    )
    return FeedbackResponse(
        status="recorded",
        feedback_id=feedback_id,
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
    )


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/recommendations/feedback/stats")
def feedback_stats(
    user: dict = Depends(require_admin),
    service: RecommendationService = Depends(get_service),
) -> dict:
    return service.feedback_summary()
