from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@dataclass(frozen=True)
class AppConfig:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///restaurant_recs.db")
    statement_timeout_ms: int = int(os.getenv("STATEMENT_TIMEOUT_MS", "5000"))
    strategy_timeout_seconds: float = float(os.getenv("STRATEGY_TIMEOUT_SECONDS", "10"))
    session_secret: str = os.getenv("SESSION_SECRET", "restaurant-recs-secret-change-in-production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Recommendation thresholds
    similar_users_limit: int = 10
    collaborative_min_rating: int = 4
    collaborative_min_reviews: int = 2
    personalized_min_rating: float = 3.0
    history_min_rating: float = 3.5
    trending_min_rating: float = 3.5
    trending_days: int = 30
    mixed_high_rated_min_rating: float = 4.0


DEFAULT_APP_CONFIG = AppConfig()
