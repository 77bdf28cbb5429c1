from __future__ import annotations

import logging
from typing import Any

from ..recommendations.data_store import EntityStore

logger = logging.getLogger(__name__)


def record_feedback(
    store: EntityStore,
    user_id: int,
    restaurant_id: int,
    liked: bool,
    reason: str | None = None,
) -> int:
    feedback_id = store.add_feedback(user_id, restaurant_id, liked, reason)
    logger.info(
        "Recommendation feedback %s: user=%s restaurant=%s liked=%s",
        feedback_id, user_id, restaurant_id, liked,
    )
    return feedback_id


def get_feedback(store: EntityStore, user_id: int | None = None) -> list[dict[str, Any]]:
    sql = """
        SELECT id, user_id, restaurant_id, liked, reason, created_at
        FROM recommendation_feedback
    """
    params: dict[str, Any] = {}
    if user_id is not None:
        sql += " WHERE user_id = :user_id"
        params["user_id"] = user_id
    sql += " ORDER BY id"
    return store.query(sql, params)


def feedback_summary(store: EntityStore) -> dict[str, Any]:
    fb = get_feedback(store)
    positive = sum(1 for f in fb if f["liked"])
    negative = len(fb) - positive
    return {
        "total": len(fb),
        "positive": positive,
        "negative": negative,
        "satisfaction_rate": round(positive / len(fb) * 100, 1) if fb else 0.0,
    }
