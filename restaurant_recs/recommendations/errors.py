from __future__ import annotations


class RecommendationError(Exception):
    """Base class for errors surfaced by the recommendation core."""


class NotFound(RecommendationError):
    """A referenced user or restaurant does not exist."""


class InvalidParameter(RecommendationError, ValueError):
    """A request parameter was rejected before querying the store."""


class DuplicateReview(RecommendationError):
    """The user has already reviewed this restaurant."""


class StoreFailure(RecommendationError):
    """The entity store could not serve a query. Safe to retry."""

    retryable = True
