"""
Statistics reader — read-only projection over persisted suggestions.

Results are cached under the ``statistics`` tag and may lag behind writes
until that tag is invalidated.
"""

import logging

from sqlalchemy import func

from suggestion_hub.models.suggestion import (
    IMPLEMENTATION_STATUSES,
    REVIEW_STATUSES,
    SUGGESTION_TYPES,
    Suggestion,
)
from suggestion_hub.services import cache_service
from suggestion_hub.services.cache_service import STATS_TAG

logger = logging.getLogger(__name__)


def compute_overview(team=None):
    """Aggregate counts; *team* narrows every figure to one team."""
    base = Suggestion.query
    if team:
        base = base.filter(Suggestion.team == team)

    def _scoped(column, labels=None):
        q = base.with_entities(column, func.count(Suggestion.id)).group_by(column)
        counts = {key: 0 for key in (labels or {})}
        for key, count in q.all():
            if key is not None:
                counts[key] = count
        return counts

    total = base.count()
    by_review = _scoped(Suggestion.review_status, REVIEW_STATUSES)
    by_impl = _scoped(Suggestion.implementation_status, IMPLEMENTATION_STATUSES)
    avg_score = base.with_entities(func.avg(Suggestion.score)).scalar()

    approved = by_review.get("APPROVED", 0)
    finished = by_impl.get("COMPLETED", 0) + by_impl.get("EVALUATED", 0)
    logger.debug("Statistics recomputed (team=%s, total=%d)", team, total)
    return {
        "total": total,
        "byReviewStatus": by_review,
        "byType": _scoped(Suggestion.type, SUGGESTION_TYPES),
        "byImplementationStatus": by_impl,
        "byTeam": _scoped(Suggestion.team) if not team else {team: total},
        "averageScore": round(float(avg_score), 2) if avg_score is not None else None,
        "approvalRate": round(approved / total * 100, 1) if total else 0.0,
        "implementationRate": round(finished / approved * 100, 1) if approved else 0.0,
    }


def get_overview(team=None, cache=None, ttl=None):
    cache = cache or cache_service.get_cache()
    return cache.get_or_load(
        f"statistics:overview:{team or '*'}",
        lambda: compute_overview(team),
        ttl=ttl or cache_service.STATS_TTL,
        tags=[STATS_TAG],
    )
