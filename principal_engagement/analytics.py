"""
Principal Engagement - Analytics.

============================================================
PURPOSE
============================================================
Dashboard views over evaluated principals:

- Filtering by status, score range, recency and name
- KPI statistics with activity distribution and top performers
- Engagement breakdown by badge level

All functions operate on PrincipalEngagement results and
take "now" explicitly where time matters.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, Iterable, List, Optional

from .config import EngagementBands
from .engine import EngagementScoringEngine
from .scorer import as_utc
from .types import (
    ActivityStatus,
    EngagementBreakdown,
    EngagementLevel,
    EngagementStats,
    PrincipalEngagement,
)


# ============================================================
# FILTERING
# ============================================================


@dataclass(frozen=True)
class EngagementFilter:
    """
    Filter for principal lists.

    Empty / None criteria match everything.
    """

    principal_ids: FrozenSet[str] = field(default_factory=frozenset)
    statuses: FrozenSet[ActivityStatus] = field(default_factory=frozenset)
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    last_activity_days: Optional[int] = None
    search: Optional[str] = None

    def matches(self, engagement: PrincipalEngagement, now: datetime) -> bool:
        rollup = engagement.rollup

        if self.principal_ids and str(rollup.principal_id) not in self.principal_ids:
            return False

        if self.statuses and engagement.status not in self.statuses:
            return False

        if self.min_score is not None and engagement.score < self.min_score:
            return False

        if self.max_score is not None and engagement.score > self.max_score:
            return False

        if self.last_activity_days is not None:
            if rollup.last_activity_at is None:
                return False
            cutoff = as_utc(now) - timedelta(days=self.last_activity_days)
            if as_utc(rollup.last_activity_at) < cutoff:
                return False

        if self.search:
            name = (rollup.principal_name or "").lower()
            if self.search.strip().lower() not in name:
                return False

        return True


def filter_engagements(
    engagements: Iterable[PrincipalEngagement],
    filt: EngagementFilter,
    now: datetime,
) -> List[PrincipalEngagement]:
    """Apply a filter and order the matches by score, highest first."""
    matches = [e for e in engagements if filt.matches(e, now)]
    return sorted(matches, key=lambda e: e.score, reverse=True)


# ============================================================
# STATISTICS
# ============================================================


def top_performers(
    engagements: Iterable[PrincipalEngagement],
    limit: int = 5,
) -> List[PrincipalEngagement]:
    """Highest scores first, ties broken by total opportunities."""
    return EngagementScoringEngine.rank(engagements)[:limit]


def compute_stats(
    engagements: Iterable[PrincipalEngagement],
    top_n: int = 5,
) -> EngagementStats:
    """
    Aggregate KPIs for a set of evaluated principals.

    Averages are 0.0 for an empty set. The status distribution
    always contains all four statuses.
    """
    items = list(engagements)
    total = len(items)

    distribution = {status: 0 for status in ActivityStatus.all_statuses()}
    for item in items:
        distribution[item.status] += 1

    if total:
        avg_products = sum(max(i.rollup.product_count, 0) for i in items) / total
        avg_score = sum(i.score for i in items) / total
    else:
        avg_products = 0.0
        avg_score = 0.0

    return EngagementStats(
        total_principals=total,
        active_principals=distribution[ActivityStatus.ACTIVE],
        principals_with_products=sum(1 for i in items if i.rollup.product_count > 0),
        principals_with_opportunities=sum(1 for i in items if i.rollup.total_opportunities > 0),
        average_products_per_principal=round(avg_products, 2),
        average_engagement_score=round(avg_score, 2),
        status_distribution=distribution,
        top_performers=top_performers(items, top_n),
    )


def engagement_breakdown(
    engagements: Iterable[PrincipalEngagement],
    bands: Optional[EngagementBands] = None,
) -> EngagementBreakdown:
    """
    Count principals per engagement level.

    Principals without any activity are counted as inactive
    regardless of score.
    """
    bands = bands or EngagementBands()
    high = medium = low = inactive = 0

    for item in engagements:
        if item.status == ActivityStatus.NO_ACTIVITY:
            inactive += 1
            continue

        level = EngagementLevel.from_score(item.score, bands.low_max, bands.medium_max)
        if level == EngagementLevel.HIGH:
            high += 1
        elif level == EngagementLevel.MEDIUM:
            medium += 1
        else:
            low += 1

    return EngagementBreakdown(high=high, medium=medium, low=low, inactive=inactive)
