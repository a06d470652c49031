"""
Principal Engagement - Scorer.

============================================================
PURPOSE
============================================================
Maps an ActivityRollup to a 0-100 engagement score used to
rank and filter principals.

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions: no I/O, no clock reads, no mutation
- "now" is always passed in by the caller
- Every sub-score saturates at its cap before weighting
- Exact decimal arithmetic, ties rounded half-up (35.5 -> 36)
- Out-of-range input is clamped, never rejected

============================================================
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .config import ScoringCaps, ScoringWeights
from .types import ActivityRollup, ScoreComponents


_ONE_DAY = timedelta(days=1)

_DEFAULT_WEIGHTS = ScoringWeights()
_DEFAULT_CAPS = ScoringCaps()


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_since(last_activity_at: Optional[datetime], now: datetime) -> Optional[int]:
    """
    Whole days elapsed between last activity and now.

    floor((now - last_activity_at) / 1 day). Negative when the
    timestamp lies in the future. None when there is no activity.
    """
    if last_activity_at is None:
        return None
    return (as_utc(now) - as_utc(last_activity_at)) // _ONE_DAY


def _capped(count: Optional[int], points: int, cap: int) -> int:
    return min(max(count or 0, 0) * points, cap)


def score_components(
    rollup: ActivityRollup,
    now: datetime,
    caps: ScoringCaps = _DEFAULT_CAPS,
) -> ScoreComponents:
    """
    Compute the four capped sub-scores for a rollup.

    Negative counts count as zero and future activity counts as
    zero days old, so every component stays within [0, cap].
    """
    days = days_since(rollup.last_activity_at, now)

    if days is None:
        recency = 0
    else:
        recency = max(0, caps.recency_max - max(days, 0))

    return ScoreComponents(
        interaction_score=_capped(rollup.total_interactions, caps.interaction_points, caps.component_cap),
        opportunity_score=_capped(rollup.total_opportunities, caps.opportunity_points, caps.component_cap),
        product_score=_capped(rollup.product_count, caps.product_points, caps.component_cap),
        recency_score=recency,
        days_since_activity=days,
    )


def weighted_score(
    components: ScoreComponents,
    weights: ScoringWeights = _DEFAULT_WEIGHTS,
) -> int:
    """
    Combine sub-scores into the final 0-100 score.

    round_half_up(i*0.3 + o*0.4 + p*0.2 + r*0.1)
    """
    total = (
        Decimal(components.interaction_score) * weights.interactions
        + Decimal(components.opportunity_score) * weights.opportunities
        + Decimal(components.product_score) * weights.products
        + Decimal(components.recency_score) * weights.recency
    )
    rounded = int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))


def calculate_engagement_score(
    rollup: ActivityRollup,
    now: datetime,
    weights: ScoringWeights = _DEFAULT_WEIGHTS,
    caps: ScoringCaps = _DEFAULT_CAPS,
) -> int:
    """
    Engagement score of a principal, 0-100.

    Args:
        rollup: Aggregated activity of the principal
        now: Evaluation time
        weights: Sub-score weights
        caps: Sub-score caps

    Returns:
        Integer score in [0, 100]
    """
    return weighted_score(score_components(rollup, now, caps), weights)
