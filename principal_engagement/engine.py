"""
Principal Engagement - Main Orchestrator.

============================================================
PURPOSE
============================================================
The EngagementScoringEngine is the main entry point for
evaluating principals.

It orchestrates:
1. Data integrity checks on the rollup
2. Engagement scoring
3. Activity classification
4. Result packaging

Scoring and classification are independent and share no
state, so any number of rollups can be evaluated in any
order or in parallel.

============================================================
USAGE
============================================================
    from datetime import datetime, timedelta, timezone
    from principal_engagement import EngagementScoringEngine, ActivityRollup

    engine = EngagementScoringEngine()
    now = datetime.now(timezone.utc)

    result = engine.evaluate(
        ActivityRollup(
            principal_name="Acme Foods",
            total_interactions=10,
            total_opportunities=3,
            product_count=2,
            last_activity_at=now - timedelta(days=5),
        ),
        now=now,
    )

    print(result.score, result.status.value)   # 36 ACTIVE

============================================================
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .classifier import classify_activity
from .config import EngagementConfig
from .scorer import as_utc, score_components, weighted_score
from .types import (
    ActivityRollup,
    ActivityStatus,
    EngagementLevel,
    PrincipalEngagement,
)

logger = logging.getLogger(__name__)


def ranking_key(engagement: PrincipalEngagement) -> Tuple[int, int]:
    """Sort key for rankings: score, then total opportunities."""
    return engagement.score, engagement.rollup.total_opportunities


class EngagementScoringEngine:
    """
    Evaluates principal rollups into scores and statuses.

    ============================================================
    DATA INTEGRITY
    ============================================================
    Rollups with negative counts or a future last activity
    date break the aggregate store's contract. They are
    scored with clamped values and the faults are logged and
    reported on the result; evaluation never fails for them.

    ============================================================
    """

    def __init__(self, config: Optional[EngagementConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Engagement configuration. Uses defaults if not provided.

        Raises:
            ConfigurationError: If the configuration is inconsistent
        """
        self.config = config or EngagementConfig()
        self.config.validate()

    def check_integrity(self, rollup: ActivityRollup, now: datetime) -> Tuple[str, ...]:
        """
        List data integrity faults of a rollup.

        Returns:
            Tuple of human-readable fault descriptions (empty if clean)
        """
        issues: List[str] = []

        for name in ("total_interactions", "total_opportunities", "product_count"):
            value = getattr(rollup, name)
            if value is not None and value < 0:
                issues.append(f"{name} is negative ({value})")

        if rollup.last_activity_at is not None and as_utc(rollup.last_activity_at) > as_utc(now):
            issues.append(
                f"last_activity_at {rollup.last_activity_at.isoformat()} is in the future"
            )

        for issue in issues:
            logger.warning(
                f"Rollup integrity fault for principal {rollup.principal_id}: {issue}"
            )

        return tuple(issues)

    def evaluate(self, rollup: ActivityRollup, now: datetime) -> PrincipalEngagement:
        """
        Score and classify one principal.

        Args:
            rollup: Aggregated activity of the principal
            now: Evaluation time

        Returns:
            PrincipalEngagement with score, status and breakdown
        """
        issues = self.check_integrity(rollup, now)

        components = score_components(rollup, now, self.config.caps)
        score = weighted_score(components, self.config.weights)
        status = classify_activity(rollup.last_activity_at, now, self.config.thresholds)
        level = EngagementLevel.from_score(
            score, self.config.bands.low_max, self.config.bands.medium_max
        )

        return PrincipalEngagement(
            rollup=rollup,
            score=score,
            status=status,
            level=level,
            components=components,
            integrity_issues=issues,
            evaluated_at=now,
        )

    def evaluate_batch(
        self,
        rollups: Iterable[ActivityRollup],
        now: datetime,
    ) -> List[PrincipalEngagement]:
        """
        Evaluate many rollups against the same evaluation time.

        Input order is preserved.
        """
        results = [self.evaluate(rollup, now) for rollup in rollups]

        faulty = sum(1 for r in results if r.has_integrity_issues)
        logger.info(
            f"Evaluated {len(results)} principals"
            + (f" ({faulty} with integrity faults)" if faulty else "")
        )
        return results

    @staticmethod
    def rank(engagements: Iterable[PrincipalEngagement]) -> List[PrincipalEngagement]:
        """Order by score, then total opportunities, both descending."""
        return sorted(engagements, key=ranking_key, reverse=True)

    def get_config(self) -> EngagementConfig:
        """Return the current engine configuration."""
        return self.config


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


_default_engine: Optional[EngagementScoringEngine] = None


def _get_default_engine() -> EngagementScoringEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = EngagementScoringEngine()
    return _default_engine


def score(rollup: ActivityRollup, now: datetime) -> int:
    """Engagement score 0-100 of a rollup with the default configuration."""
    return _get_default_engine().evaluate(rollup, now).score


def classify(last_activity_at: Optional[datetime], now: datetime) -> ActivityStatus:
    """Activity status for a last activity time with the default thresholds."""
    return classify_activity(last_activity_at, now)


def evaluate_principal(
    rollup: ActivityRollup,
    now: datetime,
    config: Optional[EngagementConfig] = None,
) -> PrincipalEngagement:
    """
    Evaluate one rollup in a single call.

    For repeated evaluation prefer a persistent
    EngagementScoringEngine instance.
    """
    engine = EngagementScoringEngine(config) if config else _get_default_engine()
    return engine.evaluate(rollup, now)


def get_engagement_level(engagement_score: int) -> EngagementLevel:
    """Badge level for a score with the default bands."""
    return EngagementLevel.from_score(engagement_score)


def format_engagement_summary(engagement: PrincipalEngagement) -> str:
    """
    Format a human-readable engagement summary.

    Useful for logging and the command line.
    """
    rollup = engagement.rollup
    components = engagement.components
    last_activity = rollup.last_activity_at.isoformat() if rollup.last_activity_at else "never"
    days = components.days_since_activity

    lines = [
        "=" * 50,
        f"PRINCIPAL ENGAGEMENT: {rollup.principal_name or rollup.principal_id or 'unnamed'}",
        "=" * 50,
        f"Engagement Score: {engagement.score}/100 ({engagement.level.label})",
        f"Activity Status:  {engagement.status.label}",
        f"Last Activity:    {last_activity}" + (f" ({days} days ago)" if days is not None else ""),
        "",
        "Score Breakdown:",
        f"  Interactions:  {components.interaction_score:3d}  ({rollup.total_interactions} recorded)",
        f"  Opportunities: {components.opportunity_score:3d}  ({rollup.total_opportunities} recorded)",
        f"  Products:      {components.product_score:3d}  ({rollup.product_count} associated)",
        f"  Recency:       {components.recency_score:3d}",
    ]

    if engagement.integrity_issues:
        lines.append("")
        lines.append("Integrity Faults:")
        lines.extend(f"  - {issue}" for issue in engagement.integrity_issues)

    lines.append("=" * 50)
    return "\n".join(lines)
