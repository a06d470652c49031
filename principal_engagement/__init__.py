"""
Principal Engagement - Package.

============================================================
PURPOSE
============================================================
Ranks CRM principals (supplier/brand organizations) by how
engaged they are, from the rollups maintained in the
principal_activity_summary materialized view.

============================================================
TWO INDEPENDENT SIGNALS
============================================================
1. ENGAGEMENT SCORE (0-100): weighted sum of capped
   interaction, opportunity, product and recency sub-scores
2. ACTIVITY STATUS: NO_ACTIVITY, STALE, MODERATE, ACTIVE
   from days since the last recorded activity

Both are pure functions of the rollup and an explicit "now".
Scores are recomputed on demand and never persisted as the
source of truth.

============================================================
USAGE
============================================================
    from datetime import datetime, timezone
    from database import get_db_session
    from principal_engagement import (
        ActivityRollupRepository,
        EngagementScoringEngine,
        compute_stats,
    )

    engine = EngagementScoringEngine()
    now = datetime.now(timezone.utc)

    with get_db_session() as session:
        rollups = ActivityRollupRepository(session).list_rollups()

    results = engine.evaluate_batch(rollups, now)
    stats = compute_stats(results)

============================================================
"""

# Types
from .types import (
    # Enums
    ActivityStatus,
    EngagementLevel,

    # Input types
    ActivityRollup,

    # Output types
    ScoreComponents,
    PrincipalEngagement,
    EngagementStats,
    EngagementBreakdown,

    # Exceptions
    EngagementError,
    ConfigurationError,
    RollupSourceError,
    RollupNotFoundError,
)

# Configuration
from .config import (
    ScoringWeights,
    ScoringCaps,
    ActivityThresholds,
    EngagementBands,
    RefreshConfig,
    EngagementConfig,
    get_default_config,
    load_config_from_env,
)

# Scoring and classification
from .scorer import (
    days_since,
    score_components,
    weighted_score,
    calculate_engagement_score,
)
from .classifier import (
    classify_activity,
    build_status_config,
    ACTIVITY_STATUS_CONFIG,
)

# Engine
from .engine import (
    EngagementScoringEngine,
    score,
    classify,
    evaluate_principal,
    get_engagement_level,
    format_engagement_summary,
    ranking_key,
)

# Analytics
from .analytics import (
    EngagementFilter,
    filter_engagements,
    top_performers,
    compute_stats,
    engagement_breakdown,
)

# Persistence
from .models import (
    PrincipalActivitySummaryView,
    ActivityRefreshLog,
)
from .repository import ActivityRollupRepository
from .refresh import (
    RefreshCoordinator,
    listen,
    drain_notifications,
    process_notifications,
)


__all__ = [
    # Enums
    "ActivityStatus",
    "EngagementLevel",

    # Input types
    "ActivityRollup",

    # Output types
    "ScoreComponents",
    "PrincipalEngagement",
    "EngagementStats",
    "EngagementBreakdown",

    # Exceptions
    "EngagementError",
    "ConfigurationError",
    "RollupSourceError",
    "RollupNotFoundError",

    # Configuration
    "ScoringWeights",
    "ScoringCaps",
    "ActivityThresholds",
    "EngagementBands",
    "RefreshConfig",
    "EngagementConfig",
    "get_default_config",
    "load_config_from_env",

    # Scoring and classification
    "days_since",
    "score_components",
    "weighted_score",
    "calculate_engagement_score",
    "classify_activity",
    "build_status_config",
    "ACTIVITY_STATUS_CONFIG",

    # Engine
    "EngagementScoringEngine",
    "score",
    "classify",
    "evaluate_principal",
    "get_engagement_level",
    "format_engagement_summary",
    "ranking_key",

    # Analytics
    "EngagementFilter",
    "filter_engagements",
    "top_performers",
    "compute_stats",
    "engagement_breakdown",

    # Persistence
    "PrincipalActivitySummaryView",
    "ActivityRefreshLog",
    "ActivityRollupRepository",
    "RefreshCoordinator",
    "listen",
    "drain_notifications",
    "process_notifications",
]


__version__ = "1.0.0"
