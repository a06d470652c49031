"""
Principal Engagement - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for principal engagement scoring.

A principal is a supplier/brand organization in the CRM.
Its activity is pre-aggregated by the database into a
rollup; the engine turns that rollup into a 0-100
engagement score and a coarse activity status.

============================================================
DESIGN PRINCIPLES
============================================================
- Rollups carry exactly the four fields scoring needs
- All records are frozen dataclasses
- Enums for discrete states
- Clear separation between input and output types

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID


# ============================================================
# ENUMS
# ============================================================


class ActivityStatus(str, Enum):
    """
    Coarse activity tier derived from the last activity date.

    - NO_ACTIVITY: Nothing recorded
    - STALE: More than 90 days since last activity
    - MODERATE: 31 to 90 days
    - ACTIVE: 30 days or less
    """

    NO_ACTIVITY = "NO_ACTIVITY"
    STALE = "STALE"
    MODERATE = "MODERATE"
    ACTIVE = "ACTIVE"

    @classmethod
    def all_statuses(cls) -> List["ActivityStatus"]:
        """Return all statuses in ascending activity order."""
        return [cls.NO_ACTIVITY, cls.STALE, cls.MODERATE, cls.ACTIVE]

    @property
    def severity_order(self) -> int:
        """Numeric ordering, higher means more recent activity."""
        return self.all_statuses().index(self)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        return {
            "NO_ACTIVITY": "gray",
            "STALE": "red",
            "MODERATE": "yellow",
            "ACTIVE": "green",
        }[self.value]


class EngagementLevel(str, Enum):
    """
    Badge level for an engagement score.

    Score ranges (defaults):
    - LOW: 0-30
    - MEDIUM: 31-70
    - HIGH: 71-100
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_score(cls, score: int, low_max: int = 30, medium_max: int = 70) -> "EngagementLevel":
        if score <= low_max:
            return cls.LOW
        elif score <= medium_max:
            return cls.MEDIUM
        return cls.HIGH

    @property
    def label(self) -> str:
        return f"{self.value.title()} Engagement"


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class ActivityRollup:
    """
    Aggregated activity of one principal at refresh time.

    Produced by the principal_activity_summary view. Counts are
    expected to be non-negative and last_activity_at to be in
    the past; the engine clamps records that break this.
    Counts given as None are stored as 0.
    """

    principal_id: Optional[Union[UUID, str]] = None
    principal_name: Optional[str] = None

    total_interactions: int = 0
    total_opportunities: int = 0
    product_count: int = 0

    # Most recent interaction, opportunity or contact update
    last_activity_at: Optional[datetime] = None

    def __post_init__(self):
        # Absent counts mean zero
        for name in ("total_interactions", "total_opportunities", "product_count"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, 0)

    @property
    def has_activity(self) -> bool:
        return self.last_activity_at is not None


# ============================================================
# OUTPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class ScoreComponents:
    """Capped sub-scores feeding the weighted engagement score."""

    interaction_score: int = 0
    opportunity_score: int = 0
    product_score: int = 0
    recency_score: int = 0
    days_since_activity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interaction_score": self.interaction_score,
            "opportunity_score": self.opportunity_score,
            "product_score": self.product_score,
            "recency_score": self.recency_score,
            "days_since_activity": self.days_since_activity,
        }


@dataclass(frozen=True)
class PrincipalEngagement:
    """
    Engagement result for one principal.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - score: Always 0-100
    - status: Always one of the four ActivityStatus values
    - rollup: The exact input record, unmodified

    Results are recomputed on demand and never stored as the
    source of truth.

    ============================================================
    """

    rollup: ActivityRollup
    score: int
    status: ActivityStatus
    level: EngagementLevel
    components: ScoreComponents = field(default_factory=ScoreComponents)

    # Data integrity faults found in the rollup (already clamped)
    integrity_issues: Tuple[str, ...] = ()

    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def principal_id(self) -> Optional[Union[UUID, str]]:
        return self.rollup.principal_id

    @property
    def principal_name(self) -> Optional[str]:
        return self.rollup.principal_name

    @property
    def has_integrity_issues(self) -> bool:
        return bool(self.integrity_issues)

    def to_dict(self) -> Dict[str, Any]:
        last_activity = self.rollup.last_activity_at
        return {
            "principal_id": str(self.rollup.principal_id) if self.rollup.principal_id is not None else None,
            "principal_name": self.rollup.principal_name,
            "total_interactions": self.rollup.total_interactions,
            "total_opportunities": self.rollup.total_opportunities,
            "product_count": self.rollup.product_count,
            "last_activity_at": last_activity.isoformat() if last_activity else None,
            "engagement_score": self.score,
            "activity_status": self.status.value,
            "engagement_level": self.level.value,
            "components": self.components.to_dict(),
            "integrity_issues": list(self.integrity_issues),
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass(frozen=True)
class EngagementStats:
    """Dashboard KPIs over a set of evaluated principals."""

    total_principals: int = 0
    active_principals: int = 0
    principals_with_products: int = 0
    principals_with_opportunities: int = 0
    average_products_per_principal: float = 0.0
    average_engagement_score: float = 0.0
    status_distribution: Dict[ActivityStatus, int] = field(
        default_factory=lambda: {status: 0 for status in ActivityStatus.all_statuses()}
    )
    top_performers: List[PrincipalEngagement] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_principals": self.total_principals,
            "active_principals": self.active_principals,
            "principals_with_products": self.principals_with_products,
            "principals_with_opportunities": self.principals_with_opportunities,
            "average_products_per_principal": self.average_products_per_principal,
            "average_engagement_score": self.average_engagement_score,
            "activity_status_distribution": {
                status.value: count for status, count in self.status_distribution.items()
            },
            "top_performers": [
                {
                    "principal_id": str(p.principal_id) if p.principal_id is not None else None,
                    "principal_name": p.principal_name,
                    "engagement_score": p.score,
                    "total_opportunities": p.rollup.total_opportunities,
                }
                for p in self.top_performers
            ],
        }


@dataclass(frozen=True)
class EngagementBreakdown:
    """Principal counts per engagement level, inactive counted apart."""

    high: int = 0
    medium: int = 0
    low: int = 0
    inactive: int = 0

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low + self.inactive

    def to_dict(self) -> Dict[str, int]:
        return {
            "high_engagement": self.high,
            "medium_engagement": self.medium,
            "low_engagement": self.low,
            "inactive": self.inactive,
        }


# ============================================================
# EXCEPTIONS
# ============================================================


class EngagementError(Exception):
    """Base exception for principal engagement errors."""
    pass


class ConfigurationError(EngagementError):
    """Raised when weights or thresholds are inconsistent."""
    pass


class RollupSourceError(EngagementError):
    """Raised when the aggregate store cannot be read or refreshed."""
    pass


class RollupNotFoundError(RollupSourceError):
    """Raised when no rollup exists for a principal."""

    def __init__(self, principal_id: Union[UUID, str]):
        self.principal_id = principal_id
        super().__init__(f"No activity rollup for principal {principal_id}")
