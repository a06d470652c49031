"""
Principal Engagement - Configuration.

============================================================
PURPOSE
============================================================
Weights, caps and thresholds for engagement scoring and
activity classification.

The default values reproduce the CRM's published scoring
model exactly. Dashboards and saved filters compare scores
across refreshes, so changing a default changes rankings.

============================================================
SCORING MODEL
============================================================
    interaction = min(total_interactions * 2, 100)
    opportunity = min(total_opportunities * 10, 100)
    product     = min(product_count * 20, 100)
    recency     = max(0, 100 - days_since_activity)

    score = round_half_up(
        interaction * 0.3 + opportunity * 0.4
        + product * 0.2 + recency * 0.1
    )

============================================================
ACTIVITY THRESHOLDS
============================================================
ACTIVE   <= 30 days
MODERATE <= 90 days
STALE    >  90 days

The status table shown in the CRM is derived from these
thresholds, so labels and classification cannot drift.

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .types import ConfigurationError


# ============================================================
# SCORING WEIGHTS
# ============================================================


@dataclass(frozen=True)
class ScoringWeights:
    """
    Weights of the four sub-scores.

    Held as Decimal so the weighted sum is exact and half-way
    values round predictably. Must sum to exactly 1.0.
    """

    interactions: Decimal = Decimal("0.3")
    opportunities: Decimal = Decimal("0.4")
    products: Decimal = Decimal("0.2")
    recency: Decimal = Decimal("0.1")

    @property
    def total(self) -> Decimal:
        return self.interactions + self.opportunities + self.products + self.recency

    def validate(self) -> None:
        for name in ("interactions", "opportunities", "products", "recency"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Weight '{name}' must not be negative")
        if self.total != Decimal("1"):
            raise ConfigurationError(f"Scoring weights must sum to 1.0, got {self.total}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interactions": str(self.interactions),
            "opportunities": str(self.opportunities),
            "products": str(self.products),
            "recency": str(self.recency),
        }


# ============================================================
# SUB-SCORE CAPS
# ============================================================


@dataclass(frozen=True)
class ScoringCaps:
    """
    Points per unit and saturation caps for each sub-score.

    A category stops adding points once it reaches the cap:
    50 interactions, 10 opportunities or 5 products.
    """

    interaction_points: int = 2
    opportunity_points: int = 10
    product_points: int = 20
    component_cap: int = 100

    # One recency point lost per day since last activity
    recency_max: int = 100

    def validate(self) -> None:
        if self.component_cap <= 0 or self.recency_max <= 0:
            raise ConfigurationError("Caps must be positive")
        if min(self.interaction_points, self.opportunity_points, self.product_points) < 0:
            raise ConfigurationError("Points per unit must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interaction_points": self.interaction_points,
            "opportunity_points": self.opportunity_points,
            "product_points": self.product_points,
            "component_cap": self.component_cap,
            "recency_max": self.recency_max,
        }


# ============================================================
# ACTIVITY THRESHOLDS
# ============================================================


@dataclass(frozen=True)
class ActivityThresholds:
    """
    Day cutoffs for the activity classifier.

    Both bounds are inclusive: exactly 30 days is ACTIVE and
    exactly 90 days is MODERATE.
    """

    active_max_days: int = 30
    moderate_max_days: int = 90

    def validate(self) -> None:
        if self.active_max_days < 0:
            raise ConfigurationError("active_max_days must not be negative")
        if self.moderate_max_days <= self.active_max_days:
            raise ConfigurationError(
                "moderate_max_days must be greater than active_max_days "
                f"({self.moderate_max_days} <= {self.active_max_days})"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_max_days": self.active_max_days,
            "moderate_max_days": self.moderate_max_days,
        }


@dataclass(frozen=True)
class EngagementBands:
    """Score ranges for LOW / MEDIUM / HIGH engagement badges."""

    low_max: int = 30
    medium_max: int = 70

    def validate(self) -> None:
        if not 0 <= self.low_max < self.medium_max < 100:
            raise ConfigurationError(
                f"Engagement bands must satisfy 0 <= low_max < medium_max < 100 "
                f"(got {self.low_max}, {self.medium_max})"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"low_max": self.low_max, "medium_max": self.medium_max}


# ============================================================
# REFRESH CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class RefreshConfig:
    """Materialized view refresh settings."""

    view_name: str = "principal_activity_summary"

    # CONCURRENTLY keeps the view readable during refresh
    # (requires the unique index on principal_id)
    concurrently: bool = True

    # Minimum spacing between refreshes triggered by notifications
    min_interval_seconds: float = 60.0

    notify_channel: str = "principal_activity_refresh_needed"

    def validate(self) -> None:
        if not self.view_name.replace("_", "").replace(".", "").isalnum():
            raise ConfigurationError(f"Invalid view name: {self.view_name!r}")
        if self.min_interval_seconds < 0:
            raise ConfigurationError("min_interval_seconds must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "view_name": self.view_name,
            "concurrently": self.concurrently,
            "min_interval_seconds": self.min_interval_seconds,
            "notify_channel": self.notify_channel,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class EngagementConfig:
    """
    Master configuration for principal engagement.

    Aggregates scoring, classification, analytics and refresh
    settings.
    """

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    caps: ScoringCaps = field(default_factory=ScoringCaps)
    thresholds: ActivityThresholds = field(default_factory=ActivityThresholds)
    bands: EngagementBands = field(default_factory=EngagementBands)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)

    # Number of principals listed as top performers
    top_performers_limit: int = 5

    engine_version: str = "1.0.0"

    def validate(self) -> None:
        """Raise ConfigurationError on any inconsistent setting."""
        self.weights.validate()
        self.caps.validate()
        self.thresholds.validate()
        self.bands.validate()
        self.refresh.validate()
        if self.top_performers_limit < 0:
            raise ConfigurationError("top_performers_limit must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "caps": self.caps.to_dict(),
            "thresholds": self.thresholds.to_dict(),
            "bands": self.bands.to_dict(),
            "refresh": self.refresh.to_dict(),
            "top_performers_limit": self.top_performers_limit,
            "engine_version": self.engine_version,
        }


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> EngagementConfig:
    """Return the default engagement configuration."""
    return EngagementConfig()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def load_config_from_env(base: Optional[EngagementConfig] = None) -> EngagementConfig:
    """
    Build a configuration with environment overrides.

    Recognized variables:
        ENGAGEMENT_ACTIVE_DAYS
        ENGAGEMENT_MODERATE_DAYS
        ENGAGEMENT_TOP_PERFORMERS
        ENGAGEMENT_REFRESH_MIN_INTERVAL

    Weights are not overridable; they define the score.
    """
    load_dotenv()
    base = base or get_default_config()

    config = EngagementConfig(
        weights=base.weights,
        caps=base.caps,
        thresholds=ActivityThresholds(
            active_max_days=_env_int("ENGAGEMENT_ACTIVE_DAYS", base.thresholds.active_max_days),
            moderate_max_days=_env_int("ENGAGEMENT_MODERATE_DAYS", base.thresholds.moderate_max_days),
        ),
        bands=base.bands,
        refresh=RefreshConfig(
            view_name=base.refresh.view_name,
            concurrently=base.refresh.concurrently,
            min_interval_seconds=_env_float(
                "ENGAGEMENT_REFRESH_MIN_INTERVAL", base.refresh.min_interval_seconds
            ),
            notify_channel=base.refresh.notify_channel,
        ),
        top_performers_limit=_env_int("ENGAGEMENT_TOP_PERFORMERS", base.top_performers_limit),
        engine_version=base.engine_version,
    )
    config.validate()
    return config
