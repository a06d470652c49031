"""
Principal Engagement - Activity Classifier.

============================================================
PURPOSE
============================================================
Buckets a principal into a coarse activity tier for
filtering and badging, independent of the numeric score.

    no activity          -> NO_ACTIVITY
    days <= 30           -> ACTIVE
    30 < days <= 90      -> MODERATE
    days > 90            -> STALE

Saved filters rely on exact bucket membership, so the
boundaries are inclusive exactly as listed.

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from .config import ActivityThresholds
from .scorer import days_since
from .types import ActivityStatus


_DEFAULT_THRESHOLDS = ActivityThresholds()


def classify_activity(
    last_activity_at: Optional[datetime],
    now: datetime,
    thresholds: ActivityThresholds = _DEFAULT_THRESHOLDS,
) -> ActivityStatus:
    """
    Classify a principal by time since its last activity.

    Total over its inputs. A timestamp in the future is treated
    as activity today.
    """
    days = days_since(last_activity_at, now)

    if days is None:
        return ActivityStatus.NO_ACTIVITY
    if days <= thresholds.active_max_days:
        return ActivityStatus.ACTIVE
    if days <= thresholds.moderate_max_days:
        return ActivityStatus.MODERATE
    return ActivityStatus.STALE


def build_status_config(
    thresholds: ActivityThresholds = _DEFAULT_THRESHOLDS,
) -> Dict[ActivityStatus, Dict[str, Any]]:
    """Display table for activity statuses, derived from the thresholds."""
    active = thresholds.active_max_days
    moderate = thresholds.moderate_max_days

    return {
        ActivityStatus.NO_ACTIVITY: {
            "label": ActivityStatus.NO_ACTIVITY.label,
            "color": ActivityStatus.NO_ACTIVITY.color,
            "threshold_days": None,
            "description": "No recorded activity",
        },
        ActivityStatus.STALE: {
            "label": ActivityStatus.STALE.label,
            "color": ActivityStatus.STALE.color,
            "threshold_days": moderate,
            "description": f"No activity in {moderate}+ days",
        },
        ActivityStatus.MODERATE: {
            "label": ActivityStatus.MODERATE.label,
            "color": ActivityStatus.MODERATE.color,
            "threshold_days": active,
            "description": f"Some activity in last {active}-{moderate} days",
        },
        ActivityStatus.ACTIVE: {
            "label": ActivityStatus.ACTIVE.label,
            "color": ActivityStatus.ACTIVE.color,
            "threshold_days": active,
            "description": f"Recent activity within {active} days",
        },
    }


ACTIVITY_STATUS_CONFIG = build_status_config()
