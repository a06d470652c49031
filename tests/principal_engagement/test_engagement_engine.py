"""
Tests for the Engagement Scoring Engine.

============================================================
PURPOSE
============================================================
Covers orchestration on top of the pure scorer and
classifier:
1. Result packaging
2. Data integrity handling (clamp, log, report)
3. Batch evaluation and ranking
4. Configuration validation
5. Convenience functions and summaries

============================================================
"""

import logging
import pytest
from datetime import datetime, timedelta, timezone

from principal_engagement.analytics import top_performers
from principal_engagement.config import ActivityThresholds, EngagementConfig
from principal_engagement.engine import (
    EngagementScoringEngine,
    classify,
    evaluate_principal,
    format_engagement_summary,
    get_engagement_level,
    ranking_key,
    score,
)
from principal_engagement.types import (
    ActivityRollup,
    ActivityStatus,
    ConfigurationError,
    EngagementLevel,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    return EngagementScoringEngine()


@pytest.fixture
def example_rollup(now):
    return ActivityRollup(
        principal_id="3f1c2a9e-0000-4000-8000-000000000001",
        principal_name="Bayou Sauces",
        total_interactions=10,
        total_opportunities=3,
        product_count=2,
        last_activity_at=now - timedelta(days=5),
    )


# ============================================================
# EVALUATION
# ============================================================

class TestEvaluate:
    """Tests for single principal evaluation."""

    def test_reference_example(self, engine, example_rollup, now):
        result = engine.evaluate(example_rollup, now)

        assert result.score == 36
        assert result.status == ActivityStatus.ACTIVE
        assert result.level == EngagementLevel.MEDIUM
        assert result.components.recency_score == 95
        assert result.integrity_issues == ()
        assert result.evaluated_at == now
        assert result.rollup is example_rollup

    def test_no_activity(self, engine, now):
        result = engine.evaluate(ActivityRollup(principal_name="Coastal Seafood"), now)

        assert result.score == 0
        assert result.status == ActivityStatus.NO_ACTIVITY
        assert result.level == EngagementLevel.LOW

    def test_score_and_status_are_independent(self, engine, now):
        # Saturated counts but stale: high score, STALE status
        rollup = ActivityRollup(
            total_interactions=80,
            total_opportunities=20,
            product_count=9,
            last_activity_at=now - timedelta(days=150),
        )
        result = engine.evaluate(rollup, now)

        assert result.score == 90
        assert result.status == ActivityStatus.STALE
        assert result.level == EngagementLevel.HIGH

    def test_to_dict(self, engine, example_rollup, now):
        data = engine.evaluate(example_rollup, now).to_dict()

        assert data["principal_id"] == "3f1c2a9e-0000-4000-8000-000000000001"
        assert data["engagement_score"] == 36
        assert data["activity_status"] == "ACTIVE"
        assert data["engagement_level"] == "MEDIUM"
        assert data["components"]["opportunity_score"] == 30
        assert data["last_activity_at"] == (now - timedelta(days=5)).isoformat()

    def test_uses_configured_thresholds(self, now):
        engine = EngagementScoringEngine(
            EngagementConfig(thresholds=ActivityThresholds(active_max_days=7, moderate_max_days=30))
        )
        result = engine.evaluate(ActivityRollup(last_activity_at=now - timedelta(days=10)), now)

        assert result.status == ActivityStatus.MODERATE


# ============================================================
# DATA INTEGRITY
# ============================================================

class TestIntegrity:
    """Out-of-contract rollups are clamped, logged and reported."""

    def test_negative_counts(self, engine, now, caplog):
        rollup = ActivityRollup(
            principal_id="p-1",
            total_interactions=-4,
            total_opportunities=2,
            product_count=-1,
        )

        with caplog.at_level(logging.WARNING, logger="principal_engagement.engine"):
            result = engine.evaluate(rollup, now)

        assert result.score == 8  # only opportunities count: 20 * 0.4
        assert len(result.integrity_issues) == 2
        assert any("total_interactions" in issue for issue in result.integrity_issues)
        assert any("product_count" in issue for issue in result.integrity_issues)
        assert "integrity fault" in caplog.text

    def test_future_timestamp(self, engine, now):
        rollup = ActivityRollup(last_activity_at=now + timedelta(days=4))
        result = engine.evaluate(rollup, now)

        assert result.has_integrity_issues
        assert "future" in result.integrity_issues[0]
        assert result.components.recency_score == 100
        assert result.status == ActivityStatus.ACTIVE
        assert 0 <= result.score <= 100

    def test_clean_rollup_has_no_issues(self, engine, example_rollup, now):
        assert engine.check_integrity(example_rollup, now) == ()


# ============================================================
# BATCH AND RANKING
# ============================================================

class TestBatch:

    def test_preserves_order(self, engine, now):
        rollups = [
            ActivityRollup(principal_name="C"),
            ActivityRollup(principal_name="A", total_opportunities=10, last_activity_at=now),
            ActivityRollup(principal_name="B", total_interactions=5),
        ]
        results = engine.evaluate_batch(rollups, now)

        assert [r.principal_name for r in results] == ["C", "A", "B"]
        assert all(r.evaluated_at == now for r in results)

    def test_accepts_generators(self, engine, now):
        results = engine.evaluate_batch((ActivityRollup() for _ in range(3)), now)
        assert len(results) == 3

    def test_empty_batch(self, engine, now):
        assert engine.evaluate_batch([], now) == []

    def test_rank_breaks_ties_by_opportunities(self, engine, now):
        results = engine.evaluate_batch(
            [
                ActivityRollup(principal_name="products", product_count=1),        # 4
                ActivityRollup(principal_name="opportunity", total_opportunities=1),  # 4
                ActivityRollup(principal_name="top", total_opportunities=10),      # 40
            ],
            now,
        )
        ranked = engine.rank(results)

        assert [r.principal_name for r in ranked] == ["top", "opportunity", "products"]


# ============================================================
# CONFIGURATION
# ============================================================

class TestEngineConfig:

    def test_invalid_thresholds_rejected(self):
        config = EngagementConfig(thresholds=ActivityThresholds(active_max_days=90, moderate_max_days=30))
        with pytest.raises(ConfigurationError):
            EngagementScoringEngine(config)

    def test_default_config(self, engine):
        assert engine.get_config().thresholds.active_max_days == 30
        assert engine.get_config().top_performers_limit == 5


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

class TestConvenience:

    def test_score(self, example_rollup, now):
        assert score(example_rollup, now) == 36

    def test_classify(self, now):
        assert classify(None, now) == ActivityStatus.NO_ACTIVITY
        assert classify(now - timedelta(days=1), now) == ActivityStatus.ACTIVE
        assert classify(now - timedelta(days=45), now) == ActivityStatus.MODERATE
        assert classify(now - timedelta(days=200), now) == ActivityStatus.STALE

    def test_evaluate_principal_with_config(self, now):
        config = EngagementConfig(thresholds=ActivityThresholds(active_max_days=3, moderate_max_days=10))
        result = evaluate_principal(ActivityRollup(last_activity_at=now - timedelta(days=5)), now, config)
        assert result.status == ActivityStatus.MODERATE

    @pytest.mark.parametrize("value,expected", [
        (0, EngagementLevel.LOW),
        (30, EngagementLevel.LOW),
        (31, EngagementLevel.MEDIUM),
        (70, EngagementLevel.MEDIUM),
        (71, EngagementLevel.HIGH),
        (100, EngagementLevel.HIGH),
    ])
    def test_engagement_level(self, value, expected):
        assert get_engagement_level(value) == expected

    def test_format_summary(self, engine, example_rollup, now):
        text = format_engagement_summary(engine.evaluate(example_rollup, now))

        assert "Bayou Sauces" in text
        assert "36/100" in text
        assert "Medium Engagement" in text
        assert "5 days ago" in text

    def test_format_summary_lists_faults(self, engine, now):
        result = engine.evaluate(ActivityRollup(total_interactions=-1), now)
        text = format_engagement_summary(result)

        assert "Integrity Faults" in text
        assert "never" in text


class TestRankingKey:

    def test_rank_and_top_performers_agree(self, engine, now):
        results = engine.evaluate_batch(
            [
                ActivityRollup(principal_name="b", product_count=1),
                ActivityRollup(principal_name="a", total_opportunities=1),
                ActivityRollup(principal_name="c", total_opportunities=3),
            ],
            now,
        )

        assert [ranking_key(r) for r in results] == [(4, 0), (4, 1), (12, 3)]
        assert engine.rank(results) == top_performers(results, limit=3)

    def test_none_counts_become_zero(self):
        rollup = ActivityRollup(total_interactions=None, total_opportunities=None, product_count=None)

        assert rollup.total_interactions == 0
        assert rollup.total_opportunities == 0
        assert rollup.product_count == 0
