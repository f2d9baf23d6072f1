"""Tests for goal-driven configuration recommendations."""

from datetime import datetime, timedelta, timezone

import pytest

from rollout_ai.core.rollout.models import (
    MetricDataPoint,
    OptimizationGoal,
    RolloutConfiguration,
    RolloutStep,
)
from rollout_ai.core.rollout.recommendations import (
    optimize_configuration,
    recommend_configuration,
    recommendation_confidence,
)

T0 = datetime(2024, 7, 1, tzinfo=timezone.utc)

CURRENT = RolloutConfiguration(
    steps=(
        RolloutStep(1, 20.0, timedelta(hours=1)),
        RolloutStep(2, 80.0, timedelta(hours=2)),
    ),
    safety_limits={"error_rate": 2.0},
    strategy="balanced",
)


def _metrics(count, **values):
    return [
        MetricDataPoint(timestamp=T0 + timedelta(minutes=i), metric_name=name, value=value)
        for i in range(count)
        for name, value in values.items()
    ]


class TestOptimizeConfiguration:
    def test_conservative_shrinks_and_slows(self):
        config = optimize_configuration(CURRENT, OptimizationGoal.CONSERVATIVE)
        assert [s.percentage_target for s in config.steps] == pytest.approx([14.0, 56.0])
        assert [s.duration for s in config.steps] == [timedelta(hours=1.5), timedelta(hours=3)]
        assert config.strategy == "conservative"

    def test_aggressive_caps_at_hundred(self):
        config = optimize_configuration(CURRENT, OptimizationGoal.AGGRESSIVE)
        assert config.steps[1].percentage_target == 100.0
        assert config.steps[0].percentage_target == pytest.approx(26.0)

    def test_balanced_keeps_steps(self):
        config = optimize_configuration(CURRENT, OptimizationGoal.BALANCED)
        assert config.steps == CURRENT.steps
        assert config.safety_limits == CURRENT.safety_limits


class TestRecommendConfiguration:
    def test_strategy_change_is_justified(self):
        result = recommend_configuration(
            _metrics(20, error_rate=0.2), CURRENT, OptimizationGoal.CONSERVATIVE
        )
        assert result.recommended_configuration.strategy == "conservative"
        assert result.justifications[0].startswith("Strategy changed from 'balanced' to 'conservative'")
        assert any(j.startswith("Step 1:") for j in result.justifications)

    def test_high_error_rate_adds_mitigation(self):
        result = recommend_configuration(
            _metrics(20, error_rate=1.5), CURRENT, OptimizationGoal.BALANCED
        )
        risk_types = [m.risk_type for m in result.risk_mitigations]
        assert "High Error Rate" in risk_types
        assert "Large Rollout Steps" in risk_types
        assert any("elevated error rate" in j for j in result.justifications)

    def test_fast_responses_justify_aggressive_rollout(self):
        result = recommend_configuration(
            _metrics(20, response_time=50.0), CURRENT, OptimizationGoal.AGGRESSIVE
        )
        assert "Excellent performance allows a more aggressive rollout" in result.justifications

    @pytest.mark.parametrize(
        "count,error_rate",
        [(0, 0.0), (3, 5.0), (60, 1.0), (200, 0.1), (500, 10.0)],
    )
    def test_confidence_is_clamped(self, count, error_rate):
        result = recommend_configuration(
            _metrics(count, error_rate=error_rate), CURRENT, OptimizationGoal.BALANCED
        )
        assert 0.1 <= result.confidence_score <= 0.99

    def test_confidence_levels(self):
        assert recommendation_confidence({"error_rate": 0.1}, 200) == pytest.approx(0.99)
        assert recommendation_confidence({"error_rate": 3.0}, 5) == pytest.approx(0.2)
        assert recommendation_confidence({"error_rate": 1.0}, 60) == pytest.approx(0.8)
